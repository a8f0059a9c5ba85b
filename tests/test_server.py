"""LowLevelServer dispatch, the runner handshake and the gateway lifespan."""

from typing import Any

import pytest

from tests.helpers import FakeZendesk, init_request
from zendesk_mcp.context import RequestContext
from zendesk_mcp.exceptions import ProtocolError
from zendesk_mcp.gateway import AppState, create_runner
from zendesk_mcp.runner import ServerRunner, negotiate_protocol_version
from zendesk_mcp.server import LowLevelServer
from zendesk_mcp.settings import ZendeskSettings
from zendesk_mcp.transport.sink import NoOpSink, create_channel_sink
from zendesk_mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    JSONRPCErrorResponse,
    JSONRPCMessageAdapter,
    JSONRPCRequest,
    JSONRPCResultResponse,
    dump_message,
)

pytestmark = pytest.mark.anyio


def _server() -> LowLevelServer:
    server = LowLevelServer(name="test-server", version="0.1.0")

    @server.request_handler("echo")
    async def echo(ctx: RequestContext, request: JSONRPCRequest) -> dict[str, Any]:
        return {"echo": (request.params or {}).get("value")}

    @server.request_handler("refuse")
    async def refuse(ctx: RequestContext, request: JSONRPCRequest) -> dict[str, Any]:
        raise ProtocolError(INVALID_REQUEST, "Refused")

    @server.request_handler("crash")
    async def crash(ctx: RequestContext, request: JSONRPCRequest) -> dict[str, Any]:
        raise RuntimeError("secret details")

    return server


async def _dispatch(server: LowLevelServer, method: str, params: dict[str, Any] | None = None):
    request = JSONRPCRequest(id=1, method=method, params=params)
    ctx = RequestContext(server_state=None, session=None, request_id=1, _sink=NoOpSink())
    return await server.dispatch_request(ctx, request)


async def test_dispatch_to_handler() -> None:
    response = await _dispatch(_server(), "echo", {"value": None})

    assert isinstance(response, JSONRPCResultResponse)
    # null values inside results survive serialization
    assert dump_message(response) == {"jsonrpc": "2.0", "id": 1, "result": {"echo": None}}


async def test_unknown_method() -> None:
    response = await _dispatch(_server(), "missing")

    assert isinstance(response, JSONRPCErrorResponse)
    assert response.error.code == METHOD_NOT_FOUND


async def test_protocol_error_keeps_its_code() -> None:
    response = await _dispatch(_server(), "refuse")

    assert isinstance(response, JSONRPCErrorResponse)
    assert response.error.code == INVALID_REQUEST
    assert response.error.message == "Refused"


async def test_handler_crash_is_an_internal_error() -> None:
    response = await _dispatch(_server(), "crash")

    assert isinstance(response, JSONRPCErrorResponse)
    assert response.error.code == INTERNAL_ERROR
    assert "secret" not in response.error.message


def test_capabilities_follow_registered_handlers() -> None:
    assert _server().get_capabilities().tools is None

    server = _server()

    @server.request_handler("tools/list")
    async def list_tools(ctx: RequestContext, request: JSONRPCRequest) -> dict[str, Any]:
        return {"tools": []}

    assert server.get_capabilities().tools == {"listChanged": False}


async def test_runner_handshake_returns_session_info() -> None:
    runner = ServerRunner(_server())
    sink, events = create_channel_sink()

    async with runner.run() as running:
        info = await running.handle_message(sink, JSONRPCMessageAdapter.validate_python(init_request()))

    assert info is not None
    assert info.client_info.name == "test-client"
    assert info.protocol_version == "2025-11-25"
    async with events:
        event = await events.receive()
    assert event.is_final
    assert isinstance(event.message, JSONRPCResultResponse)
    assert event.message.result["serverInfo"] == {"name": "test-server", "version": "0.1.0"}


async def test_lifespan_without_credentials(unconfigured_settings: ZendeskSettings) -> None:
    async with create_runner(unconfigured_settings).run() as running:
        state = running.server_state
        assert isinstance(state, AppState)
        assert state.client is None
        assert state.credentials_configured is False


async def test_lifespan_opens_zendesk_client(settings: ZendeskSettings, fake_zendesk: FakeZendesk) -> None:
    async with create_runner(settings, transport=fake_zendesk.transport).run() as running:
        state: AppState = running.server_state
        assert state.credentials_configured is True
        assert state.client is not None
        assert state.client.base_url == "https://acme.zendesk.com/api/v2"


def test_duplicate_request_handler_is_rejected() -> None:
    server = _server()

    with pytest.raises(ValueError, match="echo"):

        @server.request_handler("echo")
        async def echo_again(ctx: RequestContext, request: JSONRPCRequest) -> dict[str, Any]:
            return {}


def test_protocol_version_negotiation() -> None:
    assert negotiate_protocol_version("2025-11-25") == "2025-11-25"
    assert negotiate_protocol_version("1999-01-01") == LATEST_PROTOCOL_VERSION
