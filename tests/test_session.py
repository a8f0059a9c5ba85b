"""Session lifecycle and the session table of the streamable HTTP transport."""

from collections.abc import AsyncIterator
from itertools import chain, repeat

import anyio
import pytest

from tests.helpers import init_request
from zendesk_mcp.exceptions import NoSessionError
from zendesk_mcp.gateway import create_runner
from zendesk_mcp.session import Session, SessionInfo, SessionState, SessionStateError, SessionStore
from zendesk_mcp.session_manager import JSONResult, StreamableHTTPSessionManager
from zendesk_mcp.settings import ZendeskSettings
from zendesk_mcp.types import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    ClientCapabilities,
    Implementation,
    JSONRPCErrorResponse,
    JSONRPCMessageAdapter,
    JSONRPCResultResponse,
)

pytestmark = pytest.mark.anyio


def _info() -> SessionInfo:
    return SessionInfo(
        client_info=Implementation(name="test-client", version="1.0"),
        client_capabilities=ClientCapabilities(),
        protocol_version="2025-11-25",
    )


def _message(data: dict):
    return JSONRPCMessageAdapter.validate_python(data)


@pytest.fixture
async def manager(unconfigured_settings: ZendeskSettings) -> AsyncIterator[StreamableHTTPSessionManager]:
    manager = StreamableHTTPSessionManager(create_runner(unconfigured_settings))
    async with manager.run():
        yield manager


# Session


def test_session_lifecycle() -> None:
    session = Session(session_id="abc")
    assert session.state is SessionState.INITIALIZING

    session.activate(_info())
    assert session.is_active
    assert session.info is not None and session.info.protocol_version == "2025-11-25"

    with pytest.raises(SessionStateError):
        session.activate(_info())


def test_close_runs_callbacks_once() -> None:
    closed: list[str] = []
    session = Session(session_id="abc")
    session.on_close(lambda s: closed.append(s.session_id))

    assert session.close() is True
    assert session.close() is False
    assert closed == ["abc"]
    assert session.is_closed


def test_closed_session_cannot_be_activated() -> None:
    session = Session(session_id="abc")
    session.close()

    with pytest.raises(SessionStateError):
        session.activate(_info())


# SessionStore


def test_store_issues_unique_ids() -> None:
    store = SessionStore()

    ids = {store.reserve_id() for _ in range(10_000)}

    assert len(ids) == 10_000


def test_store_draws_again_on_collision() -> None:
    store = SessionStore(id_factory=iter(["a", "a", "a", "b"]).__next__)

    assert store.reserve_id() == "a"
    assert store.reserve_id() == "b"


def test_retired_ids_are_never_reissued() -> None:
    store = SessionStore(id_factory=chain(["a"], repeat("a", 3), ["b"]).__next__)
    session = Session(session_id=store.reserve_id())
    store.register(session)
    store.remove("a")

    assert store.reserve_id() == "b"
    assert store.get("a") is None


def test_register_requires_reservation() -> None:
    store = SessionStore()

    with pytest.raises(KeyError):
        store.register(Session(session_id="never-reserved"))


def test_release_drops_the_reservation() -> None:
    store = SessionStore(id_factory=iter(["a", "a"]).__next__)
    session_id = store.reserve_id()
    store.release(session_id)

    # The id was never given to a client, so it is not kept around
    assert store.reserve_id() == "a"
    assert len(store) == 0


# StreamableHTTPSessionManager


async def test_handshake_registers_session(manager: StreamableHTTPSessionManager) -> None:
    result = await manager.handle_post(None, _message(init_request()))

    assert isinstance(result, JSONResult)
    assert isinstance(result.body, JSONRPCResultResponse)
    assert result.session_id in manager.store
    session = manager.get_session(result.session_id)
    assert session.is_active
    assert session.info is not None and session.info.client_info.name == "test-client"


async def test_failed_handshake_registers_nothing(manager: StreamableHTTPSessionManager) -> None:
    bad = {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"capabilities": {}}}

    result = await manager.handle_post(None, _message(bad))

    assert isinstance(result, JSONResult)
    assert result.status_code == 400
    assert result.session_id is None
    assert isinstance(result.body, JSONRPCErrorResponse)
    assert result.body.error.code == INVALID_PARAMS
    assert len(manager.store) == 0


async def test_non_handshake_without_session_is_rejected(manager: StreamableHTTPSessionManager) -> None:
    with pytest.raises(NoSessionError):
        await manager.handle_post(None, _message({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}))


async def test_initialize_without_params_is_not_a_handshake(manager: StreamableHTTPSessionManager) -> None:
    with pytest.raises(NoSessionError):
        await manager.handle_post(None, _message({"jsonrpc": "2.0", "id": 1, "method": "initialize"}))


async def test_closed_session_id_is_never_resurrected(manager: StreamableHTTPSessionManager) -> None:
    result = await manager.handle_post(None, _message(init_request()))
    assert isinstance(result, JSONResult) and result.session_id is not None
    session_id = result.session_id

    assert manager.close(manager.get_session(session_id)) is True

    assert session_id not in manager.store
    with pytest.raises(NoSessionError):
        await manager.handle_post(session_id, _message({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}))
    # Not even by a fresh handshake carrying the old id
    with pytest.raises(NoSessionError):
        await manager.handle_post(session_id, _message(init_request()))


async def test_second_initialize_on_live_session(manager: StreamableHTTPSessionManager) -> None:
    result = await manager.handle_post(None, _message(init_request()))
    assert isinstance(result, JSONResult) and result.session_id is not None

    again = await manager.handle_post(result.session_id, _message(init_request(2)))

    assert isinstance(again, JSONResult)
    assert again.status_code == 400
    assert isinstance(again.body, JSONRPCErrorResponse)
    assert again.body.error.code == INVALID_REQUEST


async def test_concurrent_handshakes_get_distinct_sessions(manager: StreamableHTTPSessionManager) -> None:
    session_ids: list[str] = []

    async def handshake(request_id: int) -> None:
        result = await manager.handle_post(None, _message(init_request(request_id)))
        assert isinstance(result, JSONResult) and result.session_id is not None
        session_ids.append(result.session_id)

    async with anyio.create_task_group() as tg:
        for request_id in range(50):
            tg.start_soon(handshake, request_id)

    assert len(set(session_ids)) == 50
    assert len(manager.store) == 50


async def test_sessions_are_independent(manager: StreamableHTTPSessionManager) -> None:
    first = await manager.handle_post(None, _message(init_request()))
    second = await manager.handle_post(None, _message(init_request()))
    assert isinstance(first, JSONResult) and isinstance(second, JSONResult)
    assert first.session_id and second.session_id

    manager.close(manager.get_session(first.session_id))

    result = await manager.handle_post(second.session_id, _message({"jsonrpc": "2.0", "id": 3, "method": "ping"}))
    assert isinstance(result, JSONResult)
    assert isinstance(result.body, JSONRPCResultResponse)


async def test_leaving_run_closes_every_session(unconfigured_settings: ZendeskSettings) -> None:
    manager = StreamableHTTPSessionManager(create_runner(unconfigured_settings))
    async with manager.run():
        for _ in range(3):
            await manager.handle_post(None, _message(init_request()))
        sessions = list(manager.store)
        assert len(sessions) == 3

    assert len(manager.store) == 0
    assert all(session.is_closed for session in sessions)


async def test_run_only_once(unconfigured_settings: ZendeskSettings) -> None:
    manager = StreamableHTTPSessionManager(create_runner(unconfigured_settings))
    async with manager.run():
        pass

    with pytest.raises(RuntimeError, match="only be called once"):
        async with manager.run():
            pass


async def test_failed_handshakes_leave_no_ids_behind(unconfigured_settings: ZendeskSettings) -> None:
    store = SessionStore(id_factory=chain(repeat("only-id", 101), ["other-id"]).__next__)
    manager = StreamableHTTPSessionManager(create_runner(unconfigured_settings), store=store)
    bad = {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"capabilities": {}}}

    async with manager.run():
        for _ in range(100):
            result = await manager.handle_post(None, _message(bad))
            assert isinstance(result, JSONResult) and result.status_code == 400

        # The id drawn for every failed attempt is still available
        result = await manager.handle_post(None, _message(init_request()))

    assert isinstance(result, JSONResult)
    assert result.session_id == "only-id"
