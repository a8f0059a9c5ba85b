"""Lifespan ownership and the initialize handshake.

``ServerRunner.run()`` enters the application lifespan (for the gateway: opening
the Zendesk client) exactly once and yields a ``RunningServer``. Transports hand
every decoded message to ``RunningServer.handle_message``; the handshake is
answered here, everything else goes to the ``LowLevelServer``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from pydantic import ValidationError

from zendesk_mcp.context import RequestContext, ResponseSink
from zendesk_mcp.server import LowLevelServer
from zendesk_mcp.session import SessionInfo
from zendesk_mcp.types import (
    INVALID_PARAMS,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    Implementation,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResultResponse,
    RequestId,
    ServerCapabilities,
    error_response,
)

logger = logging.getLogger(__name__)

Lifespan = Callable[[LowLevelServer], AbstractAsyncContextManager[Any]]


@asynccontextmanager
async def _no_state(server: LowLevelServer) -> AsyncIterator[None]:
    yield None


def negotiate_protocol_version(requested: str) -> str:
    """Echo a supported version, otherwise offer the latest one."""
    return requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION


class ServerRunner:
    """Pairs a server with its lifespan.

    Example:
        ```python
        runner = ServerRunner(server, lifespan=lifespan)
        async with runner.run() as running:
            await running.handle_message(sink, message)
        ```
    """

    def __init__(self, server: LowLevelServer, *, lifespan: Lifespan | None = None) -> None:
        self.server = server
        self._lifespan = lifespan if lifespan is not None else _no_state

    @asynccontextmanager
    async def run(self) -> AsyncIterator[RunningServer]:
        async with self._lifespan(self.server) as state:
            logger.debug("Lifespan of %s entered", self.server.name)
            yield RunningServer(self.server, state)
        logger.debug("Lifespan of %s exited", self.server.name)


class RunningServer:
    """A server whose lifespan is active. Shared by every session of a transport."""

    def __init__(self, server: LowLevelServer, server_state: Any) -> None:
        self._server = server
        self._state = server_state

    @property
    def server_state(self) -> Any:
        return self._state

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._server.get_capabilities()

    def _context(self, sink: ResponseSink, session: SessionInfo | None, request_id: RequestId) -> RequestContext:
        return RequestContext(server_state=self._state, session=session, request_id=request_id, _sink=sink)

    async def handle_message(
        self,
        sink: ResponseSink,
        message: JSONRPCMessage,
        *,
        session: SessionInfo | None = None,
    ) -> SessionInfo | None:
        """Handle one inbound message.

        Requests are answered through ``sink``. Notifications and responses from
        the client produce nothing. The return value is the new ``SessionInfo``
        when ``message`` was a successful ``initialize`` and ``None`` otherwise.
        """
        match message:
            case JSONRPCRequest(method="initialize"):
                return await self.handle_initialize(sink, message)
            case JSONRPCRequest():
                response = await self._server.dispatch_request(self._context(sink, session, message.id), message)
                await sink.send_result(response)
            case JSONRPCNotification(method="notifications/initialized"):
                logger.debug("Client finished initialization")
            case JSONRPCNotification():
                await self._server.dispatch_notification(self._context(sink, session, "notification"), message)
            case _:
                # The gateway never sends requests, so client responses have nothing to answer
                logger.debug("Dropping client response %r", message)
        return None

    async def handle_initialize(self, sink: ResponseSink, request: JSONRPCRequest) -> SessionInfo | None:
        """Answer ``initialize``. On bad params an error is sent and ``None`` returned."""
        try:
            params = InitializeRequestParams.model_validate(request.params or {})
        except ValidationError as exc:
            await sink.send_result(error_response(INVALID_PARAMS, f"Invalid initialize params: {exc}", request.id))
            return None

        version = negotiate_protocol_version(params.protocol_version)
        result = InitializeResult(
            protocol_version=version,
            capabilities=self.capabilities,
            server_info=Implementation(name=self._server.name, version=self._server.version),
            instructions=self._server.instructions,
        )
        await sink.send_result(
            JSONRPCResultResponse(id=request.id, result=result.model_dump(by_alias=True, exclude_none=True))
        )
        logger.debug("Negotiated %s with %s %s", version, params.client_info.name, params.client_info.version)
        return SessionInfo(
            client_info=params.client_info,
            client_capabilities=params.capabilities,
            protocol_version=version,
        )
