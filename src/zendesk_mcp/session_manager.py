"""StreamableHTTP session manager.

Framework-agnostic: resolves the session a request belongs to, runs the handshake
for new sessions, spawns handler tasks, and decides between a JSON body and an SSE
stream. The Starlette adapter in :mod:`zendesk_mcp.transport.starlette` only
translates HTTP to and from these calls.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from http import HTTPStatus

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream

from zendesk_mcp.exceptions import NoSessionError
from zendesk_mcp.runner import RunningServer, ServerRunner
from zendesk_mcp.session import Session, SessionStore
from zendesk_mcp.transport.sink import ChannelSink, NoOpSink, SinkEvent, create_channel_sink
from zendesk_mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPCMessage,
    JSONRPCRequest,
    JSONRPCResponse,
    error_response,
    is_handshake,
)

logger = logging.getLogger(__name__)

MCP_SESSION_ID_HEADER = "mcp-session-id"


@dataclass
class AcceptedResponse:
    """A notification or client response was accepted. Answer with 202."""

    session_id: str


@dataclass
class JSONResult:
    """The handler finished without intermediate messages. Answer with a JSON body."""

    body: JSONRPCResponse
    session_id: str | None
    status_code: int = HTTPStatus.OK


@dataclass
class SSEStream:
    """The handler is streaming. The first event has already been read."""

    first_event: SinkEvent
    event_stream: MemoryObjectReceiveStream[SinkEvent]
    session_id: str


PostResult = AcceptedResponse | JSONResult | SSEStream


class StreamableHTTPSessionManager:
    """Owns the session table of the streamable HTTP transport.

    Only one ``run()`` per instance. The session store is injectable so several
    managers (e.g. in tests) never share state.

    Usage:
        manager = StreamableHTTPSessionManager(runner)
        async with manager.run():
            session = manager.resolve_or_create(message, session_id)
            result = await manager.route_request(session, message)
    """

    def __init__(self, runner: ServerRunner, *, store: SessionStore | None = None) -> None:
        self.runner = runner
        self.store = store if store is not None else SessionStore()
        self._session_creation_lock = anyio.Lock()
        self._task_group: TaskGroup | None = None
        self._running: RunningServer | None = None
        self._has_started = False

    @property
    def running(self) -> RunningServer:
        if self._running is None:
            raise RuntimeError("Session manager is not running. Make sure to use run().")
        return self._running

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[RunningServer]:
        """Enter the server lifespan and the task group that runs request handlers.

        Leaving the context closes every live session.
        """
        if self._has_started:
            raise RuntimeError(
                "StreamableHTTPSessionManager .run() can only be called once per instance. "
                "Create a new instance if you need to run again."
            )
        self._has_started = True

        async with self.runner.run() as running, anyio.create_task_group() as tg:
            self._running = running
            self._task_group = tg
            logger.info("StreamableHTTP session manager started")
            try:
                yield running
            finally:
                logger.info("StreamableHTTP session manager shutting down")
                for session in self.store:
                    self.close(session)
                tg.cancel_scope.cancel()
                self._task_group = None
                self._running = None

    def get_session(self, session_id: str | None) -> Session:
        """Return the live session for ``session_id`` or raise NoSessionError."""
        session = self.store.get(session_id) if session_id is not None else None
        if session is None:
            raise NoSessionError()
        return session

    def resolve_or_create(self, message: JSONRPCMessage, session_id: str | None) -> Session:
        """Find the session a request belongs to, or start one for a handshake.

        A stale or unknown id is rejected even when the message is a handshake:
        closed sessions are never resurrected.
        """
        if session_id is not None:
            return self.get_session(session_id)
        if not is_handshake(message):
            raise NoSessionError()

        session = Session(session_id=self.store.reserve_id())
        session.on_close(self._on_session_closed)
        return session

    async def route_request(self, session: Session, message: JSONRPCMessage) -> PostResult:
        """Hand a message to its session and report how the HTTP exchange should complete."""
        if session.is_closed:
            raise NoSessionError()
        if not session.is_active:
            return await self._complete_handshake(session, message)

        if not isinstance(message, JSONRPCRequest):
            assert self._task_group is not None
            self._task_group.start_soon(self._run_notification, message, session)
            return AcceptedResponse(session_id=session.session_id)

        if message.method == "initialize":
            return JSONResult(
                body=error_response(INVALID_REQUEST, "Session already initialized", message.id),
                session_id=session.session_id,
                status_code=HTTPStatus.BAD_REQUEST,
            )

        sink, events = create_channel_sink()
        assert self._task_group is not None
        self._task_group.start_soon(self._run_handler, sink, message, session)

        try:
            first = await events.receive()
        except anyio.EndOfStream:
            # Handler closed the sink without sending anything
            return JSONResult(
                body=error_response(INTERNAL_ERROR, "Internal error", message.id),
                session_id=session.session_id,
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            )

        if first.is_final:
            events.close()
            return JSONResult(body=first.message, session_id=session.session_id)  # type: ignore[arg-type]

        return SSEStream(first_event=first, event_stream=events, session_id=session.session_id)

    async def handle_post(self, session_id: str | None, message: JSONRPCMessage) -> PostResult:
        return await self.route_request(self.resolve_or_create(message, session_id), message)

    def close(self, session: Session) -> bool:
        """Close a session. Idempotent; returns False if it was already closed."""
        return session.close()

    async def _complete_handshake(self, session: Session, message: JSONRPCMessage) -> PostResult:
        """Run the handshake inline and register the session only if it succeeds."""
        assert isinstance(message, JSONRPCRequest)
        sink, events = create_channel_sink(1)
        try:
            async with self._session_creation_lock:
                info = await self.running.handle_initialize(sink, message)
                if info is not None:
                    session.activate(info)
                    self.store.register(session)
        except BaseException:
            self.store.release(session.session_id)
            session.close()
            events.close()
            raise

        async with events:
            event = await events.receive()

        if info is None:
            self.store.release(session.session_id)
            session.close()
            return JSONResult(body=event.message, session_id=None, status_code=HTTPStatus.BAD_REQUEST)  # type: ignore[arg-type]

        logger.info("Created session %s for %s", session.session_id, info.client_info.name)
        return JSONResult(body=event.message, session_id=session.session_id)  # type: ignore[arg-type]

    def _on_session_closed(self, session: Session) -> None:
        if self.store.remove(session.session_id) is not None:
            logger.info("Closed session %s", session.session_id)

    async def _run_notification(self, message: JSONRPCMessage, session: Session) -> None:
        try:
            await self.running.handle_message(NoOpSink(), message, session=session.info)
        except Exception:
            logger.exception("Notification handler error")

    async def _run_handler(self, sink: ChannelSink, message: JSONRPCMessage, session: Session) -> None:
        try:
            await self.running.handle_message(sink, message, session=session.info)
        except Exception:
            logger.exception("Handler error in session %s", session.session_id)
        finally:
            await sink.close()
