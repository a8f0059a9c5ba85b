"""Sessions of the streamable HTTP transport and the table that owns them."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from zendesk_mcp.types import ClientCapabilities, Implementation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    """Immutable protocol-level state agreed during the handshake."""

    client_info: Implementation
    client_capabilities: ClientCapabilities
    protocol_version: str


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    CLOSED = "closed"


class SessionStateError(RuntimeError):
    """An illegal lifecycle transition was attempted."""


CloseCallback = Callable[["Session"], None]


@dataclass(eq=False)
class Session:
    """One logical client connection.

    Lifecycle: ``INITIALIZING → ACTIVE → CLOSED``. ``activate`` happens exactly once,
    when the handshake succeeds; ``close`` may be called any number of times but
    tears down only once, running the registered close callbacks.
    """

    session_id: str
    state: SessionState = SessionState.INITIALIZING
    info: SessionInfo | None = None
    _close_callbacks: list[CloseCallback] = field(default_factory=list, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def on_close(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    def activate(self, info: SessionInfo) -> None:
        if self.state is not SessionState.INITIALIZING:
            raise SessionStateError(f"Session {self.session_id} cannot be activated from {self.state.value}")
        self.info = info
        self.state = SessionState.ACTIVE

    def close(self) -> bool:
        """Close the session. Returns False if it was already closed."""
        if self.state is SessionState.CLOSED:
            return False
        self.state = SessionState.CLOSED
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback(self)
        return True


class SessionStore:
    """Owned table of live sessions, keyed by session id.

    Ids move through three sets: *reserved* while a handshake is in progress,
    *live* once the session is registered, and *retired* after a live session is
    removed. A retired id is never handed out or accepted again. A reservation
    whose handshake fails is simply dropped, since no client ever saw the id.

    Limitation: retired ids are kept for the life of the process, one short
    string per session that was ever initialized.

    Every method is synchronous, so no other task can run between checking an
    id and recording it.
    """

    def __init__(self, id_factory: Callable[[], str] = lambda: uuid4().hex) -> None:
        self._id_factory = id_factory
        self._live: dict[str, Session] = {}
        self._reserved: set[str] = set()
        self._retired: set[str] = set()

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._live

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._live.values()))

    def reserve_id(self) -> str:
        """Allocate a fresh id that is not live, reserved or retired."""
        while True:
            session_id = self._id_factory()
            if session_id not in self._live and session_id not in self._reserved and session_id not in self._retired:
                self._reserved.add(session_id)
                return session_id
            logger.warning("Session id collision on %s, drawing again", session_id)

    def release(self, session_id: str) -> None:
        """Give up a reservation whose handshake did not complete.

        The id was never sent to a client, so it is not retired.
        """
        self._reserved.discard(session_id)

    def register(self, session: Session) -> None:
        if session.session_id not in self._reserved:
            raise KeyError(f"Session id {session.session_id} was not reserved")
        self._reserved.discard(session.session_id)
        self._live[session.session_id] = session

    def get(self, session_id: str) -> Session | None:
        return self._live.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        session = self._live.pop(session_id, None)
        if session is not None:
            self._retired.add(session_id)
        return session
