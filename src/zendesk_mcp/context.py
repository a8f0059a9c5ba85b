"""RequestContext and the ResponseSink protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from zendesk_mcp.types import JSONRPCMessage, JSONRPCNotification, JSONRPCResponse, RequestId

if TYPE_CHECKING:
    from zendesk_mcp.session import SessionInfo


@runtime_checkable
class ResponseSink(Protocol):
    """Where a request's outgoing messages go.

    One per incoming request. Transports provide the implementation: the HTTP
    transport reads the other end of a channel to choose between a JSON body and an
    SSE stream; stdio writes each message as one line.
    """

    async def send_intermediate(self, message: JSONRPCMessage) -> None:
        """Send a notification while the request is still being processed."""
        ...

    async def send_result(self, response: JSONRPCResponse) -> None:
        """Send the final response. After this, the sink is done."""
        ...

    async def close(self) -> None:
        """Close without a result (e.g., on handler error)."""
        ...


@dataclass
class RequestContext:
    """What JSON-RPC method handlers receive."""

    server_state: Any
    session: SessionInfo | None
    request_id: RequestId
    _sink: ResponseSink

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification to the client during request processing.

        Over HTTP this turns the response into an SSE stream.
        """
        await self._sink.send_intermediate(JSONRPCNotification(method=method, params=params))
