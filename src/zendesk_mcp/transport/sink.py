"""ResponseSink implementations backed by anyio memory channels."""

from __future__ import annotations

from dataclasses import dataclass

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from zendesk_mcp.types import JSONRPCMessage, JSONRPCResponse


@dataclass
class SinkEvent:
    """An outgoing message for the transport layer to deliver."""

    message: JSONRPCMessage
    is_final: bool = False


class ChannelSink:
    """ResponseSink that writes events to a memory channel.

    The reader decides how to deliver them: the HTTP transport picks JSON or SSE
    from the first event, stdio writes one line per event.
    """

    def __init__(self, send_stream: MemoryObjectSendStream[SinkEvent]) -> None:
        self._send = send_stream
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_intermediate(self, message: JSONRPCMessage) -> None:
        if self._closed:
            return
        try:
            await self._send.send(SinkEvent(message=message))
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            # Reader went away (client disconnected); the handler keeps running.
            self._closed = True

    async def send_result(self, response: JSONRPCResponse) -> None:
        """Send the final response and close the channel."""
        if self._closed:
            return
        try:
            await self._send.send(SinkEvent(message=response, is_final=True))
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            pass
        self._closed = True
        await self._send.aclose()

    async def close(self) -> None:
        """Close the channel without sending a result (e.g., on handler error)."""
        if self._closed:
            return
        self._closed = True
        with anyio.CancelScope(shield=True):
            await self._send.aclose()


class NoOpSink:
    """Discards everything. Used for notifications, which produce no response."""

    async def send_intermediate(self, message: JSONRPCMessage) -> None:
        pass

    async def send_result(self, response: JSONRPCResponse) -> None:
        pass

    async def close(self) -> None:
        pass


def create_channel_sink(max_buffer_size: float = 16) -> tuple[ChannelSink, MemoryObjectReceiveStream[SinkEvent]]:
    send, receive = anyio.create_memory_object_stream[SinkEvent](max_buffer_size)
    return ChannelSink(send), receive
