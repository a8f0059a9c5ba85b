"""Stdio transport: newline-delimited JSON-RPC over the process' stdin/stdout.

There is exactly one implicit session for the lifetime of the process and no
session id. Messages are handled one at a time, in arrival order; anything a
handler sends (progress notifications, the final response) is written as soon
as it is produced.

Example:
    ```python
    runner = create_runner(ZendeskSettings())
    anyio.run(run_stdio, runner)
    ```
"""

from __future__ import annotations

import logging
import sys
from io import TextIOWrapper
from typing import BinaryIO

import anyio
import pydantic_core
from pydantic import ValidationError

from zendesk_mcp.runner import RunningServer, ServerRunner
from zendesk_mcp.session import SessionInfo
from zendesk_mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCMessageAdapter,
    JSONRPCRequest,
    JSONRPCResponse,
    dump_message,
    error_response,
)

logger = logging.getLogger(__name__)


class _NonClosingTextIOWrapper(TextIOWrapper):
    """Text wrapper that never closes the underlying binary stream.

    The process' real stdin/stdout must stay open after the transport stops.
    """

    def close(self) -> None:
        if self.closed:
            return
        if self.writable():
            self.flush()


def _wrap_process_stdio(binary_stream: BinaryIO) -> anyio.AsyncFile[str]:
    return anyio.wrap_file(_NonClosingTextIOWrapper(binary_stream, encoding="utf-8"))


class StdoutWriter:
    """Serializes outgoing messages, one JSON document per line."""

    def __init__(self, stdout: anyio.AsyncFile[str]) -> None:
        self._stdout = stdout
        self._lock = anyio.Lock()

    async def write(self, message: JSONRPCMessage) -> None:
        line = pydantic_core.to_json(dump_message(message), fallback=str).decode()
        async with self._lock:
            await self._stdout.write(line + "\n")
            await self._stdout.flush()


class WriterSink:
    """ResponseSink that writes straight to stdout.

    Only one final response per request is written; anything after it is dropped.
    """

    def __init__(self, writer: StdoutWriter) -> None:
        self._writer = writer
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    async def send_intermediate(self, message: JSONRPCMessage) -> None:
        if not self._done:
            await self._writer.write(message)

    async def send_result(self, response: JSONRPCResponse) -> None:
        if self._done:
            return
        self._done = True
        await self._writer.write(response)

    async def close(self) -> None:
        self._done = True


def rejection_for(exc: ValidationError) -> JSONRPCErrorResponse:
    """The error answering a line that is not JSON (-32700) or not a JSON-RPC envelope (-32600)."""
    if any(error["type"] == "json_invalid" for error in exc.errors()):
        return error_response(PARSE_ERROR, "Parse error")
    return error_response(INVALID_REQUEST, "Invalid Request")


class StdioSession:
    """The single implicit session of a stdio process."""

    def __init__(self, running: RunningServer, writer: StdoutWriter) -> None:
        self.running = running
        self.writer = writer
        self.info: SessionInfo | None = None

    async def handle_line(self, raw_line: str) -> None:
        line = raw_line.strip()
        if not line:
            return

        try:
            message = JSONRPCMessageAdapter.validate_json(line)
        except ValidationError as exc:
            rejection = rejection_for(exc)
            logger.warning("Rejected input line: %s", rejection.error.message)
            await self.writer.write(rejection)
            return

        sink = WriterSink(self.writer)
        try:
            info = await self.running.handle_message(sink, message, session=self.info)
        except Exception:
            logger.exception("Handler error")
            if isinstance(message, JSONRPCRequest):
                await sink.send_result(error_response(INTERNAL_ERROR, "Internal error", message.id))
            return
        finally:
            await sink.close()

        if info is not None:
            self.info = info
            logger.info("Stdio session initialized for %s", info.client_info.name)


async def run_stdio(
    runner: ServerRunner,
    *,
    stdin: anyio.AsyncFile[str] | None = None,
    stdout: anyio.AsyncFile[str] | None = None,
) -> None:
    """Serve ``runner`` over stdin/stdout until stdin is exhausted.

    Encoding of the standard streams is platform-dependent, so the underlying
    binary streams are re-wrapped as UTF-8. Tests pass their own streams.
    """
    if stdin is None:
        stdin = _wrap_process_stdio(sys.stdin.buffer)
    if stdout is None:
        stdout = _wrap_process_stdio(sys.stdout.buffer)

    async with runner.run() as running:
        session = StdioSession(running, StdoutWriter(stdout))
        logger.info("Serving over stdio")
        async for raw_line in stdin:
            await session.handle_line(raw_line)
    logger.info("Stdin closed, stdio transport stopped")
