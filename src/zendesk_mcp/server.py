"""LowLevelServer: JSON-RPC method table and dispatch.

The server knows nothing about sessions, transports or lifespans. It maps a
method name to a coroutine and turns whatever that coroutine returns (or
raises) into exactly one response envelope.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from zendesk_mcp.context import RequestContext
from zendesk_mcp.exceptions import ProtocolError
from zendesk_mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JSONRPCErrorResponse,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCResultResponse,
    ServerCapabilities,
    error_response,
)

logger = logging.getLogger(__name__)

RequestHandler = Callable[[RequestContext, JSONRPCRequest], Awaitable[Any]]
NotificationHandler = Callable[[RequestContext, JSONRPCNotification], Awaitable[None]]

# Methods whose presence advertises the tools capability
TOOL_METHODS = frozenset({"tools/list", "tools/call"})


def _result_payload(result: Any) -> dict[str, Any]:
    if isinstance(result, BaseModel):
        return result.model_dump(by_alias=True, exclude_none=True)
    if isinstance(result, dict):
        return result
    return {}


class LowLevelServer:
    """Method table for one MCP server.

    Example:
        ```python
        server = LowLevelServer(name="zendesk-mcp-server", version="1.0.0")

        @server.request_handler("ping")
        async def ping(ctx, request):
            return {}
        ```
    """

    def __init__(self, *, name: str, version: str, instructions: str | None = None) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self._requests: dict[str, RequestHandler] = {}
        self._notifications: dict[str, NotificationHandler] = {}

    def request_handler(self, method: str) -> Callable[[RequestHandler], RequestHandler]:
        """Register ``fn`` as the handler of requests named ``method``."""

        def register(fn: RequestHandler) -> RequestHandler:
            if method in self._requests:
                raise ValueError(f"Request handler already registered: {method}")
            self._requests[method] = fn
            return fn

        return register

    def notification_handler(self, method: str) -> Callable[[NotificationHandler], NotificationHandler]:
        def register(fn: NotificationHandler) -> NotificationHandler:
            self._notifications[method] = fn
            return fn

        return register

    async def dispatch_request(self, ctx: RequestContext, request: JSONRPCRequest) -> JSONRPCResponse:
        """Run the handler for ``request`` and wrap the outcome.

        Unknown methods give -32601, params that fail model validation -32602,
        a ``ProtocolError`` its own code, anything else -32603 without details.
        """
        handler = self._requests.get(request.method)
        if handler is None:
            return error_response(METHOD_NOT_FOUND, f"Method not found: {request.method}", request.id)

        try:
            result = await handler(ctx, request)
        except ValidationError as exc:
            return self._failure(request, INVALID_PARAMS, f"Invalid params for {request.method}: {exc}")
        except ProtocolError as exc:
            return self._failure(request, exc.error.code, exc.error.message)
        except Exception:
            logger.exception("Request %s (id=%s) failed", request.method, request.id)
            return self._failure(request, INTERNAL_ERROR, "Internal error")

        return JSONRPCResultResponse(id=request.id, result=_result_payload(result))

    async def dispatch_notification(self, ctx: RequestContext, notification: JSONRPCNotification) -> None:
        handler = self._notifications.get(notification.method)
        if handler is None:
            logger.debug("No handler for notification %s", notification.method)
            return
        try:
            await handler(ctx, notification)
        except Exception:
            # Notifications have no response to carry the failure
            logger.exception("Notification %s failed", notification.method)

    def get_capabilities(self) -> ServerCapabilities:
        capabilities = ServerCapabilities()
        if TOOL_METHODS & self._requests.keys():
            capabilities.tools = {"listChanged": False}
        return capabilities

    @staticmethod
    def _failure(request: JSONRPCRequest, code: int, message: str) -> JSONRPCErrorResponse:
        logger.debug("Request %s (id=%s) answered with error %s", request.method, request.id, code)
        return error_response(code, message, request.id)
