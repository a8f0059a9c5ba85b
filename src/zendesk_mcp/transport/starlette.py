"""Starlette adapter for the streamable HTTP transport.

This is the only module with a Starlette dependency. It converts HTTP requests to
and from :class:`StreamableHTTPSessionManager` calls, and adds the two plain HTTP
surfaces kept for existing integrations: ``GET /tools`` and ``POST /tools/{name}``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any

from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from zendesk_mcp.exceptions import (
    ConfigurationError,
    InvalidArgumentError,
    MissingArgumentsError,
    NoSessionError,
    RemoteCallError,
    UnknownToolError,
)
from zendesk_mcp.gateway import SERVER_NAME, SERVER_VERSION, AppState
from zendesk_mcp.session_manager import (
    MCP_SESSION_ID_HEADER,
    AcceptedResponse,
    JSONResult,
    SSEStream,
    StreamableHTTPSessionManager,
)
from zendesk_mcp.transport.sink import SinkEvent
from zendesk_mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    NO_SESSION,
    PARSE_ERROR,
    JSONRPCMessage,
    JSONRPCMessageAdapter,
    dump_message,
    error_response,
)

logger = logging.getLogger(__name__)

# Status codes for the plain /tools/{name} endpoint
TOOL_ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (UnknownToolError, HTTPStatus.NOT_FOUND),
    (MissingArgumentsError, HTTPStatus.BAD_REQUEST),
    (InvalidArgumentError, HTTPStatus.BAD_REQUEST),
    (ConfigurationError, HTTPStatus.SERVICE_UNAVAILABLE),
    (RemoteCallError, HTTPStatus.BAD_GATEWAY),
]


def _rpc_error(code: int, message: str, status_code: int = HTTPStatus.BAD_REQUEST) -> JSONResponse:
    return JSONResponse(dump_message(error_response(code, message)), status_code=status_code)


def _sse_event(event: SinkEvent) -> dict[str, str]:
    return {"event": "message", "data": json.dumps(dump_message(event.message), default=str)}


def _tool_error_status(exc: Exception) -> int:
    for exc_type, status_code in TOOL_ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return HTTPStatus.INTERNAL_SERVER_ERROR


def create_starlette_app(
    manager: StreamableHTTPSessionManager,
    *,
    mount_path: str = "/mcp",
    debug: bool = False,
) -> Starlette:
    """Create the ASGI app serving ``manager``.

    Usage:
        manager = StreamableHTTPSessionManager(create_runner(ZendeskSettings()))
        app = create_starlette_app(manager)
        uvicorn.run(app, host="127.0.0.1", port=3000)
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with manager.run():
            yield

    def app_state() -> AppState:
        return manager.running.server_state

    async def handle_post(request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        body = await request.body()

        try:
            message: JSONRPCMessage = JSONRPCMessageAdapter.validate_json(body)
        except ValidationError as exc:
            if any(error["type"] == "json_invalid" for error in exc.errors()):
                return _rpc_error(PARSE_ERROR, "Parse error")
            return _rpc_error(INVALID_REQUEST, "Invalid Request")

        try:
            result = await manager.handle_post(session_id, message)
        except NoSessionError as exc:
            return _rpc_error(NO_SESSION, str(exc))
        except Exception:
            logger.exception("Error handling POST request")
            return _rpc_error(INTERNAL_ERROR, "Internal error", HTTPStatus.INTERNAL_SERVER_ERROR)

        match result:
            case AcceptedResponse(session_id=sid):
                return Response(status_code=HTTPStatus.ACCEPTED, headers={MCP_SESSION_ID_HEADER: sid})

            case JSONResult(body=response_body, session_id=sid, status_code=status_code):
                headers = {MCP_SESSION_ID_HEADER: sid} if sid is not None else None
                return JSONResponse(dump_message(response_body), status_code=status_code, headers=headers)

            case SSEStream(first_event=first, event_stream=stream, session_id=sid):

                async def events() -> AsyncIterator[dict[str, str]]:
                    yield _sse_event(first)
                    async with stream:
                        async for event in stream:
                            yield _sse_event(event)

                return EventSourceResponse(
                    events(),
                    headers={MCP_SESSION_ID_HEADER: sid, "Cache-Control": "no-cache, no-transform"},
                )

        return Response(status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

    async def handle_delete(request: Request) -> Response:
        try:
            session = manager.get_session(request.headers.get(MCP_SESSION_ID_HEADER))
        except NoSessionError as exc:
            return _rpc_error(NO_SESSION, str(exc))
        manager.close(session)
        return Response(status_code=HTTPStatus.OK)

    async def handle_get(request: Request) -> Response:
        try:
            manager.get_session(request.headers.get(MCP_SESSION_ID_HEADER))
        except NoSessionError as exc:
            return _rpc_error(NO_SESSION, str(exc))
        # No standalone server-to-client stream: this server never initiates messages.
        return Response(status_code=HTTPStatus.METHOD_NOT_ALLOWED, headers={"Allow": "POST, DELETE"})

    async def handle_mcp(request: Request) -> Response:
        if request.method == "POST":
            return await handle_post(request)
        if request.method == "DELETE":
            return await handle_delete(request)
        if request.method == "GET":
            return await handle_get(request)
        return Response(status_code=HTTPStatus.METHOD_NOT_ALLOWED, headers={"Allow": "GET, POST, DELETE"})

    async def health(request: Request) -> Response:
        return JSONResponse(
            {
                "name": SERVER_NAME,
                "version": SERVER_VERSION,
                "status": "running",
                "credentials_configured": app_state().credentials_configured,
                "mcp_endpoint": mount_path,
            }
        )

    async def list_tools(request: Request) -> Response:
        tools = app_state().registry.list()
        return JSONResponse({"tools": [tool.model_dump(by_alias=True, exclude_none=True) for tool in tools]})

    async def call_tool(request: Request) -> Response:
        name = request.path_params["name"]
        state = app_state()
        try:
            # A request without a body calls the tool with no arguments
            arguments: Any = await request.json() if (await request.body()).strip() else {}
        except ValueError:
            return JSONResponse(
                {"success": False, "error": "Request body must be a JSON object"}, status_code=HTTPStatus.BAD_REQUEST
            )
        if arguments is not None and not isinstance(arguments, dict):
            return JSONResponse(
                {"success": False, "error": "Request body must be a JSON object"}, status_code=HTTPStatus.BAD_REQUEST
            )

        try:
            data = await state.registry.execute(name, arguments, state.tool_context())
        except Exception as exc:
            status_code = _tool_error_status(exc)
            if status_code == HTTPStatus.INTERNAL_SERVER_ERROR:
                logger.exception("Tool %s failed", name)
            else:
                logger.info("Tool %s failed: %s", name, exc)
            return JSONResponse({"success": False, "error": str(exc)}, status_code=status_code)

        return Response(
            json.dumps({"success": True, "data": data}, default=str),
            media_type="application/json",
        )

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["Mcp-Session-Id"],
        )
    ]

    return Starlette(
        debug=debug,
        lifespan=lifespan,
        middleware=middleware,
        routes=[
            Route("/", health, methods=["GET"]),
            Route("/tools", list_tools, methods=["GET"]),
            Route("/tools/{name}", call_tool, methods=["POST"]),
            Route(mount_path, handle_mcp, methods=["GET", "POST", "DELETE", "PUT", "PATCH"]),
        ],
    )
