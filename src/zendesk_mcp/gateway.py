"""Wires the Zendesk tools into a LowLevelServer.

``create_runner(settings)`` is the entry point used by every transport: it builds
the server, registers ``tools/list``, ``tools/call`` and ``ping``, and attaches a
lifespan that opens (and closes) the Zendesk client.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from zendesk_mcp.client import ZendeskClient
from zendesk_mcp.context import RequestContext
from zendesk_mcp.server import LowLevelServer
from zendesk_mcp.runner import ServerRunner
from zendesk_mcp.settings import ZendeskSettings
from zendesk_mcp.tools import ProgressCallback, ToolContext, ToolRegistry, create_registry
from zendesk_mcp.types import (
    CallToolRequestParams,
    CallToolResult,
    JSONRPCRequest,
    ListToolsResult,
    ProgressNotificationParams,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "zendesk-mcp-server"
SERVER_VERSION = "1.0.0"


@dataclass
class AppState:
    """Server-wide state shared by every session."""

    settings: ZendeskSettings
    registry: ToolRegistry
    client: ZendeskClient | None

    @property
    def credentials_configured(self) -> bool:
        return self.client is not None

    def tool_context(self, progress: ProgressCallback | None = None) -> ToolContext:
        return ToolContext(client=self.client, settings=self.settings, progress=progress)


def _progress_reporter(ctx: RequestContext, params: CallToolRequestParams) -> ProgressCallback | None:
    token = params.meta.progress_token if params.meta else None
    if token is None:
        return None

    async def report(progress: float, total: float | None, message: str | None) -> None:
        notification = ProgressNotificationParams(progress_token=token, progress=progress, total=total, message=message)
        await ctx.send_notification("notifications/progress", notification.model_dump(by_alias=True, exclude_none=True))

    return report


def create_server(name: str = SERVER_NAME, version: str = SERVER_VERSION) -> LowLevelServer:
    server = LowLevelServer(
        name=name,
        version=version,
        instructions="Tools for Zendesk Support tickets, users, organizations and Help Center articles.",
    )

    @server.request_handler("ping")
    async def ping(ctx: RequestContext, request: JSONRPCRequest) -> dict[str, object]:
        return {}

    @server.request_handler("tools/list")
    async def list_tools(ctx: RequestContext, request: JSONRPCRequest) -> ListToolsResult:
        state: AppState = ctx.server_state
        return ListToolsResult(tools=state.registry.list())

    @server.request_handler("tools/call")
    async def call_tool(ctx: RequestContext, request: JSONRPCRequest) -> CallToolResult:
        state: AppState = ctx.server_state
        params = CallToolRequestParams.model_validate(request.params or {})
        context = state.tool_context(_progress_reporter(ctx, params))
        return await state.registry.invoke(params.name, params.arguments, context)

    return server


def create_runner(
    settings: ZendeskSettings,
    *,
    registry: ToolRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServerRunner:
    """Build the runner for the Zendesk gateway.

    Without complete credentials the server still starts; every tool call then
    fails with the credentials message.

    Args:
        settings: Zendesk configuration
        registry: tools to expose, defaults to every Zendesk tool
        transport: optional httpx transport for the Zendesk client (tests)
    """
    tools = registry if registry is not None else create_registry()

    @asynccontextmanager
    async def lifespan(server: LowLevelServer) -> AsyncIterator[AppState]:
        if not settings.is_configured:
            logger.warning(
                "Zendesk credentials not configured; set ZENDESK_SUBDOMAIN, ZENDESK_EMAIL and ZENDESK_API_TOKEN"
            )
            yield AppState(settings=settings, registry=tools, client=None)
            return

        async with ZendeskClient.from_settings(settings, transport=transport) as client:
            logger.info("Zendesk client ready for %s", client.base_url)
            yield AppState(settings=settings, registry=tools, client=client)

    return ServerRunner(create_server(), lifespan=lifespan)
