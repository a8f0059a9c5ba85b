from zendesk_mcp.client import ZendeskClient
from zendesk_mcp.gateway import SERVER_NAME, SERVER_VERSION, AppState, create_runner, create_server
from zendesk_mcp.session_manager import StreamableHTTPSessionManager
from zendesk_mcp.settings import ServerSettings, ZendeskSettings
from zendesk_mcp.tools import ToolContext, ToolRegistry, create_registry

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "AppState",
    "ServerSettings",
    "StreamableHTTPSessionManager",
    "ToolContext",
    "ToolRegistry",
    "ZendeskClient",
    "ZendeskSettings",
    "create_registry",
    "create_runner",
    "create_server",
]
