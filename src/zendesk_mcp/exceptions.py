"""Errors raised by the Zendesk MCP gateway."""

from zendesk_mcp.types.json_rpc import ErrorData

CREDENTIALS_MISSING_MESSAGE = (
    "Error: Zendesk credentials not configured. "
    "Please set ZENDESK_SUBDOMAIN, ZENDESK_EMAIL, and ZENDESK_API_TOKEN environment variables."
)


class ZendeskMCPError(Exception):
    """Base class for gateway errors."""


class ConfigurationError(ZendeskMCPError):
    """The Zendesk credentials are missing, so no remote call can be made."""

    def __init__(self, message: str = CREDENTIALS_MISSING_MESSAGE):
        super().__init__(message)


class UnknownToolError(ZendeskMCPError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class MissingArgumentsError(ZendeskMCPError):
    """A tool call arrived without an arguments object."""

    def __init__(self, message: str = "Error: No arguments provided"):
        super().__init__(message)


class InvalidArgumentError(ZendeskMCPError):
    """A tool argument is present but unusable (wrong type, not in its enum, ...)."""


class NoSessionError(ZendeskMCPError):
    """The request carries no live session id and is not a handshake."""

    def __init__(self, message: str = "Bad Request: No valid session or initialize request"):
        super().__init__(message)


class RemoteCallError(ZendeskMCPError):
    """A call to the Zendesk API failed: transport error, timeout, non-2xx status or bad body.

    Attributes:
        method: HTTP method of the failed call
        path: path relative to the API base URL
        status_code: HTTP status returned by Zendesk, if a response arrived
    """

    def __init__(self, method: str, path: str, reason: str, status_code: int | None = None):
        super().__init__(f"{method} {path} failed: {reason}")
        self.method = method
        self.path = path
        self.status_code = status_code


class ProtocolError(ZendeskMCPError):
    """A JSON-RPC level failure that should be answered with a specific error code."""

    error: ErrorData

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.error = ErrorData(code=code, message=message)
