"""Logging setup for the gateway.

Logs always go to stderr: on the stdio transport stdout carries the protocol.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from zendesk_mcp.settings import LogLevel


def configure_logging(level: LogLevel = "INFO") -> None:
    """Install a rich handler on stderr for the root logger.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO, which would drown out session events.
    logging.getLogger("httpx").setLevel(max(logging.getLevelName(level), logging.WARNING))
