"""Command line entry point: ``zendesk-mcp`` or ``python -m zendesk_mcp``."""

import logging
import sys

import anyio
import click

from zendesk_mcp.gateway import create_runner
from zendesk_mcp.logging import configure_logging
from zendesk_mcp.settings import ServerSettings, ZendeskSettings

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    show_default=True,
    help="Transport type",
)
@click.option("--host", default=None, help="Host to bind for streamable-http [env: ZENDESK_MCP_HOST]")
@click.option("--port", type=int, default=None, help="Port to listen on for streamable-http [env: ZENDESK_MCP_PORT]")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Log level [env: ZENDESK_MCP_LOG_LEVEL]",
)
def main(transport: str, host: str | None, port: int | None, log_level: str | None) -> int:
    overrides = {key: value for key, value in {"host": host, "port": port}.items() if value is not None}
    if log_level is not None:
        overrides["log_level"] = log_level.upper()
    server_settings = ServerSettings(**overrides)
    configure_logging(server_settings.log_level)

    runner = create_runner(ZendeskSettings())

    if transport == "streamable-http":
        import uvicorn

        from zendesk_mcp.session_manager import StreamableHTTPSessionManager
        from zendesk_mcp.transport.starlette import create_starlette_app

        app = create_starlette_app(StreamableHTTPSessionManager(runner), mount_path=server_settings.mount_path)
        logger.info(
            "Listening on http://%s:%s%s", server_settings.host, server_settings.port, server_settings.mount_path
        )
        uvicorn.run(
            app,
            host=server_settings.host,
            port=server_settings.port,
            log_level=server_settings.log_level.lower(),
        )
    else:
        from zendesk_mcp.transport.stdio import run_stdio

        anyio.run(run_stdio, runner)

    return 0


if __name__ == "__main__":
    sys.exit(main())
