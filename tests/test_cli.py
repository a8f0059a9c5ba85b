from typing import Any

import pytest
from click.testing import CliRunner

from zendesk_mcp import __main__ as cli


def test_help_lists_transports() -> None:
    result = CliRunner().invoke(cli.main, ["--help"])

    assert result.exit_code == 0
    assert "--transport" in result.output
    assert "streamable-http" in result.output


def test_rejects_unknown_transport() -> None:
    result = CliRunner().invoke(cli.main, ["--transport", "carrier-pigeon"])

    assert result.exit_code == 2


def test_stdio_transport_runs_stdio(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[Any, ...]] = []
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(cli.anyio, "run", lambda *args: calls.append(args))

    result = CliRunner().invoke(cli.main, ["--transport", "stdio", "--log-level", "debug"])

    assert result.exit_code == 0, result.output
    assert len(calls) == 1
    assert calls[0][0].__name__ == "run_stdio"


def test_http_transport_runs_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    import uvicorn

    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append(kwargs))

    result = CliRunner().invoke(cli.main, ["--transport", "streamable-http", "--port", "8123"])

    assert result.exit_code == 0, result.output
    assert calls == [{"host": "127.0.0.1", "port": 8123, "log_level": "info"}]
