import pytest

from zendesk_mcp.settings import ServerSettings, ZendeskSettings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ZENDESK_SUBDOMAIN", "ZENDESK_EMAIL", "ZENDESK_API_TOKEN", "ZENDESK_PUBLIC_DOMAIN"):
        monkeypatch.delenv(name, raising=False)

    settings = ZendeskSettings(_env_file=None)

    assert settings.is_configured is False
    assert settings.default_locale == "ja"
    assert settings.request_timeout == 30
    assert settings.search_timeout == 10
    assert settings.article_candidate_limit == 10
    assert settings.article_result_limit == 5
    assert settings.article_fetch_concurrency is None


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZENDESK_SUBDOMAIN", "acme")
    monkeypatch.setenv("ZENDESK_EMAIL", "agent@example.com")
    monkeypatch.setenv("ZENDESK_API_TOKEN", "secret-token")
    monkeypatch.setenv("ZENDESK_PUBLIC_DOMAIN", "https://help.acme.com/")

    settings = ZendeskSettings(_env_file=None)

    assert settings.is_configured is True
    assert settings.public_domain == "help.acme.com"
    assert "secret-token" not in repr(settings)


def test_blank_token_is_not_configured() -> None:
    settings = ZendeskSettings(subdomain="acme", email="agent@example.com", api_token="", _env_file=None)

    assert settings.is_configured is False


def test_server_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZENDESK_MCP_PORT", "8080")

    settings = ServerSettings(_env_file=None)

    assert settings.port == 8080
    assert settings.host == "127.0.0.1"
    assert settings.mount_path == "/mcp"
