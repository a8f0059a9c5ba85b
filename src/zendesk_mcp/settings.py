"""Runtime configuration.

All settings can be supplied through environment variables (or a ``.env`` file).
Zendesk settings use the ``ZENDESK_`` prefix, e.g. ``ZENDESK_SUBDOMAIN=acme``;
server settings use ``ZENDESK_MCP_``, e.g. ``ZENDESK_MCP_PORT=8080``.
"""

from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ZendeskSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ZENDESK_",
        env_file=".env",
        extra="ignore",
    )

    subdomain: str | None = None
    email: str | None = None
    api_token: SecretStr | None = None

    public_domain: str | None = None
    """Help Center domain used in article URLs instead of ``{subdomain}.zendesk.com``."""

    default_locale: str = "ja"

    request_timeout: float = Field(default=30.0, gt=0)
    search_timeout: float = Field(default=10.0, gt=0)
    """Timeout for search endpoints, which sit on the user-facing path."""

    article_candidate_limit: int = Field(default=10, ge=1)
    article_result_limit: int = Field(default=5, ge=1)
    article_fetch_concurrency: int | None = Field(default=None, ge=1)

    @field_validator("public_domain")
    @classmethod
    def _strip_scheme(cls, value: str | None) -> str | None:
        if not value:
            return None
        for prefix in ("https://", "http://"):
            if value.startswith(prefix):
                value = value[len(prefix) :]
        return value.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.subdomain and self.email and self.api_token and self.api_token.get_secret_value())


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ZENDESK_MCP_",
        env_file=".env",
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 3000
    mount_path: str = "/mcp"
    log_level: LogLevel = "INFO"
