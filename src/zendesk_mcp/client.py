"""Async client for the Zendesk Support and Help Center APIs.

Every method is a single HTTP request against ``https://{subdomain}.zendesk.com/api/v2``
returning the decoded JSON body. Failures of any kind (connection errors, timeouts,
non-2xx statuses, undecodable bodies) surface as :class:`RemoteCallError`. Nothing is
retried at this layer.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx

from zendesk_mcp.exceptions import ConfigurationError, RemoteCallError
from zendesk_mcp.settings import ZendeskSettings

logger = logging.getLogger(__name__)

USER_AGENT = "zendesk-mcp"


def create_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create an httpx AsyncClient with the gateway defaults.

    Defaults: ``follow_redirects=True`` and a 30 second timeout. Any keyword argument
    accepted by :class:`httpx.AsyncClient` overrides them.
    """
    default_kwargs: dict[str, Any] = {
        "follow_redirects": True,
        "timeout": httpx.Timeout(30.0),
    }
    default_kwargs.update(kwargs)
    return httpx.AsyncClient(**default_kwargs)


class ZendeskClient:
    """Thin wrapper around the Zendesk REST API.

    Usage:
        async with ZendeskClient.from_settings(settings) as client:
            ticket = await client.get_ticket(42)

    Args:
        subdomain: the ``{subdomain}`` of ``{subdomain}.zendesk.com``
        email: agent email the API token belongs to
        api_token: Zendesk API token
        timeout: default per-call timeout in seconds
        search_timeout: per-call timeout for search endpoints
        transport: optional httpx transport, e.g. ``httpx.MockTransport`` in tests
    """

    def __init__(
        self,
        subdomain: str,
        email: str,
        api_token: str,
        *,
        timeout: float = 30.0,
        search_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.subdomain = subdomain
        self.origin = f"https://{subdomain}.zendesk.com"
        self.base_url = f"{self.origin}/api/v2"
        self.search_timeout = search_timeout
        self._http = create_http_client(
            base_url=self.base_url,
            # BasicAuth encodes the header once, at construction.
            auth=httpx.BasicAuth(f"{email}/token", api_token),
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: ZendeskSettings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> ZendeskClient:
        if not settings.is_configured:
            raise ConfigurationError()
        assert settings.subdomain and settings.email and settings.api_token
        return cls(
            settings.subdomain,
            settings.email,
            settings.api_token.get_secret_value(),
            timeout=settings.request_timeout,
            search_timeout=settings.search_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> ZendeskClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def relative_path(self, url: str) -> str:
        """Strip the API base URL from an absolute continuation URL.

        Zendesk returns ``next_page`` as an absolute URL; the remainder is reused
        against the same client. URLs on any other origin are returned unchanged.
        """
        if url.startswith(self.base_url):
            return url[len(self.base_url) :] or "/"
        return url

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Issue one call and return its JSON body."""
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = httpx.Timeout(timeout)
        logger.debug("Zendesk %s %s", method, path)
        try:
            response = await self._http.request(method, path, params=params, json=json, **extra)
        except httpx.TimeoutException as exc:
            raise RemoteCallError(method, path, "request timed out") from exc
        except httpx.HTTPError as exc:
            raise RemoteCallError(method, path, str(exc) or type(exc).__name__) from exc

        if response.is_error:
            raise RemoteCallError(
                method,
                path,
                f"{response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteCallError(method, path, "response body is not JSON", response.status_code) from exc
        if not isinstance(body, dict):
            raise RemoteCallError(method, path, "response body is not a JSON object", response.status_code)
        return body

    async def get(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request("PUT", path, **kwargs)

    # Support API

    async def search(self, object_type: str, query: str) -> dict[str, Any]:
        return await self.get(
            "/search.json",
            params={"query": f"type:{object_type} {query}"},
            timeout=self.search_timeout,
        )

    async def get_ticket(self, ticket_id: int) -> dict[str, Any]:
        return await self.get(f"/tickets/{ticket_id}.json")

    async def create_ticket(
        self, subject: str, comment: str, priority: str | None = None, tags: list[str] | None = None
    ) -> dict[str, Any]:
        ticket = {
            "subject": subject,
            "comment": {"body": comment},
            "priority": priority or "normal",
            "tags": tags or [],
        }
        return await self.post("/tickets.json", json={"ticket": ticket})

    async def update_ticket(self, ticket_id: int, updates: dict[str, Any]) -> dict[str, Any]:
        return await self.put(f"/tickets/{ticket_id}.json", json={"ticket": updates})

    async def add_comment(self, ticket_id: int, comment: str, public: bool = True) -> dict[str, Any]:
        return await self.update_ticket(ticket_id, {"comment": {"body": comment, "public": public}})

    async def get_user(self, user_id: int) -> dict[str, Any]:
        return await self.get(f"/users/{user_id}.json")

    async def get_organization(self, org_id: int) -> dict[str, Any]:
        return await self.get(f"/organizations/{org_id}.json")

    # Help Center API

    async def search_articles(self, query: str, locale: str) -> dict[str, Any]:
        return await self.get(
            "/help_center/articles/search.json",
            params={"query": query, "locale": locale},
            timeout=self.search_timeout,
        )

    async def get_article(self, article_id: int, locale: str) -> dict[str, Any]:
        return await self.get(f"/help_center/{locale}/articles/{article_id}.json")
