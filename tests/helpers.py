"""Shared test utilities: an in-memory Zendesk API and MCP message builders."""

from collections.abc import Callable
from typing import Any

import httpx

API = "/api/v2"

Route = dict[str, Any] | Callable[[httpx.Request], httpx.Response]


class FakeZendesk:
    """In-memory Zendesk API served through ``httpx.MockTransport``.

    Routes are keyed by method and path relative to ``/api/v2``. A route with a
    query string only matches that exact query; a bare path matches any query.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, body: Route) -> None:
        self.routes[(method, path)] = body

    def paths(self, method: str = "GET") -> list[str]:
        return [_relative(request) for request in self.requests if request.method == method]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        full = _relative(request)
        route = self.routes.get((request.method, full)) or self.routes.get((request.method, request.url.path[len(API) :]))
        if route is None:
            return httpx.Response(404, json={"error": "RecordNotFound", "description": "Not found"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def _relative(request: httpx.Request) -> str:
    raw = request.url.raw_path.decode()
    return raw[len(API) :] if raw.startswith(API) else raw


def paged(path: str, items_key: str, sizes: list[int], *, start: int = 1) -> dict[str, dict[str, Any]]:
    """Offset-paginated pages of ``sizes`` items, keyed by relative path with query."""
    pages: dict[str, dict[str, Any]] = {}
    next_id = start
    for number, size in enumerate(sizes, start=1):
        items = [{"id": next_id + offset} for offset in range(size)]
        next_id += size
        is_last = number == len(sizes)
        page_path = path if number == 1 else f"{path}{'&' if '?' in path else '?'}page={number}"
        next_query = f"{path}{'&' if '?' in path else '?'}page={number + 1}"
        pages[page_path] = {
            items_key: items,
            "next_page": None if is_last else f"https://acme.zendesk.com{API}{next_query}",
        }
    return pages


def init_request(request_id: int = 1, protocol_version: str = "2025-11-25") -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": protocol_version,
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0"},
        },
    }


def initialized_notification() -> dict[str, Any]:
    return {"jsonrpc": "2.0", "method": "notifications/initialized"}


def call_tool(
    request_id: int, name: str, arguments: dict[str, Any] | None, progress_token: str | int | None = None
) -> dict[str, Any]:
    params: dict[str, Any] = {"name": name}
    if arguments is not None:
        params["arguments"] = arguments
    if progress_token is not None:
        params["_meta"] = {"progressToken": progress_token}
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": params}
