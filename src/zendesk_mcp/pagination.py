"""Collect every page of a paged Zendesk collection.

Zendesk list endpoints return a bounded page plus a continuation reference: either
``next_page`` (offset pagination) or ``links.next`` together with ``meta.has_more``
(cursor pagination). Both are absolute URLs on the account's API origin.

Pages are fetched strictly one after another, so the accumulated items keep the
server's order. There is no page cap: a collection that never stops returning a
continuation keeps the caller busy, and memory grows with it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from zendesk_mcp.client import ZendeskClient

logger = logging.getLogger(__name__)

PageCallback = Callable[[int, int], Awaitable[None]]
"""Called after each page with (pages fetched so far, items accumulated so far)."""


def next_page_url(page: dict[str, Any]) -> str | None:
    """Return the continuation URL of ``page``, or None on the last page."""
    next_page = page.get("next_page")
    if next_page:
        return next_page
    meta = page.get("meta") or {}
    links = page.get("links") or {}
    if meta.get("has_more") and links.get("next"):
        return links["next"]
    return None


async def collect_pages(
    client: ZendeskClient,
    path: str,
    items_key: str,
    *,
    on_page: PageCallback | None = None,
) -> list[Any]:
    """Fetch ``path`` and every following page, concatenating ``page[items_key]``.

    Any failed request aborts the whole collection: the :class:`RemoteCallError`
    propagates and the items gathered so far are dropped.
    """
    items: list[Any] = []
    pages = 0
    next_path: str | None = path
    while next_path is not None:
        page = await client.get(next_path)
        pages += 1
        items.extend(page.get(items_key) or [])
        if on_page is not None:
            await on_page(pages, len(items))

        url = next_page_url(page)
        next_path = client.relative_path(url) if url else None

    logger.debug("Collected %d %s from %d page(s) of %s", len(items), items_key, pages, path)
    return items
