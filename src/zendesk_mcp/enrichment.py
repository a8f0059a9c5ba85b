"""Best-effort enrichment of search hits with their full records.

A search returns lightweight summaries. :func:`fan_out` fetches the detail for a
bounded prefix of them concurrently, merges each summary with its detail, and drops
whatever cannot or should not be shown, without failing the batch:

* a failed fetch (timeout, HTTP error, ...) drops that item and is recorded in
  :attr:`EnrichmentResult.failures`
* a transform returning ``None`` drops that item (e.g. the record is not public)

The surviving items keep the order of the input regardless of completion order.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import anyio

logger = logging.getLogger(__name__)

SummaryT = TypeVar("SummaryT")
DetailT = TypeVar("DetailT")
ItemT = TypeVar("ItemT")


@dataclass
class EnrichmentResult(Generic[ItemT]):
    items: list[ItemT]
    """Transformed records, in input order, at most ``result_limit`` long."""

    candidates: int
    """How many summaries were considered (after ``candidate_limit``)."""

    failures: dict[Any, str] = field(default_factory=dict)
    """Failed fetches, keyed by candidate key, with the error message."""

    filtered: int = 0
    """Candidates fetched successfully but discarded by the transform."""

    @property
    def omitted(self) -> int:
        return self.candidates - len(self.items)


async def fan_out(
    candidates: Sequence[SummaryT],
    fetch: Callable[[SummaryT], Awaitable[DetailT]],
    transform: Callable[[SummaryT, DetailT], ItemT | None],
    *,
    candidate_limit: int,
    result_limit: int,
    max_concurrency: int | None = None,
    key: Callable[[SummaryT], Any] = repr,
) -> EnrichmentResult[ItemT]:
    """Fetch the detail of the first ``candidate_limit`` candidates concurrently.

    Every candidate in the prefix is fetched at once unless ``max_concurrency`` is
    given, in which case a capacity limiter bounds the number of outstanding fetches.

    Args:
        candidates: summary records, in ranking order
        fetch: loads the detail for one summary
        transform: merges summary and detail; returns None to discard the record
        candidate_limit: candidates beyond this prefix are never fetched
        result_limit: maximum number of items returned
        max_concurrency: optional bound on simultaneous fetches
        key: identifies a candidate in ``failures`` and in logs
    """
    prefix = list(candidates[:candidate_limit])
    slots: list[ItemT | None] = [None] * len(prefix)
    failures: dict[Any, str] = {}
    filtered = 0
    limiter = anyio.CapacityLimiter(max_concurrency) if max_concurrency else None

    async def enrich_one(index: int, summary: SummaryT) -> None:
        nonlocal filtered
        try:
            if limiter is not None:
                async with limiter:
                    detail = await fetch(summary)
            else:
                detail = await fetch(summary)
            item = transform(summary, detail)
        except Exception as exc:
            failures[key(summary)] = str(exc)
            logger.warning("Enrichment of %s failed: %s", key(summary), exc)
            return

        if item is None:
            filtered += 1
            return
        slots[index] = item

    async with anyio.create_task_group() as tg:
        for index, summary in enumerate(prefix):
            tg.start_soon(enrich_one, index, summary)

    items = [item for item in slots if item is not None][:result_limit]
    return EnrichmentResult(items=items, candidates=len(prefix), failures=failures, filtered=filtered)
