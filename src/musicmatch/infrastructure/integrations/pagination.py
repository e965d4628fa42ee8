"""Offset/limit pagination over the request throttler.

Hey future me – this fetches a WHOLE collection (liked songs) page by page:
1. Probe with limit=1 to learn `total`
2. total == 0 → done, no more calls, no progress callback
3. Otherwise request ceil(total / page_size) pages in groups, report progress after each group

Output order == Spotify's page order, ALWAYS. Pages inside a group can finish in any order, so
we gather per group (gather keeps argument order) and only then concatenate.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from musicmatch.domain.ports import ProgressCallback
from musicmatch.infrastructure.rate_limiter import RequestThrottler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    """One page of a paginated collection."""

    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0

    @classmethod
    def from_spotify(cls, payload: dict[str, Any]) -> "Page":
        """Build a page from a Spotify paging object (``{items, total, ...}``)."""
        return cls(items=list(payload.get("items") or []), total=int(payload.get("total") or 0))


PageFetcher = Callable[[int, int], Awaitable[Page]]


class PaginatedFetcher:
    """Retrieves every item of an offset/limit collection.

    Attributes:
        page_size: Items per page request
        group_size: Page requests awaited together between progress reports
    """

    def __init__(
        self,
        throttler: RequestThrottler,
        page_size: int = 50,
        group_size: int | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            throttler: Throttler every page request is routed through
            page_size: Items per page request
            group_size: Pages per progress group (defaults to the throttler's width)
        """
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._throttler = throttler
        self.page_size = page_size
        self.group_size = group_size or throttler.config.max_parallel
        if self.group_size < 1:
            raise ValueError("group_size must be at least 1")

    def plan_requests(self, total: int) -> list[tuple[int, int]]:
        """Compute the ``(offset, limit)`` requests covering ``total`` items."""
        page_count = math.ceil(total / self.page_size) if total > 0 else 0
        return [(i * self.page_size, self.page_size) for i in range(page_count)]

    async def fetch_all(
        self,
        fetch_page: PageFetcher,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch the entire collection.

        Args:
            fetch_page: ``(offset, limit) -> Page`` primitive
            on_progress: Receives fractional progress in [0, 100] after each group

        Returns:
            All items in page order

        Raises:
            Exception: The first page failure; partial results are discarded
        """
        probe = await self._throttler.run(lambda: fetch_page(0, 1))
        total = probe.total
        if total == 0:
            logger.debug("Collection is empty, skipping page requests")
            return []

        requests = self.plan_requests(total)
        page_count = len(requests)
        logger.debug(
            "Fetching %d items in %d pages of %d", total, page_count, self.page_size
        )

        items: list[dict[str, Any]] = []
        completed = 0
        for start in range(0, page_count, self.group_size):
            group = requests[start : start + self.group_size]
            futures = [
                self._throttler.submit(lambda o=offset, n=limit: fetch_page(o, n))
                for offset, limit in group
            ]
            # Hey future me – return_exceptions=True so the WHOLE group settles before we
            # raise. Otherwise a sibling failure would sit in a never-awaited future.
            results = await asyncio.gather(*futures, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            for page in results:
                items.extend(page.items)

            completed += len(group)
            if on_progress is not None:
                on_progress(completed / page_count * 100)

        return items


__all__ = ["Page", "PageFetcher", "PaginatedFetcher"]
