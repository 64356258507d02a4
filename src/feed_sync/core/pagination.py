"""Cursor-driven page walker shared by the pollers.

Two modes:

- **incremental**: one bounded page, no cursor following.  Used by the
  scheduled run and by webhook-triggered runs.
- **backfill**: larger pages with a ``since`` lower time bound; follows the
  API's opaque ``next`` URL until the API stops offering one, returns an
  empty page, every item on a page predates the lower bound, or the page
  ceiling is reached.

The walker knows nothing about any particular API: the caller supplies a
``fetch_page`` coroutine that performs the request and reduces the response
to a :class:`FetchedPage`.  Every fetched page is handed to ``on_page``
before it is yielded, so pagination telemetry is recorded ahead of any
normalization of the page's items.

Usage::

    walker = CursorWalker(fetch_page, plan, on_page=recorder.record_page)
    async for page in walker.walk(first_url, first_params):
        for item in page.items:
            ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    INCREMENTAL = "incremental"
    BACKFILL = "backfill"


@dataclass(frozen=True)
class WalkPlan:
    """How far a walk may go.

    Attributes:
        mode: Incremental or backfill.
        page_size: Items requested per page.
        since_ms: Lower time bound in epoch milliseconds (backfill only).
        max_pages: Page ceiling; incremental walks always stop after one.
    """

    mode: SyncMode
    page_size: int
    since_ms: Optional[int] = None
    max_pages: int = 1

    @property
    def follows_cursor(self) -> bool:
        return self.mode is SyncMode.BACKFILL

    @classmethod
    def incremental(cls, page_size: int) -> WalkPlan:
        return cls(mode=SyncMode.INCREMENTAL, page_size=page_size, max_pages=1)

    @classmethod
    def backfill(cls, page_size: int, since_ms: int, max_pages: int) -> WalkPlan:
        return cls(
            mode=SyncMode.BACKFILL,
            page_size=page_size,
            since_ms=since_ms,
            max_pages=max(1, max_pages),
        )


@dataclass
class FetchedPage:
    """One page of results reduced to what the walker needs.

    Attributes:
        url: The URL that was requested (already stripped of secrets).
        items: Decoded items of the page.
        next_url: Opaque URL of the next page, or ``None``.
        has_paging: Whether the response carried a paging block at all.
    """

    url: str
    items: list[Any] = field(default_factory=list)
    next_url: Optional[str] = None
    has_paging: bool = False

    @property
    def has_next(self) -> bool:
        return bool(self.next_url)


PageFetcher = Callable[[str, Optional[dict[str, Any]]], Awaitable[FetchedPage]]
"""``fetch_page(url, params)``.  ``params`` is ``None`` when following a cursor
because the ``next`` URL already carries every query parameter."""


class CursorWalker:
    """Drives a multi-page fetch loop according to a :class:`WalkPlan`.

    Args:
        fetch_page: Coroutine performing one request.
        plan: Mode, page size and bounds of the walk.
        on_page: Called with every fetched page, empty ones included,
            before the page is yielded.
        item_time_ms: Returns an item's time in epoch milliseconds, or
            ``None`` when unknown.  Enables the lower-bound stop in backfill.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        plan: WalkPlan,
        on_page: Callable[[FetchedPage], None] | None = None,
        item_time_ms: Callable[[Any], Optional[int]] | None = None,
    ) -> None:
        self._fetch_page = fetch_page
        self._plan = plan
        self._on_page = on_page
        self._item_time_ms = item_time_ms
        self.pages_fetched = 0

    async def walk(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[FetchedPage]:
        """Yield non-empty pages until a stop condition is met.

        Exceptions raised by ``fetch_page`` propagate to the caller; pages
        already yielded are unaffected.
        """
        next_url: Optional[str] = url
        next_params = params
        while next_url:
            page = await self._fetch_page(next_url, next_params)
            self.pages_fetched += 1
            if self._on_page is not None:
                self._on_page(page)

            if not page.items:
                logger.debug("pagination: empty page at %s, stopping", page.url)
                return
            yield page

            if not self._plan.follows_cursor:
                return
            if not page.has_next:
                logger.debug("pagination: no next cursor after %d pages", self.pages_fetched)
                return
            if self.pages_fetched >= self._plan.max_pages:
                logger.warning(
                    "pagination: page ceiling of %d reached, stopping backfill",
                    self._plan.max_pages,
                )
                return
            if self._page_predates_bound(page):
                logger.debug("pagination: page entirely older than lower bound, stopping")
                return
            next_url, next_params = page.next_url, None

    def _page_predates_bound(self, page: FetchedPage) -> bool:
        since_ms = self._plan.since_ms
        if since_ms is None or self._item_time_ms is None:
            return False
        times = [self._item_time_ms(item) for item in page.items]
        known = [t for t in times if t is not None]
        return bool(known) and len(known) == len(times) and max(known) < since_ms
