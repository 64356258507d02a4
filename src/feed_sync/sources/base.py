"""Abstract base class for the source pollers.

Every platform integration subclasses :class:`SourcePoller`.  The base class
holds the collaborators every poller needs (settings, document store,
rehoster, HTTP client) and the run-level plumbing they share: credential
loading, HTTP client construction, and the :class:`SyncResult` each run
returns instead of raising.

Example usage::

    from feed_sync.sources.base import SourcePoller, SyncResult

    class MyPoller(SourcePoller):
        source_name = "my_source"

        async def sync(self) -> SyncResult: ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from feed_sync.config.settings import Settings, get_settings
from feed_sync.core.credentials import ResolvedCredentials, load_integration_settings, resolve_credentials
from feed_sync.core.exceptions import SourceRateLimitError
from feed_sync.core.media import PassthroughRehoster, Rehoster
from feed_sync.core.storage import DocumentStore

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT: float = 30.0
"""Seconds allowed for one upstream API request."""


class SyncStatus(str, Enum):
    """Terminal status of one poller run.

    Attributes:
        COMPLETED: The run committed its batch.
        SKIPPED: The run ended early because an integration is not configured.
        FAILED: An upstream or storage failure aborted the run; nothing was
            committed.
    """

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of one poller run.

    Attributes:
        source: Source identifier.
        status: Terminal status.
        written: Posts upserted.
        skipped_duplicates: Items not written because a native twin exists.
        retracted: Facebook posts deleted by the reverse dedup check.
        ended: Live posts transitioned to ended.
        pages: Pages (or queries) fetched from the upstream API.
        error: Error message for failed and skipped runs.
        retry_after: Back-off in seconds requested by a throttling upstream.
    """

    source: str
    status: SyncStatus = SyncStatus.COMPLETED
    written: int = 0
    skipped_duplicates: int = 0
    retracted: int = 0
    ended: int = 0
    pages: int = 0
    error: Optional[str] = None
    retry_after: Optional[float] = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is not SyncStatus.FAILED

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable summary (Celery result, API response)."""
        return {
            "source": self.source,
            "status": self.status.value,
            "written": self.written,
            "skipped_duplicates": self.skipped_duplicates,
            "retracted": self.retracted,
            "ended": self.ended,
            "pages": self.pages,
            "error": self.error,
            "retry_after": self.retry_after,
            **self.details,
        }


class SourcePoller(ABC):
    """Base class for the Facebook and YouTube pollers.

    Class Attributes:
        source_name: Source identifier used in logs and results.

    Args:
        store: Document store holding posts, diagnostics and settings.
        settings: Static configuration.  Defaults to :func:`get_settings`.
        rehoster: Media rehoster.  Defaults to a pass-through.
        http_client: Optional injected :class:`httpx.AsyncClient` (tests).
            When ``None`` a client is created per run.
    """

    source_name: str

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        rehoster: Rehoster | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.rehoster: Rehoster = rehoster or PassthroughRehoster()
        self._http_client = http_client

    async def load_credentials(self) -> ResolvedCredentials:
        """Read the integrations document once and merge it with static config."""
        integrations = await load_integration_settings(self.store)
        return resolve_credentials(self.settings, integrations)

    @asynccontextmanager
    async def _build_http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the injected client, or a run-scoped one that is closed afterwards."""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT) as client:
            yield client

    def _result(self, **kwargs: Any) -> SyncResult:
        return SyncResult(source=self.source_name, **kwargs)

    def _failed(self, exc: Exception, **kwargs: Any) -> SyncResult:
        """Return the FAILED result for *exc*, keeping a throttled upstream's back-off."""
        retry_after = exc.retry_after if isinstance(exc, SourceRateLimitError) else None
        return self._result(
            status=SyncStatus.FAILED, error=str(exc), retry_after=retry_after, **kwargs
        )

    @abstractmethod
    async def sync(self) -> SyncResult:
        """Run one scheduled synchronisation and return its outcome."""
