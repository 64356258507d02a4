"""Per-run diagnostics recorder.

Each poller owns one :class:`DiagnosticsRecorder` per run.  Page telemetry is
appended as pages arrive and a terminal error, if any, is attached to the
same record.  :meth:`DiagnosticsRecorder.flush` writes the whole
record over the previous one (last run wins) in its own commit, separate
from the posts batch.
"""

from __future__ import annotations

import logging
import urllib.parse
from collections.abc import Callable
from datetime import datetime
from typing import Any, Optional

from feed_sync.core.exceptions import SourceFetchError, StorageError
from feed_sync.core.logging_config import SECRET_QUERY_PARAMS
from feed_sync.core.pagination import FetchedPage
from feed_sync.core.schemas.diagnostics import PageTelemetry, SyncDebugRecord, SyncErrorInfo
from feed_sync.core.storage import SYSTEM_COLLECTION, DocumentStore, utcnow

logger = logging.getLogger(__name__)


def redact_url(url: str) -> str:
    """Strip credential query parameters from *url*."""
    parts = urllib.parse.urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, value)
        for name, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
        if name not in SECRET_QUERY_PARAMS
    ]
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))


class DiagnosticsRecorder:
    """Collects one run's telemetry and persists it under a fixed key.

    Args:
        store: Document store.
        key: Document key in the ``system`` collection.
        mode: Run mode label stored on the record.
        clock: Time source for ``startTime``.
    """

    def __init__(
        self,
        store: DocumentStore,
        key: str,
        mode: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._key = key
        self.record = SyncDebugRecord(start_time=clock().isoformat(), mode=mode)

    def record_page(self, page: FetchedPage) -> None:
        self.record.pages.append(
            PageTelemetry(
                url=redact_url(page.url),
                post_count=len(page.items),
                has_paging=page.has_paging,
                has_next=page.has_next,
            )
        )

    def record_error(self, exc: Exception) -> None:
        response: Any = None
        status_code: Optional[int] = None
        if isinstance(exc, SourceFetchError):
            response = exc.response_body
            status_code = exc.status_code
        self.record.error = SyncErrorInfo(
            message=str(exc), response=response, status_code=status_code
        )

    def set_total(self, total: int) -> None:
        self.record.total_synced = total

    async def flush(self) -> None:
        """Replace the stored record with this run's record.

        Failures are logged; the diagnostics write never fails a run.
        """
        try:
            await self._store.set(SYSTEM_COLLECTION, self._key, self.record.to_document())
        except StorageError as exc:
            logger.error("diagnostics: failed to write %s: %s", self._key, exc)
