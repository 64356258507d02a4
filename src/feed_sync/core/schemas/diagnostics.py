"""Per-run diagnostics record written by the pollers.

One :class:`SyncDebugRecord` exists per source under a fixed key in the
``system`` collection.  It is replaced wholesale at the end of every run, so
it always describes the latest run only.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PageTelemetry(BaseModel):
    """Pagination telemetry for one fetched page.

    Attributes:
        url: Requested URL with the access token stripped.
        post_count: Number of items the page returned.
        has_paging: Whether the response carried a paging block at all.
        has_next: Whether the paging block offered a next-page cursor.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    post_count: int
    has_paging: bool
    has_next: bool


class SyncErrorInfo(BaseModel):
    """Terminal error of a failed run.

    Attributes:
        message: Exception message.
        response: Upstream response body, when the failure came from an API.
        status_code: Upstream HTTP status, when known.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str
    response: Any = None
    status_code: Optional[int] = None


class SyncDebugRecord(BaseModel):
    """Diagnostics of the most recent run of one poller.

    Attributes:
        start_time: ISO 8601 time the run started.
        mode: ``"incremental"`` or ``"backfill"`` (Facebook), ``"latest"`` (YouTube).
        pages: Telemetry per fetched page, in request order.
        total_synced: Number of posts staged for the commit.
        error: Terminal error, ``None`` on success.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    start_time: str
    mode: Optional[str] = None
    pages: list[PageTelemetry] = Field(default_factory=list)
    total_synced: int = 0
    error: Optional[SyncErrorInfo] = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
