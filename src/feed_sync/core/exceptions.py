"""Application-wide exception hierarchy for Feed Sync.

All custom exceptions subclass ``FeedSyncError``, enabling consistent error
handling and structured logging across the pollers.

Hierarchy::

    FeedSyncError
    ├── SourceFetchError          (status_code, response_body)
    │   ├── SourceRateLimitError  (retry_after: float)
    │   └── SourceAuthError
    ├── MissingCredentialsError
    ├── NormalizationError
    └── StorageError
        └── DocumentNotFoundError
"""

from __future__ import annotations

from typing import Any


class FeedSyncError(Exception):
    """Base class for all Feed Sync exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Upstream source exceptions
# ---------------------------------------------------------------------------


class SourceFetchError(FeedSyncError):
    """Raised when a request to an upstream content API fails.

    Covers non-2xx responses and transport errors.  The decoded response
    body (when there is one) is kept so that it can be written into the
    run's diagnostics record.

    Args:
        message: Human-readable description of the failure.
        source: Source identifier (``"facebook"`` or ``"youtube"``).
        status_code: HTTP status code, or ``None`` for transport errors.
        response_body: Decoded JSON body (or raw text) of the error response.
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.status_code = status_code
        self.response_body = response_body


class SourceRateLimitError(SourceFetchError):
    """Raised when an upstream API throttles us (HTTP 429, YouTube ``quotaExceeded``).

    Args:
        message: Human-readable description of the rate limit.
        retry_after: Seconds to wait before retrying. Defaults to 60.
        source: Source identifier.
        status_code: HTTP status code of the throttling response.
        response_body: Decoded error body.
    """

    def __init__(
        self,
        message: str,
        retry_after: float = 60.0,
        source: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(
            message,
            source=source,
            status_code=status_code,
            response_body=response_body,
        )
        self.retry_after = retry_after


class SourceAuthError(SourceFetchError):
    """Raised when an upstream API rejects our credential.

    This typically indicates an expired page access token or a revoked API
    key.  It is reported through the diagnostics record like any other
    upstream failure; an operator must rotate the credential.
    """


# ---------------------------------------------------------------------------
# Credential exceptions
# ---------------------------------------------------------------------------


class MissingCredentialsError(FeedSyncError):
    """Raised when a required integration field resolves to nothing.

    This is an expected, recoverable condition (the integration is simply not
    configured yet).  Pollers catch it, log it, and end the run early.

    Args:
        source: Source identifier for which credentials are incomplete.
        missing: Names of the fields that resolved to ``None``.
    """

    def __init__(self, source: str, missing: list[str]) -> None:
        super().__init__(
            f"Missing {source} credentials: {', '.join(missing)}"
        )
        self.source = source
        self.missing = missing


# ---------------------------------------------------------------------------
# Data-processing exceptions
# ---------------------------------------------------------------------------


class NormalizationError(FeedSyncError):
    """Raised when a raw platform item cannot be mapped to a post.

    Args:
        message: Description of the normalization failure.
        source: Source identifier of the raw item.
        raw_item: The raw dict that could not be normalized (for debugging).
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        raw_item: dict | None = None,  # type: ignore[type-arg]
    ) -> None:
        super().__init__(message)
        self.source = source
        self.raw_item = raw_item


# ---------------------------------------------------------------------------
# Storage exceptions
# ---------------------------------------------------------------------------


class StorageError(FeedSyncError):
    """Raised when the document store fails to read or commit."""


class DocumentNotFoundError(StorageError):
    """Raised when an ``update`` targets a document that does not exist.

    Args:
        collection: Collection name.
        key: Document key.
    """

    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Document '{collection}/{key}' does not exist")
        self.collection = collection
        self.key = key
