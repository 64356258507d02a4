"""Low-level HTTP client functions for the YouTube Data API v3.

Separates network I/O from the poller logic in :mod:`.collector`.
Functions in this module are pure I/O helpers:

- :func:`make_api_request`: one GET with YouTube error mapping.
- :func:`search_channel_videos`: one ``search.list`` call scoped to a channel.
- :func:`fetch_video_details`: ``videos.list`` for up to 50 IDs per call.
- :func:`resolve_channel_id`: ``search.list?type=channel`` lookup of a handle.
- :func:`extract_error_reason`: ``reason`` of a YouTube error body.

All functions require an initialised :class:`httpx.AsyncClient` supplied by
the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from feed_sync.core.exceptions import SourceAuthError, SourceFetchError, SourceRateLimitError
from feed_sync.sources.youtube._schemas import SearchListResponse, VideoListResponse
from feed_sync.sources.youtube.config import (
    MAX_VIDEO_IDS_PER_BATCH,
    VIDEO_DETAIL_PARTS,
    YOUTUBE_API_BASE_URL,
)

logger = logging.getLogger(__name__)

_SOURCE = "youtube"

_QUOTA_REASONS: frozenset[str] = frozenset(
    {"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded", "userRateLimitExceeded"}
)


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def extract_error_reason(body: Any) -> str:
    """Extract the ``reason`` field from a decoded YouTube error body.

    Returns:
        The ``reason`` string (e.g. ``"quotaExceeded"``), or ``"unknown"``.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            errors = error.get("errors") or []
            if errors and isinstance(errors[0], dict):
                return str(errors[0].get("reason", "unknown"))
    return "unknown"


async def make_api_request(
    client: httpx.AsyncClient,
    endpoint: str,
    params: dict[str, Any],
) -> dict[str, Any]:
    """Make a YouTube Data API v3 GET request with error mapping.

    Args:
        client: Shared :class:`httpx.AsyncClient`.
        endpoint: API endpoint path segment (``"search"``, ``"videos"``).
        params: Query parameter dict.  Must include ``key``.

    Returns:
        Parsed JSON response dict.

    Raises:
        SourceRateLimitError: HTTP 429, or HTTP 403 with a quota reason.
        SourceAuthError: HTTP 401 or any other HTTP 403.
        SourceFetchError: Any other non-2xx HTTP response or network error.
    """
    url = f"{YOUTUBE_API_BASE_URL}/{endpoint}"
    try:
        response = await client.get(url, params=params)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status_code = exc.response.status_code
        body = _decode_body(exc.response)
        reason = extract_error_reason(body)
        if status_code == 429 or (status_code == 403 and reason in _QUOTA_REASONS):
            raise SourceRateLimitError(
                f"youtube: quota exceeded on endpoint '{endpoint}' (reason={reason})",
                retry_after=3600.0,
                source=_SOURCE,
                status_code=status_code,
                response_body=body,
            ) from exc
        if status_code in (401, 403):
            raise SourceAuthError(
                f"youtube: HTTP {status_code} (reason={reason}) on endpoint '{endpoint}'",
                source=_SOURCE,
                status_code=status_code,
                response_body=body,
            ) from exc
        raise SourceFetchError(
            f"youtube: HTTP {status_code} on endpoint '{endpoint}'",
            source=_SOURCE,
            status_code=status_code,
            response_body=body,
        ) from exc
    except httpx.RequestError as exc:
        raise SourceFetchError(
            f"youtube: connection error on endpoint '{endpoint}': {exc}",
            source=_SOURCE,
        ) from exc

    body = _decode_body(response)
    if not isinstance(body, dict):
        raise SourceFetchError(
            f"youtube: non-object body from endpoint '{endpoint}'",
            source=_SOURCE,
            status_code=response.status_code,
            response_body=body,
        )
    return body


def search_params(
    api_key: str,
    channel_id: str,
    max_results: int,
    event_type: Optional[str] = None,
    order: Optional[str] = None,
) -> dict[str, Any]:
    """Build the query of one channel-scoped ``search.list`` call."""
    params: dict[str, Any] = {
        "key": api_key,
        "channelId": channel_id,
        "part": "snippet",
        "type": "video",
        "maxResults": max_results,
    }
    if event_type:
        params["eventType"] = event_type
    if order:
        params["order"] = order
    return params


async def search_channel_videos(
    client: httpx.AsyncClient,
    params: dict[str, Any],
) -> SearchListResponse:
    """Run one ``search.list`` call.

    Args:
        client: Shared HTTP client.
        params: Query built by :func:`search_params`.

    Raises:
        SourceFetchError: On upstream failure or an undecodable response.
    """
    data = await make_api_request(client, "search", params)
    try:
        response = SearchListResponse.model_validate(data)
    except ValidationError as exc:
        raise SourceFetchError(
            f"youtube: unexpected search.list shape: {exc}",
            source=_SOURCE,
            response_body=data,
        ) from exc
    logger.debug(
        "youtube: search eventType=%s → %d items",
        params.get("eventType"),
        len(response.items),
    )
    return response


async def fetch_video_details(
    client: httpx.AsyncClient,
    api_key: str,
    video_ids: list[str],
) -> list[dict[str, Any]]:
    """Fetch ``snippet`` and ``liveStreamingDetails`` for *video_ids*.

    IDs are sent in batches of 50 (1 quota unit per batch).

    Returns:
        Raw video resource dicts, in API order.

    Raises:
        SourceFetchError: On upstream failure.
    """
    items: list[dict[str, Any]] = []
    for start in range(0, len(video_ids), MAX_VIDEO_IDS_PER_BATCH):
        batch = video_ids[start : start + MAX_VIDEO_IDS_PER_BATCH]
        data = await make_api_request(
            client,
            "videos",
            {"key": api_key, "id": ",".join(batch), "part": VIDEO_DETAIL_PARTS},
        )
        try:
            items.extend(VideoListResponse.model_validate(data).items)
        except ValidationError as exc:
            raise SourceFetchError(
                f"youtube: unexpected videos.list shape: {exc}",
                source=_SOURCE,
                response_body=data,
            ) from exc
    logger.debug("youtube: videos.list %d ids → %d items", len(video_ids), len(items))
    return items


async def resolve_channel_id(
    client: httpx.AsyncClient,
    api_key: str,
    handle: str,
) -> Optional[str]:
    """Resolve a channel handle (``@name``) to its channel ID.

    Returns:
        The channel ID of the first match, or ``None`` when nothing matches.

    Raises:
        SourceFetchError: On upstream failure.
    """
    data = await make_api_request(
        client,
        "search",
        {"key": api_key, "q": handle, "type": "channel", "part": "id", "maxResults": 1},
    )
    try:
        response = SearchListResponse.model_validate(data)
    except ValidationError as exc:
        raise SourceFetchError(
            f"youtube: unexpected channel search shape: {exc}",
            source=_SOURCE,
            response_body=data,
        ) from exc
    for item in response.items:
        if item.id.channel_id:
            return item.id.channel_id
    return None
