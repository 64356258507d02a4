"""Low-level HTTP client functions for the Facebook Graph API.

Separates network I/O from the poller logic in :mod:`.collector` and
:mod:`.live`.  Functions in this module are pure I/O helpers:

- :func:`make_graph_request`: one GET with Graph error mapping.
- :func:`fetch_feed_page`: one ``/{page-id}/feed`` page.
- :func:`fetch_live_videos`: the ``LIVE_NOW`` snapshot of ``/{page-id}/live_videos``.

All functions require an initialised :class:`httpx.AsyncClient` supplied by
the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from feed_sync.core.exceptions import SourceAuthError, SourceFetchError, SourceRateLimitError
from feed_sync.sources.facebook._schemas import FeedPage, LiveVideo, LiveVideoList
from feed_sync.sources.facebook.config import (
    FEED_FIELDS,
    LIVE_NOW_STATUS,
    LIVE_VIDEO_FIELDS,
    live_videos_url,
)

logger = logging.getLogger(__name__)

_SOURCE = "facebook"

_AUTH_ERROR_CODES: frozenset[int] = frozenset({102, 190})
"""Graph error codes for invalid or expired access tokens."""

_THROTTLE_ERROR_CODES: frozenset[int] = frozenset({4, 17, 32, 613})
"""Graph error codes for application, user and page level throttling."""


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _graph_error_code(body: Any) -> Optional[int]:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("code"), int):
            return error["code"]
    return None


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.headers.get("Retry-After", 60))
    except ValueError:
        return 60.0


async def make_graph_request(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Make a Graph API GET request with error mapping.

    Args:
        client: Shared :class:`httpx.AsyncClient`.
        url: Endpoint URL, or an opaque ``paging.next`` URL.
        params: Query parameters.  ``None`` when *url* already carries them.

    Returns:
        Parsed JSON response dict.

    Raises:
        SourceRateLimitError: HTTP 429 or a Graph throttling error code.
        SourceAuthError: HTTP 401, or a Graph token error code.
        SourceFetchError: Any other non-2xx response, network error, or a
            body that is not a JSON object.
    """
    try:
        response = await client.get(url, params=params)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status_code = exc.response.status_code
        body = _decode_body(exc.response)
        code = _graph_error_code(body)
        if status_code == 429 or code in _THROTTLE_ERROR_CODES:
            retry_after = _retry_after(exc.response)
            raise SourceRateLimitError(
                f"facebook: rate limited (HTTP {status_code}, code={code})",
                retry_after=retry_after,
                source=_SOURCE,
                status_code=status_code,
                response_body=body,
            ) from exc
        if status_code == 401 or code in _AUTH_ERROR_CODES:
            raise SourceAuthError(
                f"facebook: access token rejected (HTTP {status_code}, code={code})",
                source=_SOURCE,
                status_code=status_code,
                response_body=body,
            ) from exc
        raise SourceFetchError(
            f"facebook: HTTP {status_code} from Graph API",
            source=_SOURCE,
            status_code=status_code,
            response_body=body,
        ) from exc
    except httpx.RequestError as exc:
        raise SourceFetchError(
            f"facebook: connection error: {exc}",
            source=_SOURCE,
        ) from exc

    body = _decode_body(response)
    if not isinstance(body, dict):
        raise SourceFetchError(
            "facebook: Graph API returned a non-object body",
            source=_SOURCE,
            status_code=response.status_code,
            response_body=body,
        )
    return body


def feed_params(access_token: str, limit: int, since: Optional[int] = None) -> dict[str, Any]:
    """Build the query of the first feed page.

    Args:
        access_token: Page access token.
        limit: Page size.
        since: Lower time bound in epoch seconds (backfill only).
    """
    params: dict[str, Any] = {
        "access_token": access_token,
        "fields": FEED_FIELDS,
        "limit": limit,
    }
    if since is not None:
        params["since"] = since
    return params


async def fetch_feed_page(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[dict[str, Any]] = None,
) -> FeedPage:
    """Fetch and decode one page of the page feed.

    Raises:
        SourceFetchError: On upstream failure or an undecodable page.
    """
    data = await make_graph_request(client, url, params)
    try:
        page = FeedPage.model_validate(data)
    except ValidationError as exc:
        raise SourceFetchError(
            f"facebook: unexpected feed page shape: {exc}",
            source=_SOURCE,
            response_body=data,
        ) from exc
    logger.debug(
        "facebook: feed page → %d items, next=%s",
        len(page.data),
        bool(page.paging and page.paging.next),
    )
    return page


async def fetch_live_videos(
    client: httpx.AsyncClient,
    version: str,
    page_id: str,
    access_token: str,
) -> list[LiveVideo]:
    """Return the broadcasts of the page that are live right now.

    Raises:
        SourceFetchError: On upstream failure or an undecodable response.
    """
    params = {
        "access_token": access_token,
        "status": LIVE_NOW_STATUS,
        "fields": LIVE_VIDEO_FIELDS,
    }
    data = await make_graph_request(client, live_videos_url(version, page_id), params)
    try:
        videos = LiveVideoList.model_validate(data).data
    except ValidationError as exc:
        raise SourceFetchError(
            f"facebook: unexpected live_videos shape: {exc}",
            source=_SOURCE,
            response_body=data,
        ) from exc
    logger.debug("facebook: live_videos → %d live now", len(videos))
    return videos
