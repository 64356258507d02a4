"""Facebook live-status reconciliation.

Each run fetches the page's ``LIVE_NOW`` broadcasts and reconciles them with
the posts currently flagged live:

- a broadcast in the snapshot with no post yet is written straight as live
  (``type=facebook_live``, ``isLive=true``, ``pinned=true``);
- a live post whose ``sourceId`` is missing from the snapshot ends:
  ``isLive=false``, ``pinned=false``, ``type`` demoted to ``video``.  The
  post is updated in place, never deleted;
- an ended post never goes live again.  A new broadcast arrives under its
  own ID.

Upserts and end transitions of one run share one atomic batch.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from feed_sync.core.exceptions import (
    MissingCredentialsError,
    NormalizationError,
    SourceFetchError,
    StorageError,
)
from feed_sync.core.normalizer import default_author, parse_timestamp_ms
from feed_sync.core.schemas.post import FACEBOOK_PREFIX, Post, PostType
from feed_sync.core.storage import POSTS_COLLECTION, utcnow
from feed_sync.core.upsert import UpsertWriter
from feed_sync.sources.base import SourcePoller, SyncResult, SyncStatus
from feed_sync.sources.facebook._client import fetch_live_videos
from feed_sync.sources.facebook._schemas import LiveVideo
from feed_sync.sources.facebook.config import LIVE_CONTENT_FALLBACK

logger = logging.getLogger(__name__)

_FACEBOOK_WEB: str = "https://www.facebook.com"


class LiveState(str, Enum):
    LIVE = "live"
    ENDED = "ended"


def next_state(current: Optional[LiveState], in_snapshot: bool) -> Optional[LiveState]:
    """Advance one broadcast's state given the latest ``LIVE_NOW`` snapshot.

    Args:
        current: Stored state, or ``None`` for a broadcast never seen before.
        in_snapshot: Whether the broadcast is in the snapshot.

    Returns:
        The new state, or ``None`` when an unseen broadcast is not live.
    """
    if current is None:
        return LiveState.LIVE if in_snapshot else None
    if current is LiveState.LIVE:
        return LiveState.LIVE if in_snapshot else LiveState.ENDED
    return LiveState.ENDED


def state_of(document: Optional[dict[str, Any]]) -> Optional[LiveState]:
    """Return the live state recorded on a stored post."""
    if document is None:
        return None
    return LiveState.LIVE if document.get("isLive") else LiveState.ENDED


ENDED_FIELDS: dict[str, Any] = {
    "isLive": False,
    "pinned": False,
    "type": PostType.VIDEO.value,
}
"""Fields written when a broadcast ends."""


def absolute_permalink(permalink: Optional[str]) -> Optional[str]:
    """Graph returns live-video permalinks as site-relative paths."""
    if permalink and permalink.startswith("/"):
        return f"{_FACEBOOK_WEB}{permalink}"
    return permalink


class LiveStatusReconciler(SourcePoller):
    """Keeps the live flags of Facebook broadcast posts in step with the platform."""

    source_name = "facebook_live"

    async def sync(self) -> SyncResult:
        return await self.reconcile()

    def build_live_post(self, video: LiveVideo) -> Post:
        """Map a live broadcast to a pinned ``facebook_live`` post.

        Raises:
            NormalizationError: If ``creation_time`` cannot be parsed.
        """
        if video.creation_time:
            try:
                timestamp = parse_timestamp_ms(video.creation_time)
            except ValueError as exc:
                raise NormalizationError(
                    f"bad creation_time {video.creation_time!r}",
                    source=self.source_name,
                    raw_item=video.model_dump(),
                ) from exc
        else:
            timestamp = int(utcnow().timestamp() * 1000)

        permalink = absolute_permalink(video.permalink_url)
        return Post(
            id=f"{FACEBOOK_PREFIX}{video.id}",
            type=PostType.FACEBOOK_LIVE,
            content=video.description or video.title or LIVE_CONTENT_FALLBACK,
            media_url=permalink,
            thumbnail_url=None,
            external_url=permalink,
            source_id=video.id,
            timestamp=timestamp,
            pinned=True,
            is_live=True,
            author=default_author(self.settings),
        )

    async def reconcile(self) -> SyncResult:
        """Run one reconciliation pass.

        Returns:
            Result with ``written`` live upserts and ``ended`` transitions.
        """
        try:
            credentials = (await self.load_credentials()).facebook
            credentials.require()
        except MissingCredentialsError as exc:
            logger.warning("facebook: %s; skipping live check", exc)
            return self._result(status=SyncStatus.SKIPPED, error=str(exc))
        except StorageError as exc:
            logger.error("facebook: could not read integration settings: %s", exc)
            return self._failed(exc)

        result = self._result()
        writer = UpsertWriter(self.store)
        try:
            async with self._build_http_client() as client:
                videos = await fetch_live_videos(
                    client,
                    self.settings.facebook_graph_version,
                    credentials.page_id,
                    credentials.access_token,
                )
            result.pages = 1
            live_ids = {video.id for video in videos}

            for video in videos:
                await self._stage_live(video, writer, result)

            stale = await self.store.query(
                POSTS_COLLECTION,
                where=[("type", PostType.FACEBOOK_LIVE), ("isLive", True)],
            )
            for doc in stale:
                if not doc.key.startswith(FACEBOOK_PREFIX) or writer.is_staged(doc.key):
                    continue
                in_snapshot = doc.data.get("sourceId") in live_ids
                if next_state(LiveState.LIVE, in_snapshot) is LiveState.ENDED:
                    writer.update(doc.key, ENDED_FIELDS)
                    result.ended += 1
                    logger.info("facebook: broadcast %s ended", doc.key)

            await writer.commit()
        except (SourceFetchError, StorageError) as exc:
            logger.error("facebook: live status check failed, nothing committed: %s", exc)
            return self._failed(exc, pages=result.pages)

        logger.info(
            "facebook: live check found %d live, %d ended", len(live_ids), result.ended
        )
        return result

    async def _stage_live(self, video: LiveVideo, writer: UpsertWriter, result: SyncResult) -> None:
        key = f"{FACEBOOK_PREFIX}{video.id}"
        existing = await self.store.get(POSTS_COLLECTION, key)
        if next_state(state_of(existing), True) is not LiveState.LIVE:
            logger.info("facebook: broadcast %s already ended, not re-marking live", key)
            return
        try:
            post = self.build_live_post(video)
        except NormalizationError as exc:
            logger.warning("facebook: skipping live video %s: %s", video.id, exc)
            return
        writer.upsert(post)
        result.written += 1
