"""Cross-source duplicate resolution between Facebook and YouTube posts.

The same video can reach the feed twice: as a native YouTube record
(``yt_<videoId>``) and as a Facebook post that links it (``fb_<postId>``
with ``youtubeVideoId`` set).  The native record always wins.  Because the
two pollers run on different cadences and neither is reliably first, the
resolver works in both directions:

- **forward** (Facebook ingest): skip a Facebook post whose linked video
  already exists natively (:meth:`CrossSourceDeduplicator.youtube_twin_exists`).
- **reverse** (YouTube ingest): retract every Facebook post that links the
  video just written (:meth:`CrossSourceDeduplicator.retract_facebook_twins`).

Both checks are plain reads; the retraction is staged on the run's write
batch.  :meth:`CrossSourceDeduplicator.sweep` is a standing full scan that
removes any duplicate either direction missed, including legacy posts that
predate the ``youtubeVideoId`` field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from feed_sync.core.normalizer import extract_youtube_video_id
from feed_sync.core.schemas.post import FACEBOOK_PREFIX, YOUTUBE_PREFIX
from feed_sync.core.storage import POSTS_COLLECTION, DocumentStore
from feed_sync.core.upsert import UpsertWriter

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    """Summary of one duplicate sweep.

    Attributes:
        scanned: Number of Facebook posts inspected.
        deleted: Keys of the Facebook posts removed (or that would be removed
            on a dry run).
        dry_run: Whether the deletions were committed.
    """

    scanned: int = 0
    deleted: list[str] = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {"scanned": self.scanned, "deleted": list(self.deleted), "dry_run": self.dry_run}


def linked_video_id(document: dict[str, Any]) -> Optional[str]:
    """Return the YouTube video a stored Facebook post refers to, if any.

    ``youtubeVideoId`` is authoritative; older posts are matched on their
    ``mediaUrl``, ``externalUrl`` and ``content`` in that order.
    """
    if document.get("youtubeVideoId"):
        return str(document["youtubeVideoId"])
    for field_name in ("mediaUrl", "externalUrl", "content"):
        video_id = extract_youtube_video_id(document.get(field_name))
        if video_id:
            return video_id
    return None


class CrossSourceDeduplicator:
    """Resolves duplicates between the ``fb_*`` and ``yt_*`` namespaces.

    Args:
        store: Document store holding the ``posts`` collection.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def youtube_twin_exists(self, video_id: str) -> bool:
        """Return ``True`` if a native record for *video_id* is stored."""
        document = await self._store.get(POSTS_COLLECTION, f"{YOUTUBE_PREFIX}{video_id}")
        return document is not None

    async def facebook_twins(self, video_id: str) -> list[str]:
        """Return keys of Facebook posts whose ``youtubeVideoId`` is *video_id*."""
        matches = await self._store.query(
            POSTS_COLLECTION, where=[("youtubeVideoId", video_id)]
        )
        return [doc.key for doc in matches if doc.key.startswith(FACEBOOK_PREFIX)]

    async def retract_facebook_twins(self, video_id: str, writer: UpsertWriter) -> list[str]:
        """Stage deletion of every Facebook twin of *video_id* on *writer*.

        Returns:
            Keys of the staged deletions.
        """
        keys = await self.facebook_twins(video_id)
        for key in keys:
            writer.delete(key)
            logger.info("dedup.retract_facebook_twin", key=key, video_id=video_id)
        return keys

    async def sweep(self, dry_run: bool = False) -> SweepResult:
        """Delete every Facebook post whose linked video exists natively.

        All deletions of one sweep are committed in a single batch.

        Args:
            dry_run: Report the duplicates without deleting them.
        """
        documents = await self._store.query(POSTS_COLLECTION)
        native_ids = {
            str(doc.data.get("sourceId") or doc.key[len(YOUTUBE_PREFIX):])
            for doc in documents
            if doc.key.startswith(YOUTUBE_PREFIX)
        }

        result = SweepResult(dry_run=dry_run)
        writer = UpsertWriter(self._store)
        for doc in documents:
            if not doc.key.startswith(FACEBOOK_PREFIX):
                continue
            result.scanned += 1
            video_id = linked_video_id(doc.data)
            if video_id and video_id in native_ids:
                result.deleted.append(doc.key)
                writer.delete(doc.key)

        if not dry_run:
            await writer.commit()
        logger.info(
            "dedup.sweep_complete",
            scanned=result.scanned,
            deleted=len(result.deleted),
            dry_run=dry_run,
        )
        return result
