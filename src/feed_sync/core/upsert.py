"""Idempotent batched writer for the ``posts`` collection.

One :class:`UpsertWriter` is created per run.  Every post write, end-of-live
update and dedup retraction of the run is staged on the same
:class:`~feed_sync.core.storage.WriteBatch` and committed once at the end, so
a run is all-or-nothing at the store level.

Posts are merge-written under their deterministic key: re-applying the same
normalized post leaves the document unchanged apart from ``updatedAt``.
The writer only ever touches keys in the sync engine's own namespaces
(``fb_*``, ``yt_*``).
"""

from __future__ import annotations

import logging
from typing import Any

from feed_sync.core.exceptions import StorageError
from feed_sync.core.schemas.post import SOURCE_PREFIXES, Post
from feed_sync.core.storage import POSTS_COLLECTION, SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)


class UpsertWriter:
    """Stages post writes for one run and commits them atomically.

    Args:
        store: Document store the batch is committed to.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._batch = store.batch()
        self._staged: set[str] = set()
        self.written = 0
        self.updated = 0
        self.deleted = 0

    @staticmethod
    def _check_owned(key: str) -> None:
        if not key.startswith(SOURCE_PREFIXES):
            raise StorageError(f"Refusing to write post '{key}' outside the sync namespaces")

    def is_staged(self, key: str) -> bool:
        """Return ``True`` if *key* was already written or retracted in this run."""
        return key in self._staged

    def upsert(self, post: Post) -> None:
        """Stage a merge-write of *post* under its key."""
        self._check_owned(post.id)
        document = post.to_document()
        document["updatedAt"] = SERVER_TIMESTAMP
        self._batch.set(POSTS_COLLECTION, post.id, document, merge=True)
        self._staged.add(post.id)
        self.written += 1

    def update(self, key: str, fields: dict[str, Any]) -> None:
        """Stage a field update of an existing post."""
        self._check_owned(key)
        self._batch.update(POSTS_COLLECTION, key, {**fields, "updatedAt": SERVER_TIMESTAMP})
        self._staged.add(key)
        self.updated += 1

    def delete(self, key: str) -> None:
        """Stage the retraction of a post."""
        self._check_owned(key)
        self._batch.delete(POSTS_COLLECTION, key)
        self._staged.add(key)
        self.deleted += 1

    def __len__(self) -> int:
        return len(self._batch)

    async def commit(self) -> int:
        """Commit every staged write in one atomic batch.

        Returns:
            Number of operations committed.

        Raises:
            StorageError: If the store rejects the batch; nothing is written.
        """
        count = await self._batch.commit()
        if count:
            logger.info(
                "upsert: committed %d ops (%d upserts, %d updates, %d deletes)",
                count,
                self.written,
                self.updated,
                self.deleted,
            )
        return count
