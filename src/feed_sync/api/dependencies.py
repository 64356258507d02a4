"""FastAPI dependencies shared by the route modules.

Tests replace any of these through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

from feed_sync.config.settings import get_settings
from feed_sync.core.database import get_document_store
from feed_sync.core.media import Rehoster, build_rehoster

__all__ = [
    "get_document_store",
    "get_facebook_sync_trigger",
    "get_rehoster",
]

FacebookSyncTrigger = Callable[[], None]
"""Schedules one incremental Facebook sync."""


@lru_cache
def get_rehoster() -> Rehoster:
    """Return the API-process media rehoster."""
    return build_rehoster(get_settings())


def _enqueue_facebook_sync() -> None:
    from feed_sync.sources.facebook.tasks import facebook_sync_posts  # noqa: PLC0415

    facebook_sync_posts.delay(backfill=False)


def get_facebook_sync_trigger() -> FacebookSyncTrigger:
    """Return the callable the webhook uses to schedule a sync.

    The default enqueues the Celery task so the webhook acknowledges
    immediately and the sync itself runs on a worker.
    """
    return _enqueue_facebook_sync
