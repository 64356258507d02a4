"""Celery tasks for the Facebook source.

Wraps :class:`FacebookPoller` and :class:`LiveStatusReconciler` runs as
Celery tasks.

Task naming::

    feed_sync.sources.facebook.tasks.<action>

Pollers report failures through their :class:`~feed_sync.sources.base.SyncResult`
and the debug record instead of raising, so these tasks do not retry:
the next scheduled run is the retry.

Time limits: a run is bounded by ``soft_time_limit`` (SIGTERM) and
``time_limit`` (SIGKILL).  Backfill runs get a wider window.

All task arguments are JSON-serializable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from feed_sync.core.logging_config import sync_run_context
from feed_sync.sources.base import SyncResult
from feed_sync.sources.facebook.collector import FacebookPoller
from feed_sync.sources.facebook.live import LiveStatusReconciler
from feed_sync.workers._runtime import task_resources
from feed_sync.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_sync_posts(backfill: bool) -> SyncResult:
    with sync_run_context("facebook", trigger="task"):
        async with task_resources() as resources:
            poller = FacebookPoller(
                resources.store,
                settings=resources.settings,
                rehoster=resources.rehoster,
            )
            return await poller.sync_posts(backfill=backfill)


async def _run_live_status() -> SyncResult:
    with sync_run_context("facebook", trigger="task"):
        async with task_resources() as resources:
            reconciler = LiveStatusReconciler(resources.store, settings=resources.settings)
            return await reconciler.reconcile()


@celery_app.task(
    name="feed_sync.sources.facebook.tasks.sync_posts",
    bind=True,
    acks_late=True,
    soft_time_limit=1_500,
    time_limit=1_800,
)
def facebook_sync_posts(self: Any, backfill: bool = False) -> dict[str, Any]:
    """Synchronise the Facebook Page feed.

    Scheduled and webhook-triggered runs are incremental; pass
    ``backfill=True`` for a cursor-following walk back to the configured
    lower bound.

    Returns:
        :meth:`SyncResult.as_dict` of the run.
    """
    logger.info(
        "facebook: task %s starting (backfill=%s)", getattr(self.request, "id", None), backfill
    )
    result = asyncio.run(_run_sync_posts(backfill))
    return result.as_dict()


@celery_app.task(
    name="feed_sync.sources.facebook.tasks.sync_live_status",
    acks_late=True,
    soft_time_limit=240,
    time_limit=300,
)
def facebook_sync_live_status() -> dict[str, Any]:
    """Reconcile live broadcast posts with the page's ``LIVE_NOW`` snapshot.

    Returns:
        :meth:`SyncResult.as_dict` of the run.
    """
    result = asyncio.run(_run_live_status())
    return result.as_dict()
