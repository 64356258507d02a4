"""Celery task for the YouTube source.

Task naming::

    feed_sync.sources.youtube.tasks.sync_channel

Quota errors surface as a failed :class:`~feed_sync.sources.base.SyncResult`
and a debug record; the task does not retry because an exhausted daily
quota will not recover within a retry window.
"""

from __future__ import annotations

import asyncio
from typing import Any

from feed_sync.core.logging_config import sync_run_context
from feed_sync.sources.base import SyncResult
from feed_sync.sources.youtube.collector import YouTubePoller
from feed_sync.workers._runtime import task_resources
from feed_sync.workers.celery_app import celery_app


async def _run_sync_channel() -> SyncResult:
    with sync_run_context("youtube", trigger="task"):
        async with task_resources() as resources:
            poller = YouTubePoller(
                resources.store,
                settings=resources.settings,
                rehoster=resources.rehoster,
            )
            return await poller.sync()


@celery_app.task(
    name="feed_sync.sources.youtube.tasks.sync_channel",
    acks_late=True,
    soft_time_limit=240,
    time_limit=300,
)
def youtube_sync_channel() -> dict[str, Any]:
    """Synchronise the channel's latest, live and recently completed videos.

    Returns:
        :meth:`SyncResult.as_dict` of the run.
    """
    result = asyncio.run(_run_sync_channel())
    return result.as_dict()
