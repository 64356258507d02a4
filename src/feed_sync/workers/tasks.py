"""Celery maintenance tasks for Feed Sync.

- ``sweep_duplicates``: removes Facebook posts that duplicate a native
  YouTube record (see :meth:`~feed_sync.core.deduplication.CrossSourceDeduplicator.sweep`).

Task names must match the references in ``workers/beat_schedule.py``::

    feed_sync.workers.tasks.sweep_duplicates

Error handling policy: the task catches storage errors at the outermost
level, logs them at ERROR level, and does NOT re-raise; the next scheduled
sweep retries.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from feed_sync.core.deduplication import CrossSourceDeduplicator, SweepResult
from feed_sync.core.exceptions import StorageError
from feed_sync.core.logging_config import sync_run_context
from feed_sync.workers._runtime import task_resources
from feed_sync.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def _run_sweep(dry_run: bool) -> SweepResult:
    with sync_run_context("dedup", trigger="task"):
        async with task_resources() as resources:
            return await CrossSourceDeduplicator(resources.store).sweep(dry_run=dry_run)


@celery_app.task(
    name="feed_sync.workers.tasks.sweep_duplicates",
    acks_late=True,
    soft_time_limit=540,
    time_limit=600,
)
def sweep_duplicates(dry_run: bool = False) -> dict[str, Any]:
    """Delete every ``fb_*`` post whose linked YouTube video exists as ``yt_*``.

    Args:
        dry_run: Report duplicates without deleting them.

    Returns:
        ``{"scanned": int, "deleted": [keys], "dry_run": bool}``, or
        ``{"error": str}`` when the store failed.
    """
    log = logger.bind(task="sweep_duplicates", dry_run=dry_run)
    try:
        result = asyncio.run(_run_sweep(dry_run))
    except StorageError as exc:
        log.error("sweep_duplicates: storage error", error=str(exc))
        return {"error": str(exc)}
    log.info("sweep_duplicates: complete", scanned=result.scanned, deleted=len(result.deleted))
    return result.as_dict()
