"""Celery Beat periodic task schedule for Feed Sync.

This module is imported by ``celery_app.py`` and applied via
``celery_app.conf.beat_schedule``.  Periods come from settings.

Schedule overview:

+---------------------------+---------------------------+---------------------------+
| Task name                 | Schedule                  | Purpose                   |
+===========================+===========================+===========================+
| facebook_sync_posts       | every                     | Incremental Facebook feed |
|                           | FACEBOOK_SYNC_INTERVAL_   | sync (one page).          |
|                           | MINUTES                   |                           |
+---------------------------+---------------------------+---------------------------+
| facebook_sync_live_status | same period               | Reconcile live broadcasts |
|                           |                           | with LIVE_NOW.            |
+---------------------------+---------------------------+---------------------------+
| youtube_sync              | every                     | Latest, live and recently |
|                           | YOUTUBE_SYNC_INTERVAL_    | completed channel videos. |
|                           | MINUTES                   |                           |
+---------------------------+---------------------------+---------------------------+
| sweep_duplicates          | 03:00 UTC daily           | Remove Facebook posts     |
|                           |                           | duplicating a native      |
|                           |                           | YouTube record.           |
+---------------------------+---------------------------+---------------------------+

Overlapping runs are not prevented; merge upserts make them converge.
"""

from __future__ import annotations

from datetime import timedelta

from celery.schedules import crontab

from feed_sync.config.settings import get_settings

_settings = get_settings()


def _every(minutes: int) -> timedelta:
    return timedelta(minutes=max(1, minutes))


#: Celery Beat schedule dict.  Applied to ``celery_app.conf.beat_schedule``
#: in ``celery_app.py``.
beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    # ------------------------------------------------------------------
    # Facebook: feed and live status on the same period
    # ------------------------------------------------------------------
    "facebook_sync_posts": {
        "task": "feed_sync.sources.facebook.tasks.sync_posts",
        "schedule": _every(_settings.facebook_sync_interval_minutes),
        "options": {
            "expires": _settings.facebook_sync_interval_minutes * 60,
        },
    },
    "facebook_sync_live_status": {
        "task": "feed_sync.sources.facebook.tasks.sync_live_status",
        "schedule": _every(_settings.facebook_sync_interval_minutes),
        "options": {
            "expires": _settings.facebook_sync_interval_minutes * 60,
        },
    },
    # ------------------------------------------------------------------
    # YouTube
    # ------------------------------------------------------------------
    "youtube_sync": {
        "task": "feed_sync.sources.youtube.tasks.sync_channel",
        "schedule": _every(_settings.youtube_sync_interval_minutes),
        "options": {
            "expires": _settings.youtube_sync_interval_minutes * 60,
        },
    },
    # ------------------------------------------------------------------
    # Maintenance: duplicate sweep, 03:00 daily
    # ------------------------------------------------------------------
    "sweep_duplicates": {
        "task": "feed_sync.workers.tasks.sweep_duplicates",
        "schedule": crontab(hour=3, minute=0),
        "options": {
            "expires": 3_600,
        },
    },
}
