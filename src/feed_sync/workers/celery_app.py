"""Celery application for Feed Sync.

Configures the broker, result backend, serialization and timezone.  All
configuration values are sourced from ``Settings`` so that no secrets or
environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A feed_sync.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler)::

    celery -A feed_sync.workers.celery_app beat --loglevel=info

Usage (within application code)::

    from feed_sync.workers.celery_app import celery_app

    celery_app.send_task(
        "feed_sync.sources.facebook.tasks.sync_posts",
        kwargs={"backfill": True},
    )
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import worker_process_init
from dotenv import load_dotenv

from feed_sync.config.settings import get_settings
from feed_sync.core.logging_config import configure_logging

_logger = logging.getLogger(__name__)

# Load .env into os.environ before Settings is first read.
load_dotenv()

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "feed_sync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "feed_sync.sources.facebook.tasks",
        "feed_sync.sources.youtube.tasks",
        "feed_sync.workers.tasks",
    ],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # JSON only: every task argument and return value is JSON-serializable.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after completion so a crashed worker's run is redelivered.
    # Runs are idempotent, so a redelivered run converges to the same state.
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86_400,
    # Default ceiling for a sync run; individual tasks may tighten it.
    task_soft_time_limit=540,
    task_time_limit=600,
    beat_schedule_filename="celerybeat-schedule",
)

# Import and apply the Beat schedule after the app is configured.
from feed_sync.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


@worker_process_init.connect
def _configure_worker_logging(**kwargs: object) -> None:  # noqa: ARG001
    """Route worker log records through structlog once per worker process."""
    configure_logging(get_settings().log_level)
    _logger.info("celery: worker process initialised")
