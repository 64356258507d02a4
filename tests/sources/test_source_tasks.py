"""Tests for the Celery task wrappers and the beat schedule.

Task bodies are called directly (no broker); ``task_resources`` is patched
to hand out the in-memory store so each ``asyncio.run`` loop sees the same
data.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any
from unittest.mock import patch

import httpx
import pytest
import respx

from feed_sync.config.settings import Settings
from feed_sync.core.media import PassthroughRehoster
from feed_sync.core.storage import InMemoryDocumentStore
from feed_sync.sources.facebook.tasks import facebook_sync_live_status, facebook_sync_posts
from feed_sync.sources.youtube.tasks import youtube_sync_channel
from feed_sync.workers._runtime import TaskResources
from feed_sync.workers.beat_schedule import beat_schedule
from feed_sync.workers.celery_app import celery_app
from feed_sync.workers.tasks import sweep_duplicates

FEED_URL = "https://graph.facebook.com/v18.0/page-1/feed"
LIVE_URL = "https://graph.facebook.com/v18.0/page-1/live_videos"


@pytest.fixture
def patched_resources(store: InMemoryDocumentStore, settings: Settings):
    @asynccontextmanager
    async def fake_resources(settings_override: Any = None) -> AsyncIterator[TaskResources]:
        yield TaskResources(settings=settings, store=store, rehoster=PassthroughRehoster())

    targets = (
        "feed_sync.sources.facebook.tasks.task_resources",
        "feed_sync.sources.youtube.tasks.task_resources",
        "feed_sync.workers.tasks.task_resources",
    )
    patchers = [patch(target, fake_resources) for target in targets]
    for patcher in patchers:
        patcher.start()
    yield store
    for patcher in patchers:
        patcher.stop()


class TestFacebookTasks:
    def test_sync_posts_returns_result_dict(self, patched_resources, load_fixture) -> None:
        with respx.mock:
            respx.get(FEED_URL).mock(
                return_value=httpx.Response(200, json=load_fixture("facebook", "feed_page.json"))
            )
            outcome = facebook_sync_posts(backfill=False)

        assert outcome["source"] == "facebook"
        assert outcome["status"] == "completed"
        assert outcome["written"] == 4
        assert "fb_999" in patched_resources.snapshot("posts")

    def test_live_status_returns_result_dict(self, patched_resources, load_fixture) -> None:
        with respx.mock:
            respx.get(LIVE_URL).mock(
                return_value=httpx.Response(200, json=load_fixture("facebook", "live_videos.json"))
            )
            outcome = facebook_sync_live_status()

        assert outcome["status"] == "completed"
        assert outcome["written"] == 1

    def test_upstream_failure_is_returned_not_raised(
        self, patched_resources, load_fixture
    ) -> None:
        with respx.mock:
            respx.get(FEED_URL).mock(
                return_value=httpx.Response(
                    400, json=load_fixture("facebook", "error_token_expired.json")
                )
            )
            outcome = facebook_sync_posts()

        assert outcome["status"] == "failed"
        assert outcome["error"]


class TestYouTubeTask:
    def test_missing_key_is_skipped(self, patched_resources, settings: Settings) -> None:
        with patch.object(settings, "youtube_api_key", None):
            outcome = youtube_sync_channel()

        assert outcome["source"] == "youtube"
        assert outcome["status"] == "skipped"


class TestSweepTask:
    def test_sweep_deletes_duplicates(self, patched_resources) -> None:
        store = patched_resources
        asyncio.run(store.set("posts", "yt_V123abcdEFG", {"sourceId": "V123abcdEFG"}))
        asyncio.run(store.set("posts", "fb_1", {"youtubeVideoId": "V123abcdEFG"}))

        outcome = sweep_duplicates()

        assert outcome == {"scanned": 1, "deleted": ["fb_1"], "dry_run": False}
        assert list(store.snapshot("posts")) == ["yt_V123abcdEFG"]


class TestBeatSchedule:
    def test_entries_reference_registered_tasks(self) -> None:
        for entry in beat_schedule.values():
            assert entry["task"] in celery_app.tasks

    def test_periods_follow_settings(self) -> None:
        assert beat_schedule["facebook_sync_posts"]["schedule"] == timedelta(minutes=10)
        assert beat_schedule["facebook_sync_live_status"]["schedule"] == timedelta(minutes=10)
        assert beat_schedule["youtube_sync"]["schedule"] == timedelta(minutes=30)
