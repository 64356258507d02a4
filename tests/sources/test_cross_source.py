"""End-to-end duplicate resolution between the two pollers.

A YouTube video shared on the Facebook Page must end up as exactly one post,
the native ``yt_`` record, whichever poller runs first.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest
import respx

from feed_sync.config.settings import Settings
from feed_sync.core.deduplication import CrossSourceDeduplicator
from feed_sync.core.storage import InMemoryDocumentStore
from feed_sync.sources.facebook.collector import FacebookPoller
from feed_sync.sources.youtube.collector import YouTubePoller

FEED_URL = "https://graph.facebook.com/v18.0/page-1/feed"
SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"
VIDEO_ID = "V123abcdEFG"


def _posts_for_video(store: InMemoryDocumentStore) -> list[str]:
    return sorted(
        key
        for key, document in store.snapshot("posts").items()
        if key == f"yt_{VIDEO_ID}" or document.get("youtubeVideoId") == VIDEO_ID
    )


@pytest.fixture
def upstream(load_fixture):
    """Mount respx routes for both platforms."""
    feed_page: dict[str, Any] = load_fixture("facebook", "feed_page.json")
    videos: dict[str, Any] = load_fixture("youtube", "videos_list_response.json")
    search = {"items": [{"id": {"kind": "youtube#video", "videoId": VIDEO_ID}}]}
    only_v123 = {"items": [item for item in videos["items"] if item["id"] == VIDEO_ID]}

    with respx.mock(assert_all_called=False) as mock:
        mock.get(FEED_URL).mock(return_value=httpx.Response(200, json=feed_page))
        mock.get(SEARCH_URL).mock(return_value=httpx.Response(200, json=search))
        mock.get(VIDEOS_URL).mock(return_value=httpx.Response(200, json=only_v123))
        yield mock


class TestIngestionOrder:
    @pytest.mark.asyncio
    async def test_facebook_then_youtube(
        self, store: InMemoryDocumentStore, settings: Settings, upstream
    ) -> None:
        """The YouTube run retracts the Facebook post written before it."""
        await FacebookPoller(store, settings=settings).sync()
        assert _posts_for_video(store) == ["fb_1001"]

        result = await YouTubePoller(store, settings=settings).sync()

        assert result.retracted == 1
        assert _posts_for_video(store) == [f"yt_{VIDEO_ID}"]

    @pytest.mark.asyncio
    async def test_youtube_then_facebook(
        self, store: InMemoryDocumentStore, settings: Settings, upstream
    ) -> None:
        """The Facebook run skips the post whose video already exists natively."""
        await YouTubePoller(store, settings=settings).sync()

        result = await FacebookPoller(store, settings=settings).sync()

        assert result.skipped_duplicates == 1
        assert _posts_for_video(store) == [f"yt_{VIDEO_ID}"]

    @pytest.mark.asyncio
    async def test_repeated_interleaving_converges(
        self, store: InMemoryDocumentStore, settings: Settings, upstream
    ) -> None:
        for _ in range(2):
            await FacebookPoller(store, settings=settings).sync()
            await YouTubePoller(store, settings=settings).sync()

        assert _posts_for_video(store) == [f"yt_{VIDEO_ID}"]
        assert {"fb_999", "fb_1000", "fb_1002"} <= set(store.snapshot("posts"))


class TestSweepAfterIngestion:
    @pytest.mark.asyncio
    async def test_sweep_removes_legacy_twin(
        self, store: InMemoryDocumentStore, settings: Settings, upstream
    ) -> None:
        """A legacy post without youtubeVideoId is only caught by the sweep."""
        await store.set(
            "posts",
            "fb_legacy",
            {"type": "facebook", "content": f"Replay: https://youtu.be/{VIDEO_ID}"},
        )
        await YouTubePoller(store, settings=settings).sync()
        assert "fb_legacy" in store.snapshot("posts")

        result = await CrossSourceDeduplicator(store).sweep()

        assert result.deleted == ["fb_legacy"]
        assert "fb_legacy" not in store.snapshot("posts")


class TestOverlappingRuns:
    @pytest.mark.asyncio
    async def test_concurrent_facebook_and_youtube_runs_converge(
        self, store: InMemoryDocumentStore, settings: Settings, upstream
    ) -> None:
        """Runs started together keep one record per video once each has run again.

        A Facebook twin staged before the YouTube record committed can land
        in the first round; the next YouTube run retracts it and the next
        Facebook run skips it.
        """
        for _ in range(2):
            facebook, youtube = await asyncio.gather(
                FacebookPoller(store, settings=settings).sync(),
                YouTubePoller(store, settings=settings).sync(),
            )
            assert facebook.ok and youtube.ok
            assert f"yt_{VIDEO_ID}" in store.snapshot("posts")

        assert _posts_for_video(store) == [f"yt_{VIDEO_ID}"]

    @pytest.mark.asyncio
    async def test_concurrent_runs_of_one_poller_are_idempotent(
        self, store: InMemoryDocumentStore, settings: Settings, upstream
    ) -> None:
        results = await asyncio.gather(
            FacebookPoller(store, settings=settings).sync(),
            FacebookPoller(store, settings=settings).sync(),
        )

        assert [result.written for result in results] == [4, 4]
        assert set(store.snapshot("posts")) == {"fb_999", "fb_1000", "fb_1001", "fb_1002"}
