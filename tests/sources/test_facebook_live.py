"""Tests for the Facebook live-status reconciler.

Covers the broadcast state machine (unseen → live → ended, ended is final),
the mapping of a live broadcast to a pinned post, and the end-to-end
reconciliation pass against a respx-mocked ``live_videos`` endpoint.
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest
import respx

from feed_sync.config.settings import Settings
from feed_sync.core.storage import InMemoryDocumentStore
from feed_sync.sources.base import SyncStatus
from feed_sync.sources.facebook._schemas import LiveVideo
from feed_sync.sources.facebook.live import (
    LiveState,
    LiveStatusReconciler,
    absolute_permalink,
    next_state,
    state_of,
)

LIVE_URL = "https://graph.facebook.com/v18.0/page-1/live_videos"


@pytest.fixture
def reconciler(store: InMemoryDocumentStore, settings: Settings) -> LiveStatusReconciler:
    return LiveStatusReconciler(store, settings=settings)


@pytest.fixture
def live_videos(load_fixture) -> dict[str, Any]:
    return load_fixture("facebook", "live_videos.json")


def _live_document(source_id: str) -> dict[str, Any]:
    return {
        "type": "facebook_live",
        "isLive": True,
        "pinned": True,
        "sourceId": source_id,
        "content": "Live Stream",
        "timestamp": 1740900000000,
    }


class TestStateMachine:
    def test_unseen_broadcast(self) -> None:
        assert next_state(None, True) is LiveState.LIVE
        assert next_state(None, False) is None

    def test_live_broadcast(self) -> None:
        assert next_state(LiveState.LIVE, True) is LiveState.LIVE
        assert next_state(LiveState.LIVE, False) is LiveState.ENDED

    def test_ended_is_terminal(self) -> None:
        assert next_state(LiveState.ENDED, True) is LiveState.ENDED
        assert next_state(LiveState.ENDED, False) is LiveState.ENDED

    def test_state_of_stored_document(self) -> None:
        assert state_of(None) is None
        assert state_of({"isLive": True}) is LiveState.LIVE
        assert state_of({"isLive": False}) is LiveState.ENDED


class TestBuildLivePost:
    def test_maps_broadcast_to_pinned_live_post(self, reconciler: LiveStatusReconciler) -> None:
        video = LiveVideo(
            id="L1",
            title="Sunday Worship Live",
            description="Join us live",
            permalink_url="/page-1/videos/L1/",
            creation_time="2025-03-02T10:00:00+0000",
        )

        post = reconciler.build_live_post(video)

        assert post.id == "fb_L1"
        assert post.type.value == "facebook_live"
        assert post.is_live is True
        assert post.pinned is True
        assert post.content == "Join us live"
        assert post.external_url == "https://www.facebook.com/page-1/videos/L1/"
        assert post.timestamp == 1740909600000

    def test_content_falls_back_to_title_then_placeholder(
        self, reconciler: LiveStatusReconciler
    ) -> None:
        titled = reconciler.build_live_post(
            LiveVideo(id="L2", title="Evening Prayer", creation_time="2025-03-02T10:00:00+0000")
        )
        bare = reconciler.build_live_post(
            LiveVideo(id="L3", creation_time="2025-03-02T10:00:00+0000")
        )

        assert titled.content == "Evening Prayer"
        assert bare.content == "Live Stream"

    def test_absolute_permalink(self) -> None:
        assert absolute_permalink("/p/videos/1/") == "https://www.facebook.com/p/videos/1/"
        assert absolute_permalink("https://fb.watch/x") == "https://fb.watch/x"
        assert absolute_permalink(None) is None


class TestReconcile:
    @pytest.mark.asyncio
    async def test_new_broadcast_written_live(
        self,
        reconciler: LiveStatusReconciler,
        store: InMemoryDocumentStore,
        live_videos: dict[str, Any],
    ) -> None:
        with respx.mock:
            route = respx.get(LIVE_URL).mock(return_value=httpx.Response(200, json=live_videos))
            result = await reconciler.reconcile()

        assert route.calls.last.request.url.params["status"] == "LIVE_NOW"
        assert result.status is SyncStatus.COMPLETED
        assert result.written == 1
        document = store.snapshot("posts")["fb_L1"]
        assert document["type"] == "facebook_live"
        assert document["isLive"] is True
        assert document["pinned"] is True
        assert document["externalUrl"] == "https://www.facebook.com/page-1/videos/L1/"

    @pytest.mark.asyncio
    async def test_broadcast_absent_from_snapshot_ends(
        self,
        reconciler: LiveStatusReconciler,
        store: InMemoryDocumentStore,
        live_videos: dict[str, Any],
    ) -> None:
        """A stored live post missing from LIVE_NOW is demoted in place."""
        await store.set("posts", "fb_OLD", _live_document("OLD"))

        with respx.mock:
            respx.get(LIVE_URL).mock(return_value=httpx.Response(200, json=live_videos))
            result = await reconciler.reconcile()

        assert result.ended == 1
        ended = store.snapshot("posts")["fb_OLD"]
        assert ended["isLive"] is False
        assert ended["pinned"] is False
        assert ended["type"] == "video"
        assert ended["content"] == "Live Stream"
        assert ended["sourceId"] == "OLD"

    @pytest.mark.asyncio
    async def test_broadcast_still_live_is_kept(
        self,
        reconciler: LiveStatusReconciler,
        store: InMemoryDocumentStore,
        live_videos: dict[str, Any],
    ) -> None:
        await store.set("posts", "fb_L1", _live_document("L1"))

        with respx.mock:
            respx.get(LIVE_URL).mock(return_value=httpx.Response(200, json=live_videos))
            result = await reconciler.reconcile()

        assert result.ended == 0
        assert store.snapshot("posts")["fb_L1"]["isLive"] is True

    @pytest.mark.asyncio
    async def test_empty_snapshot_ends_every_live_post(
        self, reconciler: LiveStatusReconciler, store: InMemoryDocumentStore
    ) -> None:
        await store.set("posts", "fb_A", _live_document("A"))
        await store.set("posts", "fb_B", _live_document("B"))

        with respx.mock:
            respx.get(LIVE_URL).mock(return_value=httpx.Response(200, json={"data": []}))
            result = await reconciler.reconcile()

        assert result.ended == 2
        posts = store.snapshot("posts")
        assert not posts["fb_A"]["isLive"]
        assert not posts["fb_B"]["isLive"]

    @pytest.mark.asyncio
    async def test_ended_broadcast_is_not_revived(
        self,
        reconciler: LiveStatusReconciler,
        store: InMemoryDocumentStore,
        live_videos: dict[str, Any],
    ) -> None:
        """An ended post stays ended even if the ID shows up as live again."""
        await store.set(
            "posts",
            "fb_L1",
            {**_live_document("L1"), "isLive": False, "pinned": False, "type": "video"},
        )

        with respx.mock:
            respx.get(LIVE_URL).mock(return_value=httpx.Response(200, json=live_videos))
            result = await reconciler.reconcile()

        assert result.written == 0
        document = store.snapshot("posts")["fb_L1"]
        assert document["isLive"] is False
        assert document["type"] == "video"

    @pytest.mark.asyncio
    async def test_foreign_live_posts_are_ignored(
        self, reconciler: LiveStatusReconciler, store: InMemoryDocumentStore
    ) -> None:
        await store.set("posts", "manual_live", _live_document("M"))

        with respx.mock:
            respx.get(LIVE_URL).mock(return_value=httpx.Response(200, json={"data": []}))
            result = await reconciler.reconcile()

        assert result.ended == 0
        assert store.snapshot("posts")["manual_live"]["isLive"] is True

    @pytest.mark.asyncio
    async def test_upstream_failure_changes_nothing(
        self,
        reconciler: LiveStatusReconciler,
        store: InMemoryDocumentStore,
        load_fixture,
    ) -> None:
        await store.set("posts", "fb_OLD", _live_document("OLD"))

        with respx.mock:
            respx.get(LIVE_URL).mock(
                return_value=httpx.Response(
                    400, json=load_fixture("facebook", "error_token_expired.json")
                )
            )
            result = await reconciler.reconcile()

        assert result.status is SyncStatus.FAILED
        assert store.snapshot("posts")["fb_OLD"]["isLive"] is True

    @pytest.mark.asyncio
    async def test_missing_credentials_skip(
        self, store: InMemoryDocumentStore, settings: Settings
    ) -> None:
        reconciler = LiveStatusReconciler(
            store, settings=settings.model_copy(update={"fb_access_token": None})
        )

        result = await reconciler.reconcile()

        assert result.status is SyncStatus.SKIPPED
        assert "access_token" in (result.error or "")

    @pytest.mark.asyncio
    async def test_unreadable_settings_document_fails_check(
        self, settings_outage_store: InMemoryDocumentStore, settings: Settings
    ) -> None:
        await settings_outage_store.set("posts", "fb_OLD", _live_document("OLD"))
        reconciler = LiveStatusReconciler(settings_outage_store, settings=settings)

        with respx.mock(assert_all_called=False) as mock:
            result = await reconciler.reconcile()

        assert result.status is SyncStatus.FAILED
        assert result.error == "db down"
        assert mock.calls.call_count == 0
        assert settings_outage_store.snapshot("posts")["fb_OLD"]["isLive"] is True
