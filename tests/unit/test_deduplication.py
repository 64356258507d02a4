"""Unit tests for cross-source duplicate resolution.

Tests cover:
- linked_video_id() prefers youtubeVideoId, then mediaUrl, externalUrl, content
- youtube_twin_exists() reads yt_<id>
- facebook_twins() only returns fb_ keys
- retract_facebook_twins() stages deletes on the run's writer
- sweep() deletes legacy and linked duplicates, honours dry_run, leaves
  foreign and unrelated posts alone
"""

from __future__ import annotations

import pytest

from feed_sync.core.deduplication import CrossSourceDeduplicator, linked_video_id
from feed_sync.core.storage import InMemoryDocumentStore
from feed_sync.core.upsert import UpsertWriter

VIDEO_ID = "V123abcdEFG"


class TestLinkedVideoId:
    def test_explicit_field_wins(self) -> None:
        document = {"youtubeVideoId": "AAAAAAAAAAA", "mediaUrl": f"https://youtu.be/{VIDEO_ID}"}

        assert linked_video_id(document) == "AAAAAAAAAAA"

    def test_legacy_post_matched_on_urls_and_content(self) -> None:
        assert linked_video_id({"mediaUrl": f"https://youtu.be/{VIDEO_ID}"}) == VIDEO_ID
        assert (
            linked_video_id({"externalUrl": f"https://www.youtube.com/watch?v={VIDEO_ID}"})
            == VIDEO_ID
        )
        assert linked_video_id({"content": f"Replay: https://youtu.be/{VIDEO_ID}"}) == VIDEO_ID

    def test_unrelated_post(self) -> None:
        assert linked_video_id({"mediaUrl": "http://x/img.jpg", "content": "hi"}) is None


class TestDirectionalChecks:
    @pytest.mark.asyncio
    async def test_youtube_twin_exists(self, store: InMemoryDocumentStore) -> None:
        dedup = CrossSourceDeduplicator(store)
        assert not await dedup.youtube_twin_exists(VIDEO_ID)

        await store.set("posts", f"yt_{VIDEO_ID}", {"sourceId": VIDEO_ID})

        assert await dedup.youtube_twin_exists(VIDEO_ID)

    @pytest.mark.asyncio
    async def test_retract_stages_deletes_of_facebook_twins_only(
        self, store: InMemoryDocumentStore
    ) -> None:
        await store.set("posts", "fb_1", {"youtubeVideoId": VIDEO_ID})
        await store.set("posts", "fb_2", {"youtubeVideoId": "other000000"})
        await store.set("posts", "manual_1", {"youtubeVideoId": VIDEO_ID})
        writer = UpsertWriter(store)

        retracted = await CrossSourceDeduplicator(store).retract_facebook_twins(VIDEO_ID, writer)

        assert retracted == ["fb_1"]
        assert "fb_1" in store.snapshot("posts")
        await writer.commit()
        assert sorted(store.snapshot("posts")) == ["fb_2", "manual_1"]


class TestSweep:
    async def _seed(self, store: InMemoryDocumentStore) -> None:
        await store.set("posts", f"yt_{VIDEO_ID}", {"sourceId": VIDEO_ID, "type": "youtube"})
        await store.set("posts", "fb_linked", {"youtubeVideoId": VIDEO_ID})
        await store.set("posts", "fb_legacy", {"content": f"https://youtu.be/{VIDEO_ID}"})
        await store.set("posts", "fb_other", {"mediaUrl": "https://youtu.be/NOTSYNCED01"})
        await store.set("posts", "fb_plain", {"content": "hello"})
        await store.set("posts", "manual_1", {"youtubeVideoId": VIDEO_ID})

    @pytest.mark.asyncio
    async def test_sweep_deletes_duplicates(self, store: InMemoryDocumentStore) -> None:
        await self._seed(store)

        result = await CrossSourceDeduplicator(store).sweep()

        assert result.scanned == 4
        assert sorted(result.deleted) == ["fb_legacy", "fb_linked"]
        assert sorted(store.snapshot("posts")) == [
            "fb_other",
            "fb_plain",
            "manual_1",
            f"yt_{VIDEO_ID}",
        ]

    @pytest.mark.asyncio
    async def test_dry_run_deletes_nothing(self, store: InMemoryDocumentStore) -> None:
        await self._seed(store)

        result = await CrossSourceDeduplicator(store).sweep(dry_run=True)

        assert sorted(result.deleted) == ["fb_legacy", "fb_linked"]
        assert result.as_dict()["dry_run"] is True
        assert len(store.snapshot("posts")) == 6
