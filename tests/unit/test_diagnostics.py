"""Unit tests for the diagnostics recorder and URL redaction."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from feed_sync.core.diagnostics import DiagnosticsRecorder, redact_url
from feed_sync.core.exceptions import SourceAuthError, StorageError
from feed_sync.core.pagination import FetchedPage
from feed_sync.core.storage import InMemoryDocumentStore

from conftest import FIXED_NOW


class TestRedactUrl:
    def test_access_token_removed(self) -> None:
        url = "https://graph.facebook.com/v18.0/p/feed?access_token=secret&limit=10"

        assert redact_url(url) == "https://graph.facebook.com/v18.0/p/feed?limit=10"

    def test_api_key_removed(self) -> None:
        url = "https://www.googleapis.com/youtube/v3/search?key=secret&part=snippet"

        assert "secret" not in redact_url(url)
        assert "part=snippet" in redact_url(url)

    def test_url_without_query_unchanged(self) -> None:
        assert redact_url("https://example.org/a") == "https://example.org/a"


class TestDiagnosticsRecorder:
    @pytest.mark.asyncio
    async def test_pages_recorded_and_flushed(self, store: InMemoryDocumentStore) -> None:
        recorder = DiagnosticsRecorder(
            store, "facebook_sync_debug", mode="backfill", clock=lambda: FIXED_NOW
        )
        recorder.record_page(
            FetchedPage(
                url="https://g/feed?access_token=t&limit=50",
                items=[1, 2],
                next_url="https://g/feed?after=x",
                has_paging=True,
            )
        )
        recorder.record_page(FetchedPage(url="https://g/feed?after=x", items=[]))
        recorder.set_total(2)
        await recorder.flush()

        record = await store.get("system", "facebook_sync_debug")

        assert record == {
            "startTime": FIXED_NOW.isoformat(),
            "mode": "backfill",
            "pages": [
                {"url": "https://g/feed?limit=50", "postCount": 2, "hasPaging": True, "hasNext": True},
                {"url": "https://g/feed?after=x", "postCount": 0, "hasPaging": False, "hasNext": False},
            ],
            "totalSynced": 2,
            "error": None,
        }

    @pytest.mark.asyncio
    async def test_error_keeps_upstream_body(self, store: InMemoryDocumentStore) -> None:
        recorder = DiagnosticsRecorder(store, "facebook_sync_debug")
        body = {"error": {"code": 190, "message": "expired"}}
        recorder.record_error(
            SourceAuthError("token rejected", source="facebook", status_code=400, response_body=body)
        )
        await recorder.flush()

        record = await store.get("system", "facebook_sync_debug")

        assert record["error"] == {"message": "token rejected", "response": body, "statusCode": 400}

    @pytest.mark.asyncio
    async def test_each_flush_replaces_previous_record(self, store: InMemoryDocumentStore) -> None:
        first = DiagnosticsRecorder(store, "facebook_sync_debug")
        first.record_error(RuntimeError("old failure"))
        await first.flush()

        await DiagnosticsRecorder(store, "facebook_sync_debug").flush()

        assert (await store.get("system", "facebook_sync_debug"))["error"] is None

    @pytest.mark.asyncio
    async def test_flush_failure_is_swallowed(self) -> None:
        store = AsyncMock()
        store.set.side_effect = StorageError("down")

        await DiagnosticsRecorder(store, "facebook_sync_debug").flush()

        store.set.assert_awaited_once()
