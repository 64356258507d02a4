"""Tests for the SQLAlchemy document store against SQLite (aiosqlite).

Each test gets a fresh database file under ``tmp_path``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from feed_sync.core.database import build_engine
from feed_sync.core.exceptions import DocumentNotFoundError
from feed_sync.core.schemas.post import PostType
from feed_sync.core.sql_store import SqlDocumentStore
from feed_sync.core.storage import SERVER_TIMESTAMP

from conftest import FIXED_NOW


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlDocumentStore, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}")
    store = SqlDocumentStore(engine, clock=lambda: FIXED_NOW)
    await store.create_schema()
    yield store
    await store.close()


class TestSqlDocumentStore:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, sql_store: SqlDocumentStore) -> None:
        assert await sql_store.get("posts", "fb_1") is None

    @pytest.mark.asyncio
    async def test_merge_set_and_timestamp(self, sql_store: SqlDocumentStore) -> None:
        """Merge writes keep other fields; SERVER_TIMESTAMP uses the store clock."""
        await sql_store.set("posts", "fb_1", {"content": "hi", "isLive": True})
        await sql_store.set(
            "posts", "fb_1", {"content": "hello", "updatedAt": SERVER_TIMESTAMP}, merge=True
        )

        assert await sql_store.get("posts", "fb_1") == {
            "content": "hello",
            "isLive": True,
            "updatedAt": FIXED_NOW.isoformat(),
        }

    @pytest.mark.asyncio
    async def test_failed_batch_is_rolled_back(self, sql_store: SqlDocumentStore) -> None:
        """An update of a missing key rolls back the batch's other writes."""
        await sql_store.set("posts", "fb_keep", {"content": "old"})
        batch = sql_store.batch()
        batch.set("posts", "fb_keep", {"content": "new"}, merge=True)
        batch.delete("posts", "fb_keep")
        batch.update("posts", "fb_missing", {"isLive": False})

        with pytest.raises(DocumentNotFoundError):
            await batch.commit()

        assert await sql_store.get("posts", "fb_keep") == {"content": "old"}

    @pytest.mark.asyncio
    async def test_query_filters_on_json_fields(self, sql_store: SqlDocumentStore) -> None:
        """String, enum and boolean equality filters reach into the JSON body."""
        batch = sql_store.batch()
        batch.set("posts", "fb_1", {"type": "facebook_live", "isLive": True, "sourceId": "1"})
        batch.set("posts", "fb_2", {"type": "facebook_live", "isLive": False, "sourceId": "2"})
        batch.set("posts", "fb_3", {"youtubeVideoId": "V123abcdEFG"})
        batch.set("system", "fb_4", {"youtubeVideoId": "V123abcdEFG"})
        await batch.commit()

        live = await sql_store.query(
            "posts", where=[("type", PostType.FACEBOOK_LIVE), ("isLive", True)]
        )
        linked = await sql_store.query("posts", where=[("youtubeVideoId", "V123abcdEFG")])

        assert [doc.key for doc in live] == ["fb_1"]
        assert [doc.key for doc in linked] == ["fb_3"]

    @pytest.mark.asyncio
    async def test_query_order_and_limit(self, sql_store: SqlDocumentStore) -> None:
        batch = sql_store.batch()
        for key, timestamp in (("a", 1740787200000), ("b", 1740700800000), ("c", 1740873600000)):
            batch.set("posts", key, {"timestamp": timestamp})
        await batch.commit()

        newest = await sql_store.query("posts", order_by="timestamp", descending=True, limit=2)

        assert [doc.key for doc in newest] == ["c", "a"]


class TestOverlappingWriters:
    @pytest_asyncio.fixture
    async def second_store(
        self, sql_store: SqlDocumentStore, tmp_path: Path
    ) -> AsyncGenerator[SqlDocumentStore, None]:
        """A second store (own engine and connections) on the same database file."""
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}")
        store = SqlDocumentStore(engine, clock=lambda: FIXED_NOW)
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_concurrent_batches_on_new_keys_both_commit(
        self, sql_store: SqlDocumentStore, second_store: SqlDocumentStore
    ) -> None:
        """Two runs merge-writing the same not-yet-existing keys both land."""
        first = sql_store.batch()
        second = second_store.batch()
        for i in range(30):
            first.set("posts", f"fb_{i}", {"sourceId": str(i), "content": "hello"}, merge=True)
            second.set("posts", f"fb_{i}", {"sourceId": str(i), "pinned": False}, merge=True)

        await asyncio.gather(first.commit(), second.commit())

        for i in range(30):
            assert await sql_store.get("posts", f"fb_{i}") == {
                "sourceId": str(i),
                "content": "hello",
                "pinned": False,
            }

    @pytest.mark.asyncio
    async def test_delete_then_set_in_one_batch(self, sql_store: SqlDocumentStore) -> None:
        await sql_store.set("posts", "fb_1", {"content": "old", "isLive": True})
        batch = sql_store.batch()
        batch.delete("posts", "fb_1")
        batch.set("posts", "fb_1", {"content": "new"}, merge=True)
        await batch.commit()

        assert await sql_store.get("posts", "fb_1") == {"content": "new"}
