"""SQLAlchemy-backed implementation of the document storage port.

Documents live in the ``documents`` table (see
:mod:`feed_sync.core.models.documents`).  Each :class:`WriteBatch` is applied
inside one database transaction, so a failed operation rolls back every
other operation of the same batch.

Equality filters are compiled to JSON field extraction, typed by the Python
value being compared (``bool`` → boolean, ``int`` → integer, everything else
→ text).  ``order_by`` is numeric; the only ordering key in use is the
epoch-millisecond ``timestamp``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from feed_sync.core.exceptions import DocumentNotFoundError, StorageError
from feed_sync.core.models import Base, Document
from feed_sync.core.storage import (
    StoredDocument,
    WriteBatch,
    WriteOp,
    merge_document,
    plain_value,
    resolve_sentinels,
    utcnow,
)

logger = logging.getLogger(__name__)


def _field_equals(field: str, value: Any) -> Any:
    """Build a SQL predicate comparing one JSON field with *value*."""
    value = plain_value(value)
    element = Document.data[field]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == str(value)


class SqlDocumentStore:
    """:class:`~feed_sync.core.storage.DocumentStore` on an async SQLAlchemy engine.

    Args:
        engine: Async engine bound to the target database.
        clock: Callable returning the commit time used for ``SERVER_TIMESTAMP``.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._clock = clock
        self._sessions: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_schema(self) -> None:
        """Create the ``documents`` table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        try:
            async with self._sessions() as session:
                document = await session.get(Document, (collection, key))
                return dict(document.data) if document is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {collection}/{key}: {exc}") from exc

    async def query(
        self,
        collection: str,
        where: Sequence[tuple[str, Any]] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        stmt = select(Document).where(Document.collection == collection)
        for field, value in where:
            stmt = stmt.where(_field_equals(field, value))
        if order_by is not None:
            sort_key = Document.data[order_by].as_float()
            stmt = stmt.where(sort_key.is_not(None))
            stmt = stmt.order_by(sort_key.desc() if descending else sort_key.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to query {collection}: {exc}") from exc
        return [StoredDocument(row.key, dict(row.data)) for row in rows]

    async def set(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self.batch().set(collection, key, data, merge=merge).commit()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def apply(self, ops: Sequence[WriteOp]) -> None:
        now = self._clock()
        try:
            async with self._sessions() as session:
                async with session.begin():
                    for op in ops:
                        await self._apply_one(session, op, now)
        except SQLAlchemyError as exc:
            raise StorageError(f"Batch of {len(ops)} writes failed: {exc}") from exc
        logger.debug("sql_store: committed batch of %d writes", len(ops))

    async def _apply_one(self, session: AsyncSession, op: WriteOp, now: datetime) -> None:
        existing = await session.get(
            Document, (op.collection, op.key), with_for_update=True
        )
        if op.kind == "delete":
            if existing is not None:
                await session.delete(existing)
                await session.flush()
            return

        payload = resolve_sentinels(op.data or {}, now)
        if op.kind == "update" and existing is None:
            raise DocumentNotFoundError(op.collection, op.key)
        if existing is None:
            inserted = await session.execute(self._insert_if_absent(op.collection, op.key, payload))
            if inserted.rowcount:
                return
            # A concurrent run inserted the key first: apply this write on top of it.
            existing = await session.get(
                Document,
                (op.collection, op.key),
                with_for_update=True,
                populate_existing=True,
            )
            if existing is None:
                raise StorageError(f"{op.collection}/{op.key} vanished during upsert")
        if op.merge:
            # Reassign a new dict: in-place mutation of a JSON column is not tracked.
            existing.data = merge_document(existing.data, payload)
        else:
            existing.data = payload
        await session.flush()

    def _insert_if_absent(self, collection: str, key: str, data: dict[str, Any]) -> Any:
        """``INSERT ... ON CONFLICT DO NOTHING`` for one document row."""
        dialect_insert = (
            postgresql.insert if self._engine.dialect.name == "postgresql" else sqlite.insert
        )
        return (
            dialect_insert(Document)
            .values(collection=collection, key=key, data=data)
            .on_conflict_do_nothing(index_elements=["collection", "key"])
        )

    async def close(self) -> None:
        await self._engine.dispose()
