"""Document storage port used by every sync component.

The sync engine never talks to a database client directly.  Each component
receives a :class:`DocumentStore` and uses three operations: point reads
(:meth:`~DocumentStore.get`), equality/order queries
(:meth:`~DocumentStore.query`) and atomic write batches
(:meth:`~DocumentStore.batch`).

Write semantics follow a document database:

- ``set(..., merge=True)`` creates the document or deep-merges the given
  fields into it; fields absent from the payload are left untouched.
- ``set(..., merge=False)`` replaces the whole document.
- ``update`` merges into an existing document and fails the batch when the
  document does not exist.
- ``delete`` is a no-op for missing documents.

All operations staged on one :class:`WriteBatch` are applied in a single
atomic commit: either every operation lands or none does.

Two implementations ship with the package:

- :class:`InMemoryDocumentStore` (below): tests and local development.
- :class:`~feed_sync.core.sql_store.SqlDocumentStore`: SQLAlchemy-backed.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Protocol

from feed_sync.core.exceptions import DocumentNotFoundError, StorageError

# ---------------------------------------------------------------------------
# Well-known collections and keys
# ---------------------------------------------------------------------------

POSTS_COLLECTION: str = "posts"
SYSTEM_COLLECTION: str = "system"
SETTINGS_COLLECTION: str = "settings"

FACEBOOK_DEBUG_KEY: str = "facebook_sync_debug"
YOUTUBE_DEBUG_KEY: str = "youtube_sync_debug"
INTEGRATIONS_KEY: str = "integrations"


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a batch is committed."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared document helpers
# ---------------------------------------------------------------------------


def plain_value(value: Any) -> Any:
    """Unwrap enum members so they compare equal to their stored form."""
    if isinstance(value, Enum):
        return value.value
    return value


def resolve_sentinels(data: Any, now: datetime) -> Any:
    """Return a copy of *data* with every ``SERVER_TIMESTAMP`` replaced.

    The timestamp is stored as an ISO 8601 string so that documents stay
    JSON-serialisable in every backend.
    """
    if data is SERVER_TIMESTAMP:
        return now.isoformat()
    if isinstance(data, dict):
        return {key: resolve_sentinels(value, now) for key, value in data.items()}
    if isinstance(data, list):
        return [resolve_sentinels(value, now) for value in data]
    return plain_value(data)


def merge_document(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge *incoming* into a copy of *existing*.

    Nested maps are merged key by key; every other value (lists included)
    is replaced wholesale.
    """
    merged = copy.deepcopy(existing)
    for key, value in incoming.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = merge_document(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoredDocument:
    """A document returned by :meth:`DocumentStore.query`."""

    key: str
    data: dict[str, Any]


@dataclass(frozen=True)
class WriteOp:
    """One staged write of a :class:`WriteBatch`."""

    kind: Literal["set", "update", "delete"]
    collection: str
    key: str
    data: dict[str, Any] | None = None
    merge: bool = False


class DocumentStore(Protocol):
    """Storage port: point reads, equality queries, atomic batches."""

    async def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    async def query(
        self,
        collection: str,
        where: Sequence[tuple[str, Any]] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]: ...

    async def set(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None: ...

    def batch(self) -> WriteBatch: ...

    async def apply(self, ops: Sequence[WriteOp]) -> None: ...

    async def close(self) -> None: ...


class WriteBatch:
    """Collects writes and applies them atomically on :meth:`commit`.

    A batch can be committed once.  Committing an empty batch is a no-op.

    Args:
        store: The store that applies the staged operations.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._ops: list[WriteOp] = []
        self._committed = False

    def set(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> WriteBatch:
        self._check_open()
        self._ops.append(WriteOp("set", collection, key, dict(data), merge))
        return self

    def update(self, collection: str, key: str, data: dict[str, Any]) -> WriteBatch:
        self._check_open()
        self._ops.append(WriteOp("update", collection, key, dict(data), True))
        return self

    def delete(self, collection: str, key: str) -> WriteBatch:
        self._check_open()
        self._ops.append(WriteOp("delete", collection, key))
        return self

    @property
    def ops(self) -> tuple[WriteOp, ...]:
        return tuple(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    async def commit(self) -> int:
        """Apply every staged operation atomically.

        Returns:
            Number of operations applied.

        Raises:
            StorageError: If the batch was already committed or the store
                rejects it (nothing is applied in that case).
        """
        self._check_open()
        self._committed = True
        if not self._ops:
            return 0
        await self._store.apply(self._ops)
        return len(self._ops)

    def _check_open(self) -> None:
        if self._committed:
            raise StorageError("Write batch has already been committed")


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryDocumentStore:
    """Dict-backed :class:`DocumentStore`.

    Batches are applied to a staged copy of the data and swapped in only when
    every operation succeeded, which gives the same all-or-nothing behaviour
    as a database transaction.

    Args:
        clock: Callable returning the commit time used for ``SERVER_TIMESTAMP``.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        document = self._data.get(collection, {}).get(key)
        return copy.deepcopy(document) if document is not None else None

    async def query(
        self,
        collection: str,
        where: Sequence[tuple[str, Any]] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        conditions = [(field, plain_value(value)) for field, value in where]
        matches = [
            StoredDocument(key, copy.deepcopy(document))
            for key, document in self._data.get(collection, {}).items()
            if all(document.get(field) == value for field, value in conditions)
        ]
        if order_by is not None:
            matches = [doc for doc in matches if doc.data.get(order_by) is not None]
            matches.sort(key=lambda doc: doc.data[order_by], reverse=descending)
        if limit is not None:
            matches = matches[:limit]
        return matches

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
        async with self._lock:
            now = self._clock()
            staged = copy.deepcopy(self._data)
            for op in ops:
                documents = staged.setdefault(op.collection, {})
                if op.kind == "delete":
                    documents.pop(op.key, None)
                    continue
                payload = resolve_sentinels(op.data or {}, now)
                existing = documents.get(op.key)
                if op.kind == "update" and existing is None:
                    raise DocumentNotFoundError(op.collection, op.key)
                if existing is not None and op.merge:
                    documents[op.key] = merge_document(existing, payload)
                else:
                    documents[op.key] = payload
            self._data = staged

    async def close(self) -> None:
        return None

    def snapshot(self, collection: str) -> dict[str, dict[str, Any]]:
        """Return a deep copy of one collection (test and debugging aid)."""
        return copy.deepcopy(self._data.get(collection, {}))
