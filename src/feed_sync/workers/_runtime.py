"""Helpers shared by the Celery tasks.

Each task body runs inside its own ``asyncio.run()`` event loop.  Pooled
asyncpg connections cannot outlive that loop, so every task run builds its
own store (and rehoster) through :func:`task_resources` and closes the store
on the way out.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from feed_sync.config.settings import Settings, get_settings
from feed_sync.core.database import build_document_store
from feed_sync.core.media import Rehoster, build_rehoster
from feed_sync.core.storage import DocumentStore


@dataclass
class TaskResources:
    settings: Settings
    store: DocumentStore
    rehoster: Rehoster


@asynccontextmanager
async def task_resources(settings: Settings | None = None) -> AsyncIterator[TaskResources]:
    """Yield a run-scoped store and rehoster; close the store afterwards."""
    settings = settings or get_settings()
    store = build_document_store(settings)
    try:
        yield TaskResources(settings=settings, store=store, rehoster=build_rehoster(settings))
    finally:
        await store.close()
