"""Shared pytest fixtures for Feed Sync tests.

Fixture summary
---------------
settings              : Settings with both integrations configured, no .env file read.
store                 : Empty InMemoryDocumentStore with a fixed clock.
settings_outage_store : In-memory store whose settings documents raise StorageError.
load_fixture          : Loads a recorded API response from ``tests/fixtures``.
app                   : A fresh FastAPI app with the store and settings overridden.
client                : httpx.AsyncClient bound to ``app`` through ASGITransport.
enqueued              : List recording webhook-triggered sync requests.

Every test runs without network, Redis or PostgreSQL.  Upstream APIs are
mocked with respx; the SQL store tests use aiosqlite on a temporary file.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set env vars before any application module is imported so that the
# module-level Settings() reads in celery_app / api.main see test values.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "REDIS_URL": "redis://localhost:6379/0",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "LOG_LEVEL": "WARNING",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

from feed_sync.config.settings import Settings, get_settings  # noqa: E402
from feed_sync.core.exceptions import StorageError  # noqa: E402
from feed_sync.core.storage import InMemoryDocumentStore  # noqa: E402

get_settings.cache_clear()

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "api_responses"

FIXED_NOW = datetime(2025, 3, 2, 12, 0, 0, tzinfo=timezone.utc)
"""Commit time used by the in-memory store's clock."""


def make_settings(**overrides: Any) -> Settings:
    """Return Settings built from explicit values only."""
    values: dict[str, Any] = {
        "fb_page_id": "page-1",
        "fb_access_token": "fb-token",
        "fb_verify_token": "verify-me",
        "youtube_api_key": "yt-key",
        "youtube_channel_id": "UCchannel",
        "feed_author_name": "Test Church",
        "media_rehost_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=lambda: FIXED_NOW)


class SettingsOutageStore(InMemoryDocumentStore):
    """In-memory store whose ``settings`` collection cannot be read."""

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        if collection == "settings":
            raise StorageError("db down")
        return await super().get(collection, key)


@pytest.fixture
def settings_outage_store() -> SettingsOutageStore:
    return SettingsOutageStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def load_fixture() -> Callable[[str, str], Any]:
    """Return a loader for ``tests/fixtures/api_responses/<source>/<name>``."""

    def _load(source: str, name: str) -> Any:
        return json.loads((FIXTURES_DIR / source / name).read_text(encoding="utf-8"))

    return _load


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def enqueued() -> list[str]:
    return []


@pytest.fixture
def app(store: InMemoryDocumentStore, settings: Settings, enqueued: list[str]):
    from feed_sync.api.dependencies import (  # noqa: PLC0415
        get_document_store,
        get_facebook_sync_trigger,
        get_rehoster,
    )
    from feed_sync.api.main import create_app  # noqa: PLC0415
    from feed_sync.core.media import PassthroughRehoster  # noqa: PLC0415

    application = create_app()
    application.dependency_overrides[get_document_store] = lambda: store
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_rehoster] = PassthroughRehoster
    application.dependency_overrides[get_facebook_sync_trigger] = lambda: (
        lambda: enqueued.append("facebook")
    )
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
