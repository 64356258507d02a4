"""Health check route handlers.

``GET /api/health``
    Verifies the process can read the document store and reach Redis
    (``PING``).  Always returns HTTP 200; the ``status`` field
    distinguishes ``"ok"`` from ``"degraded"``.  The last sync outcome of
    each source is read from its debug record.

This endpoint is diagnostic and must never raise HTTP 5xx errors.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from feed_sync import __version__
from feed_sync.api.dependencies import get_document_store
from feed_sync.config.settings import Settings, get_settings
from feed_sync.core.storage import (
    FACEBOOK_DEBUG_KEY,
    SYSTEM_COLLECTION,
    YOUTUBE_DEBUG_KEY,
    DocumentStore,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])

_DEBUG_KEYS: dict[str, str] = {
    "facebook": FACEBOOK_DEBUG_KEY,
    "youtube": YOUTUBE_DEBUG_KEY,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _check_store(store: DocumentStore) -> tuple[str, dict[str, Optional[str]]]:
    """Read each source's debug record.

    Returns:
        ``("ok", {source: last_error_or_None})`` if the reads succeed,
        ``("error", {})`` otherwise.
    """
    last_errors: dict[str, Optional[str]] = {}
    try:
        for source, key in _DEBUG_KEYS.items():
            record = await store.get(SYSTEM_COLLECTION, key)
            error = (record or {}).get("error")
            last_errors[source] = error.get("message") if isinstance(error, dict) else None
    except Exception:
        logger.exception("Health check: document store unreachable")
        return "error", {}
    return "ok", last_errors


async def _check_redis(settings: Settings) -> str:
    """Send ``PING`` to the configured Redis instance.

    Returns:
        ``"ok"`` if Redis responds, ``"error"`` otherwise.
    """
    try:
        client: aioredis.Redis = aioredis.from_url(
            settings.redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        await client.ping()
        await client.aclose()
        return "ok"
    except Exception:
        logger.exception("Health check: Redis unreachable")
        return "error"


# ---------------------------------------------------------------------------
# GET /api/health
# ---------------------------------------------------------------------------


@router.get("/api/health", include_in_schema=True)
async def system_health(
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Return process-level health including store and Redis connectivity.

    Returns:
        JSON with keys: ``status``, ``version``, ``store``, ``redis``,
        ``last_errors``, ``timestamp``.
    """
    (store_status, last_errors), redis_status = await asyncio.gather(
        _check_store(store),
        _check_redis(settings),
    )
    overall = "ok" if store_status == "ok" and redis_status == "ok" else "degraded"

    payload: dict[str, Any] = {
        "status": overall,
        "version": __version__,
        "store": store_status,
        "redis": redis_status,
        "last_errors": last_errors,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("system_health_check", extra={"health": payload})
    return JSONResponse(payload)
