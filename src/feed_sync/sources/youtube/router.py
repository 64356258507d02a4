"""FastAPI router for the YouTube source.

Endpoints:

``POST /sync/youtube``
    Run a channel sync inline and return its result (429 with
    ``Retry-After`` when the quota is exhausted, 502 on any other failure).

``GET /sync/youtube/debug``
    The diagnostics record of the most recent channel sync.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from feed_sync.api.dependencies import get_document_store, get_rehoster
from feed_sync.config.settings import Settings, get_settings
from feed_sync.core.logging_config import sync_run_context
from feed_sync.core.media import Rehoster
from feed_sync.core.storage import SYSTEM_COLLECTION, YOUTUBE_DEBUG_KEY, DocumentStore
from feed_sync.sources.base import SyncStatus
from feed_sync.sources.youtube.collector import YouTubePoller

router = APIRouter(tags=["youtube"])


@router.post("/sync/youtube", summary="Run a YouTube channel sync now")
async def sync_youtube(
    store: DocumentStore = Depends(get_document_store),
    rehoster: Rehoster = Depends(get_rehoster),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with sync_run_context("youtube", trigger="manual"):
        result = await YouTubePoller(store, settings=settings, rehoster=rehoster).sync()
    if result.status is SyncStatus.FAILED and result.retry_after is not None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=result.as_dict(),
            headers={"Retry-After": str(int(result.retry_after))},
        )
    if result.status is SyncStatus.FAILED:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.as_dict())
    return result.as_dict()


@router.get("/sync/youtube/debug", summary="Diagnostics of the last YouTube sync")
async def youtube_debug(
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    record = await store.get(SYSTEM_COLLECTION, YOUTUBE_DEBUG_KEY)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No sync has run yet.")
    return record
