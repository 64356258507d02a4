"""FastAPI router for the Facebook source.

Endpoints:

``GET /webhooks/facebook``
    Subscription handshake.  Echoes ``hub.challenge`` when ``hub.mode`` is
    ``subscribe`` and ``hub.verify_token`` matches ``FB_VERIFY_TOKEN``
    (200), otherwise 403; 400 when mode or token is absent.

``POST /webhooks/facebook``
    Page event delivery.  When ``FB_APP_SECRET`` is set the body must carry
    a valid ``X-Hub-Signature-256`` (403 otherwise).  Non-page objects get
    404.  A delivery announcing one or more new feed posts schedules one
    incremental sync; the delivery's own payload is not ingested.

``POST /sync/facebook?backfill=<bool>``, ``POST /sync/facebook/live``
    Run a feed sync or live reconciliation inline and return its result
    (429 with ``Retry-After`` when throttled, 502 on any other failure).

``GET /sync/facebook/debug``
    The diagnostics record of the most recent feed sync.

Mount this router in the main FastAPI application::

    from feed_sync.sources.facebook.router import router as facebook_router
    app.include_router(facebook_router)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse, Response
from pydantic import ValidationError

from feed_sync.api.dependencies import (
    FacebookSyncTrigger,
    get_document_store,
    get_facebook_sync_trigger,
    get_rehoster,
)
from feed_sync.config.settings import Settings, get_settings
from feed_sync.core.logging_config import sync_run_context
from feed_sync.core.media import Rehoster
from feed_sync.core.storage import FACEBOOK_DEBUG_KEY, SYSTEM_COLLECTION, DocumentStore
from feed_sync.sources.base import SyncResult, SyncStatus
from feed_sync.sources.facebook._schemas import WebhookEnvelope
from feed_sync.sources.facebook.collector import FacebookPoller
from feed_sync.sources.facebook.config import (
    SIGNATURE_HEADER,
    WEBHOOK_EVENT_RECEIVED,
    WEBHOOK_OBJECT_PAGE,
)
from feed_sync.sources.facebook.live import LiveStatusReconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["facebook"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def verify_signature(body: bytes, header: Optional[str], app_secret: str) -> bool:
    """Return ``True`` if *header* is the ``sha256=`` HMAC of *body* under *app_secret*."""
    if not header or not header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode(), header.removeprefix("sha256=").encode())


def _sync_response(result: SyncResult) -> dict[str, Any]:
    if result.status is not SyncStatus.FAILED:
        return result.as_dict()
    if result.retry_after is not None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=result.as_dict(),
            headers={"Retry-After": str(int(result.retry_after))},
        )
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.as_dict())


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


@router.get("/webhooks/facebook", summary="Facebook webhook subscription handshake")
async def verify_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
) -> Response:
    if not hub_mode or not hub_verify_token:
        return Response(status_code=status.HTTP_400_BAD_REQUEST)
    if (
        hub_mode == "subscribe"
        and settings.fb_verify_token
        and hmac.compare_digest(hub_verify_token.encode(), settings.fb_verify_token.encode())
    ):
        logger.info("facebook: webhook verified")
        return PlainTextResponse(hub_challenge or "", status_code=status.HTTP_200_OK)
    logger.warning("facebook: webhook verification rejected (mode=%s)", hub_mode)
    return Response(status_code=status.HTTP_403_FORBIDDEN)


@router.post("/webhooks/facebook", summary="Facebook webhook event delivery")
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    trigger: FacebookSyncTrigger = Depends(get_facebook_sync_trigger),
) -> Response:
    body = await request.body()
    if settings.fb_app_secret and not verify_signature(
        body, request.headers.get(SIGNATURE_HEADER), settings.fb_app_secret
    ):
        logger.warning("facebook: webhook delivery with invalid signature")
        return Response(status_code=status.HTTP_403_FORBIDDEN)

    try:
        envelope = WebhookEnvelope.model_validate_json(body)
    except ValidationError:
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    if envelope.object != WEBHOOK_OBJECT_PAGE:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    new_posts = envelope.new_post_ids()
    if new_posts:
        logger.info("facebook: webhook announced new posts %s, scheduling sync", new_posts)
        trigger()
    return PlainTextResponse(WEBHOOK_EVENT_RECEIVED)


# ---------------------------------------------------------------------------
# Manual triggers and diagnostics
# ---------------------------------------------------------------------------


@router.post("/sync/facebook", summary="Run a Facebook feed sync now")
async def sync_facebook(
    backfill: bool = Query(default=False, description="Follow cursors back to the lower bound."),
    store: DocumentStore = Depends(get_document_store),
    rehoster: Rehoster = Depends(get_rehoster),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    poller = FacebookPoller(store, settings=settings, rehoster=rehoster)
    with sync_run_context("facebook", trigger="manual"):
        result = await poller.sync_posts(backfill=backfill)
    return _sync_response(result)


@router.post("/sync/facebook/live", summary="Reconcile Facebook live status now")
async def sync_facebook_live(
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    reconciler = LiveStatusReconciler(store, settings=settings)
    with sync_run_context("facebook", trigger="manual"):
        result = await reconciler.reconcile()
    return _sync_response(result)


@router.get("/sync/facebook/debug", summary="Diagnostics of the last Facebook feed sync")
async def facebook_debug(
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    record = await store.get(SYSTEM_COLLECTION, FACEBOOK_DEBUG_KEY)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No sync has run yet.")
    return record
