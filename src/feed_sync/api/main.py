"""FastAPI application factory and entry point.

Creates the application instance, registers the request-logging middleware
and mounts the source and health routers.

Usage::

    # Development server (from project root)
    uvicorn feed_sync.api.main:app --reload

    # Production
    gunicorn feed_sync.api.main:app -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response

from feed_sync import __version__
from feed_sync.config.settings import get_settings
from feed_sync.core.logging_config import configure_logging, request_id_var

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Create the document table on startup and dispose the engine on shutdown."""
    from feed_sync.api.dependencies import get_document_store  # noqa: PLC0415

    settings = get_settings()
    store = get_document_store()
    create_schema = getattr(store, "create_schema", None)
    if create_schema is not None:
        await create_schema()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        log_level=settings.log_level,
    )
    yield
    await store.close()
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description="Facebook Page and YouTube channel content synchronised into one feed.",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
        """Log every request with its status and duration under one ``request_id``."""
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn("request_complete", status_code=status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -------------------------------------------------------------

    from feed_sync.api.routes import health as health_routes  # noqa: PLC0415
    from feed_sync.sources.facebook.router import router as facebook_router  # noqa: PLC0415
    from feed_sync.sources.youtube.router import router as youtube_router  # noqa: PLC0415

    application.include_router(health_routes.router)
    application.include_router(facebook_router)
    application.include_router(youtube_router)

    @application.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        """Process liveness without any I/O.  Deep checks are at ``/api/health``."""
        return {"status": "ok"}

    return application


app = create_app()
"""The FastAPI application instance passed to Uvicorn / Gunicorn."""
