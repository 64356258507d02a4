"""Structured logging for Feed Sync, built on structlog.

``configure_logging()`` runs once per process: at API startup in
``api/main.py`` and when a Celery worker process boots in
``workers/celery_app.py``.  Stdlib ``logging.getLogger(__name__)`` records
and structlog loggers go through one processor chain and one renderer
(newline-delimited JSON, or coloured console output at ``DEBUG``).

Context merged into every record:

- ``request_id``: set per HTTP request by the middleware in ``api/main.py``.
- ``source``, ``trigger`` and ``run_id``: bound around one poller run by
  :func:`sync_run_context`, so every line a run emits (poller, HTTP client,
  store) can be grouped::

      with sync_run_context("facebook", trigger="task"):
          await poller.sync_posts()

Upstream credentials never reach the renderer.  The Graph API
``access_token``/``appsecret_proof`` and the YouTube ``key`` query
parameters are masked wherever a URL shows up in a message or traceback
(httpx error messages embed the full request URL), and fields naming a
configured secret are masked wholesale.
"""

from __future__ import annotations

import logging
import re
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Per-request ID propagated from the HTTP middleware to log processors."""

SECRET_QUERY_PARAMS: frozenset[str] = frozenset({"access_token", "appsecret_proof", "key"})
"""Query parameters that carry an upstream credential."""

_SECRET_FIELDS: frozenset[str] = frozenset({
    "access_token",
    "accessToken",
    "api_key",
    "apiKey",
    "fb_access_token",
    "fb_app_secret",
    "fb_verify_token",
    "youtube_api_key",
})
"""Settings and integrations-document field names whose values are secrets."""

_REDACTED = "[REDACTED]"

_SECRET_PARAM_RE = re.compile(
    r"([?&](?:%s)=)[^&#\s'\"]*" % "|".join(sorted(SECRET_QUERY_PARAMS))
)


def scrub_url_secrets(text: str) -> str:
    """Mask credential query parameters inside any URL contained in *text*."""
    return _SECRET_PARAM_RE.sub(lambda match: match.group(1) + _REDACTED, text)


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return scrub_url_secrets(value)
    if isinstance(value, dict):
        # Nested dicts are request params: the bare ``key`` parameter counts.
        return {
            name: _REDACTED
            if name in _SECRET_FIELDS or name in SECRET_QUERY_PARAMS
            else _scrub(item)
            for name, item in value.items()
        }
    return value


def _redact_credentials(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask secret fields and scrub credentials out of URLs in every value.

    A top-level ``key`` is left alone: it is how document keys are logged.
    """
    for name in list(event_dict):
        if name.startswith("_"):
            continue
        if name in _SECRET_FIELDS:
            event_dict[name] = _REDACTED
        else:
            event_dict[name] = _scrub(event_dict[name])
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


@contextmanager
def sync_run_context(source: str, trigger: str) -> Iterator[str]:
    """Bind ``source``, ``trigger`` and a fresh ``run_id`` for one sync run.

    Args:
        source: Source being synchronised (``"facebook"``, ``"youtube"``)
            or ``"dedup"`` for the maintenance sweep.
        trigger: What started the run: ``"task"`` (Celery, scheduled or
            webhook-enqueued) or ``"manual"`` (HTTP endpoint).

    Yields:
        The run ID bound to every record logged inside the block.
    """
    run_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(source=source, trigger=trigger, run_id=run_id):
        yield run_id


def configure_logging(log_level: str = "INFO") -> None:
    """Install the structlog processor chain on the root logger.

    Safe to call more than once; each call replaces the root handler and
    the structlog configuration.

    Args:
        log_level: Level name, case-insensitive.  ``DEBUG`` also switches to
            the console renderer and leaves the HTTP client loggers at
            ``DEBUG``.
    """
    level_name = log_level.upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    verbose = level_name == "DEBUG"

    # Redaction runs after format_exc_info so rendered tracebacks are scrubbed too.
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        _redact_credentials,
    ]

    renderer: Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if verbose
        else structlog.processors.JSONRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if not verbose:
        for name in ("httpx", "httpcore", "uvicorn.access"):
            logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
