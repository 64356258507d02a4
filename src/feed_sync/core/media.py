"""Media rehosting: copy remote images into durable object storage.

Platform CDN links (``scontent.xx.fbcdn.net``, ``i.ytimg.com`` ...) expire or
change, so the pollers hand every image and thumbnail URL to a
:class:`Rehoster` which returns a durable public URL.

Rehosting is best-effort.  A failed download or upload yields
``RehostResult(url=<original>, ok=False)``: the post keeps the original
remote URL and the run carries on.

Object names are ``<folder>/<sha256(source url)>[.ext]``, so rehosting the
same source URL twice writes the same object and returns the same public URL.
"""

from __future__ import annotations

import asyncio
import hashlib
import io
import logging
import posixpath
import urllib.parse
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from feed_sync.config.settings import Settings

logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT: float = 20.0
"""Seconds allowed for downloading one remote image."""

_MAX_IMAGE_BYTES: int = 15 * 1024 * 1024
"""Images larger than this are not rehosted."""

_KNOWN_EXTENSIONS: frozenset[str] = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})


@dataclass(frozen=True)
class RehostResult:
    """Outcome of one rehost attempt.

    Attributes:
        url: Durable URL on success, the original URL otherwise.
        ok: ``True`` when the media now lives in our storage.
    """

    url: str
    ok: bool


class Rehoster(Protocol):
    """Capability ``rehost(url, folder) -> (url, ok)``."""

    async def rehost(self, url: str, folder: str) -> RehostResult: ...


class PassthroughRehoster:
    """Rehoster used when rehosting is disabled: returns every URL unchanged."""

    async def rehost(self, url: str, folder: str) -> RehostResult:
        return RehostResult(url=url, ok=False)


def object_name_for(url: str, folder: str) -> str:
    """Return the deterministic object name for *url* under *folder*."""
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
    extension = posixpath.splitext(urllib.parse.urlsplit(url).path)[1].lower()
    if extension not in _KNOWN_EXTENSIONS:
        extension = ""
    return f"{folder.strip('/')}/{digest}{extension}"


class MinioRehoster:
    """Downloads media with httpx and stores it in a MinIO bucket.

    The MinIO SDK is synchronous; uploads run in a worker thread via
    :func:`asyncio.to_thread`.

    Args:
        minio_client: A configured ``minio.Minio`` client.
        bucket: Target bucket.
        public_base_url: Base URL under which the bucket is publicly served,
            without the bucket segment.
        http_client: Optional shared :class:`httpx.AsyncClient`.
    """

    def __init__(
        self,
        minio_client: Any,
        bucket: str,
        public_base_url: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._minio = minio_client
        self._bucket = bucket
        self._public_base = public_base_url.rstrip("/")
        self._http_client = http_client
        self._bucket_checked = False

    def public_url(self, object_name: str) -> str:
        return f"{self._public_base}/{self._bucket}/{object_name}"

    async def rehost(self, url: str, folder: str) -> RehostResult:
        if url.startswith(self._public_base):
            return RehostResult(url=url, ok=True)

        object_name = object_name_for(url, folder)
        try:
            body, content_type = await self._download(url)
            await asyncio.to_thread(self._upload, object_name, body, content_type)
        except Exception as exc:  # noqa: BLE001
            logger.warning("media: rehost of %s failed, keeping original URL: %s", url, exc)
            return RehostResult(url=url, ok=False)

        logger.debug("media: rehosted %s as %s", url, object_name)
        return RehostResult(url=self.public_url(object_name), ok=True)

    async def _download(self, url: str) -> tuple[bytes, str]:
        if self._http_client is not None:
            response = await self._http_client.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT) as client:
                response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
        body = response.content
        if len(body) > _MAX_IMAGE_BYTES:
            raise ValueError(f"image is {len(body)} bytes, limit is {_MAX_IMAGE_BYTES}")
        content_type = response.headers.get("content-type", "application/octet-stream")
        return body, content_type.split(";")[0].strip()

    def _upload(self, object_name: str, body: bytes, content_type: str) -> None:
        if not self._bucket_checked:
            if not self._minio.bucket_exists(self._bucket):
                self._minio.make_bucket(self._bucket)
            self._bucket_checked = True
        self._minio.put_object(
            self._bucket,
            object_name,
            io.BytesIO(body),
            length=len(body),
            content_type=content_type,
        )


def build_rehoster(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Rehoster:
    """Return the rehoster selected by configuration.

    ``media_rehost_enabled=False`` yields a :class:`PassthroughRehoster`.
    """
    if not settings.media_rehost_enabled:
        return PassthroughRehoster()

    from minio import Minio  # type: ignore[import-untyped]

    client = Minio(
        settings.minio_endpoint,
        access_key=settings.minio_root_user,
        secret_key=settings.minio_root_password,
        secure=settings.minio_secure,
    )
    scheme = "https" if settings.minio_secure else "http"
    public_base = settings.media_public_base_url or f"{scheme}://{settings.minio_endpoint}"
    return MinioRehoster(client, settings.minio_bucket, public_base, http_client=http_client)
