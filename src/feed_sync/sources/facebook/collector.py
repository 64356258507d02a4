"""Facebook Page feed poller.

Walks ``/{page-id}/feed`` (one page for an incremental run, cursor-following
for a backfill), maps every feed item to a :class:`~feed_sync.core.schemas.post.Post`,
rehosts its images, drops items that duplicate a native YouTube record, and
commits the run's posts in one batch.  Pagination telemetry and any
terminal error are written to ``system/facebook_sync_debug``.

Item mapping:

- Items with neither ``message`` nor ``full_picture`` are dropped.
- A first attachment with ``subattachments`` is a gallery; otherwise a
  single attachment image becomes the only gallery entry.
- An attachment ``media.source`` is a video.  YouTube links produce a
  ``youtube`` post carrying ``youtubeVideoId``; anything else produces a
  ``video`` post.  ``full_picture`` becomes the thumbnail of either.
- Plain picture posts fall back to ``full_picture`` as their only image.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from feed_sync.config.settings import Settings
from feed_sync.core.deduplication import CrossSourceDeduplicator
from feed_sync.core.diagnostics import DiagnosticsRecorder
from feed_sync.core.exceptions import (
    MissingCredentialsError,
    NormalizationError,
    SourceFetchError,
    SourceRateLimitError,
    StorageError,
)
from feed_sync.core.normalizer import (
    default_author,
    extract_youtube_video_id,
    is_youtube_url,
    parse_timestamp_ms,
)
from feed_sync.core.pagination import CursorWalker, FetchedPage, WalkPlan
from feed_sync.core.schemas.post import FACEBOOK_PREFIX, Post, PostType
from feed_sync.core.media import Rehoster
from feed_sync.core.storage import FACEBOOK_DEBUG_KEY, DocumentStore
from feed_sync.core.upsert import UpsertWriter
from feed_sync.sources.base import SourcePoller, SyncResult, SyncStatus
from feed_sync.sources.facebook._client import feed_params, fetch_feed_page
from feed_sync.sources.facebook._schemas import FeedPost
from feed_sync.sources.facebook.config import MEDIA_FOLDER, feed_url

logger = logging.getLogger(__name__)


def _item_time_ms(raw: Any) -> Optional[int]:
    created = raw.get("created_time") if isinstance(raw, dict) else None
    if not created:
        return None
    try:
        return parse_timestamp_ms(created)
    except ValueError:
        return None


class FacebookPoller(SourcePoller):
    """Synchronises a Facebook Page feed into the ``posts`` collection.

    Args:
        store: Document store.
        settings: Static configuration.
        rehoster: Media rehoster for images and thumbnails.
        http_client: Optional injected HTTP client (tests).
        deduplicator: Optional injected cross-source resolver.
    """

    source_name = "facebook"

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        rehoster: Rehoster | None = None,
        http_client: httpx.AsyncClient | None = None,
        deduplicator: CrossSourceDeduplicator | None = None,
    ) -> None:
        super().__init__(store, settings=settings, rehoster=rehoster, http_client=http_client)
        self.deduplicator = deduplicator or CrossSourceDeduplicator(store)

    # ------------------------------------------------------------------
    # Run entry points
    # ------------------------------------------------------------------

    async def sync(self) -> SyncResult:
        """Scheduled / webhook run: one incremental page."""
        return await self.sync_posts(backfill=False)

    def build_plan(self, backfill: bool) -> WalkPlan:
        if not backfill:
            return WalkPlan.incremental(self.settings.facebook_incremental_limit)
        return WalkPlan.backfill(
            page_size=self.settings.facebook_backfill_limit,
            since_ms=parse_timestamp_ms(self.settings.facebook_backfill_since),
            max_pages=self.settings.facebook_backfill_max_pages,
        )

    async def sync_posts(self, backfill: bool = False) -> SyncResult:
        """Walk the page feed and commit every new or changed post.

        Args:
            backfill: Follow cursors back to the configured lower bound
                instead of reading one incremental page.

        Returns:
            The run's :class:`~feed_sync.sources.base.SyncResult`.  Upstream
            and storage failures are reported through it (and through the
            debug record), never raised.
        """
        plan = self.build_plan(backfill)
        logger.info("facebook: starting %s sync", plan.mode.value)

        recorder = DiagnosticsRecorder(self.store, FACEBOOK_DEBUG_KEY, mode=plan.mode.value)
        try:
            credentials = (await self.load_credentials()).facebook
            credentials.require()
        except MissingCredentialsError as exc:
            logger.warning("facebook: %s; skipping run", exc)
            return self._result(status=SyncStatus.SKIPPED, error=str(exc))
        except StorageError as exc:
            logger.error("facebook: could not read integration settings: %s", exc)
            recorder.record_error(exc)
            await recorder.flush()
            return self._failed(exc)

        writer = UpsertWriter(self.store)
        result = self._result()
        since = plan.since_ms // 1000 if plan.since_ms is not None else None

        try:
            async with self._build_http_client() as client:
                walker = CursorWalker(
                    partial(self._fetch_page, client),
                    plan,
                    on_page=recorder.record_page,
                    item_time_ms=_item_time_ms,
                )
                first_url = feed_url(self.settings.facebook_graph_version, credentials.page_id)
                first_params = feed_params(credentials.access_token, plan.page_size, since)
                async for page in walker.walk(first_url, first_params):
                    for raw in page.items:
                        await self._stage_item(raw, writer, result)
            recorder.set_total(result.written)
            await writer.commit()
        except (SourceFetchError, StorageError) as exc:
            logger.error("facebook: sync failed, nothing committed: %s", exc)
            if isinstance(exc, SourceFetchError) and exc.response_body is not None:
                logger.error("facebook: Graph API error body: %s", exc.response_body)
            recorder.record_error(exc)
            result.status = SyncStatus.FAILED
            result.error = str(exc)
            result.written = 0
            if isinstance(exc, SourceRateLimitError):
                result.retry_after = exc.retry_after
        finally:
            result.pages = len(recorder.record.pages)
            await recorder.flush()

        if result.ok:
            logger.info(
                "facebook: synced %d posts over %d pages (%d skipped as YouTube duplicates)",
                result.written,
                result.pages,
                result.skipped_duplicates,
            )
        return result

    # ------------------------------------------------------------------
    # Per-page / per-item steps
    # ------------------------------------------------------------------

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[dict[str, Any]],
    ) -> FetchedPage:
        page = await fetch_feed_page(client, url, params)
        requested = str(httpx.URL(url, params=params)) if params else url
        return FetchedPage(
            url=requested,
            items=list(page.data),
            next_url=page.paging.next if page.paging else None,
            has_paging=page.paging is not None,
        )

    async def _stage_item(self, raw: dict[str, Any], writer: UpsertWriter, result: SyncResult) -> None:
        try:
            post = self.build_post(raw)
        except NormalizationError as exc:
            logger.warning("facebook: skipping item %s: %s", raw.get("id"), exc)
            return
        if post is None:
            return

        if post.youtube_video_id and await self.deduplicator.youtube_twin_exists(
            post.youtube_video_id
        ):
            logger.info(
                "facebook: skipping post %s, duplicates YouTube video %s",
                post.source_id,
                post.youtube_video_id,
            )
            result.skipped_duplicates += 1
            return

        writer.upsert(await self.rehost_media(post))
        result.written += 1

    def build_post(self, raw: dict[str, Any]) -> Post | None:
        """Map one raw feed item to a post.

        Returns:
            The post, or ``None`` for items carrying neither text nor a picture.

        Raises:
            NormalizationError: If the item cannot be decoded or its
                ``created_time`` cannot be parsed.
        """
        try:
            item = FeedPost.model_validate(raw)
        except ValidationError as exc:
            raise NormalizationError(
                f"undecodable feed item: {exc}", source=self.source_name, raw_item=raw
            ) from exc

        if not item.message and not item.full_picture:
            return None

        post_type = PostType.FACEBOOK
        media_url = item.full_picture
        thumbnail_url: Optional[str] = None
        youtube_video_id: Optional[str] = None
        images: list[str] = []

        attachment = item.first_attachment
        if attachment is not None:
            images = attachment.gallery_images
            if not images and attachment.image_src:
                images = [attachment.image_src]
            video_source = attachment.video_source
            if video_source:
                media_url = video_source
                if is_youtube_url(video_source):
                    post_type = PostType.YOUTUBE
                    youtube_video_id = extract_youtube_video_id(video_source)
                else:
                    post_type = PostType.VIDEO
                thumbnail_url = item.full_picture

        if not images and item.full_picture and post_type is PostType.FACEBOOK:
            images = [item.full_picture]

        try:
            timestamp = parse_timestamp_ms(item.created_time)
        except ValueError as exc:
            raise NormalizationError(
                f"bad created_time {item.created_time!r}", source=self.source_name, raw_item=raw
            ) from exc

        return Post(
            id=f"{FACEBOOK_PREFIX}{item.id}",
            type=post_type,
            content=item.message or "",
            media_url=media_url,
            images=images,
            thumbnail_url=thumbnail_url,
            external_url=item.permalink_url,
            source_id=item.id,
            youtube_video_id=youtube_video_id,
            timestamp=timestamp,
            pinned=False,
            author=default_author(self.settings),
        )

    async def rehost_media(self, post: Post) -> Post:
        """Return *post* with its images and thumbnail rehosted.

        ``mediaUrl`` is rehosted only for picture posts; video and YouTube
        posts keep their playable link.  Failed rehosts keep the original URL.
        """
        folder = f"{MEDIA_FOLDER}/{post.id}"
        rehosted: dict[str, str] = {}

        async def _rehost(url: str) -> str:
            if url not in rehosted:
                rehosted[url] = (await self.rehoster.rehost(url, folder)).url
            return rehosted[url]

        update: dict[str, Any] = {}
        if post.images:
            update["images"] = [await _rehost(url) for url in post.images]
        if post.thumbnail_url:
            update["thumbnail_url"] = await _rehost(post.thumbnail_url)
        if post.type is PostType.FACEBOOK and post.media_url:
            update["media_url"] = await _rehost(post.media_url)
        return post.model_copy(update=update) if update else post
