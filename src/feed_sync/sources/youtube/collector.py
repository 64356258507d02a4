"""YouTube channel poller.

One run issues three channel-scoped ``search.list`` queries (latest by
date, currently live, recently completed broadcasts), merges their video
IDs in first-seen order, fetches ``snippet`` and ``liveStreamingDetails``
for the merged set, and writes one ``yt_<videoId>`` post per video.  Every
written video retracts the Facebook posts that linked it.  All writes of a
run share one atomic batch.

Per-query telemetry and any terminal error go to
``system/youtube_sync_debug``.

Timestamp precedence, highest first: ``actualStartTime`` (a stream that has
started), ``scheduledStartTime`` (announced but not started), ``publishedAt``,
then the time of the run.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from feed_sync.config.settings import Settings
from feed_sync.core.credentials import YouTubeCredentials
from feed_sync.core.deduplication import CrossSourceDeduplicator
from feed_sync.core.diagnostics import DiagnosticsRecorder
from feed_sync.core.exceptions import (
    MissingCredentialsError,
    NormalizationError,
    SourceFetchError,
    SourceRateLimitError,
    StorageError,
)
from feed_sync.core.media import Rehoster
from feed_sync.core.normalizer import default_author, parse_timestamp_ms, youtube_watch_url
from feed_sync.core.pagination import FetchedPage
from feed_sync.core.schemas.post import YOUTUBE_PREFIX, Post, PostType
from feed_sync.core.storage import YOUTUBE_DEBUG_KEY, DocumentStore, utcnow
from feed_sync.core.upsert import UpsertWriter
from feed_sync.sources.base import SourcePoller, SyncResult, SyncStatus
from feed_sync.sources.youtube._client import (
    fetch_video_details,
    resolve_channel_id,
    search_channel_videos,
    search_params,
)
from feed_sync.sources.youtube._schemas import Video
from feed_sync.sources.youtube.config import (
    LIVE_BROADCAST_CONTENT_LIVE,
    MEDIA_FOLDER,
    QUERY_COMPLETED,
    QUERY_LATEST,
    QUERY_LIVE,
    UNTITLED_VIDEO,
    YOUTUBE_API_BASE_URL,
)

logger = logging.getLogger(__name__)


class YouTubePoller(SourcePoller):
    """Synchronises a YouTube channel's recent and live videos.

    Args:
        store: Document store.
        settings: Static configuration.
        rehoster: Media rehoster for thumbnails.
        http_client: Optional injected HTTP client (tests).
        deduplicator: Optional injected cross-source resolver.
    """

    source_name = "youtube"

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

    def build_queries(self, credentials: YouTubeCredentials) -> list[tuple[str, dict[str, Any]]]:
        """Return the labelled ``search.list`` queries of one run."""
        api_key, channel_id = credentials.api_key or "", credentials.channel_id or ""
        return [
            (
                QUERY_LATEST,
                search_params(api_key, channel_id, self.settings.youtube_latest_results, order="date"),
            ),
            (
                QUERY_LIVE,
                search_params(
                    api_key, channel_id, self.settings.youtube_live_results, event_type="live"
                ),
            ),
            (
                QUERY_COMPLETED,
                search_params(
                    api_key,
                    channel_id,
                    self.settings.youtube_completed_results,
                    event_type="completed",
                    order="date",
                ),
            ),
        ]

    async def sync(self) -> SyncResult:
        """Run one channel sync.

        Returns:
            The run's :class:`~feed_sync.sources.base.SyncResult`.  Missing
            credentials, upstream and storage failures are reported through
            it, never raised.
        """
        logger.info("youtube: starting sync")
        recorder = DiagnosticsRecorder(self.store, YOUTUBE_DEBUG_KEY, mode=QUERY_LATEST)
        writer = UpsertWriter(self.store)
        result = self._result()

        try:
            credentials = (await self.load_credentials()).youtube
            async with self._build_http_client() as client:
                credentials = await self._with_channel(client, credentials)
                credentials.require()
                video_ids = await self._search(client, credentials, recorder)
                raw_videos = (
                    await fetch_video_details(client, credentials.api_key or "", video_ids)
                    if video_ids
                    else []
                )
            for raw in raw_videos:
                await self._stage_video(raw, writer, result)
            recorder.set_total(result.written)
            await writer.commit()
        except MissingCredentialsError as exc:
            logger.warning("youtube: %s; skipping run", exc)
            return self._result(status=SyncStatus.SKIPPED, error=str(exc))
        except (SourceFetchError, StorageError) as exc:
            logger.error("youtube: sync failed, nothing committed: %s", exc)
            recorder.record_error(exc)
            result.status = SyncStatus.FAILED
            result.error = str(exc)
            result.written = 0
            result.retracted = 0
            if isinstance(exc, SourceRateLimitError):
                result.retry_after = exc.retry_after

        result.pages = len(recorder.record.pages)
        await recorder.flush()
        if result.ok:
            logger.info(
                "youtube: synced %d videos, retracted %d Facebook duplicates",
                result.written,
                result.retracted,
            )
        return result

    async def _with_channel(
        self,
        client: httpx.AsyncClient,
        credentials: YouTubeCredentials,
    ) -> YouTubeCredentials:
        handle = self.settings.youtube_channel_handle
        if credentials.channel_id or not credentials.api_key or not handle:
            return credentials
        logger.info("youtube: resolving channel ID for %s", handle)
        channel_id = await resolve_channel_id(client, credentials.api_key, handle)
        if channel_id is None:
            logger.error("youtube: could not resolve channel ID for %s", handle)
            return credentials
        logger.info("youtube: resolved %s to %s", handle, channel_id)
        return dataclasses.replace(credentials, channel_id=channel_id)

    async def _search(
        self,
        client: httpx.AsyncClient,
        credentials: YouTubeCredentials,
        recorder: DiagnosticsRecorder,
    ) -> list[str]:
        """Run every search query and return the merged, de-duplicated video IDs."""
        seen: dict[str, None] = {}
        for label, params in self.build_queries(credentials):
            response = await search_channel_videos(client, params)
            recorder.record_page(
                FetchedPage(
                    url=str(httpx.URL(f"{YOUTUBE_API_BASE_URL}/search", params=params)),
                    items=list(response.items),
                    next_url=response.next_page_token,
                    has_paging=response.next_page_token is not None,
                )
            )
            for item in response.items:
                if item.id.video_id:
                    seen.setdefault(item.id.video_id, None)
            logger.debug("youtube: %s query returned %d items", label, len(response.items))
        return list(seen)

    async def _stage_video(
        self, raw: dict[str, Any], writer: UpsertWriter, result: SyncResult
    ) -> None:
        try:
            post = self.build_post(raw)
        except NormalizationError as exc:
            logger.warning("youtube: skipping video %s: %s", raw.get("id"), exc)
            return
        if post is None:
            return

        writer.upsert(await self.rehost_media(post))
        result.written += 1
        retracted = await self.deduplicator.retract_facebook_twins(post.source_id, writer)
        result.retracted += len(retracted)

    def build_post(self, raw: dict[str, Any]) -> Post | None:
        """Map one ``videos.list`` item to a post.

        Returns:
            The post, or ``None`` for items without a snippet.

        Raises:
            NormalizationError: If the item cannot be decoded or carries an
                unparseable timestamp.  A video with no timestamp at all is
                stamped with the current time.
        """
        try:
            video = Video.model_validate(raw)
        except ValidationError as exc:
            raise NormalizationError(
                f"undecodable video: {exc}", source=self.source_name, raw_item=raw
            ) from exc
        snippet = video.snippet
        if snippet is None:
            return None

        timestamp_text = self.select_timestamp(video)
        if not timestamp_text:
            logger.warning("youtube: video %s has no timestamp, using the current time", video.id)
            timestamp = int(utcnow().timestamp() * 1000)
        else:
            try:
                timestamp = parse_timestamp_ms(timestamp_text)
            except ValueError as exc:
                raise NormalizationError(
                    f"bad timestamp {timestamp_text!r}", source=self.source_name, raw_item=raw
                ) from exc

        is_live = snippet.live_broadcast_content == LIVE_BROADCAST_CONTENT_LIVE
        title = snippet.title or UNTITLED_VIDEO
        watch_url = youtube_watch_url(video.id)
        return Post(
            id=f"{YOUTUBE_PREFIX}{video.id}",
            type=PostType.YOUTUBE,
            content=f"{title}\n\n{snippet.description or ''}",
            media_url=watch_url,
            thumbnail_url=snippet.thumbnails.best_url,
            external_url=watch_url,
            source_id=video.id,
            timestamp=timestamp,
            pinned=is_live,
            is_live=is_live,
            author=default_author(self.settings),
        )

    @staticmethod
    def select_timestamp(video: Video) -> Optional[str]:
        """Return the most specific start time the video carries."""
        details = video.live_streaming_details
        if details is not None:
            if details.actual_start_time:
                return details.actual_start_time
            if details.scheduled_start_time:
                return details.scheduled_start_time
        return video.snippet.published_at if video.snippet else None

    async def rehost_media(self, post: Post) -> Post:
        """Return *post* with its thumbnail rehosted (original kept on failure)."""
        if not post.thumbnail_url:
            return post
        outcome = await self.rehoster.rehost(post.thumbnail_url, f"{MEDIA_FOLDER}/{post.id}")
        return post.model_copy(update={"thumbnail_url": outcome.url})
