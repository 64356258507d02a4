"""Typed YouTube Data API response structures.

Only the fields the poller reads are declared; everything else is ignored.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Thumbnail(_ApiModel):
    url: Optional[str] = None


class Thumbnails(_ApiModel):
    default: Optional[Thumbnail] = None
    medium: Optional[Thumbnail] = None
    high: Optional[Thumbnail] = None

    @property
    def best_url(self) -> Optional[str]:
        """``high`` when present, else ``default``."""
        for thumb in (self.high, self.default):
            if thumb is not None and thumb.url:
                return thumb.url
        return None


class Snippet(_ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    thumbnails: Thumbnails = Field(default_factory=Thumbnails)
    live_broadcast_content: Optional[str] = Field(default=None, alias="liveBroadcastContent")


class SearchResultId(_ApiModel):
    kind: Optional[str] = None
    video_id: Optional[str] = Field(default=None, alias="videoId")
    channel_id: Optional[str] = Field(default=None, alias="channelId")


class SearchResult(_ApiModel):
    id: SearchResultId = Field(default_factory=SearchResultId)
    snippet: Optional[Snippet] = None


class SearchListResponse(_ApiModel):
    items: list[SearchResult] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")


class LiveStreamingDetails(_ApiModel):
    actual_start_time: Optional[str] = Field(default=None, alias="actualStartTime")
    actual_end_time: Optional[str] = Field(default=None, alias="actualEndTime")
    scheduled_start_time: Optional[str] = Field(default=None, alias="scheduledStartTime")


class Video(_ApiModel):
    """One ``videos.list`` item."""

    id: str
    snippet: Optional[Snippet] = None
    live_streaming_details: Optional[LiveStreamingDetails] = Field(
        default=None, alias="liveStreamingDetails"
    )


class VideoListResponse(_ApiModel):
    items: list[dict] = Field(default_factory=list)  # type: ignore[type-arg]
    """Raw items, decoded one by one so a malformed video is skipped alone."""
