"""Canonical feed post record.

A :class:`Post` is the unit written to the ``posts`` collection by both
pollers.  Documents are stored with camelCase field names (``mediaUrl``,
``isLive`` ...) because the feed front-end reads them directly; the Python
side uses snake_case attributes and converts at the storage boundary via
:meth:`Post.to_document` / :meth:`Post.from_document`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

FACEBOOK_PREFIX: str = "fb_"
YOUTUBE_PREFIX: str = "yt_"
SOURCE_PREFIXES: tuple[str, ...] = (FACEBOOK_PREFIX, YOUTUBE_PREFIX)
"""Key prefixes owned by the sync engine.  Posts under any other key belong
to other ingestion paths and are never written by the pollers."""


class PostType(str, Enum):
    """Tagged variant describing what a post renders as.

    Attributes:
        FACEBOOK: Text and/or image post from the Facebook Page feed.
        VIDEO: Non-YouTube video found in a Facebook attachment, or a
            Facebook broadcast that has ended.
        YOUTUBE: A YouTube video, either native (``yt_*``) or a Facebook post
            that links one (``fb_*`` with ``youtube_video_id`` set).
        FACEBOOK_LIVE: A Facebook broadcast that is live right now.
    """

    FACEBOOK = "facebook"
    VIDEO = "video"
    YOUTUBE = "youtube"
    FACEBOOK_LIVE = "facebook_live"


class Author(BaseModel):
    """Fixed-shape author block (single-tenant placeholder)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    avatar_url: Optional[str] = None


class Post(BaseModel):
    """A single entry of the unified content feed.

    Attributes:
        id: Deterministic key, ``"fb_" + source id`` or ``"yt_" + video id``.
        type: Rendering variant, see :class:`PostType`.
        content: Display text.
        media_url: Primary playable / viewable URL.
        images: Ordered re-hosted gallery images.
        thumbnail_url: Preview image for video posts.
        external_url: Link back to the post on its platform.
        source_id: Native identifier on the source platform.
        youtube_video_id: Reverse-lookup key set on Facebook posts that embed
            a YouTube video; used to retract them once the native record lands.
        timestamp: Epoch milliseconds; the only ordering key of the feed.
        pinned: Whether the post sticks to the top of the feed.
        is_live: Whether the post is a broadcast that is live right now.
        author: Author block.
        updated_at: Write time assigned by the store (observability only).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(exclude=True)
    type: PostType
    content: str = ""
    media_url: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    thumbnail_url: Optional[str] = None
    external_url: Optional[str] = None
    source_id: str
    youtube_video_id: Optional[str] = None
    timestamp: int
    pinned: bool = False
    is_live: bool = False
    author: Author
    updated_at: Optional[datetime] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _pin_live_posts(self) -> Post:
        if self.is_live and not self.pinned:
            self.pinned = True
        return self

    def to_document(self) -> dict[str, Any]:
        """Serialise the fields that were explicitly set into a camelCase document.

        Only explicitly-set fields are emitted so that a merge-upsert leaves
        fields owned by another writer (for example ``isLive`` on a feed post
        that the live reconciler manages) untouched.
        """
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")

    @classmethod
    def from_document(cls, key: str, data: dict[str, Any]) -> Post:
        """Rebuild a post from a stored document and its key."""
        return cls.model_validate({**data, "id": key})
