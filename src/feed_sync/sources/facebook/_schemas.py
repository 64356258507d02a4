"""Typed Graph API response structures.

Responses are decoded into these models once, at the HTTP boundary, so the
poller works with declared required and optional fields instead of probing
nested dicts.  Unknown fields are ignored.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _GraphModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ImageSource(_GraphModel):
    src: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class AttachmentMedia(_GraphModel):
    image: Optional[ImageSource] = None
    source: Optional[str] = None
    """Playable video URL (Facebook-hosted or an external link such as YouTube)."""


class Subattachment(_GraphModel):
    media: Optional[AttachmentMedia] = None
    type: Optional[str] = None


class SubattachmentList(_GraphModel):
    data: list[Subattachment] = Field(default_factory=list)


class Attachment(_GraphModel):
    media: Optional[AttachmentMedia] = None
    subattachments: Optional[SubattachmentList] = None
    type: Optional[str] = None

    @property
    def gallery_images(self) -> list[str]:
        """Image URLs of a multi-image attachment, in order."""
        if self.subattachments is None:
            return []
        return [
            sub.media.image.src
            for sub in self.subattachments.data
            if sub.media and sub.media.image and sub.media.image.src
        ]

    @property
    def image_src(self) -> Optional[str]:
        if self.media and self.media.image:
            return self.media.image.src
        return None

    @property
    def video_source(self) -> Optional[str]:
        return self.media.source if self.media else None


class AttachmentList(_GraphModel):
    data: list[Attachment] = Field(default_factory=list)


class FeedPost(_GraphModel):
    """One item of ``/{page-id}/feed``."""

    id: str
    message: Optional[str] = None
    full_picture: Optional[str] = None
    created_time: str
    permalink_url: Optional[str] = None
    attachments: Optional[AttachmentList] = None

    @property
    def first_attachment(self) -> Optional[Attachment]:
        if self.attachments and self.attachments.data:
            return self.attachments.data[0]
        return None


class Paging(_GraphModel):
    next: Optional[str] = None
    previous: Optional[str] = None


class FeedPage(_GraphModel):
    """One page of ``/{page-id}/feed``.

    Items are kept as raw dicts so that one malformed item can be skipped
    without rejecting the whole page; they are decoded one by one into
    :class:`FeedPost`.
    """

    data: list[dict] = Field(default_factory=list)  # type: ignore[type-arg]
    paging: Optional[Paging] = None


class LiveVideo(_GraphModel):
    """One item of ``/{page-id}/live_videos``."""

    id: str
    description: Optional[str] = None
    title: Optional[str] = None
    embed_html: Optional[str] = None
    permalink_url: Optional[str] = None
    status: Optional[str] = None
    creation_time: Optional[str] = None


class LiveVideoList(_GraphModel):
    data: list[LiveVideo] = Field(default_factory=list)
    paging: Optional[Paging] = None


# ---------------------------------------------------------------------------
# Webhook deliveries
# ---------------------------------------------------------------------------


class WebhookChangeValue(_GraphModel):
    item: Optional[str] = None
    verb: Optional[str] = None
    post_id: Optional[str] = None


class WebhookChange(_GraphModel):
    field: Optional[str] = None
    value: WebhookChangeValue = Field(default_factory=WebhookChangeValue)

    @property
    def is_new_post(self) -> bool:
        return self.field == "feed" and self.value.item == "post" and self.value.verb == "add"


class WebhookEntry(_GraphModel):
    id: Optional[str] = None
    time: Optional[int] = None
    changes: list[WebhookChange] = Field(default_factory=list)


class WebhookEnvelope(_GraphModel):
    """Body of a Page webhook delivery.  Carries no post content we use."""

    object: Optional[str] = None
    entry: list[WebhookEntry] = Field(default_factory=list)

    def new_post_ids(self) -> list[Optional[str]]:
        return [
            change.value.post_id
            for entry in self.entry
            for change in entry.changes
            if change.is_new_post
        ]
