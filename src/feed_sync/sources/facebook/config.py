"""Facebook source configuration constants.

Defines Graph API endpoints, requested field lists and live-status
parameters.  Page sizes, the backfill lower bound and the backfill page
ceiling are runtime settings (see :class:`~feed_sync.config.settings.Settings`).

No secrets are stored here.  The page ID and access token are resolved per
run by :mod:`feed_sync.core.credentials`.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Graph API endpoints
# ---------------------------------------------------------------------------

GRAPH_API_BASE: str = "https://graph.facebook.com"
"""Graph API host.  The version segment is taken from settings."""

FEED_URL_TEMPLATE: str = "{base}/{version}/{page_id}/feed"
"""Page feed endpoint.  Format with ``base``, ``version`` and ``page_id``."""

LIVE_VIDEOS_URL_TEMPLATE: str = "{base}/{version}/{page_id}/live_videos"
"""Page live-video endpoint.  Format with ``base``, ``version`` and ``page_id``."""


def feed_url(version: str, page_id: str) -> str:
    return FEED_URL_TEMPLATE.format(base=GRAPH_API_BASE, version=version, page_id=page_id)


def live_videos_url(version: str, page_id: str) -> str:
    return LIVE_VIDEOS_URL_TEMPLATE.format(base=GRAPH_API_BASE, version=version, page_id=page_id)


# ---------------------------------------------------------------------------
# Requested fields
# ---------------------------------------------------------------------------

FEED_FIELDS: str = (
    "id,message,full_picture,created_time,permalink_url,attachments{media,subattachments}"
)
"""Fields requested for each feed post."""

LIVE_VIDEO_FIELDS: str = "id,description,title,embed_html,permalink_url,status,creation_time"
"""Fields requested for each live video."""

LIVE_NOW_STATUS: str = "LIVE_NOW"
"""``status`` filter selecting broadcasts that are live right now."""

LIVE_CONTENT_FALLBACK: str = "Live Stream"
"""Display text of a live post whose broadcast has neither description nor title."""

# ---------------------------------------------------------------------------
# Media folders (object storage)
# ---------------------------------------------------------------------------

MEDIA_FOLDER: str = "posts/facebook"
"""Folder prefix for rehosted Facebook images, suffixed with the post key."""

# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

WEBHOOK_OBJECT_PAGE: str = "page"
"""``object`` value of Page webhook deliveries."""

WEBHOOK_EVENT_RECEIVED: str = "EVENT_RECEIVED"
"""Body returned to acknowledge a webhook delivery."""

SIGNATURE_HEADER: str = "X-Hub-Signature-256"
"""Header carrying ``sha256=<hex hmac>`` of the raw webhook body."""
