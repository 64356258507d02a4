"""YouTube source configuration and quota constants.

The YouTube Data API v3 has a daily quota of 10,000 units per GCP project.
A sync run costs three ``search.list`` calls (100 units each) and one
``videos.list`` call (1 unit), i.e. about 301 units; at the default 30
minute period that is roughly 14,500 units a day, so projects running the
default schedule need a raised quota or a longer period.

Quota unit costs (from the YouTube Data API v3 documentation):
- ``search.list``:  100 units per call
- ``videos.list``:    1 unit  per call (batch up to 50 IDs)
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# API base URL
# ---------------------------------------------------------------------------

YOUTUBE_API_BASE_URL: str = "https://www.googleapis.com/youtube/v3"
"""Base URL for all YouTube Data API v3 endpoints."""

# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------

MAX_VIDEO_IDS_PER_BATCH: int = 50
"""``videos.list`` accepts at most 50 comma-separated IDs per call."""

VIDEO_DETAIL_PARTS: str = "snippet,liveStreamingDetails"
"""Parts requested from ``videos.list``.  ``liveStreamingDetails`` carries
the start times that search results lack."""

LIVE_BROADCAST_CONTENT_LIVE: str = "live"
"""``snippet.liveBroadcastContent`` value of a broadcast that is live now."""

UNTITLED_VIDEO: str = "Untitled Video"
"""Title used for videos whose snippet has none."""

# ---------------------------------------------------------------------------
# Search queries of one run
# ---------------------------------------------------------------------------

QUERY_LATEST: str = "latest"
QUERY_LIVE: str = "live"
QUERY_COMPLETED: str = "completed"

# ---------------------------------------------------------------------------
# Media folders (object storage)
# ---------------------------------------------------------------------------

MEDIA_FOLDER: str = "posts/youtube"
"""Folder prefix for rehosted thumbnails, suffixed with the post key."""
