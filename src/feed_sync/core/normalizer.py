"""Normalization helpers shared by the Facebook and YouTube pollers.

Source-specific mapping (raw item → :class:`~feed_sync.core.schemas.post.Post`)
lives in each source's ``collector.py``.  This module holds the pieces both
branches and the duplicate sweep need: timestamp parsing, YouTube URL
recognition and video-ID extraction, and the fixed author block.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from feed_sync.config.settings import Settings
from feed_sync.core.schemas.post import Author

# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

_TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S%z",  # Graph API: 2025-03-01T00:00:00+0000
    "%Y-%m-%dT%H:%M:%S.%f%z",
)


def parse_datetime(value: str) -> datetime:
    """Parse a platform timestamp into an aware UTC datetime.

    Accepts Graph API timestamps (``+0000`` offsets), RFC 3339 values with a
    ``Z`` suffix or fractional seconds, and bare dates.  Naive values are
    taken as UTC.

    Raises:
        ValueError: If the value matches none of the accepted formats.
    """
    text = value.strip()
    parsed: Optional[datetime] = None
    for fmt in _TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = datetime.strptime(text, "%Y-%m-%d")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp_ms(value: str) -> int:
    """Return *value* as epoch milliseconds.

    >>> parse_timestamp_ms("2025-03-01T00:00:00Z")
    1740787200000
    """
    return int(parse_datetime(value).timestamp() * 1000)


# ---------------------------------------------------------------------------
# YouTube URLs
# ---------------------------------------------------------------------------

YOUTUBE_URL_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)
"""Matches watch, embed, ``/v/`` and ``youtu.be`` URLs; group 1 is the
11-character video ID."""

_YOUTUBE_DOMAINS: tuple[str, ...] = ("youtube.com", "youtu.be")


def is_youtube_url(url: Optional[str]) -> bool:
    """Return ``True`` if *url* points at a YouTube domain."""
    return bool(url) and any(domain in url for domain in _YOUTUBE_DOMAINS)  # type: ignore[operator]


def extract_youtube_video_id(text: Optional[str]) -> Optional[str]:
    """Return the first YouTube video ID found in *text*, or ``None``."""
    if not text:
        return None
    match = YOUTUBE_URL_RE.search(text)
    return match.group(1) if match else None


def youtube_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


# ---------------------------------------------------------------------------
# Author
# ---------------------------------------------------------------------------


def default_author(settings: Settings) -> Author:
    """Return the fixed author block stamped on every synchronised post."""
    return Author(name=settings.feed_author_name, avatar_url=settings.feed_author_avatar_url)
