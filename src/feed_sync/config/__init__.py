"""Configuration package for Feed Sync.

Re-exports the settings entry points so that callers can write::

    from feed_sync.config import get_settings
"""

from __future__ import annotations

from feed_sync.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
