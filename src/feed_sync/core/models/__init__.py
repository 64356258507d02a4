"""ORM models.

Import from here so that ``Base.metadata`` sees every table::

    from feed_sync.core.models import Base, Document
"""

from __future__ import annotations

from feed_sync.core.models.base import Base, TimestampMixin
from feed_sync.core.models.documents import Document

__all__ = [
    "Base",
    "Document",
    "TimestampMixin",
]
