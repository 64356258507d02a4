"""ORM model backing :class:`~feed_sync.core.sql_store.SqlDocumentStore`.

Every document of every collection lives in one ``documents`` table keyed by
``(collection, key)``.  The document body is a JSON column (JSONB on
PostgreSQL) so that equality filters can reach individual fields, e.g.
``data->>'youtubeVideoId'``.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from feed_sync.core.models.base import Base, TimestampMixin


class Document(TimestampMixin, Base):
    """One stored document.

    Attributes:
        collection: Collection name (``posts``, ``system``, ``settings``).
        key: Document key within the collection (e.g. ``fb_123``).
        data: Document body with camelCase field names.
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    key: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(
        sa.JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.key}>"
