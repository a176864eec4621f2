"""
Omnivore API - Page SQLAlchemy Model
====================================

What:  ORM model for the `pages` table: one saved library item per row.
Who:   Created and revived by PageService during the upload flow; read by the
       library routes.

Table Design:
    - id may be supplied by the client (clientRequestId) so the mobile app can
      reference the page before the request returns
    - original_url is the public storage URL for uploaded local files and the
      input URL for remote sources
    - slug carries a hex timestamp suffix, so it is not unique-constrained
    - (user_id, original_url) index backs the find-or-create lookup
    - (user_id, saved_at DESC) index backs the library listing

Lifecycle:
    1. Created with state SUCCEEDED (uploads need no content fetch)
    2. Archiving sets archived_at; deleting moves state to DELETED
    3. Re-uploading the same local file revives the page: saved_at = now,
       archived_at = NULL
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from omnivore_api.database import Base


class PageState(str, enum.Enum):
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DELETED = "DELETED"
    ARCHIVED = "ARCHIVED"
    CONTENT_NOT_FETCHED = "CONTENT_NOT_FETCHED"


class PageType(str, enum.Enum):
    ARTICLE = "ARTICLE"
    BOOK = "BOOK"
    FILE = "FILE"
    UNKNOWN = "UNKNOWN"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Page(Base):
    """A saved readable item (article, book, file) owned by one user."""

    __tablename__ = "pages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    original_url: Mapped[str] = mapped_column(Text, nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")

    slug: Mapped[str] = mapped_column(String(128), nullable=False)

    # Storage path for uploads.
    hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))

    page_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=PageType.FILE.value,
        server_default=text("'FILE'"),
    )

    state: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=PageState.SUCCEEDED.value,
        server_default=text("'SUCCEEDED'"),
    )

    upload_file_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("upload_files.id", ondelete="SET NULL"),
        nullable=True,
    )

    reading_progress_percent: Mapped[float] = mapped_column(
        Float, nullable=False, default=0, server_default=text("0")
    )
    reading_progress_anchor_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    saved_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    archived_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        default=None,
    )

    __table_args__ = (
        Index("idx_pages_user_id_original_url", user_id, original_url),
        Index("idx_pages_user_id_saved_at", user_id, saved_at.desc()),
    )

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def __repr__(self) -> str:
        return f"<Page(id={self.id}, state='{self.state}', slug='{self.slug}')>"
