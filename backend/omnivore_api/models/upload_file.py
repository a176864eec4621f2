"""
Omnivore API - UploadFile SQLAlchemy Model
==========================================

What:  ORM model for the `upload_files` table: one row per upload attempt.
Who:   Written by UploadService; referenced by Page.upload_file_id.

Lifecycle:
    1. Created with status INITIALIZED and the caller's source URL
    2. For local-file sources, url is swapped to the public storage URL
       (status stays INITIALIZED) in a single update
    3. Marked COMPLETED when the bytes land through the signed URL
    4. Never deleted by the upload flow
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from omnivore_api.database import Base


class UploadFileStatus(str, enum.Enum):
    INITIALIZED = "INITIALIZED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadFile(Base):
    """Tracking record linking a signed storage target to an eventual Page."""

    __tablename__ = "upload_files"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Owner of the upload (caller uid)",
    )

    # Source URL as sent by the client, or the public storage URL once a
    # file:// source has been swapped.
    url: Mapped[str] = mapped_column(Text, nullable=False)

    file_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Sanitized file name used in the storage path",
    )

    content_type: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=UploadFileStatus.INITIALIZED.value,
        server_default=text("'INITIALIZED'"),
        comment="INITIALIZED, COMPLETED, FAILED",
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_upload_files_user_id", user_id),
    )

    def __repr__(self) -> str:
        return f"<UploadFile(id={self.id}, status='{self.status}', file_name='{self.file_name}')>"
