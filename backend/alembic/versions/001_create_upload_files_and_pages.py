"""Create upload_files and pages tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

upload_files: one row per upload-file-request.
pages:        the caller's library; uploaded files link back via upload_file_id.

No unique constraint on pages (user_id, original_url): remote sources may
create several pages for one URL. Local-file find-or-create is serialized
with pg_advisory_xact_lock instead.

Rollback: downgrade() drops both tables (all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "upload_files",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Owner of the upload (caller uid)",
        ),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column(
            "file_name",
            sa.String(255),
            nullable=False,
            comment="Sanitized file name used in the storage path",
        ),
        sa.Column("content_type", sa.String(255), nullable=False),
        sa.Column(
            "status",
            sa.String(50),
            nullable=False,
            server_default=sa.text("'INITIALIZED'"),
            comment="INITIALIZED, COMPLETED, FAILED",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_upload_files_user_id", "upload_files", ["user_id"])

    op.create_table(
        "pages",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("original_url", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(128), nullable=False),
        sa.Column("hash", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("page_type", sa.String(50), nullable=False, server_default=sa.text("'FILE'")),
        sa.Column("state", sa.String(50), nullable=False, server_default=sa.text("'SUCCEEDED'")),
        sa.Column("upload_file_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reading_progress_percent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "reading_progress_anchor_index",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "saved_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("archived_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["upload_file_id"], ["upload_files.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_pages_user_id_original_url", "pages", ["user_id", "original_url"])
    op.create_index(
        "idx_pages_user_id_saved_at",
        "pages",
        ["user_id", sa.text("saved_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_pages_user_id_saved_at", table_name="pages")
    op.drop_index("idx_pages_user_id_original_url", table_name="pages")
    op.drop_table("pages")
    op.drop_index("idx_upload_files_user_id", table_name="upload_files")
    op.drop_table("upload_files")
