"""
Omnivore API - Page Service
===========================

What:  Library page persistence: the upload flow's find-or-create reconciler,
       plus the read operations behind GET /api/pages.
Who:   UploadService (reconcile_upload_page), page routes (get/list).

Find-or-create for local files:
    Re-uploading the same device file must not duplicate the page. The lookup
    runs in the same transaction as the insert, behind a transaction-scoped
    PostgreSQL advisory lock keyed on (user id, source url), so two
    concurrent identical requests serialize instead of both creating a page.
    The lock is skipped on other dialects and when ENABLE_PAGE_ADVISORY_LOCK
    is false.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from omnivore_api.config import settings
from omnivore_api.context import RequestContext
from omnivore_api.exceptions import DatabaseError, NotFoundError
from omnivore_api.models.page import Page, PageState
from omnivore_api.utils.filenames import generate_slug, page_type_for_content_type
from omnivore_api.utils.helpers import advisory_lock_key, validated_date
from omnivore_api.utils.urls import UrlKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadPageInput:
    """What the reconciler needs to know about one upload request."""

    source_url: str
    kind: UrlKind
    upload_id: uuid.UUID
    storage_path: str
    public_url: str
    title: str
    content_type: str
    client_request_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PageService:
    """
    Page reads and the upload reconciler.

    The reconciler speaks in Optional ids: None means the page could not be
    created or revived, which the upload flow reports as FAILED_CREATE.
    """

    # ── Upload reconciliation ─────────────────────────────────────────────

    async def reconcile_upload_page(
        self,
        ctx: RequestContext,
        page_input: UploadPageInput,
    ) -> Optional[uuid.UUID]:
        """
        Find-or-create the library page for an upload.

        Local-file sources revive an existing live page for (user, source url)
        or create one. Remote sources always create a new page.
        """
        user_id = uuid.UUID(ctx.uid)
        try:
            async with ctx.transaction() as tx:
                if page_input.kind == UrlKind.LOCAL_FILE:
                    await self._lock_user_url(tx, user_id, page_input.source_url)
                    existing = await self.find_live_page(tx, user_id, page_input.source_url)
                    if existing is not None:
                        if not await self.revive_page(tx, existing.id):
                            ctx.log.error("Failed to revive page %s", existing.id)
                            return None
                        ctx.log.info("Revived page %s for %s", existing.id, page_input.source_url)
                        return existing.id

                page_id = await self.create_upload_page(tx, user_id, page_input)
        except SQLAlchemyError as e:
            ctx.log.error("Page reconciliation failed: %s", e, exc_info=True)
            return None

        if page_id is None:
            ctx.log.error("Page creation returned no id for upload %s", page_input.upload_id)
        else:
            ctx.log.info("Created page %s for upload %s", page_id, page_input.upload_id)
        return page_id

    async def _lock_user_url(self, tx: AsyncSession, user_id: uuid.UUID, url: str) -> None:
        if not settings.enable_page_advisory_lock:
            return
        dialect = getattr(tx.bind, "dialect", None)
        if dialect is None or dialect.name != "postgresql":
            return
        key = advisory_lock_key(str(user_id), url)
        await tx.execute(select(func.pg_advisory_xact_lock(key)))

    async def find_live_page(
        self,
        tx: AsyncSession,
        user_id: uuid.UUID,
        url: str,
    ) -> Optional[Page]:
        """Most recently saved non-deleted page for (user, original url)."""
        result = await tx.execute(
            select(Page)
            .where(
                Page.user_id == user_id,
                Page.original_url == url,
                Page.state != PageState.DELETED.value,
            )
            .order_by(Page.saved_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def revive_page(self, tx: AsyncSession, page_id: uuid.UUID) -> bool:
        """saved_at = now, archived_at = NULL. False when no row was updated."""
        result = await tx.execute(
            update(Page)
            .where(Page.id == page_id)
            .values(saved_at=_utcnow(), archived_at=None)
        )
        return bool(result.rowcount)

    async def create_upload_page(
        self,
        tx: AsyncSession,
        user_id: uuid.UUID,
        page_input: UploadPageInput,
    ) -> Optional[uuid.UUID]:
        if page_input.kind == UrlKind.LOCAL_FILE:
            original_url = page_input.public_url
        else:
            original_url = page_input.source_url

        now = _utcnow()
        page = Page(
            user_id=user_id,
            original_url=original_url,
            title=page_input.title,
            slug=generate_slug(page_input.storage_path),
            hash=page_input.storage_path,
            content="",
            page_type=page_type_for_content_type(page_input.content_type).value,
            state=PageState.SUCCEEDED.value,
            upload_file_id=page_input.upload_id,
            reading_progress_percent=0,
            reading_progress_anchor_index=0,
            created_at=now,
            saved_at=now,
        )
        if page_input.client_request_id:
            page.id = uuid.UUID(page_input.client_request_id)

        tx.add(page)
        await tx.flush()
        return page.id

    # ── Library reads ─────────────────────────────────────────────────────

    async def get_page(self, db: AsyncSession, user_id: uuid.UUID, page_id: uuid.UUID) -> Page:
        """
        Raises:
            NotFoundError: no such page, or it belongs to another user.
        """
        try:
            result = await db.execute(
                select(Page).where(Page.id == page_id, Page.user_id == user_id)
            )
            page = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch page %s: %s", page_id, e)
            raise DatabaseError(context={"operation": "get_page"})

        if page is None or page.state == PageState.DELETED.value:
            raise NotFoundError(resource="Page", resource_id=str(page_id))
        return page

    async def list_pages(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 20,
        cursor: Optional[str] = None,
        archived: Optional[bool] = None,
    ) -> Tuple[List[Page], int, Optional[str]]:
        """
        Newest-saved first, keyset-paginated on saved_at.

        Returns:
            (pages, total_count, next_cursor). next_cursor is the ISO saved_at
            of the last page, or None on the final page. An unparseable cursor
            is ignored.
        """
        filters = [Page.user_id == user_id, Page.state != PageState.DELETED.value]
        if archived is True:
            filters.append(Page.archived_at.is_not(None))
        elif archived is False:
            filters.append(Page.archived_at.is_(None))

        try:
            count_result = await db.execute(select(func.count(Page.id)).where(*filters))
            total_count = count_result.scalar() or 0

            query = select(Page).where(*filters)
            cursor_date = validated_date(cursor)
            if cursor_date is not None:
                query = query.where(Page.saved_at < cursor_date)
            # Fetch one extra row to know whether another page exists.
            query = query.order_by(Page.saved_at.desc()).limit(limit + 1)

            result = await db.execute(query)
            pages = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list pages for %s: %s", user_id, e)
            raise DatabaseError(context={"operation": "list_pages"})

        next_cursor = None
        if len(pages) > limit:
            pages = pages[:limit]
            next_cursor = pages[-1].saved_at.isoformat()

        logger.debug("Listed %d/%d pages for %s", len(pages), total_count, user_id)
        return pages, total_count, next_cursor


page_service = PageService()
