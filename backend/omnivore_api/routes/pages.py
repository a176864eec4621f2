"""
Omnivore API - Library Route Handlers
=====================================

What:  GET /api/pages (list) and GET /api/pages/{id} (detail) for the
       signed-in user.
Who:   Web and mobile library views; a client checks createdPageId here
       after an upload.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from omnivore_api.auth import Claims, require_claims
from omnivore_api.database import get_db_session
from omnivore_api.schemas.page import ErrorResponse, PageListItem, PageListResponse, PageResponse
from omnivore_api.services.page_service import page_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pages"])


@router.get(
    "/pages",
    response_model=PageListResponse,
    responses={
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="List the caller's library",
)
async def list_pages(
    response: Response,
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    cursor: Optional[str] = Query(
        default=None,
        description="next_cursor from the previous response (ISO 8601 saved_at)",
    ),
    archived: Optional[bool] = Query(
        default=None,
        description="true: only archived, false: only unarchived, omitted: both",
    ),
    claims: Claims = Depends(require_claims),
    db: AsyncSession = Depends(get_db_session),
) -> PageListResponse:
    """
    Example client usage (infinite scroll):
        GET /api/pages?limit=20
        GET /api/pages?limit=20&cursor=2024-01-15T12:00:00+00:00
    """
    pages, total_count, next_cursor = await page_service.list_pages(
        db,
        uuid.UUID(claims.uid),
        limit=limit,
        cursor=cursor,
        archived=archived,
    )
    response.headers["X-Total-Count"] = str(total_count)
    return PageListResponse(
        pages=[PageListItem.model_validate(page) for page in pages],
        total_count=total_count,
        next_cursor=next_cursor,
        has_more=next_cursor is not None,
    )


@router.get(
    "/pages/{page_id}",
    response_model=PageResponse,
    responses={
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        404: {"description": "Page not found", "model": ErrorResponse},
    },
    summary="Get one page by id",
)
async def get_page(
    page_id: uuid.UUID,
    response: Response,
    claims: Claims = Depends(require_claims),
    db: AsyncSession = Depends(get_db_session),
) -> PageResponse:
    page = await page_service.get_page(db, uuid.UUID(claims.uid), page_id)
    # Pages are mutable (archive, reading progress), so clients revalidate.
    response.headers["Cache-Control"] = "private, no-cache"
    return PageResponse.model_validate(page)
