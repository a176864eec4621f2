"""
Omnivore API - Library and Service Schemas
==========================================

What:  Response models for the page routes, the error envelope shared by all
       exception handlers, and the health report.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PageResponse(BaseModel):
    """Full page as returned by GET /api/pages/{id}."""

    id: uuid.UUID
    original_url: str = Field(description="Storage URL for uploads, source URL otherwise")
    title: str
    slug: str
    page_type: str = Field(description="ARTICLE, BOOK, FILE or UNKNOWN")
    state: str
    upload_file_id: Optional[uuid.UUID] = None
    reading_progress_percent: float = 0
    reading_progress_anchor_index: int = 0
    created_at: datetime
    saved_at: datetime
    archived_at: Optional[datetime] = None
    is_archived: bool = False

    model_config = {"from_attributes": True}


class PageListItem(BaseModel):
    id: uuid.UUID
    original_url: str
    title: str
    page_type: str
    state: str
    saved_at: datetime
    archived_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PageListResponse(BaseModel):
    pages: List[PageListItem] = Field(description="Newest-saved first")
    total_count: int = Field(description="Pages matching the filters, across all pages")
    next_cursor: Optional[str] = Field(
        default=None,
        description="Pass as ?cursor= to fetch the next page (null when done)",
    )
    has_more: bool


class ErrorResponse(BaseModel):
    """
    Error envelope used by every exception handler.

    Internal context (paths, SQL, stack traces) is never included.
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy, degraded or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    storage: str = Field(description="available or unavailable")
    analytics: str = Field(description="disabled, available or circuit_open")
    uptime_seconds: float
