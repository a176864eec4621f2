"""
Omnivore API - Upload Request Service
=====================================

What:  The upload-file-request operation. It registers an upload, hands
       the client a signed URL to PUT the bytes to, and optionally
       creates the library page for the file.
Who:   POST /api/upload-file-request; PUT /api/files/{path} calls
       complete_upload() once the bytes are written.

Flow (upload_file_request):
    1. No claims                      → UNAUTHORIZED, nothing else happens
    2. Emit "file_upload_request"     (fire-and-forget)
    3. Classify URL, derive title and file name; remote URLs must validate
                                      → BAD_INPUT on any failure
    4. clientRequestId present but not a UUID → BAD_INPUT
    5. Insert UploadFile (own transaction)    → FAILED_CREATE without an id
    6. Storage path u/{id}/{file}, signed PUT URL, public URL
    7. Local-file source: swap the record's url to the public URL (own transaction)
    8. createPageEntry: PageService find-or-create (own transaction)
                                      → FAILED_CREATE when it yields no id

upload_file_request() never raises. Unexpected errors are logged with a
traceback and reported as FAILED_CREATE.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from omnivore_api.config import settings
from omnivore_api.context import RequestContext
from omnivore_api.exceptions import ValidationError
from omnivore_api.models.upload_file import UploadFile, UploadFileStatus
from omnivore_api.schemas.upload import (
    UploadFileRequestError,
    UploadFileRequestErrorCode,
    UploadFileRequestInput,
    UploadFileRequestResult,
    UploadFileRequestSuccess,
)
from omnivore_api.services.analytics_service import FILE_UPLOAD_REQUEST_EVENT, analytics_service
from omnivore_api.services.page_service import UploadPageInput, page_service
from omnivore_api.services.storage_base import StorageBackend, get_storage_backend
from omnivore_api.utils.filenames import derive_file_name, derive_title
from omnivore_api.utils.helpers import validate_uuid
from omnivore_api.utils.urls import UrlKind, classify_url, validate_remote_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadTarget:
    storage_path: str
    signed_url: str
    public_url: str


def _error(code: UploadFileRequestErrorCode) -> UploadFileRequestError:
    return UploadFileRequestError(error_codes=[code])


class UploadService:
    def __init__(self, storage: Optional[StorageBackend] = None):
        self._storage = storage

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage_backend()
        return self._storage

    async def upload_file_request(
        self,
        ctx: RequestContext,
        request: UploadFileRequestInput,
    ) -> UploadFileRequestResult:
        if ctx.claims is None:
            return _error(UploadFileRequestErrorCode.UNAUTHORIZED)

        analytics_service.capture_nowait(
            distinct_id=ctx.claims.uid,
            event=FILE_UPLOAD_REQUEST_EVENT,
            properties={"url": request.url, "env": settings.api_env},
        )

        try:
            kind = classify_url(request.url)
            title = derive_title(request.url)
            file_name = derive_file_name(request.url)
            if kind == UrlKind.REMOTE:
                validate_remote_url(request.url)
        except (ValidationError, ValueError) as e:
            ctx.log.info("illegal file input url %s: %s", request.url, e)
            return _error(UploadFileRequestErrorCode.BAD_INPUT)

        if request.client_request_id and not validate_uuid(request.client_request_id):
            ctx.log.info("clientRequestId is not a UUID: %s", request.client_request_id)
            return _error(UploadFileRequestErrorCode.BAD_INPUT)

        try:
            return await self._register_upload(ctx, request, kind, title, file_name)
        except Exception as e:
            ctx.log.error("upload file request failed: %s", e, exc_info=True)
            return _error(UploadFileRequestErrorCode.FAILED_CREATE)

    async def _register_upload(
        self,
        ctx: RequestContext,
        request: UploadFileRequestInput,
        kind: UrlKind,
        title: str,
        file_name: str,
    ) -> UploadFileRequestResult:
        upload = await self.create_upload_file(ctx, request.url, file_name, request.content_type)
        if upload is None or upload.id is None:
            return _error(UploadFileRequestErrorCode.FAILED_CREATE)

        target = await self.issue_upload_target(upload.id, file_name, request.content_type)

        if kind == UrlKind.LOCAL_FILE:
            await self.swap_local_file_url(ctx, upload.id, target.public_url)

        created_page_id = None
        if request.create_page_entry:
            created_page_id = await page_service.reconcile_upload_page(
                ctx,
                UploadPageInput(
                    source_url=request.url,
                    kind=kind,
                    upload_id=upload.id,
                    storage_path=target.storage_path,
                    public_url=target.public_url,
                    title=title,
                    content_type=request.content_type,
                    client_request_id=request.client_request_id,
                ),
            )
            if created_page_id is None:
                return _error(UploadFileRequestErrorCode.FAILED_CREATE)

        return UploadFileRequestSuccess(
            id=upload.id,
            upload_signed_url=target.signed_url,
            created_page_id=created_page_id,
        )

    async def create_upload_file(
        self,
        ctx: RequestContext,
        source_url: str,
        file_name: str,
        content_type: str,
    ) -> Optional[UploadFile]:
        """Insert an INITIALIZED upload record. None when it was not persisted."""
        upload = UploadFile(
            user_id=uuid.UUID(ctx.uid),
            url=source_url,
            file_name=file_name,
            content_type=content_type,
            status=UploadFileStatus.INITIALIZED.value,
        )
        try:
            async with ctx.transaction() as tx:
                tx.add(upload)
                await tx.flush()
        except SQLAlchemyError as e:
            ctx.log.error("Failed to create upload record: %s", e)
            return None

        ctx.log.info("Created upload record %s", upload.id)
        return upload if upload.id is not None else None

    async def issue_upload_target(
        self,
        upload_id: uuid.UUID,
        file_name: str,
        content_type: str,
    ) -> UploadTarget:
        storage_path = self.storage.generate_upload_file_path_name(str(upload_id), file_name)
        signed_url = await self.storage.generate_upload_signed_url(storage_path, content_type)
        return UploadTarget(
            storage_path=storage_path,
            signed_url=signed_url,
            public_url=self.storage.get_file_public_url(storage_path),
        )

    async def swap_local_file_url(
        self,
        ctx: RequestContext,
        upload_id: uuid.UUID,
        public_url: str,
    ) -> None:
        # url and status change in one statement, so both land or neither does.
        async with ctx.transaction() as tx:
            await tx.execute(
                update(UploadFile)
                .where(UploadFile.id == upload_id)
                .values(url=public_url, status=UploadFileStatus.INITIALIZED.value)
            )
        ctx.log.debug("Swapped upload %s url to %s", upload_id, public_url)

    async def complete_upload(self, db: AsyncSession, upload_id: uuid.UUID) -> bool:
        """Mark an INITIALIZED upload COMPLETED. False when nothing matched."""
        result = await db.execute(
            update(UploadFile)
            .where(
                UploadFile.id == upload_id,
                UploadFile.status == UploadFileStatus.INITIALIZED.value,
            )
            .values(status=UploadFileStatus.COMPLETED.value)
        )
        completed = bool(result.rowcount)
        if completed:
            logger.info("Upload %s completed", upload_id)
        else:
            logger.warning("Upload %s not found or already completed", upload_id)
        return completed


upload_service = UploadService()
