"""
Omnivore API - Upload Route Handlers
====================================

What:  POST /api/upload-file-request, plus the signed PUT/GET file endpoints
       used when STORAGE_BACKEND=local.
How:   The mutation delegates to UploadService and always answers HTTP 200
       with either a success object or {"errorCodes": [...]}. The file
       endpoints raise OmnivoreError subclasses, rendered by main.py.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from omnivore_api.context import RequestContext, get_request_context
from omnivore_api.database import get_db_session
from omnivore_api.exceptions import NotFoundError, SignatureError
from omnivore_api.schemas.page import ErrorResponse
from omnivore_api.schemas.upload import (
    StoredFileResponse,
    UploadFileRequestInput,
    UploadFileRequestResult,
)
from omnivore_api.services.storage_base import get_storage_backend
from omnivore_api.services.storage_local import LocalStorageBackend
from omnivore_api.services.upload_service import upload_service
from omnivore_api.utils.helpers import validate_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Uploads"])


def _local_storage() -> LocalStorageBackend:
    storage = get_storage_backend()
    if not isinstance(storage, LocalStorageBackend):
        # Clients upload straight to the cloud bucket; nothing is served here.
        raise NotFoundError(resource="file")
    return storage


def _upload_id_from_path(file_path: str) -> Optional[uuid.UUID]:
    # Storage paths look like u/{upload_id}/{file_name}.
    parts = file_path.split("/")
    if len(parts) == 3 and parts[0] == "u" and validate_uuid(parts[1]):
        return uuid.UUID(parts[1])
    return None


@router.post(
    "/upload-file-request",
    response_model=UploadFileRequestResult,
    summary="Request a signed URL for uploading a file",
    description=(
        "Registers an upload and returns a time-limited URL to PUT the file to. "
        "With createPageEntry the file is also added to the caller's library. "
        "Failures come back as errorCodes with HTTP 200."
    ),
)
async def upload_file_request(
    payload: UploadFileRequestInput,
    ctx: RequestContext = Depends(get_request_context),
) -> UploadFileRequestResult:
    return await upload_service.upload_file_request(ctx, payload)


@router.put(
    "/files/{file_path:path}",
    response_model=StoredFileResponse,
    responses={
        400: {"description": "Invalid path or body too large", "model": ErrorResponse},
        403: {"description": "Bad, expired or already used signature", "model": ErrorResponse},
    },
    summary="Signed upload target (local storage)",
)
async def put_file(
    file_path: str,
    request: Request,
    expires: int = Query(...),
    content_type: str = Query(...),
    signature: str = Query(...),
    db: AsyncSession = Depends(get_db_session),
) -> StoredFileResponse:
    storage = _local_storage()
    storage.verify_signature(file_path, content_type, expires, signature)

    sent_type = request.headers.get("Content-Type", "").split(";")[0].strip().lower()
    if sent_type != content_type.split(";")[0].strip().lower():
        raise SignatureError(
            message="Content-Type does not match the signed upload URL",
            context={"expected": content_type, "received": sent_type},
        )

    # A signed URL is good for one write: claim the INITIALIZED record first.
    # If the write below fails, the session rolls the claim back.
    upload_id = _upload_id_from_path(file_path)
    if upload_id is None or not await upload_service.complete_upload(db, upload_id):
        raise SignatureError(
            message="The upload URL has already been used",
            context={"path": file_path},
        )

    content_length = request.headers.get("Content-Length")
    body = await request.body()
    await storage.store_file(
        file_path,
        body,
        content_length=int(content_length) if content_length and content_length.isdigit() else None,
    )

    return StoredFileResponse(path=file_path, size=len(body), completed=True)


@router.get(
    "/files/{file_path:path}",
    responses={404: {"description": "File not found", "model": ErrorResponse}},
    summary="Serve a stored file (local storage)",
)
async def serve_file(file_path: str) -> FileResponse:
    storage = _local_storage()
    full_path = storage.resolve_path(file_path)
    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "private, max-age=86400"},
    )
