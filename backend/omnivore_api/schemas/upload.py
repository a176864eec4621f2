"""
Omnivore API - Upload Request Schemas
=====================================

What:  Wire contract of POST /api/upload-file-request.
How:   camelCase on the wire (alias_generator=to_camel), snake_case in Python.
       The result is a union: either a success object or a list of error codes.
       The route always answers HTTP 200; failures are data, not exceptions.

Wire examples:
    request:  {"url": "file:///a.pdf", "contentType": "application/pdf",
               "createPageEntry": true}
    success:  {"id": "...", "uploadSignedUrl": "https://...", "createdPageId": "..."}
    error:    {"errorCodes": ["BAD_INPUT"]}
"""

import enum
import uuid
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadFileRequestErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    BAD_INPUT = "BAD_INPUT"
    FAILED_CREATE = "FAILED_CREATE"


class UploadFileRequestInput(_CamelModel):
    """
    url is deliberately an unconstrained string: an unparseable URL must come
    back as a BAD_INPUT result, not a 422.
    """

    url: str = Field(description="file:// reference on the device, or a remote URL")
    content_type: str = Field(description="MIME type the client will upload")
    create_page_entry: bool = Field(default=False, description="Also create a library page")
    client_request_id: Optional[str] = Field(
        default=None,
        description="Client-generated UUID used as the page id",
    )


class UploadFileRequestSuccess(_CamelModel):
    id: uuid.UUID = Field(description="Upload record id")
    upload_signed_url: str = Field(description="Time-limited URL to PUT the file to")
    created_page_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Library page id when createPageEntry was requested",
    )


class UploadFileRequestError(_CamelModel):
    error_codes: List[UploadFileRequestErrorCode] = Field(min_length=1)


UploadFileRequestResult = Union[UploadFileRequestSuccess, UploadFileRequestError]


class StoredFileResponse(BaseModel):
    """Body of a successful PUT /api/files/{path}."""

    path: str
    size: int = Field(description="Bytes written")
    completed: bool = Field(description="Whether an upload record was marked COMPLETED")
