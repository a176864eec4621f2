"""
Omnivore API - Local Disk Storage Backend
=========================================

What:  Stores uploaded files under settings.storage_root and issues signed
       PUT URLs that point back at this API (PUT /api/files/{path}).
How:   The signature is an HMAC-SHA256 over (path, content type, expiry)
       keyed with settings.storage_signing_secret. The upload route calls
       verify_signature() before store_file().
Who:   UploadService (signing), upload routes (verify, store, serve).
When:  STORAGE_BACKEND=local, the default for development and tests.

Security Model:
    1. Signature:   the path, content type and expiry cannot be altered
    2. Expiry:      URLs stop working after signed_url_expiry_seconds
    3. Size check:  bodies above max_file_size are rejected before writing
    4. Path check:  resolved paths must stay inside storage_root
"""

import hashlib
import hmac
import logging
import os
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

import aiofiles

from omnivore_api.config import settings
from omnivore_api.exceptions import FileStorageError, SignatureError, ValidationError
from omnivore_api.services.storage_base import StorageBackend

logger = logging.getLogger(__name__)

FILES_ROUTE = "/api/files"


class LocalStorageBackend(StorageBackend):
    """
    Disk-backed storage with self-hosted signed upload URLs.

    Directory Structure:
        storage/
        └── u/
            └── 7d3c...-upload-id/
                └── MyPaper.pdf
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        base_url: Optional[str] = None,
        signing_secret: Optional[str] = None,
        expiry_seconds: Optional[int] = None,
    ):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or settings.public_base_url).rstrip("/")
        self._secret = (signing_secret or settings.storage_signing_secret).encode("utf-8")
        self.expiry_seconds = expiry_seconds or settings.signed_url_expiry_seconds
        logger.info("LocalStorageBackend initialized with storage_root=%s", self.storage_root)

    # ── Signing ───────────────────────────────────────────────────────────

    def _signature(self, file_path: str, content_type: str, expires: int) -> str:
        message = f"{file_path}\n{content_type}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def _file_url(self, file_path: str) -> str:
        return f"{self.base_url}{FILES_ROUTE}/{quote(file_path)}"

    async def generate_upload_signed_url(self, file_path: str, content_type: str) -> str:
        expires = int(time.time()) + self.expiry_seconds
        query = urlencode(
            {
                "expires": expires,
                "content_type": content_type,
                "signature": self._signature(file_path, content_type, expires),
            }
        )
        logger.debug("Signed upload URL for %s (expires=%d)", file_path, expires)
        return f"{self._file_url(file_path)}?{query}"

    def get_file_public_url(self, file_path: str) -> str:
        return self._file_url(file_path)

    def verify_signature(
        self,
        file_path: str,
        content_type: str,
        expires: int,
        signature: str,
        now: Optional[float] = None,
    ) -> None:
        """
        Check a PUT against the URL it was issued with.

        Raises:
            SignatureError: expired, or any of path/content type/expiry changed.
        """
        now = time.time() if now is None else now
        if expires < now:
            raise SignatureError(
                message="The upload URL has expired",
                context={"path": file_path, "expires": expires},
            )
        expected = self._signature(file_path, content_type, expires)
        if not hmac.compare_digest(expected, signature or ""):
            raise SignatureError(context={"path": file_path})

    # ── File I/O ──────────────────────────────────────────────────────────

    def resolve_path(self, file_path: str) -> Path:
        """
        Absolute location of a storage path.

        Raises:
            ValidationError: the path is empty, has "." or ".." segments, or
                escapes storage_root.
        """
        segments = file_path.split("/")
        if not file_path or any(part in ("", ".", "..") for part in segments):
            raise ValidationError(
                message="Invalid file path",
                field="path",
                context={"path": file_path},
            )
        absolute_path = (self.storage_root / file_path).resolve()
        if self.storage_root not in absolute_path.parents:
            raise ValidationError(
                message="Invalid file path",
                field="path",
                context={"path": file_path},
            )
        return absolute_path

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)
        size = max(content_length or 0, actual_size)
        if size > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "size": size},
            )

    async def store_file(
        self,
        file_path: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> Path:
        """
        Write an uploaded body to its storage path, replacing any previous one.

        Raises:
            ValidationError: bad path or oversized body.
            FileStorageError: the OS refused the write.
        """
        absolute_path = self.resolve_path(file_path)
        self.validate_size(content_length, len(content))

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": file_path, "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes)", file_path, len(content))
        return absolute_path

    async def read_file(self, file_path: str) -> bytes:
        absolute_path = self.resolve_path(file_path)
        try:
            async with aiofiles.open(absolute_path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            raise
        except OSError as e:
            logger.error("Failed to read file at %s: %s", absolute_path, str(e))
            raise FileStorageError(context={"path": file_path, "os_error": str(e)})

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)
