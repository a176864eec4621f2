"""
Omnivore API - Abstract Object Storage Interface
================================================

What:  The contract every upload storage backend fulfils.
How:   Concrete backends inherit from StorageBackend; get_storage_backend()
       picks one from settings.storage_backend.
Who:   UploadService (signed targets), upload routes, health check.

Implementations:
    - LocalStorageBackend: files on disk, HMAC-signed PUT URLs served by this API
    - GCSStorageBackend:   Google Cloud Storage V4 signed URLs
"""

from abc import ABC, abstractmethod
from functools import lru_cache

from omnivore_api.config import settings


class StorageBackend(ABC):
    """
    Object storage used as the target of direct client uploads.

    Contract:
        - generate_upload_file_path_name() is pure: the same (upload id, file
          name) always yields the same path
        - generate_upload_signed_url() grants a single write of exactly the
          given content type, valid for settings.signed_url_expiry_seconds
        - get_file_public_url() is the stable read URL for a path
        - failures are raised as FileStorageError
    """

    def generate_upload_file_path_name(self, upload_id: str, file_name: str) -> str:
        return f"u/{upload_id}/{file_name}"

    @abstractmethod
    async def generate_upload_signed_url(self, file_path: str, content_type: str) -> str:
        """
        Issue a time-limited URL the client can PUT the file bytes to.

        Raises:
            FileStorageError: the URL could not be signed.
        """
        ...

    @abstractmethod
    def get_file_public_url(self, file_path: str) -> str:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the backend is reachable and writable."""
        ...


@lru_cache(maxsize=1)
def get_storage_backend() -> StorageBackend:
    """Process-wide backend selected by STORAGE_BACKEND."""
    if settings.storage_backend == "gcs":
        from omnivore_api.services.storage_gcs import GCSStorageBackend

        return GCSStorageBackend()

    from omnivore_api.services.storage_local import LocalStorageBackend

    return LocalStorageBackend()
