"""
Omnivore API - Google Cloud Storage Backend
===========================================

What:  V4 signed PUT URLs into settings.gcs_upload_bucket.
How:   google-cloud-storage signs locally with the service account from
       GOOGLE_APPLICATION_CREDENTIALS; the client then uploads straight to GCS.
When:  STORAGE_BACKEND=gcs.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from google.cloud import storage

from omnivore_api.config import settings
from omnivore_api.exceptions import FileStorageError
from omnivore_api.services.storage_base import StorageBackend

logger = logging.getLogger(__name__)

GCS_PUBLIC_HOST = "https://storage.googleapis.com"


class GCSStorageBackend(StorageBackend):
    def __init__(
        self,
        bucket_name: Optional[str] = None,
        expiry_seconds: Optional[int] = None,
        client: Optional[storage.Client] = None,
    ):
        self.bucket_name = bucket_name or settings.gcs_upload_bucket
        self.expiry_seconds = expiry_seconds or settings.signed_url_expiry_seconds
        self._client = client

    @property
    def client(self) -> storage.Client:
        # Created on first use so importing this module never needs credentials.
        if self._client is None:
            self._client = storage.Client()
        return self._client

    async def generate_upload_signed_url(self, file_path: str, content_type: str) -> str:
        blob = self.client.bucket(self.bucket_name).blob(file_path)
        try:
            # ADC credentials sign through the IAM API, a blocking HTTP call.
            url = await asyncio.to_thread(
                blob.generate_signed_url,
                version="v4",
                expiration=timedelta(seconds=self.expiry_seconds),
                method="PUT",
                content_type=content_type,
            )
        except Exception as e:
            logger.error("Failed to sign upload URL for %s: %s", file_path, e)
            raise FileStorageError(
                message="Could not create an upload URL",
                context={"bucket": self.bucket_name, "path": file_path, "error": str(e)},
            ) from e
        logger.debug("Signed GCS upload URL for gs://%s/%s", self.bucket_name, file_path)
        return url

    def get_file_public_url(self, file_path: str) -> str:
        return f"{GCS_PUBLIC_HOST}/{self.bucket_name}/{file_path}"

    async def health_check(self) -> bool:
        try:
            return await asyncio.to_thread(self.client.bucket(self.bucket_name).exists)
        except Exception as e:
            logger.warning("GCS health check failed: %s", e)
            return False
