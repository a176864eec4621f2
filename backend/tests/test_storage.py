"""
Omnivore API - Storage Backend Tests
====================================

What we test:
    ✅ Local signed URLs verify, and reject tampering, expiry, other types
    ✅ Local writes honour the size limit and stay inside storage_root
    ✅ GCS signing arguments and public URL (client mocked)
"""

import time
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest

from omnivore_api.exceptions import FileStorageError, SignatureError, ValidationError
from omnivore_api.services.storage_gcs import GCSStorageBackend
from omnivore_api.services.storage_local import LocalStorageBackend


def _query(url):
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


class TestLocalSigning:
    def setup_method(self):
        self.path = "u/7d3c1c52-4cc4-4a43-9a5b-0f6c1b5d2a11/paper.pdf"

    @pytest.fixture(autouse=True)
    def _storage(self, temp_storage):
        self.storage = LocalStorageBackend(
            storage_root=temp_storage,
            base_url="http://test/",
            signing_secret="secret",
            expiry_seconds=900,
        )

    @pytest.mark.asyncio
    async def test_signed_url_round_trips_through_verification(self):
        url = await self.storage.generate_upload_signed_url(self.path, "application/pdf")
        query = _query(url)

        assert urlsplit(url).path == f"/api/files/{self.path}"
        assert query["content_type"] == "application/pdf"
        assert int(query["expires"]) <= int(time.time()) + 900
        self.storage.verify_signature(
            self.path, query["content_type"], int(query["expires"]), query["signature"]
        )

    @pytest.mark.asyncio
    async def test_changed_content_type_is_rejected(self):
        query = _query(await self.storage.generate_upload_signed_url(self.path, "application/pdf"))

        with pytest.raises(SignatureError):
            self.storage.verify_signature(
                self.path, "text/html", int(query["expires"]), query["signature"]
            )

    @pytest.mark.asyncio
    async def test_changed_path_is_rejected(self):
        query = _query(await self.storage.generate_upload_signed_url(self.path, "application/pdf"))

        with pytest.raises(SignatureError):
            self.storage.verify_signature(
                "u/other/paper.pdf", "application/pdf", int(query["expires"]), query["signature"]
            )

    @pytest.mark.asyncio
    async def test_expired_url_is_rejected(self):
        query = _query(await self.storage.generate_upload_signed_url(self.path, "application/pdf"))

        with pytest.raises(SignatureError):
            self.storage.verify_signature(
                self.path,
                "application/pdf",
                int(query["expires"]),
                query["signature"],
                now=time.time() + 901,
            )

    def test_public_url(self):
        assert self.storage.get_file_public_url(self.path) == f"http://test/api/files/{self.path}"

    def test_path_name_layout(self):
        assert self.storage.generate_upload_file_path_name("abc", "a.pdf") == "u/abc/a.pdf"


class TestLocalFiles:
    @pytest.fixture(autouse=True)
    def _storage(self, temp_storage):
        self.root = Path(temp_storage)
        self.storage = LocalStorageBackend(storage_root=temp_storage, signing_secret="secret")

    @pytest.mark.asyncio
    async def test_store_and_read(self):
        stored = await self.storage.store_file("u/abc/a.pdf", b"%PDF-1.4")

        assert stored == (self.root / "u/abc/a.pdf").resolve()
        assert await self.storage.read_file("u/abc/a.pdf") == b"%PDF-1.4"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["../escape.pdf", "u/abc/..", "u//a.pdf", "", "/etc/passwd"])
    async def test_paths_outside_root_are_rejected(self, path):
        with pytest.raises(ValidationError):
            await self.storage.store_file(path, b"x")

    @pytest.mark.asyncio
    async def test_oversized_body_is_rejected(self):
        from omnivore_api.config import settings

        with pytest.raises(ValidationError):
            await self.storage.store_file(
                "u/abc/big.pdf", b"x", content_length=settings.max_file_size + 1
            )
        assert not (self.root / "u/abc/big.pdf").exists()

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await self.storage.health_check() is True


class TestGCSStorage:
    def setup_method(self):
        self.client = MagicMock()
        self.blob = self.client.bucket.return_value.blob.return_value
        self.storage = GCSStorageBackend(bucket_name="omnivore-files", expiry_seconds=900, client=self.client)

    @pytest.mark.asyncio
    async def test_v4_put_url_for_content_type(self):
        self.blob.generate_signed_url.return_value = "https://storage.googleapis.com/signed"

        url = await self.storage.generate_upload_signed_url("u/abc/a.pdf", "application/pdf")

        assert url == "https://storage.googleapis.com/signed"
        self.client.bucket.assert_called_with("omnivore-files")
        self.client.bucket.return_value.blob.assert_called_with("u/abc/a.pdf")
        self.blob.generate_signed_url.assert_called_once_with(
            version="v4",
            expiration=timedelta(seconds=900),
            method="PUT",
            content_type="application/pdf",
        )

    @pytest.mark.asyncio
    async def test_signing_runs_off_the_event_loop(self):
        with patch(
            "omnivore_api.services.storage_gcs.asyncio.to_thread",
            AsyncMock(return_value="https://storage.googleapis.com/signed"),
        ) as to_thread:
            url = await self.storage.generate_upload_signed_url("u/abc/a.pdf", "application/pdf")

        assert url == "https://storage.googleapis.com/signed"
        assert to_thread.await_args.args == (self.blob.generate_signed_url,)
        assert to_thread.await_args.kwargs["method"] == "PUT"
        self.blob.generate_signed_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_signing_error_is_file_storage_error(self):
        self.blob.generate_signed_url.side_effect = AttributeError("no private key")

        with pytest.raises(FileStorageError):
            await self.storage.generate_upload_signed_url("u/abc/a.pdf", "application/pdf")

    def test_public_url(self):
        assert (
            self.storage.get_file_public_url("u/abc/a.pdf")
            == "https://storage.googleapis.com/omnivore-files/u/abc/a.pdf"
        )

    @pytest.mark.asyncio
    async def test_health_check_reports_missing_bucket(self):
        self.client.bucket.return_value.exists.return_value = False
        assert await self.storage.health_check() is False
