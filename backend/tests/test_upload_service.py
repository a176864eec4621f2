"""
Omnivore API - Upload Service Tests
===================================

What we test:
    ✅ Unauthenticated callers get UNAUTHORIZED with no side effects
    ✅ Unparseable, non-public and non-http remote URLs give BAD_INPUT
    ✅ Upload record failures give FAILED_CREATE before any signing
    ✅ Local-file uploads swap the record URL and find-or-create one page
    ✅ Remote uploads always create a page keyed by the input URL
    ✅ Unexpected errors never escape upload_file_request
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from omnivore_api.exceptions import FileStorageError
from omnivore_api.models.page import Page, PageState, PageType
from omnivore_api.models.upload_file import UploadFile, UploadFileStatus
from omnivore_api.schemas.upload import (
    UploadFileRequestError,
    UploadFileRequestErrorCode,
    UploadFileRequestInput,
    UploadFileRequestSuccess,
)
from omnivore_api.services.storage_local import LocalStorageBackend
from omnivore_api.services.upload_service import UploadService

LOCAL_URL = "file:///Users/me/My%20Paper.pdf"
REMOTE_URL = "https://example.com/papers/attention.pdf"


def _lookup_result(page):
    result = MagicMock()
    result.scalars.return_value.first.return_value = page
    return result


def _update_result(rowcount=1):
    result = MagicMock()
    result.rowcount = rowcount
    return result


def _request(url, **kwargs):
    return UploadFileRequestInput(url=url, content_type=kwargs.pop("content_type", "application/pdf"), **kwargs)


class TestUploadFileRequestGuards:
    def setup_method(self):
        self.analytics_patch = patch("omnivore_api.services.upload_service.analytics_service")
        self.analytics = self.analytics_patch.start()

    def teardown_method(self):
        self.analytics_patch.stop()

    @pytest.mark.asyncio
    async def test_unauthenticated_caller_is_rejected_without_side_effects(
        self, anonymous_context, fake_transaction, fake_storage, mock_db_session
    ):
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            anonymous_context, _request(LOCAL_URL, create_page_entry=True)
        )

        assert isinstance(result, UploadFileRequestError)
        assert result.error_codes == [UploadFileRequestErrorCode.UNAUTHORIZED]
        assert fake_transaction.calls == []
        mock_db_session.add.assert_not_called()
        fake_storage.generate_upload_signed_url.assert_not_awaited()
        self.analytics.capture_nowait.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "not a url",
            "",
            "http://",
            "https://example.com:99999/a.pdf",
            "http://exa mple.com/a.pdf",
            "http://ex<ample>.com/a.pdf",
            "https://a|b^c.com/doc.pdf",
            "file:///docs/bad%zzname.pdf",
            "http://127.0.0.1/a.pdf",
            "http://localhost:3000/a.pdf",
            "ftp://example.com/a.pdf",
        ],
    )
    async def test_bad_input_creates_no_upload_record(
        self, request_context, fake_transaction, fake_storage, mock_db_session, url
    ):
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(request_context, _request(url))

        assert result.error_codes == [UploadFileRequestErrorCode.BAD_INPUT]
        assert fake_transaction.calls == []
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_uuid_client_request_id_is_bad_input(
        self, request_context, fake_transaction, fake_storage
    ):
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            request_context,
            _request(LOCAL_URL, create_page_entry=True, client_request_id="not-a-uuid"),
        )

        assert result.error_codes == [UploadFileRequestErrorCode.BAD_INPUT]
        assert fake_transaction.calls == []

    @pytest.mark.asyncio
    async def test_analytics_event_is_emitted_for_authenticated_requests(
        self, request_context, fake_storage, user_id
    ):
        service = UploadService(storage=fake_storage)

        await service.upload_file_request(request_context, _request(REMOTE_URL))

        self.analytics.capture_nowait.assert_called_once()
        kwargs = self.analytics.capture_nowait.call_args.kwargs
        assert kwargs["distinct_id"] == user_id
        assert kwargs["event"] == "file_upload_request"
        assert kwargs["properties"]["url"] == REMOTE_URL
        assert "env" in kwargs["properties"]


class TestUploadRecordFailure:
    def setup_method(self):
        self.analytics_patch = patch("omnivore_api.services.upload_service.analytics_service")
        self.analytics_patch.start()

    def teardown_method(self):
        self.analytics_patch.stop()

    @pytest.mark.asyncio
    async def test_insert_error_is_failed_create_without_signed_url(
        self, request_context, fake_storage, mock_db_session
    ):
        mock_db_session.flush = AsyncMock(
            side_effect=OperationalError("INSERT INTO upload_files", {}, Exception("db down"))
        )
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            request_context, _request(LOCAL_URL, create_page_entry=True)
        )

        assert result.error_codes == [UploadFileRequestErrorCode.FAILED_CREATE]
        fake_storage.generate_upload_signed_url.assert_not_awaited()
        mock_db_session.rollback.assert_awaited()
        assert not any(isinstance(obj, Page) for obj in mock_db_session.added)

    @pytest.mark.asyncio
    async def test_record_without_id_is_failed_create(
        self, request_context, fake_storage, mock_db_session
    ):
        # flush that never assigns a primary key
        mock_db_session.flush = AsyncMock()
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(request_context, _request(REMOTE_URL))

        assert result.error_codes == [UploadFileRequestErrorCode.FAILED_CREATE]
        fake_storage.generate_upload_signed_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signing_failure_is_reported_not_raised(
        self, request_context, fake_storage
    ):
        fake_storage.generate_upload_signed_url = AsyncMock(side_effect=FileStorageError())
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(request_context, _request(REMOTE_URL))

        assert result.error_codes == [UploadFileRequestErrorCode.FAILED_CREATE]


class TestLocalFileUploads:
    def setup_method(self):
        self.analytics_patch = patch("omnivore_api.services.upload_service.analytics_service")
        self.analytics_patch.start()

    def teardown_method(self):
        self.analytics_patch.stop()

    @pytest.mark.asyncio
    async def test_local_upload_without_page_swaps_url(
        self, request_context, fake_storage, mock_db_session, user_id
    ):
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(request_context, _request(LOCAL_URL))

        assert isinstance(result, UploadFileRequestSuccess)
        assert result.created_page_id is None

        upload = mock_db_session.added[0]
        assert isinstance(upload, UploadFile)
        assert upload.url == LOCAL_URL
        assert upload.file_name == "MyPaper.pdf"
        assert upload.user_id == uuid.UUID(user_id)
        assert upload.status == UploadFileStatus.INITIALIZED.value
        assert result.id == upload.id
        assert result.upload_signed_url == (
            f"https://signed.example/u/{upload.id}/MyPaper.pdf?ct=application/pdf"
        )

        swap = mock_db_session.execute.await_args_list[0].args[0]
        params = swap.compile().params
        assert params["url"] == f"https://files.example/u/{upload.id}/MyPaper.pdf"
        assert params["status"] == UploadFileStatus.INITIALIZED.value

    @pytest.mark.asyncio
    async def test_existing_live_page_is_revived_not_duplicated(
        self, request_context, fake_storage, mock_db_session, fake_transaction
    ):
        existing = Page(
            id=uuid.uuid4(),
            original_url=LOCAL_URL,
            title="My Paper",
            slug="my-paper-1",
            state=PageState.SUCCEEDED.value,
            saved_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
            archived_at=datetime(2021, 1, 1, tzinfo=timezone.utc),
        )
        mock_db_session.execute.side_effect = [
            _update_result(),          # url swap
            _lookup_result(existing),  # find live page
            _update_result(1),         # revive
        ]
        before = datetime.now(timezone.utc)
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            request_context, _request(LOCAL_URL, create_page_entry=True)
        )

        assert isinstance(result, UploadFileRequestSuccess)
        assert result.created_page_id == existing.id
        assert [type(obj) for obj in mock_db_session.added] == [UploadFile]

        revive = mock_db_session.execute.await_args_list[2].args[0]
        params = revive.compile().params
        assert params["archived_at"] is None
        assert params["saved_at"] >= before
        # insert, url swap and page reconcile each ran in their own transaction
        assert len(fake_transaction.calls) == 3

    @pytest.mark.asyncio
    async def test_failed_revive_is_failed_create(
        self, request_context, fake_storage, mock_db_session
    ):
        existing = Page(id=uuid.uuid4(), original_url=LOCAL_URL, title="t", slug="s")
        mock_db_session.execute.side_effect = [
            _update_result(),
            _lookup_result(existing),
            _update_result(0),
        ]
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            request_context, _request(LOCAL_URL, create_page_entry=True)
        )

        assert result.error_codes == [UploadFileRequestErrorCode.FAILED_CREATE]

    @pytest.mark.asyncio
    async def test_new_local_page_points_at_public_url(
        self, request_context, fake_storage, mock_db_session, user_id
    ):
        mock_db_session.execute.side_effect = [_update_result(), _lookup_result(None)]
        client_id = str(uuid.uuid4())
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            request_context,
            _request(
                "file:///books/Moby%20Dick.epub",
                content_type="application/epub+zip",
                create_page_entry=True,
                client_request_id=client_id,
            ),
        )

        assert isinstance(result, UploadFileRequestSuccess)
        upload, page = mock_db_session.added
        storage_path = f"u/{upload.id}/MobyDick.epub"

        assert result.created_page_id == uuid.UUID(client_id)
        assert page.id == uuid.UUID(client_id)
        assert page.user_id == uuid.UUID(user_id)
        assert page.original_url == f"https://files.example/{storage_path}"
        assert page.title == "Moby Dick.epub"
        assert page.hash == storage_path
        assert page.page_type == PageType.BOOK.value
        assert page.state == PageState.SUCCEEDED.value
        assert page.upload_file_id == upload.id
        assert page.reading_progress_percent == 0
        assert page.reading_progress_anchor_index == 0
        assert page.slug.startswith("u-")


class TestRemoteUploads:
    def setup_method(self):
        self.analytics_patch = patch("omnivore_api.services.upload_service.analytics_service")
        self.analytics_patch.start()

    def teardown_method(self):
        self.analytics_patch.stop()

    @pytest.mark.asyncio
    async def test_remote_upload_always_creates_page_with_input_url(
        self, request_context, fake_storage, mock_db_session
    ):
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(
            request_context, _request(REMOTE_URL, create_page_entry=True)
        )

        assert isinstance(result, UploadFileRequestSuccess)
        upload, page = mock_db_session.added
        assert upload.url == REMOTE_URL
        assert page.original_url == REMOTE_URL
        assert page.title == "attention"
        assert page.page_type == PageType.FILE.value
        assert result.created_page_id == page.id
        # No URL swap and no dedup lookup for remote sources.
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remote_upload_without_page(self, request_context, fake_storage, mock_db_session):
        service = UploadService(storage=fake_storage)

        result = await service.upload_file_request(request_context, _request(REMOTE_URL))

        assert isinstance(result, UploadFileRequestSuccess)
        assert result.created_page_id is None
        assert len(mock_db_session.added) == 1


class TestUploadTargets:
    @pytest.mark.asyncio
    async def test_same_inputs_give_same_storage_path(self, temp_storage):
        storage = LocalStorageBackend(
            storage_root=temp_storage,
            base_url="http://test",
            signing_secret="secret",
        )
        service = UploadService(storage=storage)
        upload_id = uuid.uuid4()

        first = await service.issue_upload_target(upload_id, "paper.pdf", "application/pdf")
        second = await service.issue_upload_target(upload_id, "paper.pdf", "application/pdf")

        assert first.storage_path == second.storage_path == f"u/{upload_id}/paper.pdf"
        assert first.public_url == f"http://test/api/files/u/{upload_id}/paper.pdf"
        assert first.signed_url.startswith(first.public_url + "?")


class TestCompleteUpload:
    @pytest.mark.asyncio
    async def test_marks_initialized_upload_completed(self, mock_db_session):
        mock_db_session.execute.return_value = _update_result(1)

        completed = await UploadService(storage=MagicMock()).complete_upload(
            mock_db_session, uuid.uuid4()
        )

        assert completed is True
        params = mock_db_session.execute.await_args.args[0].compile().params
        assert params["status"] == UploadFileStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_unknown_upload_is_not_completed(self, mock_db_session):
        mock_db_session.execute.return_value = _update_result(0)

        completed = await UploadService(storage=MagicMock()).complete_upload(
            mock_db_session, uuid.uuid4()
        )

        assert completed is False
