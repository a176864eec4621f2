"""
Omnivore API - Test Configuration (conftest.py)
===============================================

Shared fixtures. No test needs a real database, bucket, or analytics host:

    mock_db_session    AsyncMock session; add() records objects, flush()
                       assigns ids the way an INSERT would
    fake_transaction   transaction() stand-in yielding mock_db_session
    request_context    RequestContext for a signed-in user
    fake_storage       StorageBackend stand-in with predictable URLs
    temp_storage       per-test directory for LocalStorageBackend
    test_client        httpx AsyncClient over the ASGI app
"""

import os
import tempfile
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

# Must run before any omnivore_api import: settings are read at import time.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="omnivore_test_")
os.environ["STORAGE_SIGNING_SECRET"] = "test-signing-secret"
os.environ["PUBLIC_BASE_URL"] = "http://test"
os.environ["ANALYTICS_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from omnivore_api.auth import Claims, create_token  # noqa: E402
from omnivore_api.context import RequestContext  # noqa: E402


@pytest.fixture
def mock_db_session():
    """
    Usage:
        mock_db_session.execute.side_effect = [swap_result, lookup_result]
        mock_db_session.added  # every object passed to add()
    """
    added = []

    def _add(obj):
        added.append(obj)

    async def _flush():
        for obj in added:
            if getattr(obj, "id", None) is None:
                obj.id = uuid4()

    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.flush = AsyncMock(side_effect=_flush)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock(side_effect=_add)
    session.added = added
    session.bind = MagicMock()
    session.bind.dialect.name = "sqlite"
    return session


@pytest.fixture
def fake_transaction(mock_db_session):
    """Commits on clean exit, rolls back otherwise; .calls counts opened scopes."""
    calls = []

    @asynccontextmanager
    async def _transaction():
        calls.append(mock_db_session)
        try:
            yield mock_db_session
            await mock_db_session.commit()
        except BaseException:
            await mock_db_session.rollback()
            raise

    _transaction.calls = calls
    return _transaction


@pytest.fixture
def user_id():
    return str(uuid4())


@pytest.fixture
def request_context(fake_transaction, user_id):
    return RequestContext(
        claims=Claims(uid=user_id),
        transaction=fake_transaction,
        request_id="test-rid",
    )


@pytest.fixture
def anonymous_context(fake_transaction):
    return RequestContext(claims=None, transaction=fake_transaction, request_id="test-rid")


@pytest.fixture
def fake_storage():
    storage = MagicMock()
    storage.generate_upload_file_path_name.side_effect = lambda upload_id, name: f"u/{upload_id}/{name}"
    storage.generate_upload_signed_url = AsyncMock(
        side_effect=lambda path, content_type: f"https://signed.example/{path}?ct={content_type}"
    )
    storage.get_file_public_url.side_effect = lambda path: f"https://files.example/{path}"
    return storage


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_token(user_id)}"}


@pytest_asyncio.fixture
async def test_client():
    from omnivore_api.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
