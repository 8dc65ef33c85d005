"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

_TMP = tempfile.mkdtemp(prefix="account-service-tests-")

# Settings are read once per process, so the environment must be in place
# before anything imports core.config.
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("USE_MONGO", "false")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/app.db")
os.environ.setdefault("LOG_DIR", f"{_TMP}/logs")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("UPLOAD_TEMP_DIR", f"{_TMP}/uploads")
os.environ.setdefault("CLOUDINARY_CLOUD_NAME", "demo")
os.environ.setdefault("CLOUDINARY_API_KEY", "key")
os.environ.setdefault("CLOUDINARY_API_SECRET", "secret")

import pytest
import pytest_asyncio
from faker import Faker
from httpx import ASGITransport, AsyncClient

from api.dependencies import get_credential_store, get_media_uploader
from core.errors import UpstreamFailure
from core.config import get_settings
from core.security import TokenService, get_password_hash
from db.base import initialize_database
from db.credential_store import SQLCredentialStore
from db.session import create_engine_for, create_session_factory
from main import app
from services.session_service import SessionManager

# Initialize Faker for test data generation
fake = Faker()


class FakeUploader:
    """Stands in for the media host: records uploads and removes the temp file."""

    def __init__(self):
        self.uploaded = []
        self.fail = False

    async def upload(self, local_path) -> str:
        path = Path(local_path)
        try:
            if self.fail:
                raise UpstreamFailure("Error uploading file")
            self.uploaded.append(path.read_bytes())
            return f"https://media.example.com/{path.name}"
        finally:
            path.unlink(missing_ok=True)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def token_service(settings) -> TokenService:
    return TokenService(settings)


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> AsyncGenerator[SQLCredentialStore, None]:
    """Credential store backed by a fresh SQLite file per test."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await initialize_database(engine)
    yield SQLCredentialStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def session_manager(sql_store, token_service) -> SessionManager:
    return SessionManager(sql_store, token_service)


@pytest.fixture
def account_factory(sql_store):
    """Create accounts directly in the store, bypassing the upload path."""
    async def _create(username=None, email=None, password="testpassword123", full_name=None):
        return await sql_store.create({
            "username": (username or fake.unique.user_name()).lower(),
            "email": (email or fake.unique.email()).lower(),
            "full_name": full_name or fake.name(),
            "avatar": "https://media.example.com/avatar.png",
            "cover_image": "",
            "password_hash": get_password_hash(password),
        })
    return _create


@pytest_asyncio.fixture
async def async_client(sql_store, uploader) -> AsyncGenerator[AsyncClient, None]:
    """Async test client wired to the per-test store and fake uploader."""
    app.dependency_overrides[get_credential_store] = lambda: sql_store
    app.dependency_overrides[get_media_uploader] = lambda: uploader
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def mock_mongo_db():
    """Mock MongoDB database for testing."""
    mock_db = MagicMock()
    mock_collection = AsyncMock()
    mock_db.users = mock_collection
    return mock_db


@pytest.fixture
def sample_user_data():
    """Sample registration form for testing."""
    return {
        "fullName": fake.name(),
        "email": fake.unique.email(),
        "username": fake.unique.user_name(),
        "password": "testpassword123",
    }


@pytest.fixture
def image_file():
    return ("avatar.png", b"\x89PNG\r\n\x1a\nfake-image-bytes", "image/png")
