"""Shared fixtures: in-memory backend, two users and an API client."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import create_app
from app.services.media import MediaIngestor
from app.settings import Settings
from app.stores.base import UserRecord
from app.stores.memory import InMemoryBackend


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
async def wes(backend: InMemoryBackend) -> UserRecord:
    return await backend.insert_user(email="wes@example.com", name="Wes")


@pytest.fixture
async def ada(backend: InMemoryBackend) -> UserRecord:
    return await backend.insert_user(email="ada@example.com", name="Ada")


@pytest.fixture
def uploads_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def media(uploads_dir) -> MediaIngestor:
    return MediaIngestor(uploads_dir, width=800)


@pytest.fixture
def settings(uploads_dir) -> Settings:
    return Settings(storage_backend="memory", redis_url="", uploads_dir=str(uploads_dir))


@pytest.fixture
async def client(settings: Settings, backend: InMemoryBackend):
    """Create test client backed by the in-memory store."""
    app = create_app(settings, backend=backend)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
