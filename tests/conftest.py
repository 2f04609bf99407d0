"""
Shared fixtures.

Every test runs against in-memory storage with LLM credentials set, so
nothing touches the filesystem, a database or a model provider unless a
test asks for it.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from fincoach.api.dependencies import get_storage_backend
from fincoach.api.main import create_app
from fincoach.core.config import get_settings
from fincoach.core.storage.memory import MemoryStorage


@pytest.fixture(autouse=True)
def set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure settings for tests and reset cached singletons."""
    monkeypatch.setenv("FINCOACH_ENV", "test")
    monkeypatch.setenv("FINCOACH_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("FINCOACH_APP_URL", "http://test")
    monkeypatch.setenv("FINCOACH_SESSION_RESOLVE_DELAY", "0")
    monkeypatch.setenv("LITELLM_MODEL", "test-model")
    monkeypatch.setenv("LITELLM_API_KEY", "test-key")
    get_settings.cache_clear()
    get_storage_backend.cache_clear()
    yield
    get_settings.cache_clear()
    get_storage_backend.cache_clear()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def app(storage: MemoryStorage):
    application = create_app()
    application.dependency_overrides[get_storage_backend] = lambda: storage
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
