"""Shared fixtures: temporary SQLite cache and a scripted origin."""
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio
from dependency_injector import providers
from fastapi.testclient import TestClient

from core.config import Settings
from core.container import container
from core.database import Database
from services.proxy.store import CacheStore


class Origin:
    """Stand-in origin server for httpx.MockTransport.

    Records every request and answers with the configured response, or raises
    ``error`` when one is set.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status = 200
        self.content = b"hi"
        self.headers: list = []
        self.error: Optional[Exception] = None

    def respond(self, status: int = 200, content: bytes = b"hi", headers=None):
        self.status = status
        self.content = content
        self.headers = list(headers or [])
        self.error = None

    def fail(self, error: Exception):
        self.error = error

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, content=self.content, headers=self.headers)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}",
        cache_client_errors=True,
        cache_server_errors=False,
        cache_ttl=0,
        log_level="DEBUG",
    )


@pytest.fixture
def origin() -> Origin:
    return Origin()


@pytest.fixture
def upstream_client(origin) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(origin))


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def store(database) -> CacheStore:
    cache_store = CacheStore(database)
    await cache_store.ensure_schema()
    return cache_store


@pytest.fixture
def client(settings, upstream_client):
    """TestClient over the real app, wired to the temp database and fake origin."""
    container.settings.override(providers.Object(settings))
    container.http_client.override(providers.Object(upstream_client))
    container.reset_singletons()

    from main import app

    with TestClient(app) as test_client:
        yield test_client

    container.reset_override()
    container.reset_singletons()
