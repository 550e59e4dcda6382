"""Cache-or-fetch orchestration against a fake origin and a real SQLite store."""
import asyncio

import httpx
import pytest
from sqlalchemy import text

from services.proxy.exceptions import UnsupportedSchemeError, UpstreamError
from services.proxy.models import CachePolicy
from services.proxy.service import ProxyService

PERMISSIVE = CachePolicy(allow_client_errors=True, allow_server_errors=True)


@pytest.fixture
def service(store, upstream_client, settings) -> ProxyService:
    return ProxyService(store, upstream_client, settings)


async def test_miss_fetches_stores_then_hit_serves_from_cache(service, origin, store):
    origin.respond(200, b"hi", headers=[("content-type", "text/plain")])

    first = await service.handle("GET", "https:/example.com/a", headers=[("host", "localhost")])

    assert first.status == 200
    assert first.body == b"hi"
    assert origin.calls == 1
    request = origin.requests[0]
    assert request.method == "GET"
    assert str(request.url) == "https://example.com/a"
    assert request.headers["host"] == "example.com"

    second = await service.handle("GET", "https:/example.com/a")

    assert origin.calls == 1
    assert second.status == 200
    assert second.body == b"hi"
    assert second.headers["content-type"] == ["text/plain"]


async def test_stored_headers_are_filtered(service, origin, store):
    origin.respond(200, b"x", headers=[
        ("connection", "close"),
        ("content-encoding", "identity"),
        ("set-cookie", "a=1"),
        ("set-cookie", "b=2"),
    ])

    await service.handle("GET", "https:/example.com/a")
    stored = await store.lookup("GET", "https://example.com/a", PERMISSIVE)

    assert "connection" not in stored.headers
    assert "content-encoding" not in stored.headers
    assert stored.headers["set-cookie"] == ["a=1", "b=2"]


async def test_server_error_is_stored_but_not_served(service, origin, store):
    origin.respond(503, b"down")

    entry = await service.handle("GET", "https:/example.com/a")
    assert entry.status == 503

    stored = await store.lookup("GET", "https://example.com/a", PERMISSIVE)
    assert stored is not None
    assert stored.status == 503

    origin.respond(200, b"back")
    again = await service.handle("GET", "https:/example.com/a")

    assert origin.calls == 2
    assert again.status == 200
    assert again.body == b"back"


async def test_server_error_is_served_when_policy_allows(service, origin):
    origin.respond(503, b"down")

    await service.handle("GET", "https:/example.com/a", policy=PERMISSIVE)
    cached = await service.handle("GET", "https:/example.com/a", policy=PERMISSIVE)

    assert origin.calls == 1
    assert cached.status == 503


async def test_client_error_served_under_default_settings(service, origin):
    origin.respond(404, b"missing")

    await service.handle("GET", "https:/example.com/gone")
    cached = await service.handle("GET", "https:/example.com/gone")

    assert origin.calls == 1
    assert cached.status == 404


async def test_method_query_and_body_are_forwarded(service, origin, store):
    origin.respond(201, b"created")

    entry = await service.handle(
        "POST", "https:/example.com/items", "draft=1",
        headers=[("content-type", "application/json"), ("x-tag", "1"), ("x-tag", "2")],
        body=b'{"name": "x"}',
    )

    request = origin.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://example.com/items?draft=1"
    assert request.content == b'{"name": "x"}'
    assert request.headers.get_list("x-tag") == ["1", "2"]
    assert entry.key.method == "POST"
    assert entry.key.url == "https://example.com/items?draft=1"
    assert await store.lookup("GET", "https://example.com/items?draft=1", PERMISSIVE) is None


async def test_upstream_failure_raises_and_stores_nothing(service, origin, store):
    origin.fail(httpx.ConnectError("connection refused"))

    with pytest.raises(UpstreamError):
        await service.handle("GET", "https:/example.com/a")

    assert await store.lookup("GET", "https://example.com/a", PERMISSIVE) is None


async def test_bad_scheme_never_reaches_cache_or_origin(service, origin):
    with pytest.raises(UnsupportedSchemeError):
        await service.handle("GET", "ftp:/example.com/a")

    assert origin.calls == 0


async def test_ttl_expiry_refetches(service, origin, store):
    origin.respond(200, b"v1")
    written = await service.handle("GET", "https:/example.com/a")
    policy = CachePolicy(ttl_seconds=60)

    fresh = await store.lookup("GET", written.key.url, policy)
    assert fresh is not None

    async with store.database.engine.begin() as conn:
        await conn.execute(text("UPDATE cache SET last_update = '2000-01-01 00:00:00.000000'"))

    origin.respond(200, b"v2")
    refreshed = await service.handle("GET", "https:/example.com/a", policy=policy)

    assert origin.calls == 2
    assert refreshed.body == b"v2"


async def test_concurrent_misses_share_one_origin_fetch(store, settings):
    release = asyncio.Event()
    calls = []

    async def slow_origin(request):
        calls.append(request)
        await release.wait()
        return httpx.Response(200, content=b"hi")

    client = httpx.AsyncClient(transport=httpx.MockTransport(slow_origin))
    service = ProxyService(store, client, settings)

    requests = [
        asyncio.create_task(service.handle("GET", "https:/example.com/a"))
        for _ in range(5)
    ]
    while not calls:
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.2)
    release.set()
    entries = await asyncio.gather(*requests)

    assert len(calls) == 1
    assert all(entry.body == b"hi" for entry in entries)
    await client.aclose()
