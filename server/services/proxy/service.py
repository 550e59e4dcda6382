"""ProxyService - cache-or-fetch orchestration for proxied requests.

resolve target -> lookup under the read policy -> hit: replay the stored
entry / miss: forward to the origin, capture, upsert, serve.
"""

import time
from typing import Iterable, Optional, Tuple

import httpx

from core.config import Settings
from core.logging import get_logger, log_upstream_fetch
from services.proxy.exceptions import UpstreamError
from services.proxy.headers import outbound_headers, response_headers
from services.proxy.models import CacheEntry, CacheKey, CachePolicy
from services.proxy.resolver import resolve_target
from services.proxy.singleflight import SingleFlight
from services.proxy.store import CacheStore

logger = get_logger(__name__)


def create_upstream_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for origin requests, with the system trust store."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.upstream_timeout),
        follow_redirects=settings.upstream_follow_redirects,
        headers={"user-agent": settings.upstream_user_agent},
    )


class ProxyService:
    """Serve proxied requests from the cache, falling back to the origin.

    Concurrent misses for the same key inside this process share one origin
    fetch and one store write. Separate worker processes do not coordinate;
    for them the last write wins.
    """

    def __init__(self, cache_store: CacheStore, http_client: httpx.AsyncClient,
                 settings: Settings):
        self._store = cache_store
        self._client = http_client
        self._settings = settings
        self._flights = SingleFlight()

    @property
    def policy(self) -> CachePolicy:
        return self._settings.cache_policy

    async def handle(
        self,
        method: str,
        path: str,
        query: str = "",
        headers: Iterable[Tuple[str, str]] = (),
        body: bytes = b"",
        policy: Optional[CachePolicy] = None,
    ) -> CacheEntry:
        """Answer one proxied request.

        Args:
            method: Inbound HTTP method, reused for the origin request
            path: Path segment holding the target URL
            query: Raw inbound query string
            headers: Inbound headers, repeats allowed
            body: Inbound request body, forwarded on a miss
            policy: Read policy; the configured one when omitted

        Returns:
            The entry to serve, from the cache or freshly captured

        Raises:
            TargetURLError: The target URL could not be resolved
            StoreUnavailableError: The cache could not be read or written
            UpstreamError: The origin fetch failed (nothing is stored)
        """
        policy = policy or self.policy
        target = resolve_target(path, query)
        key = CacheKey(method=method, url=str(target))

        entry = await self._store.lookup(key.method, key.url, policy)
        if entry is not None:
            logger.info("Serving from cache", method=key.method, url=key.url,
                        status=entry.status)
            return entry

        logger.info("No match, proxying", method=key.method, url=key.url)
        headers = list(headers)
        return await self._flights.do(
            key, lambda: self._fetch_and_store(key, target, headers, body, policy)
        )

    async def _fetch_and_store(self, key: CacheKey, target: httpx.URL,
                               headers: Iterable[Tuple[str, str]], body: bytes,
                               policy: CachePolicy) -> CacheEntry:
        response = await self.fetch(key.method, target, headers, body)
        entry = CacheEntry(
            key=key,
            body=response.content,
            headers=response_headers(response.headers.multi_items()),
            status=response.status_code,
        )

        logger.debug("Saving to database", method=key.method, url=key.url,
                     status=entry.status)
        entry = await self._store.upsert(entry)

        if not policy.allows_status(entry.status):
            logger.info("Stored response will not be served from cache under current policy",
                        url=key.url, status=entry.status)
        return entry

    async def fetch(self, method: str, target: httpx.URL,
                    headers: Iterable[Tuple[str, str]], body: bytes = b"") -> httpx.Response:
        """Send the request to the origin and read the whole body.

        Raises:
            UpstreamError: Connection, protocol, decoding or timeout failure
        """
        request = self._client.build_request(
            method,
            target,
            headers=outbound_headers(headers, target),
            content=body or None,
        )
        logger.debug("Upstream request", method=request.method, url=str(request.url))

        start_time = time.time()
        try:
            response = await self._client.send(request)
        except httpx.HTTPError as e:
            logger.error("Upstream request failed", method=method, url=str(target),
                         error=f"{type(e).__name__}: {e}")
            raise UpstreamError(str(target), f"{type(e).__name__}: {e}") from e

        log_upstream_fetch(logger, method, str(target), response.status_code,
                           len(response.content), start_time, time.time())
        return response
