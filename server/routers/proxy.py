"""Caching proxy endpoint.

``/proxy/{scheme}:/{rest}`` with scheme literally ``http`` or ``https``;
the rest of the path plus the query string names the origin URL. Every
HTTP method is accepted, including extension methods such as PROPFIND.
"""
import re
from typing import Tuple

from starlette.endpoints import HTTPEndpoint
from starlette.requests import Request
from starlette.responses import Response

from core.container import container
from core.logging import get_logger
from services.proxy.headers import CORS_PREFLIGHT_HEADERS, replay_headers
from services.proxy.models import CacheEntry

logger = get_logger(__name__)

PROXY_PREFIX = "/proxy/"
PROXY_PATH = PROXY_PREFIX + "{target:path}"

NOT_FOUND_BODY = '{"errors":[{"status":"404"}]}'

_TARGET_PATH = re.compile(r"^https?:/")


def not_found_response() -> Response:
    return Response(content=NOT_FOUND_BODY, status_code=404, media_type="application/json")


def preflight_response() -> Response:
    """Blanket CORS answer for OPTIONS; never touches the cache."""
    response = Response(status_code=200)
    for name, value in CORS_PREFLIGHT_HEADERS:
        response.headers.append(name, value)
    return response


def render_entry(entry: CacheEntry, method: str = "GET") -> Response:
    """Replay an entry: status, every stored header value, body.

    A HEAD answer has no body, so the origin's content-length is replayed
    as stored instead of the length of the empty body.
    """
    response = Response(content=entry.body, status_code=entry.status)
    for name, value in replay_headers(entry.headers):
        response.headers.append(name, value)
    if method == "HEAD" and entry.headers.get("content-length"):
        response.headers["content-length"] = entry.headers["content-length"][-1]
    return response


def raw_target(request: Request) -> Tuple[str, str]:
    """Target path and query string as sent, percent-escapes intact."""
    raw_path = request.scope.get("raw_path") or request.scope["path"].encode("utf-8")
    path = raw_path.split(b"?", 1)[0].decode("latin-1")
    if path.startswith(PROXY_PREFIX):
        target = path[len(PROXY_PREFIX):]
    else:
        target = request.path_params["target"]
    query = request.scope.get("query_string", b"").decode("latin-1")
    return target, query


async def proxy(request: Request) -> Response:
    """Serve the target from cache or fetch it from the origin."""
    target, query = raw_target(request)
    if not _TARGET_PATH.match(target):
        return not_found_response()

    if request.method == "OPTIONS":
        logger.info("Ignoring OPTIONS request", path=request.url.path)
        return preflight_response()

    proxy_service = container.proxy_service()
    body = await request.body()
    entry = await proxy_service.handle(
        method=request.method,
        path=target,
        query=query,
        headers=request.headers.items(),
        body=body,
    )
    return render_entry(entry, request.method)


class ProxyEndpoint(HTTPEndpoint):
    """Dispatches every method to ``proxy`` rather than per-method handlers."""

    async def dispatch(self) -> None:
        request = Request(self.scope, receive=self.receive)
        response = await proxy(request)
        await response(self.scope, self.receive, self.send)
