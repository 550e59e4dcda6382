"""Extract the origin URL embedded in a proxy request path.

Clients tend to collapse repeated slashes in a path, so a target of
``https://example.com/a`` routinely arrives as ``https:/example.com/a``.
The resolver restores the ``scheme://`` pair before parsing.
"""

import re

import httpx

from core.logging import get_logger
from services.proxy.exceptions import InvalidTargetURLError, UnsupportedSchemeError

logger = get_logger(__name__)

ALLOWED_SCHEMES = frozenset(["http", "https"])

# Optional leading slash, a scheme token, then however many slashes survived
_SCHEME_PREFIX = re.compile(r"^/?([a-z][a-z0-9+.\-]*:)/+")


def denormalize(url: str) -> str:
    """Rewrite the leading ``scheme:/+`` to ``scheme://`` in a single pass."""
    return _SCHEME_PREFIX.sub(r"\1//", url, count=1)


def resolve_target(path: str, query: str = "") -> httpx.URL:
    """Turn the path part of a proxy request into a validated origin URL.

    Args:
        path: Path segment holding the target, e.g. ``https:/example.com/a``
        query: The proxy request's own raw query string, appended as-is

    Returns:
        The absolute http(s) URL to fetch

    Raises:
        InvalidTargetURLError: The path does not parse into an absolute URL
        UnsupportedSchemeError: The URL scheme is neither http nor https
    """
    raw = f"{path}?{query}" if query else path
    logger.debug("Extracted url from request", url=raw)

    candidate = denormalize(raw)
    try:
        url = httpx.URL(candidate)
    except httpx.InvalidURL as e:
        raise InvalidTargetURLError(candidate, str(e)) from e

    if not url.scheme:
        raise InvalidTargetURLError(candidate, "relative URL without a base")
    if url.scheme not in ALLOWED_SCHEMES:
        raise UnsupportedSchemeError(url.scheme)
    if not url.host:
        raise InvalidTargetURLError(candidate, "empty host")

    return url
