"""Header rules at the client / origin / cache boundaries."""

from typing import FrozenSet, Iterable, List, Tuple

import httpx

from services.proxy.models import Headers

# Dropped from origin responses before they are stored or served.
# content-encoding goes because httpx hands back the decoded body.
DROPPED_RESPONSE_HEADERS: FrozenSet[str] = frozenset([
    "connection",
    "content-encoding",
])

# Recomputed by the server for the body it actually sends
FRAMING_HEADERS: FrozenSet[str] = frozenset([
    "content-length",
    "transfer-encoding",
])

CORS_PREFLIGHT_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("access-control-allow-origin", "*"),
    ("access-control-allow-headers", "*"),
)


def host_header(url: httpx.URL) -> str:
    """Value for the Host header of a request to ``url`` (port kept if explicit)."""
    return url.netloc.decode("ascii")


def outbound_headers(inbound: Iterable[Tuple[str, str]], target: httpx.URL) -> List[Tuple[str, str]]:
    """Client headers to send to the origin.

    Everything is forwarded unmodified, repeats included, except ``host``,
    which always names the target so the origin sees the right virtual host.
    """
    headers = [(name, value) for name, value in inbound if name.lower() != "host"]
    headers.append(("host", host_header(target)))
    return headers


def response_headers(items: Iterable[Tuple[str, str]]) -> Headers:
    """Group origin response headers into the stored multimap, filtered."""
    grouped: Headers = {}
    for name, value in items:
        name = name.lower()
        if name in DROPPED_RESPONSE_HEADERS:
            continue
        grouped.setdefault(name, []).append(value)
    return grouped


def replay_headers(headers: Headers) -> List[Tuple[str, str]]:
    """Stored headers to emit on a response, one pair per value."""
    return [
        (name, value)
        for name, values in headers.items()
        if name not in FRAMING_HEADERS
        for value in values
    ]
