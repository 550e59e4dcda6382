"""Proxy service exception hierarchy."""


class ProxyError(Exception):
    """Base exception for all proxy-related errors."""

    status_code = 500


class TargetURLError(ProxyError):
    """The origin URL could not be determined from the request."""


class InvalidTargetURLError(TargetURLError):
    """The request path does not hold a well-formed absolute URL."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid url {url} Original error: {reason}")


class UnsupportedSchemeError(TargetURLError):
    """The target URL uses a scheme other than http or https."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"Unknown scheme: {scheme}")


class StoreUnavailableError(ProxyError):
    """The cache store could not be read or written."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Cache {operation} failed: {message}")


class UpstreamError(ProxyError):
    """The origin could not be reached or returned an unreadable response."""

    status_code = 502

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Upstream request to {url} failed: {message}")
