"""Pydantic v2 domain models for the caching proxy."""

from datetime import datetime, timezone
from typing import Dict, List
from pydantic import BaseModel, ConfigDict, Field

# Header name -> values in arrival order; a name may carry several values
Headers = Dict[str, List[str]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CachePolicy(BaseModel):
    """Read-time rules deciding which stored responses may be served.

    The policy never prevents a write: every origin response is stored and
    only filtered when read back.
    """
    model_config = ConfigDict(frozen=True)

    allow_client_errors: bool = False
    allow_server_errors: bool = False
    ttl_seconds: int = Field(default=0, ge=0)  # 0 = no expiry check

    def allows_status(self, status: int) -> bool:
        """Mirror of the status-class filter applied by the store query."""
        if status < 400:
            return True
        if 400 <= status <= 499:
            return self.allow_client_errors
        if 500 <= status <= 599:
            return self.allow_server_errors
        return False


class CacheKey(BaseModel):
    """Identifies one cache row: HTTP verb plus absolute URL with query."""
    model_config = ConfigDict(frozen=True)

    method: str
    url: str


class CacheEntry(BaseModel):
    """The last captured origin response for a key."""
    key: CacheKey
    body: bytes = b""
    headers: Headers = Field(default_factory=dict)
    status: int
    last_update: datetime = Field(default_factory=utcnow)
