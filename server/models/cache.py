"""SQLite-backed response cache table.

One row per (method, url): the last origin response captured for that key.
Rows are overwritten on every miss and never deleted; expiry is decided when
reading.
"""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, Integer, LargeBinary, Text, func


class CachedResponse(SQLModel, table=True):
    """Captured origin response keyed by HTTP method and absolute URL."""

    __tablename__ = "cache"

    method: str = Field(sa_column=Column("method", Text, primary_key=True))
    url: str = Field(sa_column=Column("url", Text, primary_key=True))
    content: bytes = Field(sa_column=Column("content", LargeBinary, nullable=False))
    headers: str = Field(sa_column=Column("headers", Text, nullable=False))  # JSON name -> [values]
    status_code: int = Field(sa_column=Column("status_code", Integer, nullable=False))
    last_update: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(
            "last_update",
            DateTime(timezone=True),
            server_default=func.now(),
            nullable=False,
        )
    )
