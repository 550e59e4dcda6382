"""Persistent response cache keyed by (method, url).

Reads are filtered by a CachePolicy (freshness and status class); writes are
unconditional upserts. Lookup and write run in separate sessions, so the
store offers no atomicity between a miss and the write that follows it.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, select

from core.database import Database
from core.logging import get_logger, log_cache_operation
from models.cache import CachedResponse
from services.proxy.exceptions import StoreUnavailableError
from services.proxy.models import CacheEntry, CacheKey, CachePolicy, Headers, utcnow

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def encode_headers(headers: Headers) -> str:
    """Serialize the header multimap as a JSON object of name -> [values]."""
    return json.dumps(headers, separators=(",", ":"))


def decode_headers(raw: str) -> Headers:
    """Rebuild the header multimap, keeping name order and value order.

    Raises:
        ValueError: The payload is not a JSON object of string lists
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("headers must be a JSON object")

    headers: Headers = {}
    for name, values in data.items():
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValueError(f"header {name!r} must map to a list of strings")
        headers[name] = list(values)
    return headers


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_entry(row: CachedResponse) -> CacheEntry:
    return CacheEntry(
        key=CacheKey(method=row.method, url=row.url),
        body=row.content,
        headers=decode_headers(row.headers),
        status=row.status_code,
        last_update=_as_utc(row.last_update),
    )


class CacheStore:
    """Response cache backed by the ``cache`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def ensure_schema(self) -> None:
        """Create the cache table unless it already exists. Safe on every start."""
        try:
            async with self.database.engine.begin() as conn:
                await conn.run_sync(
                    SQLModel.metadata.create_all,
                    tables=[CachedResponse.__table__],
                )
        except SQLAlchemyError as e:
            logger.error("Cache schema creation failed", error=str(e))
            raise StoreUnavailableError("schema", str(e)) from e
        logger.debug("Cache schema ready")

    def build_lookup_query(self, method: str, url: str, policy: CachePolicy,
                           now: Optional[datetime] = None):
        """SELECT for one key, narrowed by the policy's freshness and status rules."""
        stmt = select(CachedResponse).where(
            CachedResponse.method == method,
            CachedResponse.url == url,
        )

        if policy.ttl_seconds > 0:
            cutoff = (now or utcnow()) - timedelta(seconds=policy.ttl_seconds)
            stmt = stmt.where(CachedResponse.last_update > cutoff)

        status_filters: List = [CachedResponse.status_code < 400]
        if policy.allow_client_errors:
            status_filters.append(CachedResponse.status_code.between(400, 499))
        if policy.allow_server_errors:
            status_filters.append(CachedResponse.status_code.between(500, 599))

        return stmt.where(or_(*status_filters))

    async def lookup(self, method: str, url: str, policy: CachePolicy,
                     now: Optional[datetime] = None) -> Optional[CacheEntry]:
        """Return the stored entry for (method, url) if the policy allows serving it."""
        stmt = self.build_lookup_query(method, url, policy, now)
        try:
            async with self.database.get_session() as session:
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
                entry = row_to_entry(row) if row is not None else None
        except (SQLAlchemyError, ValueError) as e:
            logger.error("Cache lookup failed", method=method, url=url, error=str(e))
            raise StoreUnavailableError("lookup", str(e)) from e

        log_cache_operation(logger, "lookup", method, url, hit=entry is not None)
        return entry

    async def upsert(self, entry: CacheEntry) -> CacheEntry:
        """Insert the entry or overwrite the row for its key, stamping the write time.

        Returns:
            The entry as stored, with ``last_update`` set to the write time
        """
        written_at = utcnow()
        values = {
            "method": entry.key.method,
            "url": entry.key.url,
            "content": entry.body,
            "headers": encode_headers(entry.headers),
            "status_code": entry.status,
            "last_update": written_at,
        }

        try:
            insert = _UPSERT_DIALECTS[self.database.dialect]
        except KeyError:
            raise StoreUnavailableError("upsert", f"unsupported dialect {self.database.dialect}")

        stmt = insert(CachedResponse).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["method", "url"],
            set_={
                "content": stmt.excluded.content,
                "headers": stmt.excluded.headers,
                "status_code": stmt.excluded.status_code,
                "last_update": stmt.excluded.last_update,
            },
        )

        try:
            async with self.database.get_session() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Cache write failed", method=entry.key.method,
                         url=entry.key.url, error=str(e))
            raise StoreUnavailableError("upsert", str(e)) from e

        log_cache_operation(logger, "upsert", entry.key.method, entry.key.url,
                            status=entry.status, size=len(entry.body))
        return entry.model_copy(update={"last_update": written_at})
