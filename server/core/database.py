"""Async database service with SQLModel and SQLAlchemy 2.0."""

from typing import Any, Dict
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async database service owning the engine and its connection pool."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "echo": self.settings.database_echo,
            "future": True,
        }
        # In-memory SQLite runs on a single static connection, no pool to size
        if ":memory:" not in self.settings.database_url:
            options.update(
                pool_size=self.settings.database_pool_size,
                max_overflow=self.settings.database_max_overflow,
                pool_timeout=self.settings.database_pool_timeout,
            )
        return options

    async def startup(self):
        """Create the engine and session factory."""
        try:
            self.engine = create_async_engine(
                self.settings.database_url,
                **self._engine_options()
            )

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    @property
    def dialect(self) -> str:
        if not self.engine:
            raise RuntimeError("Database not initialized")
        return self.engine.dialect.name

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def ping(self) -> bool:
        """Round-trip a trivial query."""
        async with self.get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
