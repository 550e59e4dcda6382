"""Health check utilities for daemon monitoring.

Provides uptime tracking and health status for the /health endpoint.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database

logger = get_logger(__name__)

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_database(database: "Database") -> bool:
    """Check database connectivity."""
    try:
        return await database.ping()
    except (SQLAlchemyError, RuntimeError) as e:
        logger.warning("Database health check failed", error=str(e))
        return False


async def get_health_status(database: "Database", settings: "Settings") -> Dict[str, Any]:
    """Get health status for /health endpoint.

    Returns:
        Dict containing status, uptime, database check and cache policy.
    """
    db_healthy = await check_database(database)

    return {
        "status": "healthy" if db_healthy else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "database": db_healthy,
        },
        "cache_policy": settings.cache_policy.model_dump(),
    }
