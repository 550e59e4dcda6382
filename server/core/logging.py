"""Structured logging for the proxy: structlog over the stdlib root logger."""

import sys
import structlog
import logging
from pathlib import Path
from typing import List, Optional
from core.config import Settings

# Third-party loggers that are too chatty at DEBUG/INFO
NOISY_LOGGERS = (
    "aiosqlite",
    "sqlalchemy.engine",
    "sqlalchemy.dialects",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "uvicorn.access",
    "watchfiles",
)


def _handlers(settings: Settings, level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def _processors(log_format: str) -> list:
    shared = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        return [
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            *shared,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        *shared,
        structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        ),
    ]


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging at LOG_LEVEL, console or JSON."""
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(
        level=level,
        handlers=_handlers(settings, level),
        format="%(message)s"
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(settings.log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_upstream_fetch(logger: structlog.BoundLogger, method: str, url: str,
                       status: int, size: int, start_time: float,
                       end_time: float) -> None:
    """One line per completed origin fetch."""
    logger.info(
        "Upstream fetch completed",
        method=method,
        url=url,
        status=status,
        size=size,
        execution_time_seconds=round(end_time - start_time, 4),
    )


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        method: str, url: str, hit: Optional[bool] = None,
                        **kwargs) -> None:
    """Log cache operations."""
    log_data = {
        "operation": operation,
        "cache_method": method,
        "cache_url": url,
        **kwargs
    }

    if hit is not None:
        log_data["cache_hit"] = hit

    logger.debug("Cache operation", **log_data)
