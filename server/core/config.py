"""Environment-driven configuration with Pydantic v2."""

from typing import Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from services.proxy.models import CachePolicy


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/cache.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=5, ge=1, le=100)
    database_max_overflow: int = Field(default=10, ge=0, le=100)
    database_pool_timeout: float = Field(default=30.0, gt=0)

    # Cache read policy (writes are never filtered)
    cache_client_errors: bool = Field(default=True)
    cache_server_errors: bool = Field(default=False)
    cache_ttl: int = Field(default=0, ge=0)  # seconds, 0 = never expires

    # Upstream (origin) client
    upstream_timeout: Optional[float] = Field(default=None, gt=0)  # None = wait forever
    upstream_follow_redirects: bool = Field(default=True)
    upstream_user_agent: str = Field(default="caching-http-proxy/1.0")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def cache_policy(self) -> CachePolicy:
        """Read-time policy built from the CACHE_* settings."""
        return CachePolicy(
            allow_client_errors=self.cache_client_errors,
            allow_server_errors=self.cache_server_errors,
            ttl_seconds=self.cache_ttl,
        )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
