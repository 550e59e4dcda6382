"""Settings and the read policy they produce."""
import pytest
from pydantic import ValidationError

from core.config import Settings
from services.proxy.models import CachePolicy


def test_cache_policy_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'c.db'}")
    monkeypatch.setenv("CACHE_CLIENT_ERRORS", "false")
    monkeypatch.setenv("CACHE_SERVER_ERRORS", "true")
    monkeypatch.setenv("CACHE_TTL", "300")

    policy = Settings().cache_policy

    assert policy == CachePolicy(allow_client_errors=False, allow_server_errors=True, ttl_seconds=300)


def test_negative_ttl_is_rejected(tmp_path):
    with pytest.raises(ValidationError):
        Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'c.db'}", cache_ttl=-1)


def test_sqlite_directory_is_created(tmp_path):
    db_dir = tmp_path / "nested" / "dir"

    Settings(database_url=f"sqlite+aiosqlite:///{db_dir / 'cache.db'}")

    assert db_dir.is_dir()


def test_policy_is_immutable():
    policy = CachePolicy(ttl_seconds=10)

    with pytest.raises(ValidationError):
        policy.ttl_seconds = 20
