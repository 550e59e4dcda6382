"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from services.proxy.service import ProxyService, create_upstream_client
from services.proxy.store import CacheStore


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (connection pool shared by every request)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Response cache on top of the database
    cache_store = providers.Singleton(
        CacheStore,
        database=database
    )

    # Outbound client for origin requests
    http_client = providers.Singleton(
        create_upstream_client,
        settings=settings
    )

    # Services
    proxy_service = providers.Singleton(
        ProxyService,
        cache_store=cache_store,
        http_client=http_client,
        settings=settings
    )


# Global container instance
container = Container()
