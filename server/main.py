"""
Caching HTTP forward proxy.

Requests to /proxy/{url} are answered from the response cache when the read
policy allows it, and fetched from the origin (then stored) otherwise.
"""

from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import proxy
from services.proxy.exceptions import ProxyError

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting caching proxy",
                policy=container.settings().cache_policy.model_dump())
    set_startup_time()

    await container.database().startup()
    await container.cache_store().ensure_schema()

    logger.info("Services started successfully")
    yield

    # Shutdown
    await container.http_client().aclose()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Caching HTTP Proxy",
    version="1.0.0",
    description="Forward proxy that replays captured origin responses",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"errors": [{
                    "status": "500",
                    "title": type(e).__name__,
                    "detail": "Internal server error",
                }]}
            )


app.add_middleware(CatchAllExceptionsMiddleware)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    logger.warning("Proxy request failed", path=request.url.path,
                   error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(
        status_code=exc.status_code,
        content={"errors": [{
            "status": str(exc.status_code),
            "title": type(exc).__name__,
            "detail": str(exc),
        }]}
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return proxy.not_found_response()
    return JSONResponse(
        status_code=exc.status_code,
        content={"errors": [{"status": str(exc.status_code), "detail": exc.detail}]},
        headers=getattr(exc, "headers", None)
    )


app.add_route(proxy.PROXY_PATH, proxy.ProxyEndpoint, include_in_schema=False)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    health = await get_health_status(container.database(), container.settings())
    health["timestamp"] = datetime.now().isoformat()
    return health


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting HTTP proxy server",
                url=f"http://{settings.host}:{settings.port}/proxy/")
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
