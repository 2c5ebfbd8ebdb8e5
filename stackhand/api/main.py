"""API service: resource requests, bootstrap callbacks and metrics ingestion."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
import structlog

from stackhand.broadcast import EventBroadcaster, RedisEventPublisher
from stackhand.config import get_settings
from stackhand.logging import clear_context, new_correlation_id, set_correlation_id, setup_logging
from stackhand.redis import RedisStreamClient

from . import routers
from .database import engine
from .errors import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        service_name=f"{settings.service_name}-api",
        log_format=settings.log_format,
        log_level=settings.log_level,
    )
    queue = RedisStreamClient(settings.redis_url)
    await queue.connect()
    app.state.queue = queue
    app.state.broadcaster = EventBroadcaster(RedisEventPublisher(queue.redis))
    yield
    await queue.close()
    await engine.dispose()


app = FastAPI(
    title="stackhand API",
    description="Remote server resource lifecycle orchestration",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.middleware("http")
async def correlation_middleware(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or new_correlation_id()
    set_correlation_id(correlation_id)
    structlog.contextvars.bind_contextvars(method=request.method, path=request.url.path)

    start = time.time()
    logger = structlog.get_logger()

    try:
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        if response.status_code >= 500:  # noqa: PLR2004
            logger.error(
                "http_request_failed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
        else:
            logger.info(
                "http_request", status_code=response.status_code, duration_ms=round(duration_ms, 2)
            )

        response.headers["X-Correlation-ID"] = correlation_id
        return response
    except Exception as e:
        duration_ms = (time.time() - start) * 1000
        logger.error(
            "http_request_exception",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=round(duration_ms, 2),
            exc_info=True,
        )
        raise
    finally:
        clear_context()


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "stackhand API",
        "version": "0.1.0",
        "description": "Remote server resource lifecycle orchestration",
    }


app.include_router(routers.health.router)
app.include_router(routers.servers.router, prefix="/api")
app.include_router(routers.provisioning.router, prefix="/api")
app.include_router(routers.metrics.router, prefix="/api")
app.include_router(routers.databases.router, prefix="/api")
app.include_router(routers.runtimes.router, prefix="/api")
app.include_router(routers.firewall.router, prefix="/api")
app.include_router(routers.supervisor.router, prefix="/api")
app.include_router(routers.scheduler.router, prefix="/api")
