# recall/main.py
"""
FastAPI application: lifespan management, request logging and routers.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger, log_request, setup_logging
from recall.routes import health, memories, search, sync
from recall.services.infrastructure.redis_client import redis_client

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize Redis (when configured) on startup, close it on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    if redis_client.enabled:
        logger.info("Initializing Redis connection")
        await redis_client.initialize()
    else:
        logger.info("REDIS_URL not set, using in-memory stores")

    yield

    logger.info("Application shutting down")

    if redis_client.enabled:
        await redis_client.close()


app = FastAPI(
    title="Recall",
    description="Cross-platform message search and memory signals",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(search.router)
app.include_router(memories.router)
app.include_router(sync.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Bind a request id for every log line of the request, then log its timing."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=str(uuid.uuid4()))

    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
