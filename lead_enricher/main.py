# lead_enricher/main.py
"""
FastAPI application with Redis lifecycle management and startup recovery.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from lead_enricher.config import settings
from lead_enricher.infrastructure.observability.log_buffer import log_buffer
from lead_enricher.infrastructure.observability.logging import get_logger, setup_logging
from lead_enricher.routes import ai, company_folders, exports, health, logs, usage
from lead_enricher.services.ai.rate_limiter import rate_limiter
from lead_enricher.services.enrichment.export_status import export_status_tracker
from lead_enricher.services.infrastructure.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, extra_processors=[log_buffer.processor])
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    # The previous process may have died mid-run
    if await export_status_tracker.reset_on_startup():
        logger.warning("Export status recovered at startup")
    await rate_limiter.sync_from_store()

    restored = await log_buffer.load()
    log_flusher = asyncio.create_task(log_buffer.run_flusher(), name="log-buffer-flusher")

    logger.info(
        "All services initialized successfully", services=["redis", "log_buffer"], logs_restored=restored
    )

    yield

    logger.info("Application shutting down")
    log_flusher.cancel()
    try:
        await log_flusher
    except asyncio.CancelledError:
        pass
    await log_buffer.flush()

    try:
        logger.info("Closing Redis connection")
        await fast_redis.close()
        logger.info("All services closed successfully")
    except Exception as e:
        logger.error("Error closing Redis", error=str(e))


app = FastAPI(
    title="Lead Enricher",
    description="Contact enrichment and spreadsheet export backed by Gemini",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(exports.router)
app.include_router(company_folders.router)
app.include_router(ai.router)
app.include_router(usage.router)
app.include_router(logs.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
