import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.gzip import GZipMiddleware

from diff_feed.config import settings
from diff_feed.routers.feed import router as feed_router
from diff_feed.routers.health import router as health_router
from diff_feed.services.activity_log import log_activity
from diff_feed.services.buffer import RecencyBuffer
from diff_feed.services.feed_ingestion import IngestionPipeline, create_http_client
from diff_feed.services.scheduler import create_scheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── STARTUP ──────────────────────────────────────────────────────────────
    buffer = RecencyBuffer(settings.FEED_ITEM_MAX)
    client = create_http_client()
    pipeline = IngestionPipeline(buffer, client)
    app.state.buffer = buffer
    app.state.pipeline = pipeline

    worker = asyncio.create_task(pipeline.run_worker())
    logger.info("Ingestion worker started")

    scheduler = create_scheduler(pipeline)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("Scheduler started")

    # The first interval tick is POLL_INTERVAL_MINUTES away; poll now
    startup_poll = asyncio.create_task(pipeline.poll())
    log_activity("info", "system", "Started, initial poll queued")

    yield

    # ── SHUTDOWN ─────────────────────────────────────────────────────────────
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
    for task in (startup_poll, worker):
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    await client.aclose()
    logger.info("Ingestion worker stopped")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(feed_router)
app.include_router(health_router)


# ── Request logging middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s → %d [%.1fms]",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


# ── Global 500 handler ────────────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse({"error": str(exc), "status": 500}, status_code=500)
