import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from diff_feed.schemas import HealthSchema
from diff_feed.services.activity_log import recent_activity
from diff_feed.services.buffer import RecencyBuffer
from diff_feed.services.feed_ingestion import IngestionPipeline
from diff_feed.state import get_buffer, get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    return "pong"


@router.get("/health", response_model=HealthSchema)
async def health_check(
    request: Request,
    buffer: RecencyBuffer = Depends(get_buffer),
    pipeline: IngestionPipeline | None = Depends(get_pipeline),
) -> HealthSchema:
    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_status = "running" if scheduler and scheduler.running else "stopped"

    # A running scheduler that has never completed a poll is still warming up
    overall_status = "ok"
    if scheduler_status != "running" or pipeline is None or pipeline.last_poll_at is None:
        overall_status = "degraded"

    return HealthSchema(
        status=overall_status,
        scheduler=scheduler_status,
        items=len(buffer),
        capacity=buffer.capacity,
        queue_size=pipeline.queue.qsize() if pipeline else 0,
        last_poll=pipeline.last_poll_at if pipeline else None,
        stats=dict(pipeline.stats) if pipeline else {},
        activity=recent_activity(),
    )
