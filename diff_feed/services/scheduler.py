import logging

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from diff_feed.config import settings
from diff_feed.services.activity_log import log_activity
from diff_feed.services.feed_ingestion import IngestionPipeline

logger = logging.getLogger(__name__)


def create_scheduler(pipeline: IngestionPipeline) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        pipeline.poll,
        "interval",
        minutes=settings.POLL_INTERVAL_MINUTES,
        id="poll_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if settings.PUBLIC_BASE_URL:
        scheduler.add_job(
            ping_self,
            "interval",
            minutes=settings.PING_INTERVAL_MINUTES,
            args=[pipeline.client],
            id="ping_job",
            replace_existing=True,
        )
    else:
        logger.info("PUBLIC_BASE_URL not set, idle ping disabled")
    return scheduler


async def ping_self(client: httpx.AsyncClient) -> bool:
    """
    Hit our own /ping so the host does not idle the dyno.
    Failures are logged and retried on the next tick.
    """
    url = settings.PUBLIC_BASE_URL.rstrip("/") + "/ping"
    try:
        resp = await client.get(url, timeout=settings.HTTP_TIMEOUT_SECONDS)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed pinging %s to avoid idle: %s", url, exc)
        log_activity("warn", "ping", f"Ping failed — {exc}")
        return False
    logger.debug("Pinged %s", url)
    return True
