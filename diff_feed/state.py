from fastapi import Request

from diff_feed.services.buffer import RecencyBuffer
from diff_feed.services.feed_ingestion import IngestionPipeline


def get_buffer(request: Request) -> RecencyBuffer:
    return request.app.state.buffer


def get_pipeline(request: Request) -> IngestionPipeline | None:
    return getattr(request.app.state, "pipeline", None)
