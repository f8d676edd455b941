import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response

from diff_feed.config import settings
from diff_feed.services.buffer import RecencyBuffer
from diff_feed.services.publisher import render_atom
from diff_feed.state import get_buffer

logger = logging.getLogger(__name__)

router = APIRouter()

ATOM_MEDIA_TYPE = "application/atom+xml"


def _publish(buffer: RecencyBuffer, field: str) -> Response:
    items = buffer.snapshot()
    try:
        body = render_atom(items, field, settings)
    except Exception as exc:
        logger.error("Failed generating atom feed: %s", exc, exc_info=True)
        return PlainTextResponse(
            f"failed generating atom feed: {exc}", status_code=503
        )
    return Response(content=body, media_type=ATOM_MEDIA_TYPE)


@router.get("/")
async def feed_index(buffer: RecencyBuffer = Depends(get_buffer)) -> Response:
    return _publish(buffer, "patch")


@router.get("/patch")
async def feed_patch(buffer: RecencyBuffer = Depends(get_buffer)) -> Response:
    return _publish(buffer, "patch")


@router.get("/diff")
async def feed_diff(buffer: RecencyBuffer = Depends(get_buffer)) -> Response:
    return _publish(buffer, "diff")
