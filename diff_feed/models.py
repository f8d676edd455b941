from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SourceEntry(BaseModel):
    """One entry of the upstream GitHub activity feed, as read by feedparser."""

    title: str
    link: str
    updated: str
    author: str = ""


class FeedItem(BaseModel):
    url: str
    updated: datetime
    title: str
    author: str
    patch: str
    diff: Optional[str] = None

    model_config = {"frozen": True}
