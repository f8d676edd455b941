from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ActivitySchema(BaseModel):
    time: str
    level: str
    category: str
    message: str


class HealthSchema(BaseModel):
    status: str
    scheduler: str
    items: int
    capacity: int
    queue_size: int
    last_poll: Optional[datetime]
    stats: dict[str, int]
    activity: list[ActivitySchema]
