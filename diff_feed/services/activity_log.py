"""
Recent pipeline events (polls, failed fetches, inserted diffs, pings),
newest first, for GET /health. Holds the last 200; only the event loop
thread appends.
"""
from collections import deque
from datetime import datetime, timezone
from typing import TypedDict


class ActivityEntry(TypedDict):
    time: str      # HH:MM:SS UTC
    level: str     # "info" | "success" | "error" | "warn"
    category: str  # "poll" | "fetch" | "ingest" | "ping" | "system"
    message: str


ACTIVITY_LOG: deque[ActivityEntry] = deque(maxlen=200)


def log_activity(level: str, category: str, message: str) -> None:
    ACTIVITY_LOG.appendleft(
        ActivityEntry(
            time=datetime.now(timezone.utc).strftime("%H:%M:%S"),
            level=level,
            category=category,
            message=message,
        )
    )


def recent_activity(limit: int = 20) -> list[ActivityEntry]:
    return list(ACTIVITY_LOG)[:limit]
