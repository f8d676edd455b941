import asyncio
import html
import logging
from collections import Counter
from datetime import datetime, timezone
from functools import partial

import feedparser
import httpx

from diff_feed.config import settings
from diff_feed.models import FeedItem, SourceEntry
from diff_feed.services.activity_log import log_activity
from diff_feed.services.annotator import annotate
from diff_feed.services.buffer import RecencyBuffer
from diff_feed.services.compare_links import (
    is_excluded_title,
    match_compare_link,
    parse_updated,
)

logger = logging.getLogger(__name__)

INSERTED = "inserted"
SKIPPED_NOT_COMPARE = "skipped: not a compare link"
SKIPPED_EXCLUDED = "skipped: excluded title"
SKIPPED_DUPLICATE = "skipped: duplicate"
SKIPPED_BAD_TIMESTAMP = "skipped: bad timestamp"
SKIPPED_EMPTY = "skipped: empty body"
SKIPPED_FETCH_ERROR = "skipped: fetch error"


class FetchError(Exception):
    pass


class FeedParseError(Exception):
    pass


def create_http_client() -> httpx.AsyncClient:
    # github.com/<...>.patch redirects to patch-diff.githubusercontent.com
    return httpx.AsyncClient(
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        follow_redirects=True,
        headers={"User-Agent": settings.APP_NAME},
    )


async def fetch_body(client: httpx.AsyncClient, url: str) -> bytes:
    try:
        resp = await client.get(url, timeout=settings.HTTP_TIMEOUT_SECONDS)
    except httpx.TimeoutException as exc:
        raise FetchError(f"timeout fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"error fetching {url}: {exc}") from exc
    if resp.status_code != 200:
        raise FetchError(f"cannot access {url}: HTTP {resp.status_code}")
    return resp.content


def _entry_link(entry) -> str:
    link = entry.get("link")
    if link:
        return link
    links = entry.get("links") or []
    return links[0].get("href", "") if links else ""


async def fetch_source_entries(client: httpx.AsyncClient, url: str) -> list[SourceEntry]:
    body = await fetch_body(client, url)
    loop = asyncio.get_running_loop()
    feed = await loop.run_in_executor(None, feedparser.parse, body)
    if feed.bozo and not feed.entries:
        raise FeedParseError(f"failed to parse feed {url}: {feed.get('bozo_exception')}")

    entries = []
    for entry in feed.entries:
        entries.append(
            SourceEntry(
                title=entry.get("title", "") or "",
                link=_entry_link(entry),
                updated=entry.get("updated", "") or "",
                author=entry.get("author", "") or "",
            )
        )
    return entries


def render_body(raw: bytes, threshold: int, use_annotator: bool = False, label: str = "Patch") -> str | None:
    """
    Turn a fetched .patch/.diff body into feed HTML.
    None means the body was empty and the entry should be dropped.
    """
    if not raw:
        return None
    if len(raw) > threshold:
        return f"{label} size too big."
    text = raw.decode("utf-8", errors="replace")
    if use_annotator:
        return "<pre>" + annotate(text) + "</pre>"
    return "<pre>" + html.escape(text) + "</pre>"


async def process_entry(
    entry: SourceEntry,
    buffer: RecencyBuffer,
    client: httpx.AsyncClient,
) -> str:
    """Run one source entry through filter -> fetch -> render -> insert."""
    link = match_compare_link(entry.link)
    if link is None:
        return SKIPPED_NOT_COMPARE

    # skip github pages updates before touching the network
    if is_excluded_title(entry.title, settings.EXCLUDED_TITLE_MARKERS):
        return SKIPPED_EXCLUDED

    if buffer.contains(link.url):
        return SKIPPED_DUPLICATE

    try:
        updated = parse_updated(entry.updated)
    except ValueError:
        logger.warning("Bad timestamp %r on %s", entry.updated, link.url)
        return SKIPPED_BAD_TIMESTAMP

    logger.info("Fetching: %s.patch", link.url)
    try:
        raw_patch = await fetch_body(client, link.url + ".patch")
    except FetchError as exc:
        logger.warning("Patch fetch failed: %s", exc)
        log_activity("error", "fetch", str(exc))
        return SKIPPED_FETCH_ERROR

    # escaping and annotating up to 1 MiB is CPU work; keep it off the event loop
    loop = asyncio.get_running_loop()
    patch = await loop.run_in_executor(
        None, render_body, raw_patch, settings.FEED_SIZE_THRESHOLD
    )
    if patch is None:
        return SKIPPED_EMPTY

    diff = None
    if settings.FETCH_DIFF:
        logger.info("Fetching: %s.diff", link.url)
        try:
            raw_diff = await fetch_body(client, link.url + ".diff")
        except FetchError as exc:
            logger.warning("Diff fetch failed: %s", exc)
            log_activity("error", "fetch", str(exc))
            return SKIPPED_FETCH_ERROR
        diff = await loop.run_in_executor(
            None,
            partial(
                render_body,
                raw_diff,
                settings.FEED_SIZE_THRESHOLD,
                settings.ANNOTATE_DIFF,
                label="Diff",
            ),
        )
        if diff is None:
            return SKIPPED_EMPTY

    item = FeedItem(
        url=link.url,
        updated=updated,
        title=f"{entry.title} ({link.refs})",
        author=entry.author,
        patch=patch,
        diff=diff,
    )
    if not buffer.insert(item):
        return SKIPPED_DUPLICATE
    log_activity("success", "ingest", item.title)
    return INSERTED


class IngestionPipeline:
    """
    Poller -> FIFO queue -> single worker.
    Entries are processed strictly one at a time in arrival order.
    """

    def __init__(self, buffer: RecencyBuffer, client: httpx.AsyncClient) -> None:
        self.buffer = buffer
        self.client = client
        self.queue: asyncio.Queue[SourceEntry] = asyncio.Queue()
        self.stats: Counter[str] = Counter()
        self.last_poll_at: datetime | None = None

    async def poll(self) -> int:
        url = settings.SOURCE_FEED_URL
        if not url:
            logger.warning("SOURCE_FEED_URL is not set, nothing to poll")
            return 0

        logger.info("Fetching: %s", url)
        try:
            entries = await fetch_source_entries(self.client, url)
        except (FetchError, FeedParseError) as exc:
            logger.error("Feed poll failed: %s", exc)
            log_activity("error", "poll", f"Feed poll failed — {exc}")
            return 0

        for entry in entries:
            await self.queue.put(entry)
        self.last_poll_at = datetime.now(timezone.utc)
        log_activity("info", "poll", f"Queued {len(entries)} entries")
        return len(entries)

    async def process(self, entry: SourceEntry) -> str:
        try:
            state = await process_entry(entry, self.buffer, self.client)
        except Exception as exc:
            logger.error("Error processing %s: %s", entry.link, exc, exc_info=True)
            log_activity("error", "ingest", f"{entry.link} — {exc}")
            state = "failed"
        self.stats[state] += 1
        if state != INSERTED:
            logger.debug("%s: %s", entry.link, state)
        return state

    async def run_worker(self) -> None:
        while True:
            entry = await self.queue.get()
            try:
                await self.process(entry)
            finally:
                self.queue.task_done()

    async def drain(self) -> list[str]:
        """Process whatever is queued right now, in order."""
        states = []
        while not self.queue.empty():
            entry = self.queue.get_nowait()
            try:
                states.append(await self.process(entry))
            finally:
                self.queue.task_done()
        return states
