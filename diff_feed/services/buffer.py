"""
Bounded, URL-deduplicated buffer of published diff items.

One writer (the ingestion worker) and any number of readers (HTTP handlers).
Readers get an immutable tuple that is swapped in whole on every insert, so a
snapshot is always either fully before or fully after a given insert.
"""
import logging
import threading

from diff_feed.models import FeedItem

logger = logging.getLogger(__name__)


class RecencyBuffer:
    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: tuple[FeedItem, ...] = ()
        self._urls: frozenset[str] = frozenset()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def contains(self, url: str) -> bool:
        return url in self._urls

    def insert(self, item: FeedItem) -> bool:
        """
        Add item unless its URL is already held, then prune to capacity
        keeping the most recently updated items.
        Returns False for a duplicate URL, True otherwise.
        """
        with self._lock:
            if item.url in self._urls:
                return False

            # sorted() is stable: equal timestamps keep insertion order
            items = sorted((*self._items, item), key=lambda i: i.updated)
            if len(items) > self._capacity:
                evicted = items[: len(items) - self._capacity]
                items = items[len(items) - self._capacity :]
                for old in evicted:
                    logger.debug("Evicted %s (updated %s)", old.url, old.updated)

            self._items = tuple(items)
            self._urls = frozenset(i.url for i in items)
            return True

    def snapshot(self) -> tuple[FeedItem, ...]:
        """Current contents, ascending by updated."""
        return self._items
