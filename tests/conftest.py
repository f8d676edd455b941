import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from diff_feed.config import settings
from diff_feed.main import app
from diff_feed.services.buffer import RecencyBuffer
from diff_feed.state import get_buffer

SOURCE_FEED_URL = "https://github.com/acme.private.atom?token=t0k3n"


def atom_feed(*entries: dict) -> bytes:
    """Minimal GitHub-style Atom document for the given entries."""
    parts = []
    for e in entries:
        parts.append(
            f"""
  <entry>
    <id>tag:github.com,2008:PushEvent/{e.get('id', '1')}</id>
    <published>{e['updated']}</published>
    <updated>{e['updated']}</updated>
    <link type="text/html" rel="alternate" href="{e['link']}"/>
    <title type="html">{e['title']}</title>
    <author>
      <name>{e.get('author', 'octocat')}</name>
      <uri>https://github.com/{e.get('author', 'octocat')}</uri>
    </author>
    <content type="html">push</content>
  </entry>"""
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="en-US">\n'
        "  <id>tag:github.com,2008:/acme</id>\n"
        '  <link type="text/html" rel="alternate" href="https://github.com/acme"/>\n'
        "  <title>Private Feed for acme</title>\n"
        "  <updated>2024-05-01T12:00:00Z</updated>\n"
        + "".join(parts)
        + "\n</feed>\n"
    ).encode()


@pytest.fixture
def test_settings(monkeypatch):
    monkeypatch.setattr(settings, "SOURCE_FEED_URL", SOURCE_FEED_URL)
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "https://diff-feed.example.com/")
    monkeypatch.setattr(settings, "FEED_ITEM_MAX", 50)
    monkeypatch.setattr(settings, "FEED_SIZE_THRESHOLD", 1024 * 1024)
    monkeypatch.setattr(settings, "FETCH_DIFF", False)
    monkeypatch.setattr(settings, "ANNOTATE_DIFF", True)
    monkeypatch.setattr(settings, "EXCLUDED_TITLE_MARKERS", ["pushed to gh-pages at"])
    return settings


@pytest.fixture
def buffer() -> RecencyBuffer:
    return RecencyBuffer(capacity=50)


@pytest.fixture
def make_http() -> Callable[[dict], httpx.AsyncClient]:
    """
    Build an httpx client whose responses come from a url -> response map.
    Values are bytes (200), an int status, or an exception instance to raise.
    Every requested URL is appended to client.requested.
    """
    def factory(routes: dict) -> httpx.AsyncClient:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            target = routes.get(url)
            if target is None:
                return httpx.Response(404)
            if isinstance(target, Exception):
                raise target
            if isinstance(target, int):
                return httpx.Response(target)
            return httpx.Response(200, content=target)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client.requested = requested
        return client

    return factory


@pytest_asyncio.fixture
async def client(buffer: RecencyBuffer) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_buffer] = lambda: buffer
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.pop(get_buffer, None)
