import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient

from diff_feed.models import FeedItem
from diff_feed.routers import feed as feed_router
from diff_feed.services.feed_ingestion import IngestionPipeline
from tests.conftest import SOURCE_FEED_URL, atom_feed

NS = {"atom": "http://www.w3.org/2005/Atom"}
COMPARE = "https://github.com/acme/widget/compare/main...feature"
TITLE = "octocat pushed to feature at acme/widget"


def item(n: int, **overrides) -> FeedItem:
    data = {
        "url": f"https://github.com/acme/widget/compare/a{n}...b{n}",
        "updated": datetime(2024, 5, 1, 12, n, tzinfo=timezone.utc),
        "title": f"push {n} (a{n}...b{n})",
        "author": "octocat",
        "patch": f"<pre>patch {n}</pre>",
    }
    data.update(overrides)
    return FeedItem(**data)


def entries(response) -> list[ET.Element]:
    root = ET.fromstring(response.content)
    return root.findall("atom:entry", NS)


async def ingest(buffer, make_http, patch_body: bytes) -> None:
    feed = atom_feed({"updated": "2024-05-01T12:00:00Z", "link": COMPARE, "title": TITLE})
    async with make_http({SOURCE_FEED_URL: feed, COMPARE + ".patch": patch_body}) as http:
        pipeline = IngestionPipeline(buffer, http)
        await pipeline.poll()
        await pipeline.drain()


class TestPing:
    @pytest.mark.asyncio
    async def test_ping_returns_pong(self, client: AsyncClient):
        response = await client.get("/ping")
        assert response.status_code == 200
        assert response.text == "pong"
        assert response.headers["content-type"].startswith("text/plain")


class TestFeedEndpoint:
    @pytest.mark.asyncio
    async def test_empty_feed(self, client: AsyncClient, test_settings):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/atom+xml")
        root = ET.fromstring(response.content)
        assert root.find("atom:title", NS).text == test_settings.FEED_TITLE
        assert entries(response) == []

    @pytest.mark.asyncio
    async def test_entries_newest_first(self, client: AsyncClient, buffer, test_settings):
        for n in (1, 3, 2):
            buffer.insert(item(n))
        response = await client.get("/")
        titles = [e.find("atom:title", NS).text for e in entries(response)]
        assert titles == ["push 3 (a3...b3)", "push 2 (a2...b2)", "push 1 (a1...b1)"]

    @pytest.mark.asyncio
    async def test_entry_fields(self, client: AsyncClient, buffer, test_settings):
        buffer.insert(item(1))
        (entry,) = entries(await client.get("/patch"))
        assert entry.find("atom:link", NS).get("href") == item(1).url
        assert entry.find("atom:id", NS).text == item(1).url
        assert entry.find("atom:updated", NS).text == "2024-05-01T12:01:00Z"
        assert entry.find("atom:author/atom:name", NS).text == "octocat"
        content = entry.find("atom:content", NS)
        assert content.get("type") == "html"
        assert content.text == "<pre>patch 1</pre>"

    @pytest.mark.asyncio
    async def test_diff_route_prefers_diff_body(self, client: AsyncClient, buffer, test_settings):
        buffer.insert(item(1, diff="<pre>diff 1</pre>"))
        buffer.insert(item(2))
        contents = [e.find("atom:content", NS).text for e in entries(await client.get("/diff"))]
        assert contents == ["<pre>patch 2</pre>", "<pre>diff 1</pre>"]

    @pytest.mark.asyncio
    async def test_render_failure_returns_503(self, client: AsyncClient, monkeypatch, test_settings):
        def broken(*args, **kwargs):
            raise ValueError("cannot serialise")

        monkeypatch.setattr(feed_router, "render_atom", broken)
        response = await client.get("/")
        assert response.status_code == 503
        assert response.headers["content-type"].startswith("text/plain")
        assert "cannot serialise" in response.text

    @pytest.mark.asyncio
    async def test_gzip_when_accepted(self, client: AsyncClient, buffer, test_settings):
        buffer.insert(item(1, patch="<pre>" + "x" * 5000 + "</pre>"))
        response = await client.get("/", headers={"Accept-Encoding": "gzip"})
        assert response.headers["content-encoding"] == "gzip"
        assert len(entries(response)) == 1


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_patch_under_threshold_is_published(
        self, client: AsyncClient, buffer, make_http, test_settings
    ):
        await ingest(buffer, make_http, b"y" * (900 * 1024))
        (entry,) = entries(await client.get("/"))
        assert entry.find("atom:title", NS).text == f"{TITLE} (main...feature)"
        assert entry.find("atom:content", NS).text == "<pre>" + "y" * (900 * 1024) + "</pre>"

    @pytest.mark.asyncio
    async def test_patch_over_threshold_is_placeholder(
        self, client: AsyncClient, buffer, make_http, test_settings
    ):
        await ingest(buffer, make_http, b"y" * (2 * 1024 * 1024))
        (entry,) = entries(await client.get("/"))
        assert entry.find("atom:title", NS).text == f"{TITLE} (main...feature)"
        assert entry.find("atom:content", NS).text == "Patch size too big."


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_without_running_pipeline(self, client: AsyncClient, buffer):
        buffer.insert(item(1))
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["scheduler"] == "stopped"
        assert data["items"] == 1
        assert data["capacity"] == buffer.capacity
        assert data["queue_size"] == 0
        assert data["last_poll"] is None
        assert isinstance(data["activity"], list)
