import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Iterable

from diff_feed.config import Settings
from diff_feed.models import FeedItem

ATOM_NS = "http://www.w3.org/2005/Atom"

# Characters XML 1.0 cannot carry at all, even escaped
_XML_INVALID = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def _xml_text(value: str) -> str:
    return _XML_INVALID.sub("", value)


def _stamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def render_atom(items: Iterable[FeedItem], field: str, cfg: Settings) -> bytes:
    """
    Serialise items as an Atom 1.0 feed, newest first.
    field picks the body: "patch" or "diff" (diff falls back to patch).
    """
    ordered = sorted(items, key=lambda i: i.updated, reverse=True)
    now = datetime.now(timezone.utc)
    self_link = cfg.PUBLIC_BASE_URL or "/"

    feed = ET.Element("feed", xmlns=ATOM_NS)
    ET.SubElement(feed, "title").text = cfg.FEED_TITLE
    ET.SubElement(feed, "subtitle").text = cfg.FEED_DESCRIPTION
    ET.SubElement(feed, "id").text = self_link
    ET.SubElement(feed, "link", href=self_link)
    ET.SubElement(feed, "link", rel="self", href=self_link)
    ET.SubElement(feed, "updated").text = _stamp(ordered[0].updated if ordered else now)
    author = ET.SubElement(feed, "author")
    ET.SubElement(author, "name").text = cfg.FEED_AUTHOR_NAME
    if cfg.FEED_AUTHOR_EMAIL:
        ET.SubElement(author, "email").text = cfg.FEED_AUTHOR_EMAIL

    for item in ordered:
        body = item.diff if field == "diff" and item.diff is not None else item.patch
        entry = ET.SubElement(feed, "entry")
        ET.SubElement(entry, "title").text = _xml_text(item.title)
        ET.SubElement(entry, "id").text = item.url
        ET.SubElement(entry, "link", href=item.url)
        ET.SubElement(entry, "updated").text = _stamp(item.updated)
        entry_author = ET.SubElement(entry, "author")
        ET.SubElement(entry_author, "name").text = _xml_text(item.author)
        ET.SubElement(entry, "content", type="html").text = _xml_text(body)

    return ET.tostring(feed, encoding="utf-8", xml_declaration=True)
