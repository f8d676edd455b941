import re
from datetime import datetime, timezone
from typing import NamedTuple

COMPARE_URL_RE = re.compile(
    r"^https://(?P<host>[\w\-.]+)/(?P<owner>[\w\-]+)/(?P<repo>[\w\-]+)"
    r"/compare/(?P<ref1>[\w\-]+)\.\.\.(?P<ref2>[\w\-]+)$"
)

UPDATED_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class CompareLink(NamedTuple):
    url: str
    host: str
    owner: str
    repo: str
    ref1: str
    ref2: str

    @property
    def refs(self) -> str:
        return f"{self.ref1}...{self.ref2}"


def match_compare_link(url: str) -> CompareLink | None:
    """Return the parsed compare link, or None if url is not one."""
    m = COMPARE_URL_RE.match(url.strip())
    if not m:
        return None
    return CompareLink(url=url.strip(), **m.groupdict())


def is_excluded_title(title: str, markers: list[str]) -> bool:
    return any(marker in title for marker in markers)


def parse_updated(value: str) -> datetime:
    """Parse an Atom <updated> stamp like 2024-05-01T12:34:56Z (UTC)."""
    return datetime.strptime(value.strip(), UPDATED_FORMAT).replace(tzinfo=timezone.utc)
