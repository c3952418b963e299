"""Archive manifest discovery.

Crawls the single index page of the archive, keeps links that look like
individual posts, and produces a deterministic, de-duplicated manifest.
"""

import json
import logging
import re
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Section and listing pages on the archive host that are never posts
DEFAULT_BLOCKED_PATHS: FrozenSet[str] = frozenset({
    "/",
    "/archive",
    "/podcast",
    "/quotes",
    "/interviews",
    "/search",
    "/startups",
    "/wealth",
    "/happiness-2",
    "/jobs",
    "/science",
    "/politics",
    "/technology",
    "/stories",
    "/sundry",
    "/crypto",
    "/uncategorized",
    "/venture-capital",
})

YEAR_PATTERN = re.compile(r"\b(20[0-4][0-9]|19[8-9][0-9])\b")


@dataclass(frozen=True)
class ManifestEntry:
    """A candidate post discovered on the index page."""
    title: str
    url: str
    year: Optional[int] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'ManifestEntry':
        return cls(title=data['title'], url=data['url'], year=data.get('year'))


def normalize_url(url: str) -> str:
    """Canonicalize a URL: drop fragment and query, strip one trailing slash."""
    parts = urlsplit(url)
    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def is_likely_document_url(url: str, host: str,
                           blocked_paths: FrozenSet[str] = DEFAULT_BLOCKED_PATHS) -> bool:
    """Structural check for ``https://host/<single-slug>`` post URLs."""
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return False

    if hostname != host:
        return False

    path = parts.path.rstrip("/") or "/"
    if path in blocked_paths:
        return False
    if not path.startswith("/"):
        return False

    segments = [segment for segment in path.split("/") if segment]
    if len(segments) != 1:
        return False

    # Assets like /feed.xml or /logo.png
    if "." in segments[0]:
        return False
    return True


def infer_year(text: str) -> Optional[int]:
    """First plausible 4-digit year (1980-2049) in ``text``, if any."""
    match = YEAR_PATTERN.search(text or "")
    return int(match.group(1)) if match else None


def parse_manifest(html: str, index_url: str,
                   blocked_paths: FrozenSet[str] = DEFAULT_BLOCKED_PATHS) -> List[ManifestEntry]:
    """Extract manifest entries from the index page HTML, sorted by URL."""
    host = urlsplit(index_url).hostname
    soup = BeautifulSoup(html, "html.parser")
    entries: Dict[str, ManifestEntry] = {}

    for link in soup.find_all("a"):
        href = (link.get("href") or "").strip()
        # Inline markup inside the anchor must not glue words together
        title = " ".join(link.get_text(" ").split())
        if not href or not title or href.startswith("#"):
            continue

        try:
            url = normalize_url(urljoin(index_url, href))
        except ValueError:
            logger.debug(f"Skipping unparseable href {href!r}")
            continue

        if not is_likely_document_url(url, host, blocked_paths):
            continue
        if url in entries:
            continue

        context = link.parent.get_text(" ") if link.parent is not None else ""
        entries[url] = ManifestEntry(title=title, url=url, year=infer_year(context))

    return [entries[url] for url in sorted(entries)]


def save_manifest(entries: List[ManifestEntry], path: str) -> Path:
    """Write the manifest to disk for inspection."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps([e.to_dict() for e in entries], indent=2), encoding="utf-8")
    return out


def load_manifest(path: str) -> List[ManifestEntry]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return [ManifestEntry.from_dict(item) for item in data]


class ManifestBuilder:
    """Builds the ingestion manifest from the archive index page.

    ``fetch_page`` is the orchestrator's retrying fetch; the builder does
    not retry on its own.
    """

    def __init__(self, index_url: str,
                 fetch_page: Callable[[str], Awaitable[str]],
                 blocked_paths: FrozenSet[str] = DEFAULT_BLOCKED_PATHS):
        self.index_url = index_url
        self.fetch_page = fetch_page
        self.blocked_paths = blocked_paths

    async def build_manifest(self) -> List[ManifestEntry]:
        logger.info(f"Fetching archive index {self.index_url}")
        html = await self.fetch_page(self.index_url)
        entries = parse_manifest(html, self.index_url, self.blocked_paths)
        logger.info(f"Discovered {len(entries)} candidate posts")
        return entries
