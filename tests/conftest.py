"""
Shared fixtures: temporary SQLite stores, in-memory fetchers and HTTP
sessions. Nothing here touches the network.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ixfeed.errors import DecodeError  # noqa: E402
from ixfeed.ledger import LedgerStore  # noqa: E402
from ixfeed.models import KIND_SITEMAP, Source  # noqa: E402

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


# =============================================================================
# BUILDERS
# =============================================================================

def urlset_xml(entries: Sequence[Tuple[str, Optional[str]]]) -> str:
    rows = []
    for loc, lastmod in entries:
        lm = f"<lastmod>{lastmod}</lastmod>" if lastmod else ""
        rows.append(f"<url><loc>{loc}</loc>{lm}</url>")
    return f'<?xml version="1.0"?><urlset xmlns="{SITEMAP_NS}">{"".join(rows)}</urlset>'


def index_xml(children: Sequence[str]) -> str:
    rows = "".join(f"<sitemap><loc>{c}</loc></sitemap>" for c in children)
    return f'<?xml version="1.0"?><sitemapindex xmlns="{SITEMAP_NS}">{rows}</sitemapindex>'


def rss_xml(items: Sequence[Tuple[str, Optional[str]]]) -> str:
    rows = []
    for link, pub in items:
        date = f"<pubDate>{pub}</pubDate>" if pub else ""
        rows.append(f"<item><title>{link}</title><link>{link}</link>{date}</item>")
    return (
        '<?xml version="1.0"?><rss version="2.0"><channel><title>Test</title>'
        f'<link>https://example.com/</link>{"".join(rows)}</channel></rss>'
    )


# =============================================================================
# FAKES
# =============================================================================

class FakeFetcher:
    """Serves documents from a dict; unknown URLs fail like an HTTP 404."""

    def __init__(self, pages: Optional[Dict[str, Union[str, bytes]]] = None):
        self.pages = dict(pages or {})
        self.requests: List[str] = []

    def fetch(self, url: str, timeout: Optional[int] = None) -> bytes:
        self.requests.append(url)
        if url not in self.pages:
            raise DecodeError(f"Failed to fetch {url}: HTTP 404", url=url)
        body = self.pages[url]
        return body.encode("utf-8") if isinstance(body, str) else body

    def probe(self, url: str, timeout: int = 15):
        if url in self.pages:
            return 200, "application/xml"
        return None, ""

    def close(self) -> None:
        pass


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code
        self.headers = {}


class FakeSession:
    """Stands in for requests.Session; answers with queued status codes (200 by default)."""

    def __init__(self, statuses: Optional[Sequence[int]] = None):
        self.statuses = list(statuses or [])
        self.calls: List[dict] = []
        self.headers: Dict[str, str] = {}
        self.closed = False

    def _respond(self) -> FakeResponse:
        return FakeResponse(self.statuses.pop(0) if self.statuses else 200)

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append({"method": "GET", "url": url, "params": params})
        return self._respond()

    def post(self, url, json=None, headers=None, timeout=None, **kwargs):
        self.calls.append({"method": "POST", "url": url, "json": json, "headers": headers})
        return self._respond()

    def close(self) -> None:
        self.closed = True


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def store(tmp_path):
    ledger = LedgerStore(str(tmp_path / "data" / "ixfeed.db"))
    yield ledger
    ledger.close()


@pytest.fixture
def add_source(store):
    """Create a fully configured source and return it as stored."""

    def _add(url: str = "https://example.com/sitemap.xml", kind: str = KIND_SITEMAP,
             api_key: str = "abc123key", host: str = "example.com") -> Source:
        source_id = store.add_source(kind, url, api_key=api_key, host=host)
        return store.get_source(source_id)

    return _add
