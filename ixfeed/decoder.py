"""
1.0 Entry Decoder
Turns a configured source into a lazy sequence of DecodedItem(url, modified_at).

Key features:
- Recursive sitemap index traversal with depth limit and cycle protection
- RSS/Atom/JSON feeds via feedparser
- URL validation and canonicalization (invalid URLs dropped, http upgraded
  to https for hosts known to serve HTTPS)
- Timestamps normalized to UTC; unparseable dates become "no date"
"""

import logging
from typing import Iterator, Optional, Set

from ixfeed.errors import DecodeError, ValidationError
from ixfeed.feed_parser import parse_feed
from ixfeed.fetcher import Fetcher
from ixfeed.models import DecodedItem, KIND_SITEMAP, Source
from ixfeed.sitemap_parser import SitemapParser
from ixfeed.timestamps import parse_timestamp
from ixfeed.url_utils import canonicalize_url, host_of

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


class EntryDecoder:
    """
    2.0 EntryDecoder Class
    Each call to decode() starts a fresh traversal, so the sequence is
    restartable per invocation.
    """

    def __init__(self, fetcher: Fetcher, max_depth: int = DEFAULT_MAX_DEPTH,
                 sitemap_parser: Optional[SitemapParser] = None):
        self.fetcher = fetcher
        self.max_depth = max_depth
        self.sitemap_parser = sitemap_parser or SitemapParser()

    def decode(self, source: Source) -> Iterator[DecodedItem]:
        """
        2.1 Yield the decoded items of one source.

        Raises:
            DecodeError: the feed/sitemap (or one of its child sitemaps) is
                unreachable or malformed.
        """
        source_host = host_of(source.url)
        https_hosts = {source_host} if source_host and source.url.startswith("https://") else set()

        if source.kind == KIND_SITEMAP:
            raw_entries = self._walk_sitemap(source.url, processed=set(), depth=0)
        else:
            raw_entries = self._read_feed(source.url)

        dropped = 0
        for entry in raw_entries:
            try:
                url = canonicalize_url(entry.get("loc") or "", https_hosts=https_hosts)
            except ValidationError as e:
                dropped += 1
                logger.warning(f"[{source.id}] Dropping invalid URL {e.url!r}: {e}")
                continue
            yield DecodedItem(url=url, modified_at=parse_timestamp(entry.get("lastmod")))

        if dropped:
            logger.warning(f"[{source.id}] {dropped} URL(s) failed validation and were skipped")

    def _read_feed(self, feed_url: str) -> Iterator[dict]:
        """2.2 Fetch and parse a feed."""
        content = self.fetcher.fetch(feed_url)
        parsed = parse_feed(content, feed_url=feed_url)
        if parsed["type"] == "error":
            raise DecodeError(parsed["error_message"], url=feed_url)
        logger.info(f"Feed {feed_url} contains {len(parsed['urls'])} entries.")
        yield from parsed["urls"]

    def _walk_sitemap(self, sitemap_url: str, processed: Set[str], depth: int) -> Iterator[dict]:
        """
        2.3 Fetch and parse a single sitemap URL (index or urlset).

        Recursively expands sitemap indexes and flattens all page entries.

        Args:
            sitemap_url: URL of the sitemap to process
            processed: Set of already-processed sitemap URLs (to avoid cycles)
            depth: Current nesting level (0 = the configured source)
        """
        if depth > self.max_depth:
            logger.warning(f"Maximum sitemap depth ({self.max_depth}) reached, skipping: {sitemap_url}")
            return

        if sitemap_url in processed:
            logger.info(f"Sitemap {sitemap_url} already processed. Skipping.")
            return
        processed.add(sitemap_url)

        logger.info(f"Fetching sitemap: {sitemap_url}")
        content = self.fetcher.fetch(sitemap_url)
        parsed_data = self.sitemap_parser.parse_sitemap(content, sitemap_url=sitemap_url)

        if parsed_data["type"] == "sitemapindex":
            sub_sitemaps = parsed_data.get("urls") or []
            logger.info(f"Sitemap index {sitemap_url} contains {len(sub_sitemaps)} sub-sitemaps.")
            for sub_sitemap in sub_sitemaps:
                yield from self._walk_sitemap(sub_sitemap["loc"], processed, depth + 1)

        elif parsed_data["type"] == "urlset":
            page_urls = parsed_data.get("urls") or []
            logger.info(f"URL set {sitemap_url} contains {len(page_urls)} page URLs.")
            yield from page_urls

        else:
            raise DecodeError(
                f"Error parsing sitemap {sitemap_url}: {parsed_data.get('error_message')}",
                url=sitemap_url,
            )
