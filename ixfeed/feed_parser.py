"""RSS/Atom/JSON feed parsing into (loc, lastmod) entries."""

import calendar
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import feedparser

from ixfeed.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

JSON_FEED_VERSION_PREFIX = "https://jsonfeed.org/version/"


def _struct_to_datetime(value) -> Optional[datetime]:
    # feedparser returns time_struct in UTC
    if not value:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


def _entry_link(entry) -> Optional[str]:
    link = entry.get("link")
    if link:
        return link
    for candidate in entry.get("links", []) or []:
        href = candidate.get("href")
        if href:
            return href
    # Some feeds only carry a permalink-style id
    entry_id = entry.get("id", "")
    if entry_id.startswith(("http://", "https://")):
        return entry_id
    return None


def _looks_like_json(content: Union[bytes, str]) -> bool:
    head = content[:64].lstrip()
    if isinstance(head, bytes):
        head = head.lstrip(b"\xef\xbb\xbf").decode("utf-8", errors="ignore")
    return head.lstrip("\ufeff").startswith("{")


def _error(msg: str) -> Dict[str, Any]:
    logger.error(msg)
    return {"type": "error", "urls": None, "error_message": msg}


def parse_json_feed(content: Union[bytes, str], feed_url: str = "") -> Dict[str, Any]:
    """
    Parse a JSON Feed (https://jsonfeed.org) body.

    The URL of an item is `url`, else a URL-shaped `id`; the date prefers
    `date_modified` over `date_published`.

    Returns:
        {'type': 'feed' | 'error', 'urls': [{'loc', 'lastmod'}] or None, 'error_message'}
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return _error(f"JSON feed decoding error for {feed_url}: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        return _error(f"JSON feed {feed_url} has no 'items' list")
    version = data.get("version")
    if not (isinstance(version, str) and version.startswith(JSON_FEED_VERSION_PREFIX)):
        logger.warning(f"JSON feed {feed_url} has unexpected version {version!r}, reading items anyway")

    entries: List[Dict[str, Any]] = []
    for item in data["items"]:
        if not isinstance(item, dict):
            continue
        loc = item.get("url")
        if not isinstance(loc, str) or not loc.strip():
            item_id = item.get("id")
            loc = item_id if isinstance(item_id, str) and item_id.startswith(("http://", "https://")) else None
        if not loc:
            logger.debug(f"Skipping JSON feed item without url in {feed_url}")
            continue
        lastmod = parse_timestamp(item.get("date_modified")) or parse_timestamp(item.get("date_published"))
        entries.append({"loc": loc.strip(), "lastmod": lastmod})

    logger.debug(f"Extracted {len(entries)} entries from {feed_url} (json feed)")
    return {"type": "feed", "urls": entries, "error_message": None}


def parse_feed(content: Union[bytes, str], feed_url: str = "") -> Dict[str, Any]:
    """
    Parse a feed body. JSON Feed is read with json; RSS and Atom go through
    feedparser.

    For each entry the URL is its first link (falling back to a URL-shaped id);
    the date prefers `updated` (content changed) over `published`.

    Returns:
        {'type': 'feed' | 'error', 'urls': [{'loc', 'lastmod'}] or None, 'error_message'}
    """
    if content and _looks_like_json(content):
        return parse_json_feed(content, feed_url)

    # content-location lets feedparser resolve relative entry links
    headers = {"content-location": feed_url} if feed_url else None
    feed = feedparser.parse(content, response_headers=headers)

    if feed.bozo and not feed.entries and not feed.get("version"):
        return _error(f"Feed parsing error for {feed_url}: {feed.get('bozo_exception')}")

    if feed.bozo:
        logger.debug(f"Feed {feed_url} parsed with warnings: {feed.get('bozo_exception')}")

    entries: List[Dict[str, Any]] = []
    for entry in feed.entries:
        loc = _entry_link(entry)
        if not loc:
            logger.debug(f"Skipping feed entry without link in {feed_url}")
            continue
        lastmod = _struct_to_datetime(entry.get("updated_parsed")) or _struct_to_datetime(
            entry.get("published_parsed")
        )
        entries.append({"loc": loc.strip(), "lastmod": lastmod})

    logger.debug(f"Extracted {len(entries)} entries from {feed_url} ({feed.get('version') or 'unknown format'})")
    return {"type": "feed", "urls": entries, "error_message": None}
