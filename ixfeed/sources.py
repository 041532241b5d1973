"""
1.0 Source Management Module
Interactive add/remove/list/edit/show of monitored feeds and sitemaps.

Prompts go through questionary; every prompt helper can be monkeypatched
in tests. Settings live in the sources table of the ledger database.
"""

import logging
from typing import List, Optional

import questionary

from ixfeed.errors import ValidationError
from ixfeed.fetcher import Fetcher
from ixfeed.ledger import LedgerStore
from ixfeed.models import DEFAULT_SEARCHENGINE, KIND_FEED, KIND_SITEMAP, Source
from ixfeed.url_utils import host_of, normalize_source_url

logger = logging.getLogger(__name__)

KIND_CHOICES = {
    "Sitemap XML": KIND_SITEMAP,
    "RSS/Atom/JSON Feed": KIND_FEED,
}

XML_CONTENT_TYPES = ("xml", "text/plain", "application/octet-stream", "gzip")


# =============================================================================
# 2.0 PROMPT HELPERS
# =============================================================================

def ask_confirm(prompt: str, default: bool = False) -> bool:
    """2.1 Yes/no prompt. Ctrl-C counts as 'no'."""
    answer = questionary.confirm(prompt, default=default).ask()
    return bool(answer)


def ask_select(prompt: str, choices: List[str]) -> Optional[str]:
    if not choices:
        return None
    return questionary.select(prompt, choices=choices).ask()


def ask_text(prompt: str, default: Optional[str] = None) -> Optional[str]:
    result = questionary.text(prompt, default=default or "").ask()
    if result is None:
        return None
    result = result.strip()
    return result if result else default


def mask_key(key: str) -> str:
    """2.2 Show only the edges of an API key."""
    if not key:
        return "(not set)"
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}{'*' * (len(key) - 8)}{key[-4:]}"


def _source_choice(source: Source) -> str:
    return f"{source.id}: [{source.kind}] {source.url}"


def _pick_source(store: LedgerStore, prompt: str) -> Optional[Source]:
    sources = store.list_sources()
    if not sources:
        print("No sources configured. Use 'ixfeed --add' to add one.")
        return None
    choice = ask_select(prompt, [_source_choice(s) for s in sources])
    if choice is None:
        return None
    source_id = int(choice.split(":", 1)[0])
    return store.get_source(source_id)


# =============================================================================
# 3.0 URL VALIDATION
# =============================================================================

def validate_source_url(url: str, kind: str, fetcher: Fetcher) -> Optional[str]:
    """
    3.1 Normalize a source URL and check that it answers.

    Args:
        url: URL as typed by the operator
        kind: "feed" or "sitemap"
        fetcher: Used for the reachability probe

    Returns:
        Normalized URL, or None when the operator gave up on it

    Raises:
        ValidationError: the URL cannot be used at all
    """
    normalized = normalize_source_url(url)

    status, content_type = fetcher.probe(normalized)
    if status is None or status >= 400:
        detail = f"HTTP {status}" if status is not None else "unreachable"
        logger.warning(f"Source URL check failed ({detail}): {normalized}")
        if not ask_confirm("The URL could not be fetched. Add it anyway?", default=False):
            return None
        return normalized

    if kind == KIND_SITEMAP and content_type and not any(t in content_type.lower() for t in XML_CONTENT_TYPES):
        logger.warning(f"Content-Type '{content_type}' doesn't look like XML for a sitemap: {normalized}")

    logger.info(f"URL is accessible (HTTP {status})")
    return normalized


# =============================================================================
# 4.0 OPERATIONS
# =============================================================================

def add_source_interactive(store: LedgerStore, fetcher: Fetcher,
                           default_searchengine: str = DEFAULT_SEARCHENGINE) -> Optional[int]:
    """
    4.1 Ask for a new source and its submission settings, then store it.

    Returns:
        New source id, or None when cancelled
    """
    label = ask_select("What type of source do you want to add?", list(KIND_CHOICES))
    if label is None:
        return None
    kind = KIND_CHOICES[label]

    raw_url = ask_text(f"{label} URL:")
    if not raw_url:
        print("No URL entered. Nothing added.")
        return None

    try:
        url = validate_source_url(raw_url, kind, fetcher)
    except ValidationError as e:
        logger.error(f"Invalid source URL: {e}")
        return None
    if url is None:
        return None

    if store.source_exists(url):
        logger.warning(f"Source already exists: {url}")
        return None

    host = ask_text("Host (domain the URLs belong to):", default=host_of(url) or "")
    api_key = ask_text("IndexNow API key:")
    if not api_key:
        logger.warning("No API key entered. Run 'ixfeed --config' before submitting.")
    searchengine = ask_text("Search engine endpoint:", default=default_searchengine)

    source_id = store.add_source(kind, url, api_key or "", host or "", searchengine or default_searchengine)
    print(f"Added source {source_id}: {url}")
    return source_id


def remove_source_interactive(store: LedgerStore) -> bool:
    """4.2 Remove a source and its ledger rows after confirmation."""
    source = _pick_source(store, "Which source do you want to remove?")
    if source is None:
        return False
    entries = store.count_entries(source.id)
    if not ask_confirm(f"Remove {source.url} and its {entries} stored URL(s)?", default=False):
        print("Cancelled.")
        return False
    removed = store.remove_source(source.id)
    if removed:
        print(f"Removed source {source.id}: {source.url}")
    return removed


def edit_source_interactive(store: LedgerStore) -> bool:
    """4.3 Update api key, host and search engine of one source."""
    source = _pick_source(store, "Which source do you want to configure?")
    if source is None:
        return False

    api_key = ask_text(f"IndexNow API key [{mask_key(source.api_key)}]:", default=source.api_key)
    host = ask_text("Host:", default=source.host or host_of(source.url) or "")
    searchengine = ask_text("Search engine endpoint:", default=source.searchengine or DEFAULT_SEARCHENGINE)

    updated = store.update_source(
        source.id, source.kind, source.url,
        api_key or "", host or "", searchengine or DEFAULT_SEARCHENGINE,
    )
    if updated:
        print(f"Updated source {source.id}.")
    return updated


def list_sources(store: LedgerStore) -> List[Source]:
    """4.4 Print configured sources."""
    sources = store.list_sources()
    if not sources:
        print("No sources configured. Use 'ixfeed --add' to add one.")
        return sources

    print(f"\n{'=' * 50}")
    print("Configured sources")
    print(f"{'=' * 50}")
    for source in sources:
        state = "ready" if source.first_run_completed else "first run pending"
        print(f"  {source.id}. {source.url}")
        print(f"     type: {source.kind_label}, {store.count_entries(source.id)} URLs tracked, {state}")
    print(f"{'=' * 50}\n")
    return sources


def show_config(store: LedgerStore, config: dict) -> None:
    """4.5 Print runtime settings and every source's submission settings."""
    print(f"\n{'=' * 50}")
    print("Settings")
    print(f"{'=' * 50}")
    for key in sorted(config):
        print(f"  {key}: {config[key]}")

    sources = store.list_sources()
    print(f"\nSources ({len(sources)}):")
    for source in sources:
        print(f"  {source.id}. {source.url}")
        print(f"     api_key: {mask_key(source.api_key)}")
        print(f"     host: {source.host or '(not set)'}")
        print(f"     searchengine: {source.searchengine or '(not set)'}")
        missing = source.missing_settings()
        if missing:
            print(f"     [WARN] missing: {', '.join(missing)}")
    print(f"{'=' * 50}\n")


def clear_database(store: LedgerStore, confirm=ask_confirm) -> bool:
    """4.6 Remove every source and ledger row after an explicit 'yes'."""
    sources = len(store.list_sources())
    entries = store.count_entries()
    logger.warning(f"This will delete {sources} source(s) and {entries} stored URL(s).")
    if not confirm("Are you sure you want to clear the database?", False):
        print("Cancelled.")
        return False
    store.clear()
    print("Database cleared.")
    return True
