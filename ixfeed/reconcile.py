"""
1.0 Reconciliation Engine
Classifies a freshly decoded entry set against the ledger snapshot of the
same source and commits ledger updates once submission outcomes are known.

Classification is pure. Persistence only happens in commit(), in a single
transaction per source.

Change rules:
- URL absent from the ledger                                  -> new
- URL present, both timestamps present, incoming > stored     -> modified
- anything else (equal, older, or a date missing on a side)   -> unchanged

A source whose first run has not completed yields an InitialObservation:
every item is stored on commit regardless of what happened downstream.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from ixfeed.ledger import LedgerStore
from ixfeed.models import (
    CommitResult,
    DecodedItem,
    IncrementalDelta,
    InitialObservation,
    LedgerEntry,
    ModifiedItem,
    Outcome,
    Source,
)

logger = logging.getLogger(__name__)

Delta = Union[InitialObservation, IncrementalDelta]


def _newest(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def collapse_duplicates(items: Iterable[DecodedItem]) -> List[DecodedItem]:
    """
    2.1 One item per URL, at the position of its first occurrence.

    When a URL is listed more than once (several sitemaps, repeated feed
    entries) the newest timestamp wins.
    """
    by_url: "OrderedDict[str, DecodedItem]" = OrderedDict()
    for item in items:
        seen = by_url.get(item.url)
        if seen is None:
            by_url[item.url] = item
        else:
            by_url[item.url] = DecodedItem(url=item.url, modified_at=_newest(seen.modified_at, item.modified_at))
    return list(by_url.values())


def is_modified(incoming: DecodedItem, stored: LedgerEntry) -> bool:
    """2.2 Strictly-newer rule; absence of a date is not evidence of change."""
    if incoming.modified_at is None or stored.modified_at is None:
        return False
    return incoming.modified_at > stored.modified_at


def reconcile(source: Source, decoded_items: Iterable[DecodedItem],
              snapshot: Dict[str, LedgerEntry]) -> Delta:
    """
    3.0 Classify decoded items for one source.

    Args:
        source: The source being processed (its first-run flag picks the variant)
        decoded_items: Items as yielded by the entry decoder
        snapshot: Every ledger row of the source, keyed by URL

    Returns:
        InitialObservation on first run, IncrementalDelta otherwise
    """
    items = collapse_duplicates(decoded_items)

    if not items:
        logger.warning(f"[{source.id}] No URLs found in {source.kind} {source.url}")

    if not source.first_run_completed:
        return InitialObservation(source=source, items=tuple(items))

    new: List[DecodedItem] = []
    modified: List[ModifiedItem] = []
    unchanged: List[DecodedItem] = []

    for item in items:
        stored = snapshot.get(item.url)
        if stored is None:
            new.append(item)
        elif is_modified(item, stored):
            modified.append(ModifiedItem(item=item, previous=stored.modified_at))
        else:
            unchanged.append(item)

    return IncrementalDelta(
        source=source,
        new=tuple(new),
        modified=tuple(modified),
        unchanged=tuple(unchanged),
    )


def acknowledged_urls(outcomes: Sequence[Outcome]) -> Set[str]:
    """URLs of every batch the gateway acknowledged with 200/202."""
    urls: Set[str] = set()
    for outcome in outcomes:
        if outcome.ok:
            urls.update(outcome.batch.urls)
    return urls


def commit(store: LedgerStore, delta: Delta, outcomes: Optional[Sequence[Outcome]] = None,
           *, now: Optional[datetime] = None) -> CommitResult:
    """
    4.0 Persist the result of one run for one source.

    - InitialObservation: store every item, mark acknowledged ones as
      submitted, set the first-run flag. Always written.
    - IncrementalDelta: store only the URLs of acknowledged batches, with
      the incoming timestamp. URLs of failed batches are left untouched so
      the next run detects them again.

    Raises:
        LedgerWriteError: propagated from the store; nothing was written
    """
    outcomes = outcomes or []
    acked = acknowledged_urls(outcomes)
    source_id = delta.source.id

    if isinstance(delta, InitialObservation):
        rows = [(item.url, item.modified_at, item.url in acked) for item in delta.items]
        written = store.write_entries(source_id, rows, mark_first_run_completed=True, now=now)
        submitted = len([r for r in rows if r[2]])
        logger.info(
            f"[{source_id}] Initial observation stored: {written} URLs "
            f"({submitted} submitted), first run completed"
        )
        return CommitResult(source_id=source_id, written=written, submitted=submitted,
                            first_run_completed=True)

    candidates = list(delta.new) + [m.item for m in delta.modified]
    rows = [(item.url, item.modified_at, True) for item in candidates if item.url in acked]
    if not rows:
        logger.debug(f"[{source_id}] Nothing acknowledged, ledger unchanged")
        return CommitResult(source_id=source_id)

    written = store.write_entries(source_id, rows, now=now)
    logger.info(f"[{source_id}] Stored {written} submitted URL(s)")
    return CommitResult(source_id=source_id, written=written, submitted=written)
