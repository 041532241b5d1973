"""
1.0 Pipeline Module
Runs every selected source through decode -> reconcile -> policy -> batch ->
submit -> commit, one source at a time.

Key features:
- Deterministic order (by source id)
- Per-source isolation: a failing source is recorded and the loop moves on
- Per-batch isolation: a rejected batch is reported, the others still count
- End-of-run summary with succeeded/failed sources and batches
"""

import logging
from typing import Iterable, List, Optional, Union

from ixfeed.batcher import batch
from ixfeed.change_log import ChangeLog
from ixfeed.config import DEFAULT_MAX_BATCH_SIZE
from ixfeed.decoder import EntryDecoder
from ixfeed.errors import IxfeedError, SubmissionError
from ixfeed.ledger import LedgerStore
from ixfeed.models import (
    IncrementalDelta,
    InitialObservation,
    Outcome,
    RunSummary,
    Source,
    SourceResult,
)
from ixfeed.policy import MODE_DRY_RUN, MODE_INTERACTIVE, Confirm, decide
from ixfeed.reconcile import commit, reconcile
from ixfeed.submitter import Submitter, raise_for_outcome

logger = logging.getLogger(__name__)

PREVIEW_INITIAL = 10
PREVIEW_INCREMENTAL = 5


def _fmt(value) -> str:
    return value.isoformat() if value is not None else "no date"


def report_delta(delta: Union[InitialObservation, IncrementalDelta]) -> None:
    """2.0 Per-source listing of what would be (or will be) submitted."""
    source_id = delta.source.id
    if delta.is_initial:
        logger.info(f"[{source_id}] First run detected. {len(delta.items)} URL(s) found")
        for i, item in enumerate(delta.items[:PREVIEW_INITIAL], start=1):
            logger.info(f"    {i}. {item.url} ({_fmt(item.modified_at)})")
        if len(delta.items) > PREVIEW_INITIAL:
            logger.info(f"    ... and {len(delta.items) - PREVIEW_INITIAL} more")
        return

    if not delta.submittable:
        logger.info(
            f"[{source_id}] No new or modified URLs to submit. "
            f"All {len(delta.unchanged)} URL(s) are up to date."
        )
        return

    logger.info(
        f"[{source_id}] Found {len(delta.submittable)} URL(s) to submit: "
        f"{len(delta.new)} new, {len(delta.modified)} modified"
    )
    if delta.new:
        logger.info(f"  New URLs ({len(delta.new)}):")
        for item in delta.new[:PREVIEW_INCREMENTAL]:
            logger.info(f"    • {item.url} ({_fmt(item.modified_at)})")
        if len(delta.new) > PREVIEW_INCREMENTAL:
            logger.info(f"    ... and {len(delta.new) - PREVIEW_INCREMENTAL} more")
    if delta.modified:
        logger.info(f"  Modified URLs ({len(delta.modified)}):")
        for mod in delta.modified[:PREVIEW_INCREMENTAL]:
            logger.info(f"    • {mod.url} {_fmt(mod.previous)} → {_fmt(mod.item.modified_at)}")
        if len(delta.modified) > PREVIEW_INCREMENTAL:
            logger.info(f"    ... and {len(delta.modified) - PREVIEW_INCREMENTAL} more")


class Pipeline:
    """
    3.0 Pipeline Class
    Wires the collaborators for one invocation.
    """

    def __init__(
        self,
        store: LedgerStore,
        decoder: EntryDecoder,
        submitter: Submitter,
        mode: str = MODE_INTERACTIVE,
        confirm: Optional[Confirm] = None,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        change_log: Optional[ChangeLog] = None,
    ):
        self.store = store
        self.decoder = decoder
        self.submitter = submitter
        self.mode = mode
        self.confirm: Confirm = confirm or (lambda prompt, default: default)
        self.max_batch_size = max_batch_size
        self.change_log = change_log

    def submit_delta(self, source: Source, delta, result: SourceResult) -> List[Outcome]:
        """
        3.1 Submit every batch of a delta; a failed batch does not stop the rest.
        """
        batches = batch(delta.submittable, self.max_batch_size)
        if len(batches) > 1:
            logger.info(
                f"[{source.id}] Submitting {len(delta.submittable)} URLs in {len(batches)} batches "
                f"(max {self.max_batch_size} per batch)"
            )
        outcomes: List[Outcome] = []
        for b in batches:
            logger.info(f"[{source.id}] Batch {b.index}/{b.total} ({len(b)} URLs) -> {source.searchengine}")
            outcome = self.submitter.submit(b, source.api_key, source.host, source.searchengine)
            outcomes.append(outcome)
            try:
                raise_for_outcome(outcome)
            except SubmissionError as e:
                result.batches_failed += 1
                result.errors.append(str(e))
                if e.rate_limited:
                    logger.warning(f"[{source.id}] Rate limited on batch {b.index}; its URLs stay pending")
            else:
                result.batches_ok += 1
        return outcomes

    def process_source(self, source: Source) -> SourceResult:
        """
        4.0 Process a single source.

        Raises:
            IxfeedError: decode, ledger or configuration failure for this source
        """
        result = SourceResult(source_id=source.id, url=source.url)
        logger.info(f"[{source.id}] Fetching {source.kind} from {source.url}...")

        if self.mode != MODE_DRY_RUN and source.missing_settings():
            raise IxfeedError(
                f"Source {source.id} ({source.url}) is missing required configuration "
                f"({', '.join(source.missing_settings())}). Run 'ixfeed --config' to configure."
            )

        # 4.1 Decode (materialized: one pass, classification needs the whole set)
        items = list(self.decoder.decode(source))
        result.decoded = len(items)
        if items:
            logger.info(f"[{source.id}] Found {len(items)} URLs in {source.kind}.")

        # 4.2 Reconcile against the stored snapshot
        snapshot = self.store.load_snapshot(source.id)
        delta = reconcile(source, items, snapshot)
        result.new = len(delta.new)
        result.modified = len(delta.modified)
        if not items:
            result.status = "warning"
            result.message = "No URLs found"

        report_delta(delta)

        # 4.3 Gate
        decision = decide(self.mode, delta, self.confirm)
        logger.debug(f"[{source.id}] Decision: {decision}")
        if self.mode == MODE_DRY_RUN:
            if delta.submittable:
                logger.info(f"[{source.id}] Dry run: would submit {len(delta.submittable)} URL(s).")
            return result

        # 4.4 Submit
        outcomes: List[Outcome] = []
        if decision.submit:
            outcomes = self.submit_delta(source, delta, result)
        elif delta.submittable:
            logger.info(f"[{source.id}] {decision.reason.capitalize()}.")
            if not delta.is_initial:
                result.status = "skipped"
                result.message = decision.reason

        # 4.5 Commit
        if decision.commit:
            committed = commit(self.store, delta, outcomes)
            if self.change_log is not None and (outcomes or delta.is_initial):
                try:
                    self.change_log.record(delta, outcomes)
                except (OSError, ValueError) as e:
                    logger.warning(f"[{source.id}] Could not write change log: {e}")
            if committed.submitted:
                logger.info(f"[{source.id}] Successfully submitted and stored {committed.submitted} URL(s).")

        if result.batches_failed:
            result.status = "error"
            result.message = "; ".join(result.errors)
        return result

    def run(self, sources: Iterable[Source]) -> RunSummary:
        """
        5.0 Process sources sequentially, isolating failures per source.
        """
        summary = RunSummary()
        ordered = sorted(sources, key=lambda s: s.id)
        if len(ordered) > 1:
            logger.info(f"Processing {len(ordered)} sources ({self.mode})")

        for source in ordered:
            try:
                result = self.process_source(source)
            except IxfeedError as e:
                logger.error(f"[{source.id}] FAILED: {type(e).__name__}: {e}")
                result = SourceResult(source_id=source.id, url=source.url, status="error", message=str(e))
            except Exception as e:
                # Log error but don't crash - the next source still runs
                logger.error(f"[{source.id}] FAILED: {type(e).__name__}: {e}")
                logger.exception("Full traceback:")
                result = SourceResult(source_id=source.id, url=source.url, status="error", message=str(e))
            summary.results.append(result)
            logger.info("-" * 40)

        log_summary(summary)
        return summary


def log_summary(summary: RunSummary) -> None:
    """6.0 Summary of source results."""
    logger.info("=" * 60)
    logger.info("Source Processing Summary:")
    for result in summary.results:
        if result.failed:
            logger.error(f"  [FAIL] {result.source_id} {result.url}: {result.message or 'failed'}")
        elif result.status in ("warning", "skipped"):
            logger.warning(f"  [WARN] {result.source_id} {result.url}: {result.message}")
        else:
            logger.info(
                f"  [OK] {result.source_id} {result.url}: {result.decoded} URLs, "
                f"{result.new} new, {result.modified} modified"
            )
    logger.info(
        f"Sources: {summary.succeeded} succeeded, {summary.failed} failed, {summary.skipped} skipped. "
        f"Batches: {summary.batches_ok} submitted, {summary.batches_failed} failed."
    )
    logger.info("=" * 60)
