"""Classification and commit rules of the reconciliation engine."""

from datetime import datetime, timedelta, timezone

from ixfeed.models import (
    Batch,
    DecodedItem,
    IncrementalDelta,
    InitialObservation,
    LedgerEntry,
    Outcome,
    Source,
)
from ixfeed.reconcile import acknowledged_urls, collapse_duplicates, commit, is_modified, reconcile

T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T2 = T1 + timedelta(days=1)


def _source(first_run_completed=True, source_id=1):
    return Source(id=source_id, kind="sitemap", url="https://x/sitemap.xml",
                  first_run_completed=first_run_completed, api_key="k", host="x")


def _snapshot(*entries):
    return {url: LedgerEntry(source_id=1, url=url, modified_at=ts) for url, ts in entries}


def _ok(urls, status=200):
    return Outcome(batch=Batch(urls=tuple(urls)), status=status, accepted_count=len(urls))


# =============================================================================
# CLASSIFICATION
# =============================================================================

def test_scenario_b_modified_and_new():
    snapshot = _snapshot(("https://x/a", T1))
    items = [DecodedItem("https://x/a", T2), DecodedItem("https://x/b", None)]

    delta = reconcile(_source(), items, snapshot)

    assert isinstance(delta, IncrementalDelta)
    assert [m.url for m in delta.modified] == ["https://x/a"]
    assert delta.modified[0].previous == T1
    assert [i.url for i in delta.new] == ["https://x/b"]
    assert delta.unchanged == ()
    assert delta.submittable == ["https://x/b", "https://x/a"]


def test_partition_is_exhaustive_and_disjoint():
    snapshot = _snapshot(("https://x/a", T1), ("https://x/b", T2), ("https://x/c", None))
    items = [
        DecodedItem("https://x/a", T2),    # modified
        DecodedItem("https://x/b", T1),    # older -> unchanged
        DecodedItem("https://x/c", T2),    # stored date missing -> unchanged
        DecodedItem("https://x/d", None),  # new
    ]

    delta = reconcile(_source(), items, snapshot)

    new = {i.url for i in delta.new}
    modified = {m.url for m in delta.modified}
    unchanged = {i.url for i in delta.unchanged}
    assert new | modified | unchanged == {i.url for i in items}
    assert not (new & modified) and not (new & unchanged) and not (modified & unchanged)


def test_reconcile_is_idempotent():
    snapshot = _snapshot(("https://x/a", T1))
    items = [DecodedItem("https://x/a", T2), DecodedItem("https://x/b", T1)]

    assert reconcile(_source(), items, snapshot) == reconcile(_source(), items, snapshot)


def test_equal_or_older_timestamp_is_never_modified():
    stored = LedgerEntry(source_id=1, url="https://x/a", modified_at=T2)
    assert not is_modified(DecodedItem("https://x/a", T2), stored)
    assert not is_modified(DecodedItem("https://x/a", T1), stored)
    assert is_modified(DecodedItem("https://x/a", T2 + timedelta(seconds=1)), stored)


def test_one_sided_timestamps_are_unchanged():
    with_date = LedgerEntry(source_id=1, url="https://x/a", modified_at=T1)
    without_date = LedgerEntry(source_id=1, url="https://x/a", modified_at=None)
    assert not is_modified(DecodedItem("https://x/a", None), with_date)
    assert not is_modified(DecodedItem("https://x/a", T2), without_date)


def test_first_run_yields_initial_observation():
    items = [DecodedItem("https://x/a", T1), DecodedItem("https://x/b", None)]

    delta = reconcile(_source(first_run_completed=False), items, {})

    assert isinstance(delta, InitialObservation)
    assert delta.is_initial
    assert delta.submittable == ["https://x/a", "https://x/b"]
    assert delta.modified == () and delta.unchanged == ()


def test_duplicates_collapse_to_first_position_with_newest_date():
    items = [
        DecodedItem("https://x/a", T1),
        DecodedItem("https://x/b", None),
        DecodedItem("https://x/a", T2),
    ]
    collapsed = collapse_duplicates(items)
    assert [i.url for i in collapsed] == ["https://x/a", "https://x/b"]
    assert collapsed[0].modified_at == T2


def test_acknowledged_urls_only_counts_success():
    outcomes = [_ok(["https://x/a"]), _ok(["https://x/b"], status=202), _ok(["https://x/c"], status=429)]
    assert acknowledged_urls(outcomes) == {"https://x/a", "https://x/b"}


# =============================================================================
# COMMIT
# =============================================================================

def test_initial_commit_stores_everything_and_sets_flag(store, add_source):
    source = add_source()
    items = [DecodedItem("https://x/a", T1), DecodedItem("https://x/b", None)]
    delta = reconcile(source, items, store.load_snapshot(source.id))

    result = commit(store, delta, outcomes=[])

    assert result.written == 2 and result.submitted == 0
    assert store.get_source(source.id).first_run_completed
    snapshot = store.load_snapshot(source.id)
    assert set(snapshot) == {"https://x/a", "https://x/b"}
    assert snapshot["https://x/a"].modified_at == T1
    assert snapshot["https://x/a"].submitted_at is None


def test_initial_commit_marks_submitted_urls(store, add_source):
    source = add_source()
    delta = reconcile(source, [DecodedItem("https://x/a", T1), DecodedItem("https://x/b", T1)], {})

    commit(store, delta, outcomes=[_ok(["https://x/a"])])

    snapshot = store.load_snapshot(source.id)
    assert snapshot["https://x/a"].submitted_at == T1
    assert snapshot["https://x/b"].submitted_at is None


def test_incremental_commit_writes_only_acknowledged(store, add_source):
    source = add_source()
    commit(store, reconcile(source, [DecodedItem("https://x/a", T1)], {}), [])
    source = store.get_source(source.id)

    items = [DecodedItem("https://x/a", T2), DecodedItem("https://x/b", T1), DecodedItem("https://x/c", T1)]
    delta = reconcile(source, items, store.load_snapshot(source.id))
    outcomes = [_ok(["https://x/b", "https://x/a"]), _ok(["https://x/c"], status=429)]

    result = commit(store, delta, outcomes)

    assert result.written == 2
    snapshot = store.load_snapshot(source.id)
    assert snapshot["https://x/a"].modified_at == T2
    assert "https://x/b" in snapshot
    assert "https://x/c" not in snapshot


def test_failed_batch_is_detected_again(store, add_source):
    source = add_source()
    commit(store, reconcile(source, [DecodedItem("https://x/a", T1)], {}), [])
    source = store.get_source(source.id)

    items = [DecodedItem("https://x/a", T2), DecodedItem("https://x/b", T1)]
    first = reconcile(source, items, store.load_snapshot(source.id))
    commit(store, first, [_ok(first.submittable, status=500)])

    second = reconcile(source, items, store.load_snapshot(source.id))
    assert second == first


def test_commit_without_outcomes_leaves_incremental_ledger_alone(store, add_source):
    source = add_source()
    commit(store, reconcile(source, [DecodedItem("https://x/a", T1)], {}), [])
    source = store.get_source(source.id)
    before = store.load_snapshot(source.id)

    delta = reconcile(source, [DecodedItem("https://x/new", T1)], before)
    result = commit(store, delta)

    assert result.written == 0
    assert store.load_snapshot(source.id) == before
