from datetime import datetime, timezone

import pytest

from ixfeed.errors import LedgerWriteError, StoreUnavailableError
from ixfeed.ledger import LedgerStore
from ixfeed.models import KIND_FEED

T1 = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)


def test_sources_are_listed_by_id(store):
    b = store.add_source(KIND_FEED, "https://b.example/feed")
    a = store.add_source("sitemap", "https://a.example/sitemap.xml", api_key="k", host="a.example")

    assert [s.id for s in store.list_sources()] == [b, a]
    source = store.get_source(a)
    assert source.host == "a.example"
    assert source.searchengine == "api.indexnow.org"
    assert not source.first_run_completed
    assert store.source_exists("https://b.example/feed")
    assert store.get_source(999) is None


def test_update_source(store):
    source_id = store.add_source(KIND_FEED, "https://b.example/feed")
    assert store.update_source(source_id, KIND_FEED, "https://b.example/feed", "key", "b.example", "yandex.com")
    assert store.get_source(source_id).searchengine == "yandex.com"
    assert not store.update_source(999, KIND_FEED, "https://b.example/feed", "", "", "")


def test_write_entries_upserts(store):
    source_id = store.add_source(KIND_FEED, "https://b.example/feed")

    store.write_entries(source_id, [("https://b.example/a", T1, False)], mark_first_run_completed=True)
    store.write_entries(source_id, [("https://b.example/a", T1, True)])
    store.write_entries(source_id, [("https://b.example/a", None, False)])

    entry = store.load_snapshot(source_id)["https://b.example/a"]
    assert entry.modified_at is None
    # a later unsubmitted write keeps the last submission time
    assert entry.submitted_at == T1
    assert store.count_entries(source_id) == 1
    assert store.get_source(source_id).first_run_completed


def test_first_run_flag_set_with_no_rows(store):
    source_id = store.add_source(KIND_FEED, "https://b.example/feed")
    assert store.write_entries(source_id, [], mark_first_run_completed=True) == 0
    assert store.get_source(source_id).first_run_completed


def test_write_failure_rolls_back(store):
    source_id = store.add_source(KIND_FEED, "https://b.example/feed")
    store.conn.execute("DROP TABLE ledger_entries")

    with pytest.raises(LedgerWriteError):
        store.write_entries(source_id, [("https://b.example/a", T1, False)], mark_first_run_completed=True)
    assert not store.get_source(source_id).first_run_completed


def test_remove_source_drops_its_ledger(store):
    keep = store.add_source(KIND_FEED, "https://a.example/feed")
    gone = store.add_source(KIND_FEED, "https://b.example/feed")
    store.write_entries(keep, [("https://a.example/1", T1, False)])
    store.write_entries(gone, [("https://b.example/1", T1, False)])

    assert store.remove_source(gone)
    assert store.count_entries() == 1
    assert store.load_snapshot(gone) == {}


def test_clear(store):
    source_id = store.add_source(KIND_FEED, "https://a.example/feed")
    store.write_entries(source_id, [("https://a.example/1", T1, False)])
    store.clear()
    assert store.list_sources() == []
    assert store.count_entries() == 0


def test_unavailable_store(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    with pytest.raises(StoreUnavailableError):
        LedgerStore(str(blocker / "ixfeed.db"))
