from datetime import datetime, timezone

import pandas as pd

from ixfeed.change_log import CHANGE_LOG_COLUMNS, ChangeLog
from ixfeed.models import Batch, DecodedItem, IncrementalDelta, ModifiedItem, Outcome, Source

RUN_TS = datetime(2024, 6, 15, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 6, 1, tzinfo=timezone.utc)
T2 = datetime(2024, 6, 10, tzinfo=timezone.utc)
SOURCE = Source(id=7, kind="sitemap", url="https://x/sitemap.xml", api_key="k", host="x")


def _delta():
    return IncrementalDelta(
        source=SOURCE,
        new=(DecodedItem("https://x/new", None),),
        modified=(ModifiedItem(item=DecodedItem("https://x/mod", T2), previous=T1),),
        unchanged=(DecodedItem("https://x/same", T1),),
    )


def test_rows_per_submittable_url(tmp_path):
    outcome = Outcome(batch=Batch(urls=("https://x/new", "https://x/mod")), status=202, accepted_count=2)
    df = ChangeLog(str(tmp_path)).build_rows(_delta(), [outcome], RUN_TS)

    assert list(df.columns) == CHANGE_LOG_COLUMNS
    assert list(df["change_type"]) == ["discovered", "modified"]
    assert df["submitted"].all()
    assert df.iloc[1]["lastmod_prev"] == "2024-06-01T00:00:00+00:00"


def test_record_appends_to_monthly_file(tmp_path):
    change_log = ChangeLog(str(tmp_path))

    path = change_log.record(_delta(), [], RUN_TS)
    change_log.record(_delta(), [], RUN_TS)

    assert path.endswith("source_7_changes_2024-06.csv")
    df = change_log.load(7, RUN_TS)
    assert len(df) == 4
    assert not df["submitted"].any()


def test_old_schema_is_migrated(tmp_path):
    change_log = ChangeLog(str(tmp_path))
    path = change_log.monthly_path(7, RUN_TS)
    pd.DataFrame([{"detected_at": "x", "loc": "https://x/old"}]).to_csv(path, index=False)

    change_log.record(_delta(), [], RUN_TS)

    df = pd.read_csv(path)
    assert list(df.columns) == CHANGE_LOG_COLUMNS
    assert list(df["loc"]) == ["https://x/old", "https://x/new", "https://x/mod"]


def test_nothing_to_log(tmp_path):
    empty = IncrementalDelta(source=SOURCE)
    assert ChangeLog(str(tmp_path)).record(empty, [], RUN_TS) is None
