"""
1.0 Change Log Module
Keeps a CSV history of what each run detected and submitted.

Key features:
- Per-source folder structure with source-prefixed filenames
- Monthly change log files to prevent size bloat
- Schema migration when columns are added
"""

import pandas as pd
import os
import logging
from typing import Dict, List, Optional, Sequence, Union
from datetime import datetime

from ixfeed.models import IncrementalDelta, InitialObservation, Outcome
from ixfeed.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)

CHANGE_LOG_COLUMNS = [
    'detected_at', 'source_id', 'loc', 'change_type',
    'lastmod', 'lastmod_prev', 'submitted', 'status',
]


class ChangeLog:
    """
    2.0 ChangeLog Class
    Appends one row per submittable URL of a committed run.
    """

    def __init__(self, data_dir: str = "data"):
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)

    # =========================================================================
    # 3.0 FILE PATH HELPERS
    # =========================================================================

    def source_dir(self, source_id: int) -> str:
        """
        3.1 Folder of one source.

        Layout:
            data/
                source_3/
                    source_3_changes_YYYY-MM.csv (monthly changes)
        """
        path = os.path.join(self.data_dir, f"source_{source_id}")
        os.makedirs(path, exist_ok=True)
        return path

    def monthly_path(self, source_id: int, run_ts: datetime) -> str:
        """3.2 Get the path for the monthly change log file."""
        month_str = run_ts.strftime("%Y-%m")
        return os.path.join(self.source_dir(source_id), f"source_{source_id}_changes_{month_str}.csv")

    # =========================================================================
    # 4.0 BUILD + SAVE
    # =========================================================================

    def build_rows(self, delta: Union[InitialObservation, IncrementalDelta],
                   outcomes: Sequence[Outcome], run_ts: datetime) -> pd.DataFrame:
        """4.1 One row per submittable URL with its batch status."""
        status_by_url: Dict[str, Optional[int]] = {}
        for outcome in outcomes:
            for url in outcome.batch.urls:
                status_by_url[url] = outcome.status

        rows: List[dict] = []
        base = {'detected_at': format_timestamp(run_ts), 'source_id': delta.source.id}
        for item in delta.new:
            rows.append({**base, 'loc': item.url, 'change_type': 'discovered',
                         'lastmod': format_timestamp(item.modified_at), 'lastmod_prev': None})
        for mod in delta.modified:
            rows.append({**base, 'loc': mod.url, 'change_type': 'modified',
                         'lastmod': format_timestamp(mod.item.modified_at),
                         'lastmod_prev': format_timestamp(mod.previous)})

        df = pd.DataFrame(rows, columns=CHANGE_LOG_COLUMNS)
        if not df.empty:
            # Vectorized lookup instead of per-row loops
            df['status'] = df['loc'].map(status_by_url)
            df['submitted'] = df['status'].isin([200, 202])
        return df

    def record(self, delta: Union[InitialObservation, IncrementalDelta],
               outcomes: Sequence[Outcome], run_ts: Optional[datetime] = None) -> Optional[str]:
        """
        4.2 Append the delta of one run to the monthly CSV log.

        Returns:
            Path written, or None when there was nothing to log
        """
        run_ts = run_ts or utc_now()
        changes_df = self.build_rows(delta, outcomes, run_ts)
        if changes_df.empty:
            return None
        change_log_path = self.monthly_path(delta.source.id, run_ts)
        self._save_change_log(changes_df, change_log_path)
        return change_log_path

    def _save_change_log(self, changes_df: pd.DataFrame, change_log_path: str) -> None:
        """
        4.3 Append detected changes to a monthly CSV log file.

        Handles schema migrations when new columns are added.
        """
        final_df = changes_df.reindex(columns=CHANGE_LOG_COLUMNS)

        if not os.path.exists(change_log_path):
            final_df.to_csv(change_log_path, mode='w', header=True, index=False)
            logger.info(f"Created change log with {len(final_df):,} changes at {change_log_path}")
            return

        existing_cols = list(pd.read_csv(change_log_path, nrows=0).columns)
        if existing_cols != CHANGE_LOG_COLUMNS:
            # Schema mismatch - migrate existing data to new schema
            logger.info(f"Migrating {change_log_path} to current schema")
            existing_df = pd.read_csv(change_log_path, low_memory=False).reindex(columns=CHANGE_LOG_COLUMNS)
            combined_df = pd.concat([existing_df, final_df], ignore_index=True)
            combined_df.to_csv(change_log_path, mode='w', header=True, index=False)
        else:
            final_df.to_csv(change_log_path, mode='a', header=False, index=False)
        logger.info(f"Appended {len(final_df):,} changes to {change_log_path}")

    def load(self, source_id: int, run_ts: Optional[datetime] = None) -> pd.DataFrame:
        """4.4 Read one month of history (current month by default)."""
        path = self.monthly_path(source_id, run_ts or utc_now())
        if not os.path.exists(path):
            return pd.DataFrame(columns=CHANGE_LOG_COLUMNS)
        return pd.read_csv(path)
