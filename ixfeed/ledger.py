"""
1.0 Source Ledger
SQLite store for configured sources and the per-source URL ledger.

Tables:
- sources:        one row per feed/sitemap with its submission settings and
                  the first-run-completed flag
- ledger_entries: one row per (source_id, url) with the last-known and
                  last-submitted modification timestamps

All multi-row writes for one source happen inside a single transaction.
"""

import logging
import os
import sqlite3
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ixfeed.errors import LedgerReadError, LedgerWriteError, StoreUnavailableError
from ixfeed.models import DEFAULT_SEARCHENGINE, LedgerEntry, Source
from ixfeed.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    url TEXT UNIQUE NOT NULL,
    api_key TEXT NOT NULL DEFAULT '',
    host TEXT NOT NULL DEFAULT '',
    searchengine TEXT NOT NULL DEFAULT 'api.indexnow.org',
    first_run_completed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL,
    url TEXT NOT NULL,
    modified_at TEXT,
    submitted_at TEXT,
    first_seen_at TEXT NOT NULL,
    UNIQUE(source_id, url),
    FOREIGN KEY (source_id) REFERENCES sources(id) ON DELETE CASCADE
);
"""

# (url, modified_at, submitted)
LedgerRow = Tuple[str, Optional[datetime], bool]


def _parse_stored(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        kind=row["kind"],
        url=row["url"],
        first_run_completed=bool(row["first_run_completed"]),
        api_key=row["api_key"],
        host=row["host"],
        searchengine=row["searchengine"],
    )


class LedgerStore:
    """
    2.0 LedgerStore Class
    Keyed access to Source records and LedgerEntry rows.
    """

    def __init__(self, db_path: str):
        """
        2.1 Open (and create if needed) the database.

        Raises:
            StoreUnavailableError: the database cannot be opened or initialized
        """
        self.db_path = db_path
        try:
            directory = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(directory, exist_ok=True)
            self.conn = sqlite3.connect(db_path, timeout=30)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.executescript(SCHEMA)
            self.conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailableError(f"Could not open database at {db_path}: {e}") from e
        logger.debug(f"LedgerStore initialized at {db_path}")

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # =========================================================================
    # 3.0 SOURCES
    # =========================================================================

    def list_sources(self) -> List[Source]:
        """3.1 All sources in deterministic (id) order."""
        rows = self.conn.execute("SELECT * FROM sources ORDER BY id").fetchall()
        return [_row_to_source(r) for r in rows]

    def get_source(self, source_id: int) -> Optional[Source]:
        row = self.conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        return _row_to_source(row) if row else None

    def source_exists(self, url: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM sources WHERE url = ?", (url,)).fetchone()
        return row is not None

    def add_source(self, kind: str, url: str, api_key: str = "", host: str = "",
                   searchengine: str = DEFAULT_SEARCHENGINE) -> int:
        """3.2 Insert a source and return its id."""
        with self.conn:
            cursor = self.conn.execute(
                "INSERT INTO sources (kind, url, api_key, host, searchengine, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (kind, url, api_key, host, searchengine, format_timestamp(utc_now())),
            )
        logger.info(f"Added source {cursor.lastrowid}: {kind} {url}")
        return cursor.lastrowid

    def update_source(self, source_id: int, kind: str, url: str, api_key: str, host: str,
                      searchengine: str) -> bool:
        with self.conn:
            cursor = self.conn.execute(
                "UPDATE sources SET kind = ?, url = ?, api_key = ?, host = ?, searchengine = ? WHERE id = ?",
                (kind, url, api_key, host, searchengine, source_id),
            )
        return cursor.rowcount > 0

    def remove_source(self, source_id: int) -> bool:
        """3.3 Delete a source and every ledger row it owns."""
        with self.conn:
            self.conn.execute("DELETE FROM ledger_entries WHERE source_id = ?", (source_id,))
            cursor = self.conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
        return cursor.rowcount > 0

    # =========================================================================
    # 4.0 LEDGER
    # =========================================================================

    def load_snapshot(self, source_id: int) -> Dict[str, LedgerEntry]:
        """
        4.1 Load every ledger row of a source, keyed by URL.

        Raises:
            LedgerReadError: the rows cannot be read or hold corrupt timestamps
        """
        try:
            rows = self.conn.execute(
                "SELECT url, modified_at, submitted_at FROM ledger_entries WHERE source_id = ?",
                (source_id,),
            ).fetchall()
            snapshot = {
                row["url"]: LedgerEntry(
                    source_id=source_id,
                    url=row["url"],
                    modified_at=_parse_stored(row["modified_at"]),
                    submitted_at=_parse_stored(row["submitted_at"]),
                )
                for row in rows
            }
        except (sqlite3.Error, ValueError) as e:
            raise LedgerReadError(f"Could not load ledger for source {source_id}: {e}") from e
        logger.debug(f"Loaded ledger snapshot for source {source_id}: {len(snapshot)} URLs")
        return snapshot

    def count_entries(self, source_id: Optional[int] = None) -> int:
        if source_id is None:
            row = self.conn.execute("SELECT COUNT(*) FROM ledger_entries").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM ledger_entries WHERE source_id = ?", (source_id,)
            ).fetchone()
        return row[0]

    def write_entries(self, source_id: int, rows: Iterable[LedgerRow],
                      mark_first_run_completed: bool = False, now: Optional[datetime] = None) -> int:
        """
        4.2 Upsert ledger rows (and optionally set the first-run flag) atomically.

        For rows flagged as submitted, submitted_at mirrors modified_at; rows
        stored without submission keep whatever submitted_at they had.

        Returns:
            Number of rows written

        Raises:
            LedgerWriteError: nothing was written (transaction rolled back)
        """
        first_seen = format_timestamp(now or utc_now())
        params = []
        for url, modified_at, submitted in rows:
            stamp = format_timestamp(modified_at)
            params.append((source_id, url, stamp, stamp if submitted else None, first_seen, int(bool(submitted))))
        try:
            with self.conn:
                self.conn.executemany(
                    """
                    INSERT INTO ledger_entries (source_id, url, modified_at, submitted_at, first_seen_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(source_id, url) DO UPDATE SET
                        modified_at = excluded.modified_at,
                        submitted_at = CASE WHEN ? THEN excluded.submitted_at
                                            ELSE ledger_entries.submitted_at END
                    """,
                    params,
                )
                if mark_first_run_completed:
                    self.conn.execute(
                        "UPDATE sources SET first_run_completed = 1 WHERE id = ?", (source_id,)
                    )
        except sqlite3.Error as e:
            raise LedgerWriteError(f"Could not commit ledger for source {source_id}: {e}") from e
        return len(params)

    # =========================================================================
    # 5.0 MAINTENANCE
    # =========================================================================

    def clear(self) -> None:
        """5.1 Destructive: remove every ledger row and source."""
        with self.conn:
            self.conn.execute("DELETE FROM ledger_entries")
            self.conn.execute("DELETE FROM sources")
        logger.warning(f"Database cleared: {self.db_path}")
