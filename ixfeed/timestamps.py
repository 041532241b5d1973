"""
Timestamp helpers.

Feed and sitemap dates arrive in mixed formats (W3C datetime, plain dates,
RFC 822). pandas parses them all; everything is normalized to aware UTC so
comparisons are strict and storage is a single ISO-8601 format.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import pandas as pd

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a date value into an aware UTC datetime, or None if absent/unparseable."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None

    # Use utc=True to handle mixed timezone formats consistently
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(ts):
        logger.debug(f"Unparseable timestamp treated as missing: {value!r}")
        return None
    # Ledger precision is microseconds; sub-microsecond digits are dropped
    return ts.floor("us").to_pydatetime()


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC representation used in the ledger."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
