import warnings
from datetime import datetime, timezone

import pytest

from ixfeed.errors import ValidationError
from ixfeed.timestamps import format_timestamp, parse_timestamp
from ixfeed.url_utils import canonicalize_url, host_of, normalize_source_url


@pytest.mark.parametrize("raw,expected", [
    ("HTTPS://Example.COM/Path?Q=1#frag", "https://example.com/Path?Q=1"),
    ("https://example.com", "https://example.com/"),
    ("  https://example.com/a  ", "https://example.com/a"),
])
def test_canonicalize(raw, expected):
    assert canonicalize_url(raw) == expected


def test_http_upgraded_only_for_https_hosts():
    assert canonicalize_url("http://example.com/a", https_hosts=["example.com"]) == "https://example.com/a"
    assert canonicalize_url("http://other.com/a", https_hosts=["example.com"]) == "http://other.com/a"


@pytest.mark.parametrize("raw", ["", "   ", "/relative/path", "mailto:a@example.com", "ftp://example.com/f", "https://"])
def test_invalid_urls_rejected(raw):
    with pytest.raises(ValidationError):
        canonicalize_url(raw)


def test_normalize_source_url():
    assert normalize_source_url("example.com/feed.xml") == "https://example.com/feed.xml"
    assert normalize_source_url("http://Example.com/sitemap.xml") == "https://example.com/sitemap.xml"
    with pytest.raises(ValidationError):
        normalize_source_url("ftp://example.com/feed")


def test_host_of():
    assert host_of("https://WWW.Example.com:8443/x") == "www.example.com"
    assert host_of("not a url") is None


def test_timestamps_normalize_to_utc():
    ts = parse_timestamp("2024-05-01T10:00:00+02:00")
    assert format_timestamp(ts) == "2024-05-01T08:00:00+00:00"
    assert format_timestamp(parse_timestamp("2024-05-01")) == "2024-05-01T00:00:00+00:00"
    assert parse_timestamp("yesterday-ish") is None
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


def test_nanosecond_timestamps_truncate_to_microseconds():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        ts = parse_timestamp("2024-05-01T10:00:00.123456789Z")
    assert ts == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
