"""URL canonicalization and validation for ledger keys and source URLs."""

import logging
from typing import Iterable, Optional
from urllib.parse import urlparse, urlunparse

from ixfeed.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")


def host_of(url: str) -> Optional[str]:
    """Lower-cased hostname of a URL, or None."""
    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def canonicalize_url(url: str, https_hosts: Iterable[str] = ()) -> str:
    """Canonicalize a decoded URL before it is used as a ledger key.

    - Lowercase scheme + hostname (path and query are case-sensitive, kept as-is)
    - Remove fragments
    - Upgrade http:// to https:// when the host is known to serve HTTPS

    Raises:
        ValidationError: for empty, relative, non-http(s) or host-less URLs.
    """
    if not url or not url.strip():
        raise ValidationError("Empty URL", url=url)

    raw = url.strip()
    try:
        p = urlparse(raw)
        hostname = p.hostname
    except ValueError as e:
        raise ValidationError(f"Malformed URL: {e}", url=raw)

    scheme = (p.scheme or "").lower()
    if scheme not in ALLOWED_SCHEMES:
        raise ValidationError(f"URL must use HTTP or HTTPS, got: {scheme or 'none'}", url=raw)
    if not hostname:
        raise ValidationError("URL must have a valid host", url=raw)

    if scheme == "http" and hostname.lower() in {h.lower() for h in https_hosts}:
        scheme = "https"

    netloc = p.netloc
    # Lowercase the host part only; userinfo (rare) keeps its case
    if "@" in netloc:
        userinfo, _, hostport = netloc.rpartition("@")
        netloc = f"{userinfo}@{hostport.lower()}"
    else:
        netloc = netloc.lower()

    return urlunparse((scheme, netloc, p.path or "/", p.params, p.query, ""))


def normalize_source_url(url: str) -> str:
    """Normalize a user-entered feed/sitemap URL.

    Adds https:// when no scheme is given and upgrades http:// to https://.
    """
    if not url or not url.strip():
        raise ValidationError("Source URL is required", url=url)

    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
        logger.info(f"Added HTTPS prefix: {candidate}")

    scheme = urlparse(candidate).scheme.lower()
    if scheme == "http":
        candidate = "https://" + candidate.split("://", 1)[1]
        logger.info(f"Auto-upgraded to HTTPS: {candidate}")
    elif scheme != "https":
        raise ValidationError(f"URL must use HTTP or HTTPS, got: {scheme}", url=url)

    host = host_of(candidate)
    return canonicalize_url(candidate, https_hosts=[host] if host else [])
