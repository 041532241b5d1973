"""
Error taxonomy for ixfeed.

Decode and validation problems stay local to a source or a URL, ledger
problems fail one source, and only an unavailable store at startup aborts
the whole invocation.
"""

from typing import Optional


class IxfeedError(Exception):
    """Base class for all ixfeed errors."""


class ConfigError(IxfeedError):
    """Configuration file is unreadable or invalid."""


class DecodeError(IxfeedError):
    """Feed or sitemap is malformed or unreachable."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ValidationError(IxfeedError):
    """A single URL failed scheme/host checks and is dropped."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class StoreUnavailableError(IxfeedError):
    """The persistent store cannot be opened at all."""


class LedgerReadError(IxfeedError):
    """Persisted state for a source could not be loaded."""


class LedgerWriteError(IxfeedError):
    """Ledger updates for a source could not be committed."""


class SubmissionError(IxfeedError):
    """The notification API rejected a batch (or could not be reached)."""

    def __init__(self, message: str, status_code: Optional[int] = None, batch_index: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.batch_index = batch_index

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429
