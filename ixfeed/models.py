"""Data models shared by the decoder, ledger, engine and gateway."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

KIND_FEED = "feed"
KIND_SITEMAP = "sitemap"
SOURCE_KINDS = (KIND_FEED, KIND_SITEMAP)

DEFAULT_SEARCHENGINE = "api.indexnow.org"

SUCCESS_STATUSES = (200, 202)


@dataclass(frozen=True)
class Source:
    """One monitored feed or sitemap, with its submission settings."""
    id: int
    kind: str          # "feed" or "sitemap"
    url: str
    first_run_completed: bool = False
    api_key: str = ""
    host: str = ""
    searchengine: str = DEFAULT_SEARCHENGINE

    @property
    def kind_label(self) -> str:
        return "Sitemap XML" if self.kind == KIND_SITEMAP else "RSS/Atom/JSON Feed"

    def missing_settings(self) -> List[str]:
        missing = []
        if not self.api_key:
            missing.append("api_key")
        if not self.host:
            missing.append("host")
        if not self.searchengine:
            missing.append("searchengine")
        return missing


@dataclass(frozen=True)
class DecodedItem:
    """A (url, modified_at) pair as yielded by the entry decoder."""
    url: str
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class LedgerEntry:
    """Persisted knowledge about one URL of one source."""
    source_id: int
    url: str
    modified_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


@dataclass(frozen=True)
class ModifiedItem:
    """A URL whose incoming timestamp is newer than the stored one."""
    item: DecodedItem
    previous: Optional[datetime]

    @property
    def url(self) -> str:
        return self.item.url


@dataclass(frozen=True)
class InitialObservation:
    """First run of a source: every decoded item is new and all of it is stored."""
    source: Source
    items: Tuple[DecodedItem, ...] = ()

    @property
    def new(self) -> Tuple[DecodedItem, ...]:
        return self.items

    @property
    def modified(self) -> Tuple[ModifiedItem, ...]:
        return ()

    @property
    def unchanged(self) -> Tuple[DecodedItem, ...]:
        return ()

    @property
    def submittable(self) -> List[str]:
        return [item.url for item in self.items]

    @property
    def is_initial(self) -> bool:
        return True


@dataclass(frozen=True)
class IncrementalDelta:
    """Subsequent run: new, modified and unchanged are disjoint."""
    source: Source
    new: Tuple[DecodedItem, ...] = ()
    modified: Tuple[ModifiedItem, ...] = ()
    unchanged: Tuple[DecodedItem, ...] = ()

    @property
    def submittable(self) -> List[str]:
        return [item.url for item in self.new] + [m.url for m in self.modified]

    @property
    def is_initial(self) -> bool:
        return False


@dataclass(frozen=True)
class Batch:
    """Ordered slice of submittable URLs, consumed once by the gateway."""
    urls: Tuple[str, ...]
    index: int = 1   # 1-based
    total: int = 1

    def __len__(self) -> int:
        return len(self.urls)


@dataclass(frozen=True)
class Outcome:
    """Result of submitting one batch."""
    batch: Batch
    status: Optional[int]           # None when the request never got a response
    accepted_count: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def rate_limited(self) -> bool:
        return self.status == 429


@dataclass
class CommitResult:
    """What a ledger commit wrote for one source."""
    source_id: int
    written: int = 0
    submitted: int = 0
    first_run_completed: bool = False


@dataclass
class SourceResult:
    """Per-source result collected by the pipeline loop."""
    source_id: int
    url: str
    status: str = "success"   # success | warning | error | skipped
    message: str = ""
    decoded: int = 0
    new: int = 0
    modified: int = 0
    batches_ok: int = 0
    batches_failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status == "error" or self.batches_failed > 0


@dataclass
class RunSummary:
    """Aggregated results of one invocation."""
    results: List[SourceResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len([r for r in self.results if not r.failed and r.status != "skipped"])

    @property
    def failed(self) -> int:
        return len([r for r in self.results if r.failed])

    @property
    def skipped(self) -> int:
        return len([r for r in self.results if r.status == "skipped"])

    @property
    def batches_ok(self) -> int:
        return sum(r.batches_ok for r in self.results)

    @property
    def batches_failed(self) -> int:
        return sum(r.batches_failed for r in self.results)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0
