"""Size-bounded submission batches."""

import math
from typing import Iterator, Sequence

from ixfeed.config import DEFAULT_MAX_BATCH_SIZE
from ixfeed.models import Batch


class Batches:
    """
    Lazy, restartable sequence of batches over a submittable URL list.

    Iterating twice yields the same batches; nothing is copied until a batch
    is produced.
    """

    def __init__(self, urls: Sequence[str], max_size: int = DEFAULT_MAX_BATCH_SIZE):
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1:
            raise ValueError(f"max_size must be a positive integer, got {max_size!r}")
        self.urls = urls
        self.max_size = max_size

    def __len__(self) -> int:
        return math.ceil(len(self.urls) / self.max_size)

    def __iter__(self) -> Iterator[Batch]:
        total = len(self)
        for index, start in enumerate(range(0, len(self.urls), self.max_size), start=1):
            yield Batch(urls=tuple(self.urls[start:start + self.max_size]), index=index, total=total)

    def __repr__(self) -> str:
        return f"Batches(urls={len(self.urls)}, max_size={self.max_size}, batches={len(self)})"


def batch(submittable: Sequence[str], max_size: int = DEFAULT_MAX_BATCH_SIZE) -> Batches:
    """Split submittable URLs (new before modified) into batches of at most max_size."""
    return Batches(list(submittable), max_size)
