"""
Interaction policy: whether a delta is submitted, and whether the ledger is
written, for dry-run, unattended and interactive runs.

Interactive first runs default to NOT submitting (first inventories are
large and historical); interactive incremental runs default to submitting.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Union

from ixfeed.models import IncrementalDelta, InitialObservation

logger = logging.getLogger(__name__)

MODE_DRY_RUN = "dry-run"
MODE_UNATTENDED = "unattended"
MODE_INTERACTIVE = "interactive"
MODES = (MODE_DRY_RUN, MODE_UNATTENDED, MODE_INTERACTIVE)

# confirm(prompt, default) -> bool
Confirm = Callable[[str, bool], bool]


@dataclass(frozen=True)
class Decision:
    submit: bool
    commit: bool
    reason: str = ""


def decide(mode: str, delta: Union[InitialObservation, IncrementalDelta], confirm: Confirm) -> Decision:
    """Pick submit/commit for one source's delta. Prompts only in interactive mode."""
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode!r}")

    if mode == MODE_DRY_RUN:
        return Decision(submit=False, commit=False, reason="dry run")

    count = len(delta.submittable)

    if count == 0:
        # Nothing to submit; a first run still records that it happened
        return Decision(submit=False, commit=delta.is_initial, reason="nothing to submit")

    if mode == MODE_UNATTENDED:
        return Decision(submit=True, commit=True, reason="unattended")

    if delta.is_initial:
        logger.warning("Submitting all URLs on first run may include outdated or deprecated links.")
        answer = confirm(f"Do you want to submit all {count} found URLs?", False)
        # The initial inventory is stored whatever the answer
        return Decision(submit=bool(answer), commit=True,
                        reason="confirmed" if answer else "first run stored without submitting")

    answer = confirm(f"Submit {count} URL(s) to IndexNow?", True)
    if answer:
        return Decision(submit=True, commit=True, reason="confirmed")
    return Decision(submit=False, commit=False, reason="submission cancelled")
