from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .timing import AdaptiveDelay
from ..core.artifact import Artifact
from ..errors import ErrorCategory, ErrorStats, ScanError
from ..layout import Layout


class ScanState(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    CAPTURING = "capturing"
    RECOGNIZING = "recognizing"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    RETRYING = "retrying"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.ABORTED)


@dataclass(frozen=True)
class ItemTiming:
    index: int
    capture_seconds: float
    recognize_seconds: float
    total_seconds: float
    attempts: int


@dataclass
class ScanSession:
    """
    Everything one scan run accumulates. Only the scanner mutates it; the
    caller receives it whole once the run reaches a terminal state.
    """

    layout: Layout
    delay: AdaptiveDelay
    state: ScanState = ScanState.IDLE
    cursor: int = 0
    items_processed: int = 0
    records: List[Artifact] = field(default_factory=list)
    errors: ErrorStats = field(default_factory=ErrorStats)
    skipped: Counter = field(default_factory=Counter)
    filtered: int = 0
    expected_total: Optional[int] = None
    inventory_count_text: str = ""
    scrolled_rows: int = 0
    terminal_reason: str = ""
    abort_error: Optional[ScanError] = None
    cancelled: bool = False
    timings: List[ItemTiming] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def accepted(self) -> int:
        return len(self.records)

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())

    @property
    def completed(self) -> bool:
        return self.state == ScanState.COMPLETED

    def record_skip(self, category: ErrorCategory) -> None:
        self.skipped[ErrorCategory(category)] += 1

    @property
    def outcome_label(self) -> str:
        if self.state == ScanState.COMPLETED:
            return "completed"
        if self.cancelled:
            return "cancelled"
        if self.state == ScanState.ABORTED:
            return "aborted"
        return self.state.value
