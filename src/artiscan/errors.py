from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ErrorCategory(str, Enum):
    CAPTURE_TIMEOUT = "capture-timeout"
    LOW_CONFIDENCE = "recognition-low-confidence"
    PARSE_MISMATCH = "parse-mismatch"
    NAVIGATION_STUCK = "navigation-stuck"
    INVALID_RECORD = "invalid-record"
    CONTROL_LOST = "control-lost"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ScanError(RuntimeError):
    """Base class for every classified scanning failure."""

    category: Optional[ErrorCategory] = None
    fatal = False


class CaptureError(ScanError):
    category = ErrorCategory.CAPTURE_TIMEOUT


class ControlError(ScanError):
    category = ErrorCategory.CONTROL_LOST
    fatal = True


class RecognitionError(ScanError):
    """
    Malformed recognizer input (zero-area, bad pixel format) or a recognition
    pass that outlived its timeout.
    """

    # Counted with capture failures: both mean the frame was not readable.
    category = ErrorCategory.CAPTURE_TIMEOUT


class ParseError(ScanError):
    category = ErrorCategory.PARSE_MISMATCH

    def __init__(self, field: str, raw: str, reason: str = "") -> None:
        self.field = field
        self.raw = raw
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"could not parse {field} from {raw!r}{detail}")


class ValidationError(ScanError):
    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        category: ErrorCategory = ErrorCategory.INVALID_RECORD,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.category = category


class NavigationStuckError(ScanError):
    category = ErrorCategory.NAVIGATION_STUCK
    fatal = True


class CancelledError(ScanError):
    """Scan stopped on request. Terminal, but not counted as a failure."""


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

_SUGGESTIONS: Dict[ErrorCategory, str] = {
    ErrorCategory.CAPTURE_TIMEOUT: (
        "Keep the game window visible and in the foreground; avoid overlays "
        "and screen recorders that hold the display."
    ),
    ErrorCategory.LOW_CONFIDENCE: (
        "Use a supported 16:9 resolution, disable HDR/filters, or raise the "
        "base delay so the detail panel finishes animating."
    ),
    ErrorCategory.PARSE_MISMATCH: (
        "Check the game language is English and the tessdata model matches it."
    ),
    ErrorCategory.NAVIGATION_STUCK: (
        "The list stopped advancing; close popups and make sure the backpack "
        "artifact tab is open and sorted."
    ),
    ErrorCategory.INVALID_RECORD: (
        "Recognized values were out of range; enable --debug to inspect crops."
    ),
    ErrorCategory.CONTROL_LOST: (
        "The game window was closed or recreated; restart the scan."
    ),
}


def error_suggestion(category: ErrorCategory) -> str:
    return _SUGGESTIONS.get(category, "")


class ErrorStats:
    """
    Occurrence count per failure category for one scan session.
    """

    def __init__(self) -> None:
        self._counts: Counter = Counter()

    def record(self, category: ErrorCategory, count: int = 1) -> None:
        self._counts[ErrorCategory(category)] += count

    def __getitem__(self, category) -> int:
        return self._counts[ErrorCategory(category)]

    def __len__(self) -> int:
        return len(self._counts)

    def __iter__(self):
        return iter(self._counts)

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def most_common(self) -> List[Tuple[ErrorCategory, int]]:
        return self._counts.most_common()

    def as_dict(self) -> Dict[str, int]:
        return {category.value: count for category, count in self._counts.items()}

    def success_rate(self, processed: int) -> float:
        attempts = processed + self.total
        if attempts == 0:
            return 1.0
        return processed / attempts

    def summary(self) -> str:
        if not self._counts:
            return "no errors"
        parts = [f"{category.value}={count}" for category, count in self.most_common()]
        return ", ".join(parts)
