from __future__ import annotations

from typing import Optional

from ..errors import ErrorCategory

OUTCOME_ORDER = ("ACCEPTED", "FILTERED", "SKIPPED")

_CATEGORY_LABELS = {
    ErrorCategory.CAPTURE_TIMEOUT: "capture failed",
    ErrorCategory.LOW_CONFIDENCE: "low confidence",
    ErrorCategory.PARSE_MISMATCH: "unparsable field",
    ErrorCategory.NAVIGATION_STUCK: "list did not advance",
    ErrorCategory.INVALID_RECORD: "invalid record",
    ErrorCategory.CONTROL_LOST: "window lost",
}


def _describe_category(category: Optional[ErrorCategory]) -> str:
    if category is None:
        return ""
    return _CATEGORY_LABELS.get(category, category.value.replace("-", " "))


def _outcome_style(label: str) -> str:
    return {
        "ACCEPTED": "green",
        "FILTERED": "cyan",
        "SKIPPED": "yellow",
        "COMPLETED": "green",
        "CANCELLED": "yellow",
        "ABORTED": "red",
    }.get(label.upper(), "white")
