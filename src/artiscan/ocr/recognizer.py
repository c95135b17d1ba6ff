from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..errors import RecognitionError


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    confidence: float

    def __post_init__(self) -> None:
        clamped = min(1.0, max(0.0, float(self.confidence)))
        object.__setattr__(self, "confidence", clamped)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


EMPTY_RESULT = RecognitionResult("", 0.0)


def validate_pixels(pixels: np.ndarray) -> np.ndarray:
    """
    Reject input no recognizer can work with. Anything that passes is a
    legal sample, however unreadable it may be.
    """
    if not isinstance(pixels, np.ndarray):
        raise RecognitionError(f"expected a numpy array, got {type(pixels).__name__}")
    if pixels.ndim not in (2, 3):
        raise RecognitionError(f"unsupported pixel shape {pixels.shape}")
    if pixels.ndim == 3 and pixels.shape[2] not in (1, 3, 4):
        raise RecognitionError(f"unsupported channel count {pixels.shape[2]}")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise RecognitionError(f"zero-area region {pixels.shape[1]}x{pixels.shape[0]}")
    if pixels.dtype != np.uint8:
        raise RecognitionError(f"unsupported pixel format {pixels.dtype}")
    return pixels


class RecognizerStats:
    """Call count and inference time, safe to update from worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls = 0
        self.total_seconds = 0.0

    def add(self, seconds: float) -> None:
        with self._lock:
            self.calls += 1
            self.total_seconds += seconds

    @property
    def average_seconds(self) -> float:
        with self._lock:
            return self.total_seconds / self.calls if self.calls else 0.0


class TextRecognizer:
    """
    Turns a cropped region into text and a confidence score.

    The model is loaded once by `open()` and shared by concurrent
    `recognize()` calls, which must not change it.
    """

    def __init__(self) -> None:
        self.stats = RecognizerStats()

    def open(self) -> None:
        return None

    def close(self) -> None:
        return None

    def recognize(self, pixels: np.ndarray) -> RecognitionResult:
        validate_pixels(pixels)
        start = time.perf_counter()
        try:
            return self._recognize(pixels)
        finally:
            self.stats.add(time.perf_counter() - start)

    def _recognize(self, pixels: np.ndarray) -> RecognitionResult:
        raise NotImplementedError

    def __enter__(self) -> "TextRecognizer":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None
