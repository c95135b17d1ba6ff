from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

import mss
import numpy as np

from ..errors import CaptureError
from ..geometry import Rect


@dataclass(frozen=True)
class CaptureFrame:
    """
    BGR pixels (H x W x 3, uint8) tagged with the screen rect they came from.
    """

    pixels: np.ndarray
    rect: Rect
    captured_at: float = field(default_factory=time.monotonic)

    def crop(self, rect: Rect) -> "CaptureFrame":
        if not self.rect.contains_rect(rect):
            raise CaptureError(f"crop {rect} is outside captured frame {self.rect}")
        x = rect.left - self.rect.left
        y = rect.top - self.rect.top
        pixels = self.pixels[y : y + rect.height, x : x + rect.width]
        return CaptureFrame(np.ascontiguousarray(pixels), rect, self.captured_at)


class Capturer:
    """
    Reads pixels for a screen rect. Implementations hold no scan state and
    must tolerate other processes drawing while they read.
    """

    def prepare(self, bounds: Rect) -> None:
        """Called once per capture cycle with the window rect."""
        return None

    def capture(self, rect: Rect) -> CaptureFrame:
        raise NotImplementedError

    def close(self) -> None:
        return None


def _to_bgr(shot) -> np.ndarray:
    frame = np.asarray(shot)
    if frame.ndim == 3 and frame.shape[2] == 4:
        frame = frame[:, :, :3]  # drop alpha, keep BGR order
    return np.ascontiguousarray(frame)


class MssCapturer(Capturer):
    """
    Grab each requested rect straight from the screen with mss.

    mss handles are thread-bound, so one instance is kept per thread.
    """

    def __init__(self, bounds: Optional[Rect] = None) -> None:
        self.bounds = bounds
        self._local = threading.local()

    def _get_mss(self):
        sct = getattr(self._local, "sct", None)
        if sct is None:
            try:
                sct = mss.mss()
            except Exception as exc:
                raise CaptureError(f"could not open screen capture: {exc}") from exc
            self._local.sct = sct
        return sct

    def prepare(self, bounds: Rect) -> None:
        self.bounds = bounds

    def capture(self, rect: Rect) -> CaptureFrame:
        if rect.is_empty:
            raise CaptureError(f"invalid capture region size: {rect.width}x{rect.height}")
        if self.bounds is not None and not self.bounds.contains_rect(rect):
            raise CaptureError(f"capture region {rect} lies outside the window {self.bounds}")

        bbox = {
            "left": rect.left,
            "top": rect.top,
            "width": rect.width,
            "height": rect.height,
        }
        try:
            shot = self._get_mss().grab(bbox)
        except Exception as exc:
            raise CaptureError(f"mss failed to capture the requested region {bbox}: {exc}") from exc
        return CaptureFrame(_to_bgr(shot), rect)

    def close(self) -> None:
        sct = getattr(self._local, "sct", None)
        if sct is not None:
            sct.close()
            self._local.sct = None


class SnapshotCapturer(Capturer):
    """
    Take one full-window snapshot per cycle and serve regions by cropping it.

    All regions of an item then come from the same instant, at the cost of
    one larger grab.
    """

    def __init__(self, backend: Capturer) -> None:
        self.backend = backend
        self._snapshot: Optional[CaptureFrame] = None
        self._lock = threading.Lock()

    def prepare(self, bounds: Rect) -> None:
        self.backend.prepare(bounds)
        snapshot = self.backend.capture(bounds)
        with self._lock:
            self._snapshot = snapshot

    def capture(self, rect: Rect) -> CaptureFrame:
        with self._lock:
            snapshot = self._snapshot
        if snapshot is not None and snapshot.rect.contains_rect(rect):
            return snapshot.crop(rect)
        return self.backend.capture(rect)

    def close(self) -> None:
        with self._lock:
            self._snapshot = None
        self.backend.close()


def default_capturer(snapshot: bool = True) -> Capturer:
    if sys.platform != "win32" and not sys.platform.startswith("linux"):
        print(f"[capture] untested platform {sys.platform}; using mss", flush=True)
    backend = MssCapturer()
    return SnapshotCapturer(backend) if snapshot else backend
