from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, Literal, Optional, Tuple

import cv2
import numpy as np

from .recognizer import RecognitionResult, TextRecognizer

# Crops shorter than this are upscaled before OCR
MIN_OCR_HEIGHT = 32

# Rarity colors of the detail panel header (RGB)
RARITY_COLORS_RGB: Dict[str, Tuple[int, int, int]] = {
    "1": (113, 119, 139),
    "2": (42, 143, 114),
    "3": (81, 127, 203),
    "4": (161, 86, 224),
    "5": (188, 105, 50),
}
RARITY_MAX_DISTANCE_SQ = 10000

LOCK_COLOR_RGB = (255, 138, 117)
LOCK_MAX_DISTANCE_SQ = 900

_OCR_DEBUG_DIR: Optional[Path] = None


def enable_ocr_debug(debug_dir: Path) -> None:
    """
    Enable saving OCR debug images into the provided directory.
    """
    global _OCR_DEBUG_DIR
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        _OCR_DEBUG_DIR = debug_dir
        print(f"[vision_ocr] OCR debug output enabled at {_OCR_DEBUG_DIR}", flush=True)
    except OSError as exc:  # pragma: no cover - filesystem dependent
        print(f"[vision_ocr] failed to enable OCR debug dir: {exc}", flush=True)
        _OCR_DEBUG_DIR = None


def disable_ocr_debug() -> None:
    global _OCR_DEBUG_DIR
    _OCR_DEBUG_DIR = None


def save_debug_image(name: str, image: np.ndarray) -> Optional[Path]:
    """
    Write a debug image if a debug directory has been configured.
    """
    if _OCR_DEBUG_DIR is None:
        return None
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    filename = f"{timestamp}_{time.time_ns() % 1_000_000_000:09d}_{name}.png"
    path = _OCR_DEBUG_DIR / filename
    try:
        cv2.imwrite(str(path), image)
    except cv2.error as exc:  # pragma: no cover - filesystem dependent
        print(f"[vision_ocr] failed to save debug image {path}: {exc}", flush=True)
        return None
    return path


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 1:
        return image[:, :, 0]
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def preprocess_for_ocr(roi_bgr: np.ndarray) -> np.ndarray:
    """
    Grayscale, upscale small crops, Otsu-binarize, and normalize to dark text
    on a light background (the panel mixes both polarities).
    """
    gray = to_gray(roi_bgr)
    height = gray.shape[0]
    if 0 < height < MIN_OCR_HEIGHT:
        factor = MIN_OCR_HEIGHT / float(height)
        gray = cv2.resize(gray, None, fx=factor, fy=factor, interpolation=cv2.INTER_CUBIC)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    if float(np.mean(binary)) < 127.0:
        binary = cv2.bitwise_not(binary)
    return binary


def sample_color(
    image_bgr: np.ndarray,
    mode: Literal["median", "center"] = "median",
) -> Tuple[int, int, int]:
    """
    Representative RGB color of a crop: the per-channel median, or the median
    of a 5x5 patch at the center.
    """
    if image_bgr.ndim != 3 or image_bgr.shape[2] < 3:
        gray = to_gray(image_bgr)
        value = int(np.median(gray))
        return value, value, value

    patch = image_bgr[:, :, :3]
    if mode == "center":
        h, w = patch.shape[:2]
        cy, cx = h // 2, w // 2
        patch = patch[max(0, cy - 2) : cy + 3, max(0, cx - 2) : cx + 3]
    b, g, r = (int(np.median(patch[:, :, c])) for c in range(3))
    return r, g, b


def color_distance_sq(a: Tuple[int, int, int], b: Tuple[int, int, int]) -> int:
    return sum((int(x) - int(y)) ** 2 for x, y in zip(a, b))


class ColorRecognizer(TextRecognizer):
    """
    Reads a region by its color instead of its glyphs.

    The nearest reference color's label becomes the text. Confidence stays at
    or above 0.7 inside `max_distance_sq` and falls below it outside. With a
    `fallback` label, colors outside the radius read as the fallback with a
    confidence that grows with the distance.
    """

    def __init__(
        self,
        references: Dict[str, Tuple[int, int, int]],
        max_distance_sq: int,
        *,
        fallback: Optional[str] = None,
        mode: Literal["median", "center"] = "median",
    ) -> None:
        super().__init__()
        if not references:
            raise ValueError("ColorRecognizer needs at least one reference color")
        self.references = dict(references)
        self.max_distance_sq = max_distance_sq
        self.fallback = fallback
        self.mode = mode

    def _recognize(self, pixels: np.ndarray) -> RecognitionResult:
        color = sample_color(pixels, self.mode)
        label, distance = min(
            ((name, color_distance_sq(color, ref)) for name, ref in self.references.items()),
            key=lambda item: item[1],
        )
        if distance <= self.max_distance_sq:
            return RecognitionResult(label, 1.0 - 0.3 * distance / self.max_distance_sq)
        if self.fallback is not None:
            return RecognitionResult(self.fallback, 1.0 - self.max_distance_sq / distance)
        return RecognitionResult(label, 0.7 * self.max_distance_sq / distance)


def rarity_recognizer() -> ColorRecognizer:
    return ColorRecognizer(RARITY_COLORS_RGB, RARITY_MAX_DISTANCE_SQ)


def lock_recognizer() -> ColorRecognizer:
    return ColorRecognizer(
        {"locked": LOCK_COLOR_RGB},
        LOCK_MAX_DISTANCE_SQ,
        fallback="unlocked",
        mode="center",
    )
