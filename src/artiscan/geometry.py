"""
Value types for screen geometry.

Layouts are authored at one reference resolution and mapped onto the
captured window by scaling and translating these values. Every operation
returns a new value; nothing mutates in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


def _round(value: float) -> int:
    return int(round(value))


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    def translate(self, dx: int, dy: int) -> "Point":
        return Point(self.x + dx, self.y + dy)

    def scale(self, fx: float, fy: Optional[float] = None) -> "Point":
        fy = fx if fy is None else fy
        return Point(_round(self.x * fx), _round(self.y * fy))

    def as_tuple(self) -> Tuple[int, int]:
        return self.x, self.y


@dataclass(frozen=True)
class Size:
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Size must be non-negative, got {self.width}x{self.height}")

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def scale(self, fx: float, fy: Optional[float] = None) -> "Size":
        fy = fx if fy is None else fy
        return Size(max(0, _round(self.width * fx)), max(0, _round(self.height * fy)))

    def as_tuple(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle: top-left origin plus size, in pixels."""

    left: int
    top: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Rect must have non-negative size, got {self.width}x{self.height}"
            )

    # ----- Constructors -----

    @classmethod
    def from_tuple(cls, rect: Tuple[int, int, int, int]) -> "Rect":
        left, top, width, height = rect
        return cls(int(left), int(top), int(width), int(height))

    @classmethod
    def from_points(cls, top_left: Point, bottom_right: Point) -> "Rect":
        return cls(
            top_left.x,
            top_left.y,
            max(0, bottom_right.x - top_left.x),
            max(0, bottom_right.y - top_left.y),
        )

    @classmethod
    def from_origin(cls, origin: Point, size: Size) -> "Rect":
        return cls(origin.x, origin.y, size.width, size.height)

    # ----- Properties -----

    @property
    def origin(self) -> Point:
        return Point(self.left, self.top)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @property
    def center(self) -> Point:
        return Point(self.left + self.width // 2, self.top + self.height // 2)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    # ----- Operations -----

    def translate(self, dx: int, dy: int) -> "Rect":
        return Rect(self.left + dx, self.top + dy, self.width, self.height)

    def scale(self, fx: float, fy: Optional[float] = None) -> "Rect":
        """
        Scale origin and size around (0, 0); edges are rounded independently
        so adjacent rects stay adjacent after scaling.
        """
        fy = fx if fy is None else fy
        left = _round(self.left * fx)
        top = _round(self.top * fy)
        right = _round(self.right * fx)
        bottom = _round(self.bottom * fy)
        return Rect(left, top, max(0, right - left), max(0, bottom - top))

    def contains(self, point: Point) -> bool:
        return self.left <= point.x < self.right and self.top <= point.y < self.bottom

    def contains_rect(self, other: "Rect") -> bool:
        return (
            self.left <= other.left
            and self.top <= other.top
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    def intersect(self, other: "Rect") -> "Rect":
        """
        Overlap of two rects. Disjoint rects yield an empty rect anchored at
        the clamped corner rather than None, so callers can test `is_empty`.
        """
        left = max(self.left, other.left)
        top = max(self.top, other.top)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        return Rect(left, top, max(0, right - left), max(0, bottom - top))

    def clamp(self, bounds: "Rect") -> "Rect":
        clamped = self.intersect(bounds)
        if clamped.is_empty:
            left = min(max(self.left, bounds.left), bounds.right)
            top = min(max(self.top, bounds.top), bounds.bottom)
            return Rect(left, top, 0, 0)
        return clamped

    def relative_to(self, origin: Point) -> "Rect":
        return self.translate(-origin.x, -origin.y)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.left, self.top, self.width, self.height


def scale_factors(reference: Size, actual: Size) -> Tuple[float, float]:
    if reference.is_empty:
        raise ValueError("Reference size must be non-empty")
    return actual.width / reference.width, actual.height / reference.height
