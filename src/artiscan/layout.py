"""
Screen layout of the artifact backpack.

Regions are authored against a 1920x1080 client area and scaled onto the
detected window. Everything here is immutable: a scan resolves one layout
at startup and keeps it for the whole session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping, Tuple

from .geometry import Point, Rect, Size, scale_factors

# Reference client size the template was measured at
REF_WIDTH = 1920
REF_HEIGHT = 1080
REFERENCE_SIZE = Size(REF_WIDTH, REF_HEIGHT)

ASPECT_TOLERANCE = 0.02

# ----- Region identifiers -----

ITEM_NAME = "item-name"
SET_NAME = "set-name"
SLOT = "slot"
MAIN_STAT_NAME = "main-stat-name"
MAIN_STAT_VALUE = "main-stat-value"
LEVEL = "level"
RARITY = "rarity"
SUB_STATS = ("sub-stat-1", "sub-stat-2", "sub-stat-3", "sub-stat-4")
EQUIP = "equip"
LOCK = "lock"
INVENTORY_COUNT = "inventory-count"

REQUIRED_REGIONS: Tuple[str, ...] = (
    ITEM_NAME,
    SET_NAME,
    SLOT,
    MAIN_STAT_NAME,
    MAIN_STAT_VALUE,
    LEVEL,
    RARITY,
)
OPTIONAL_REGIONS: Tuple[str, ...] = SUB_STATS + (EQUIP, LOCK)
RECORD_REGIONS: Tuple[str, ...] = REQUIRED_REGIONS + OPTIONAL_REGIONS


@dataclass(frozen=True)
class GridSpec:
    """
    Item list geometry: center of the first cell, distance between cells,
    and how many rows are visible before the list must scroll.
    """

    first_center: Point
    pitch: Size
    columns: int
    rows: int
    scroll_ticks_per_row: int = 5
    settle_seconds: float = 0.08

    def __post_init__(self) -> None:
        if self.columns < 1 or self.rows < 1:
            raise ValueError("grid needs at least one row and one column")

    @property
    def cells_per_page(self) -> int:
        return self.columns * self.rows

    def cell_center(self, row: int, col: int) -> Point:
        return Point(
            self.first_center.x + col * self.pitch.width,
            self.first_center.y + row * self.pitch.height,
        )

    def position(self, index: int) -> Tuple[int, int]:
        """(row, col) of a list index, row-major."""
        return divmod(index, self.columns)

    def scale(self, fx: float, fy: float) -> "GridSpec":
        return GridSpec(
            first_center=self.first_center.scale(fx, fy),
            pitch=self.pitch.scale(fx, fy),
            columns=self.columns,
            rows=self.rows,
            scroll_ticks_per_row=self.scroll_ticks_per_row,
            settle_seconds=self.settle_seconds,
        )


@dataclass(frozen=True)
class Layout:
    name: str
    size: Size
    regions: Mapping[str, Rect]
    grid: GridSpec
    reference_regions: Tuple[str, ...] = field(default=(ITEM_NAME,))

    def __post_init__(self) -> None:
        missing = [region for region in REQUIRED_REGIONS if region not in self.regions]
        if missing:
            raise ValueError(f"layout {self.name!r} is missing regions: {', '.join(missing)}")
        unknown_refs = [r for r in self.reference_regions if r not in self.regions]
        if not self.reference_regions or unknown_refs:
            raise ValueError(
                f"layout {self.name!r} has invalid reference regions: {unknown_refs or 'none'}"
            )
        # Freeze the mapping while keeping insertion order.
        object.__setattr__(self, "regions", MappingProxyType(dict(self.regions)))

    def __contains__(self, region_id: str) -> bool:
        return region_id in self.regions

    def __getitem__(self, region_id: str) -> Rect:
        return self.regions[region_id]

    @property
    def bounds(self) -> Rect:
        return Rect(0, 0, self.size.width, self.size.height)

    def record_regions(self) -> Iterator[str]:
        """Record region ids present in this layout, in canonical order."""
        for region_id in RECORD_REGIONS:
            if region_id in self.regions:
                yield region_id

    def scaled_to(self, size: Size) -> "Layout":
        """
        Map every region onto a client area of `size`; rects that would fall
        outside are clamped so no capture request leaves the frame.
        """
        fx, fy = scale_factors(self.size, size)
        bounds = Rect(0, 0, size.width, size.height)
        regions = {
            region_id: rect.scale(fx, fy).clamp(bounds)
            for region_id, rect in self.regions.items()
        }
        return Layout(
            name=self.name,
            size=size,
            regions=regions,
            grid=self.grid.scale(fx, fy),
            reference_regions=self.reference_regions,
        )

    def screen_rect(self, region_id: str, window: Rect) -> Rect:
        """Absolute screen rect of a region for a window at `window`."""
        return self.regions[region_id].clamp(self.bounds).translate(window.left, window.top)

    def screen_point(self, point: Point, window: Rect) -> Point:
        return point.translate(window.left, window.top)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def _sub_stat_rect(index: int) -> Rect:
    return Rect(1356, 475 + index * 40, 400, 36)


GENSHIN_16X9 = Layout(
    name="genshin-16x9",
    size=REFERENCE_SIZE,
    regions={
        ITEM_NAME: Rect(1330, 120, 420, 42),
        SLOT: Rect(1330, 172, 260, 32),
        MAIN_STAT_NAME: Rect(1330, 262, 280, 30),
        MAIN_STAT_VALUE: Rect(1330, 294, 260, 46),
        RARITY: Rect(1332, 356, 196, 34),
        LEVEL: Rect(1346, 432, 72, 30),
        LOCK: Rect(1738, 430, 36, 36),
        SUB_STATS[0]: _sub_stat_rect(0),
        SUB_STATS[1]: _sub_stat_rect(1),
        SUB_STATS[2]: _sub_stat_rect(2),
        SUB_STATS[3]: _sub_stat_rect(3),
        SET_NAME: Rect(1330, 636, 420, 34),
        EQUIP: Rect(1372, 1000, 400, 38),
        INVENTORY_COUNT: Rect(1520, 28, 280, 40),
    },
    grid=GridSpec(
        first_center=Point(180, 253),
        pitch=Size(145, 166),
        columns=8,
        rows=5,
        scroll_ticks_per_row=5,
    ),
    reference_regions=(ITEM_NAME, MAIN_STAT_VALUE, SUB_STATS[0], SUB_STATS[1]),
)


def layout_for_size(size: Size, template: Layout = GENSHIN_16X9) -> Layout:
    """
    Resolve the template for a client area. Only aspect ratios matching the
    template are supported (2560x1440, 1920x1080, 1600x900, ...).
    """
    if size.is_empty:
        raise ValueError(f"window has no client area ({size.width}x{size.height})")
    expected = template.size.width / template.size.height
    actual = size.width / size.height
    if abs(actual - expected) > ASPECT_TOLERANCE:
        raise ValueError(
            f"unsupported window size {size.width}x{size.height}; "
            f"the {template.name} layout needs a {template.size.width}:{template.size.height} "
            "aspect ratio"
        )
    if size == template.size:
        return template
    return template.scaled_to(size)
