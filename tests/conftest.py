"""Shared fixtures and fakes: a scripted game behind fake capture, control and OCR."""

import threading
from collections import Counter
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pytest

from artiscan.core.vocabulary import load_vocabulary
from artiscan.errors import CaptureError, ControlError
from artiscan.geometry import Point, Rect
from artiscan.interaction.capture import CaptureFrame, Capturer
from artiscan.interaction.control import Controller
from artiscan.layout import (
    EQUIP,
    GENSHIN_16X9,
    ITEM_NAME,
    LEVEL,
    LOCK,
    MAIN_STAT_NAME,
    MAIN_STAT_VALUE,
    RARITY,
    SET_NAME,
    SLOT,
    SUB_STATS,
    Layout,
)
from artiscan.ocr.recognizer import EMPTY_RESULT, RecognitionResult, TextRecognizer
from artiscan.scanner.progress import NullScanProgress

WINDOW = Rect(0, 0, 1920, 1080)
# Test-only reference region: "3/42" style position readout under the grid
ITEM_COUNTER = "item-counter"

Script = Union[RecognitionResult, Sequence[RecognitionResult]]


def ok(text: str, confidence: float = 0.95) -> RecognitionResult:
    return RecognitionResult(text, confidence)


def flower_item(**overrides) -> Dict[str, Script]:
    """A well-formed 5-star +20 flower as the detail panel shows it."""
    item: Dict[str, Script] = {
        ITEM_NAME: ok("Gladiator's Nostalgia"),
        SET_NAME: ok("Gladiator's Finale:"),
        SLOT: ok("Flower of Life"),
        MAIN_STAT_NAME: ok("HP"),
        MAIN_STAT_VALUE: ok("4,780"),
        RARITY: ok("5"),
        LEVEL: ok("+20"),
        SUB_STATS[0]: ok("CRIT Rate+3.9%"),
        SUB_STATS[1]: ok("CRIT DMG+7.8%"),
        SUB_STATS[2]: ok("ATK+5.8%"),
        SUB_STATS[3]: ok("DEF+19"),
        EQUIP: ok("Equipped: Furina"),
        LOCK: ok("locked"),
    }
    item.update(overrides)
    return item


def plume_item(**overrides) -> Dict[str, Script]:
    item: Dict[str, Script] = {
        ITEM_NAME: ok("Wilted Feathers"),
        SET_NAME: ok("Noblesse Oblige"),
        SLOT: ok("Plume of Death"),
        MAIN_STAT_NAME: ok("ATK"),
        MAIN_STAT_VALUE: ok("311"),
        RARITY: ok("5"),
        LEVEL: ok("+20"),
        SUB_STATS[0]: ok("Energy Recharge+11.0%"),
        SUB_STATS[1]: ok("CRIT Rate+6.2%"),
        SUB_STATS[2]: ok("HP+209"),
        EQUIP: ok(""),
        LOCK: ok("unlocked"),
    }
    item.update(overrides)
    return item


def _test_layout() -> Layout:
    regions = dict(GENSHIN_16X9.regions)
    regions[ITEM_COUNTER] = Rect(40, 1010, 160, 30)
    return Layout(
        name="test-16x9",
        size=GENSHIN_16X9.size,
        regions=regions,
        grid=GENSHIN_16X9.grid,
        reference_regions=(ITEM_COUNTER,),
    )


TEST_LAYOUT = _test_layout()
_REGION_CODES = {region_id: code for code, region_id in enumerate(TEST_LAYOUT.regions, start=1)}
_CODE_REGIONS = {code: region_id for region_id, code in _REGION_CODES.items()}


class FakeGame:
    """
    The inventory as the fakes see it. Clicking a grid cell selects the item
    under it; `freeze_after` makes clicks stop selecting past that index.
    """

    def __init__(
        self,
        items: List[Dict[str, Script]],
        *,
        layout: Layout = TEST_LAYOUT,
        freeze_after: Optional[int] = None,
    ) -> None:
        self.items = items
        self.layout = layout
        self.freeze_after = freeze_after
        self.current = 0
        self.scrolled_rows = 0
        self._attempts: Counter = Counter()
        self._lock = threading.Lock()

    def select(self, point: Point) -> None:
        grid = self.layout.grid
        col = round((point.x - WINDOW.left - grid.first_center.x) / grid.pitch.width)
        row = round((point.y - WINDOW.top - grid.first_center.y) / grid.pitch.height)
        index = (row + self.scrolled_rows) * grid.columns + col
        if self.freeze_after is not None and index > self.freeze_after:
            return
        self.current = index

    def scroll(self, delta: int) -> None:
        self.scrolled_rows += -delta // self.layout.grid.scroll_ticks_per_row

    def read(self, region_id: str) -> RecognitionResult:
        index = self.current
        if region_id == ITEM_COUNTER:
            if index >= len(self.items):
                return EMPTY_RESULT
            return ok(f"{index + 1}/{len(self.items)}")
        if index >= len(self.items):
            return EMPTY_RESULT
        entry = self.items[index].get(region_id, EMPTY_RESULT)
        if isinstance(entry, RecognitionResult):
            return entry
        with self._lock:
            attempt = self._attempts[(index, region_id)]
            self._attempts[(index, region_id)] += 1
        return entry[min(attempt, len(entry) - 1)]


class FakeCapturer(Capturer):
    """Fills each crop with its region's code so the recognizer can tell them apart."""

    def __init__(self, game: FakeGame, *, failures=None) -> None:
        self.game = game
        self.by_rect = {game.layout.screen_rect(rid, WINDOW): rid for rid in game.layout.regions}
        # item index -> region ids whose capture fails while that item is selected
        self.failures = dict(failures or {})
        self.prepared: List[Rect] = []
        self.captured: List[str] = []
        self.closed = False

    def prepare(self, bounds: Rect) -> None:
        self.prepared.append(bounds)

    def capture(self, rect: Rect) -> CaptureFrame:
        region_id = self.by_rect[rect]
        if region_id in self.failures.get(self.game.current, ()):
            raise CaptureError(f"could not capture {region_id}")
        self.captured.append(region_id)
        pixels = np.full((rect.height, rect.width, 3), _REGION_CODES[region_id], dtype=np.uint8)
        return CaptureFrame(pixels, rect)

    def close(self) -> None:
        self.closed = True


class FakeController(Controller):
    def __init__(self, game: FakeGame, *, lose_window_after: Optional[int] = None) -> None:
        self.game = game
        self.lose_window_after = lose_window_after
        self.clicks: List[Point] = []
        self.scrolls: List[int] = []
        self.keys: List[str] = []
        self.window_reads = 0
        self.activations = 0
        self.stop = False

    def move_and_click(self, point: Point) -> None:
        self.clicks.append(point)
        self.game.select(point)

    def scroll(self, delta: int) -> None:
        self.scrolls.append(delta)
        self.game.scroll(delta)

    def press_key(self, key: str) -> None:
        self.keys.append(key)

    def get_window_rect(self) -> Rect:
        self.window_reads += 1
        if self.lose_window_after is not None and self.window_reads > self.lose_window_after:
            raise ControlError("the game window was closed or recreated")
        return WINDOW

    def activate_window(self) -> None:
        self.activations += 1

    def stop_requested(self) -> bool:
        return self.stop


class ScriptedRecognizer(TextRecognizer):
    """Answers from the FakeGame for whichever region the crop came from."""

    def __init__(self, game: FakeGame) -> None:
        super().__init__()
        self.game = game
        self.opened = 0
        self.closed = 0

    def open(self) -> None:
        self.opened += 1

    def close(self) -> None:
        self.closed += 1

    def _recognize(self, pixels: np.ndarray) -> RecognitionResult:
        return self.game.read(_CODE_REGIONS[int(pixels[0, 0, 0])])


class RecordingProgress(NullScanProgress):
    def __init__(self) -> None:
        self.transitions = []
        self.outcomes = []
        self.events = []

    def on_transition(self, previous, state, item_index) -> None:
        self.transitions.append((previous, state, item_index))

    def update_item(self, current_label, item_label, outcome) -> None:
        self.outcomes.append(outcome)

    def add_event(self, message, *, style="dim") -> None:
        self.events.append(message)

    def states(self):
        return [state for _prev, state, _idx in self.transitions]


@pytest.fixture(scope="session")
def vocabulary():
    return load_vocabulary()


@pytest.fixture
def layout():
    return TEST_LAYOUT


@pytest.fixture
def make_scanner(vocabulary):
    """
    Build an ArtifactScanner over a FakeGame; returns (scanner, fakes).
    """
    from artiscan.scanner.scan_loop import ArtifactScanner, ScanOptions

    def _make(items, *, options=None, freeze_after=None, capture_failures=None, **kwargs):
        game = FakeGame(items, freeze_after=freeze_after)
        capturer = FakeCapturer(game, failures=capture_failures)
        controller = FakeController(game, lose_window_after=kwargs.pop("lose_window_after", None))
        recognizer = ScriptedRecognizer(game)
        progress = RecordingProgress()
        scanner = ArtifactScanner(
            capturer=capturer,
            controller=controller,
            recognizer=recognizer,
            layout=TEST_LAYOUT,
            vocabulary=vocabulary,
            options=options or ScanOptions(base_delay=0.0),
            progress=progress,
            sleep=lambda _seconds: None,
            **kwargs,
        )
        fakes = {
            "game": game,
            "capturer": capturer,
            "controller": controller,
            "recognizer": recognizer,
            "progress": progress,
        }
        return scanner, fakes

    return _make
