"""Tests for the scanning state machine against a scripted fake game."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from artiscan.core.artifact import Slot, StatKind
from artiscan.errors import (
    CancelledError,
    CaptureError,
    ControlError,
    ErrorCategory,
    NavigationStuckError,
)
from artiscan.geometry import Rect
from artiscan.interaction.capture import CaptureFrame
from artiscan.layout import LEVEL, MAIN_STAT_VALUE, RARITY, SUB_STATS
from artiscan.ocr.recognizer import RecognitionResult, TextRecognizer
from artiscan.scanner.scan_loop import ArtifactScanner, ScanOptions, recognize_regions
from artiscan.scanner.session import ScanState

from conftest import flower_item, ok, plume_item


def _options(**overrides):
    values = {"base_delay": 0.0}
    values.update(overrides)
    return ScanOptions(**values)


class TestScanOptions:
    def test_defaults(self):
        options = ScanOptions()
        assert options.confidence_threshold == 0.7
        assert options.max_retries == 2
        assert options.stall_limit == 5
        options.validate()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("confidence_threshold", 1.5),
            ("max_retries", -1),
            ("stall_limit", 0),
            ("base_delay", -0.1),
            ("min_rarity", 6),
            ("min_level", -1),
            ("max_items", 0),
            ("recognition_workers", 0),
            ("capture_timeout", 0),
        ],
    )
    def test_invalid_values_raise(self, field, value):
        with pytest.raises(ValueError):
            ScanOptions(**{field: value}).validate()


class TestAcceptedItems:
    def test_every_item_accepted_once(self, make_scanner):
        scanner, fakes = make_scanner([flower_item(), plume_item(), flower_item()])
        session = scanner.run()

        assert session.state == ScanState.COMPLETED
        assert session.terminal_reason == "end of list"
        assert session.accepted == 3
        assert fakes["progress"].states().count(ScanState.ACCEPTED) == 3
        assert session.items_processed == 3
        assert session.errors.total == 0

    def test_records_keep_traversal_order(self, make_scanner):
        scanner, _ = make_scanner([plume_item(), flower_item(), plume_item()])
        session = scanner.run()

        assert [record.slot for record in session.records] == [
            Slot.PLUME,
            Slot.FLOWER,
            Slot.PLUME,
        ]

    def test_record_fields(self, make_scanner):
        scanner, _ = make_scanner([flower_item()])
        record = scanner.run().records[0]

        assert record.set_key == "GladiatorsFinale"
        assert record.rarity == 5
        assert record.level == 20
        assert record.main_stat.kind == StatKind.HP
        assert record.main_stat.value == 4780
        assert [stat.kind for stat in record.sub_stats] == [
            StatKind.CRIT_RATE,
            StatKind.CRIT_DMG,
            StatKind.ATK_PERCENT,
            StatKind.DEF,
        ]
        assert record.location == "Furina"
        assert record.lock is True

    def test_state_sequence_for_one_item(self, make_scanner):
        scanner, fakes = make_scanner([flower_item()])
        scanner.run()

        assert fakes["progress"].states() == [
            ScanState.NAVIGATING,
            ScanState.CAPTURING,
            ScanState.RECOGNIZING,
            ScanState.VALIDATING,
            ScanState.ACCEPTED,
            ScanState.NAVIGATING,
            ScanState.CAPTURING,
            ScanState.RECOGNIZING,
            ScanState.VALIDATING,
            ScanState.COMPLETED,
        ]

    def test_recognizers_opened_and_closed(self, make_scanner):
        scanner, fakes = make_scanner([flower_item()])
        scanner.run()

        assert fakes["recognizer"].opened == 1
        assert fakes["recognizer"].closed == 1

    def test_window_activated_once(self, make_scanner):
        scanner, fakes = make_scanner([flower_item(), plume_item()])
        scanner.run()
        assert fakes["controller"].activations == 1

    def test_per_item_timings(self, make_scanner):
        scanner, _ = make_scanner([flower_item(), plume_item()])
        session = scanner.run()

        assert [timing.index for timing in session.timings] == [0, 1]
        assert all(timing.attempts == 1 for timing in session.timings)

    def test_scanner_runs_once(self, make_scanner):
        scanner, _ = make_scanner([flower_item()])
        scanner.run()
        with pytest.raises(RuntimeError):
            scanner.run()


class TestRetries:
    def test_low_confidence_retried_then_skipped(self, make_scanner):
        item = flower_item(**{MAIN_STAT_VALUE: ok("4,780", 0.40)})
        scanner, fakes = make_scanner([item, plume_item()])
        session = scanner.run()

        assert fakes["progress"].states().count(ScanState.RETRYING) == 2
        assert session.errors[ErrorCategory.LOW_CONFIDENCE] == 2
        assert session.skipped[ErrorCategory.LOW_CONFIDENCE] == 1
        assert session.accepted == 1
        assert session.records[0].slot == Slot.PLUME
        assert session.state == ScanState.COMPLETED

    def test_recovers_after_one_retry(self, make_scanner):
        item = flower_item(**{MAIN_STAT_VALUE: [ok("4,780", 0.40), ok("4,780", 0.93)]})
        scanner, _ = make_scanner([item])
        session = scanner.run()

        assert session.accepted == 1
        assert session.errors[ErrorCategory.LOW_CONFIDENCE] == 1
        assert session.skipped_total == 0
        assert session.timings[0].attempts == 2

    def test_zero_retries_skips_immediately(self, make_scanner):
        item = flower_item(**{MAIN_STAT_VALUE: ok("4,780", 0.40)})
        scanner, fakes = make_scanner([item], options=_options(max_retries=0))
        session = scanner.run()

        assert ScanState.RETRYING not in fakes["progress"].states()
        assert session.skipped[ErrorCategory.LOW_CONFIDENCE] == 1

    def test_unparsable_required_field_is_parse_mismatch(self, make_scanner):
        item = flower_item(**{MAIN_STAT_VALUE: ok("4,7?0")})
        scanner, _ = make_scanner([item])
        session = scanner.run()

        assert session.errors[ErrorCategory.PARSE_MISMATCH] == 2
        assert session.skipped[ErrorCategory.PARSE_MISMATCH] == 1

    def test_capture_failure_is_retried_then_skipped(self, make_scanner):
        scanner, _ = make_scanner(
            [flower_item(), plume_item()], capture_failures={0: {SUB_STATS[0]}}
        )
        session = scanner.run()

        assert session.errors[ErrorCategory.CAPTURE_TIMEOUT] == 2
        assert session.skipped[ErrorCategory.CAPTURE_TIMEOUT] == 1
        assert session.accepted == 1
        assert session.state == ScanState.COMPLETED

    def test_low_confidence_grows_delay(self, make_scanner):
        item = flower_item(**{MAIN_STAT_VALUE: [ok("4,780", 0.40), ok("4,780", 0.95)]})
        scanner, _ = make_scanner([item], options=_options(base_delay=0.1))
        initial = scanner.session.delay.seconds
        session = scanner.run()

        assert session.delay.seconds > initial


class TestInvalidRecords:
    def test_rarity_out_of_range_skips_without_retry(self, make_scanner):
        item = flower_item(**{RARITY: ok("6")})
        scanner, fakes = make_scanner([item, plume_item()])
        session = scanner.run()

        assert ScanState.RETRYING not in fakes["progress"].states()
        assert session.skipped[ErrorCategory.INVALID_RECORD] == 1
        assert session.errors[ErrorCategory.INVALID_RECORD] == 1
        assert session.accepted == 1

    def test_rarity_out_of_range_wins_over_low_confidence(self, make_scanner):
        item = flower_item(**{RARITY: ok("6"), MAIN_STAT_VALUE: ok("4,780", 0.3)})
        scanner, fakes = make_scanner([item])
        session = scanner.run()

        assert ScanState.RETRYING not in fakes["progress"].states()
        assert session.skipped[ErrorCategory.INVALID_RECORD] == 1

    def test_filtered_records_are_dropped(self, make_scanner):
        low = flower_item(**{RARITY: ok("4"), LEVEL: ok("+16")})
        scanner, fakes = make_scanner([low, flower_item()], options=_options(min_rarity=5))
        session = scanner.run()

        assert session.filtered == 1
        assert session.accepted == 1
        assert session.items_processed == 2
        assert "FILTERED" in fakes["progress"].outcomes


class TestNavigation:
    def test_stuck_navigation_aborts_and_keeps_records(self, make_scanner):
        items = [flower_item(), plume_item(), flower_item()]
        scanner, fakes = make_scanner(items, freeze_after=1)
        session = scanner.run()

        assert session.state == ScanState.ABORTED
        assert isinstance(session.abort_error, NavigationStuckError)
        assert session.errors[ErrorCategory.NAVIGATION_STUCK] == 1
        assert session.accepted == 2
        # one click per good item, then five on the stuck one
        assert len(fakes["controller"].clicks) == 7

    def test_scrolls_whole_rows_past_first_page(self, make_scanner):
        items = [flower_item() for _ in range(42)]
        scanner, fakes = make_scanner(items)
        session = scanner.run()

        grid = scanner.layout.grid
        assert fakes["controller"].scrolls == [-grid.scroll_ticks_per_row]
        assert session.scrolled_rows == 1
        assert session.accepted == 42

    def test_expected_total_completes_early(self, make_scanner):
        scanner, fakes = make_scanner(
            [flower_item(), plume_item(), flower_item()], expected_total=2
        )
        session = scanner.run()

        assert session.state == ScanState.COMPLETED
        assert "inventory count" in session.terminal_reason
        assert session.accepted == 2
        assert len(fakes["controller"].clicks) == 2

    def test_max_items_completes_early(self, make_scanner):
        scanner, _ = make_scanner(
            [flower_item(), plume_item()], options=_options(max_items=1)
        )
        session = scanner.run()

        assert session.completed
        assert session.accepted == 1

    def test_lost_window_aborts(self, make_scanner):
        scanner, fakes = make_scanner(
            [flower_item(), plume_item(), flower_item()], lose_window_after=2
        )
        session = scanner.run()

        assert session.state == ScanState.ABORTED
        assert isinstance(session.abort_error, ControlError)
        assert session.accepted == 1
        assert fakes["recognizer"].closed == 1


class TestCancellation:
    def test_cancel_before_run(self, make_scanner):
        scanner, fakes = make_scanner([flower_item()])
        scanner.cancel()
        session = scanner.run()

        assert session.state == ScanState.ABORTED
        assert session.cancelled
        assert isinstance(session.abort_error, CancelledError)
        assert fakes["controller"].clicks == []
        assert fakes["controller"].activations == 0

    def test_cancel_keeps_records_and_stops_navigation(self, make_scanner):
        items = [flower_item(), plume_item(), flower_item(), plume_item()]
        scanner, fakes = make_scanner(items)
        progress = fakes["progress"]
        original = progress.on_transition

        def cancel_on_second_accept(previous, state, item_index):
            original(previous, state, item_index)
            if state == ScanState.ACCEPTED and item_index == 1:
                scanner.cancel()

        progress.on_transition = cancel_on_second_accept
        session = scanner.run()

        assert session.state == ScanState.ABORTED
        assert session.outcome_label == "cancelled"
        assert session.accepted == 2
        assert len(fakes["controller"].clicks) == 2

    def test_stop_key_cancels(self, make_scanner):
        scanner, fakes = make_scanner([flower_item(), plume_item()])
        controller = fakes["controller"]
        original = controller.move_and_click

        def click_then_stop(point):
            original(point)
            controller.stop = True

        controller.move_and_click = click_then_stop
        session = scanner.run()

        assert session.cancelled
        assert session.accepted == 0
        assert len(controller.clicks) == 1


class _SlowRecognizer(TextRecognizer):
    """Finishes regions in reverse order of submission."""

    def __init__(self, delays):
        super().__init__()
        self.delays = delays
        self.finished = []
        self._lock = threading.Lock()

    def _recognize(self, pixels):
        code = int(pixels[0, 0, 0])
        time.sleep(self.delays[code])
        with self._lock:
            self.finished.append(code)
        return RecognitionResult(str(code), 0.9)


class TestJoinOrder:
    def test_results_follow_frame_order_not_completion(self):
        region_ids = [f"region-{i}" for i in range(5)]
        frames = {
            region_id: CaptureFrame(
                np.full((4, 4, 3), code, dtype=np.uint8), Rect(0, 0, 4, 4)
            )
            for code, region_id in enumerate(region_ids)
        }
        recognizer = _SlowRecognizer({code: 0.01 * (5 - code) for code in range(5)})

        with ThreadPoolExecutor(max_workers=5) as pool:
            results = recognize_regions(pool, frames, recognizer, timeout=5.0)

        assert list(results) == region_ids
        assert [results[r].text for r in region_ids] == ["0", "1", "2", "3", "4"]
        assert recognizer.finished != [0, 1, 2, 3, 4]

    def test_override_recognizer_used_for_its_region(self):
        frames = {
            "a": CaptureFrame(np.zeros((2, 2, 3), dtype=np.uint8), Rect(0, 0, 2, 2)),
            "b": CaptureFrame(np.zeros((2, 2, 3), dtype=np.uint8), Rect(0, 0, 2, 2)),
        }

        class _Fixed(TextRecognizer):
            def __init__(self, text):
                super().__init__()
                self.text = text

            def _recognize(self, pixels):
                return RecognitionResult(self.text, 1.0)

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = recognize_regions(
                pool, frames, _Fixed("default"), overrides={"b": _Fixed("special")}
            )

        assert results["a"].text == "default"
        assert results["b"].text == "special"


class TestDeterminism:
    def test_same_game_same_records(self, make_scanner):
        items = [flower_item(), plume_item()]
        first, _ = make_scanner(items)
        second, _ = make_scanner(items)

        assert first.run().records == second.run().records


def _slow_capture_once(fakes, region_id, seconds):
    """Make the first grab of `region_id` take `seconds`; returns an in-flight flag."""
    capturer = fakes["capturer"]
    original = capturer.capture
    in_flight = threading.Event()
    pending = [True]

    def capture(rect):
        in_flight.set()
        try:
            if pending and capturer.by_rect[rect] == region_id:
                pending.pop()
                time.sleep(seconds)
            return original(rect)
        finally:
            in_flight.clear()

    capturer.capture = capture
    return in_flight


class TestTimeouts:
    def test_slow_capture_is_retried(self, make_scanner):
        scanner, fakes = make_scanner([flower_item()], options=_options(capture_timeout=0.1))
        _slow_capture_once(fakes, SUB_STATS[0], 0.4)

        started = time.perf_counter()
        session = scanner.run()

        assert time.perf_counter() - started < 3.0
        assert ScanState.RETRYING in fakes["progress"].states()
        assert session.errors[ErrorCategory.CAPTURE_TIMEOUT] == 1
        assert session.skipped_total == 0
        assert session.accepted == 1

    def test_input_waits_for_timed_out_capture(self, make_scanner):
        scanner, fakes = make_scanner(
            [flower_item(), plume_item()],
            options=_options(capture_timeout=0.05, max_retries=0),
        )
        in_flight = _slow_capture_once(fakes, SUB_STATS[0], 0.5)
        controller = fakes["controller"]
        original_click = controller.move_and_click
        overlapping = []

        def click(point):
            if in_flight.is_set():
                overlapping.append(point)
            original_click(point)

        controller.move_and_click = click
        session = scanner.run()

        assert overlapping == []
        assert session.skipped[ErrorCategory.CAPTURE_TIMEOUT] == 1
        assert session.accepted == 1
        assert session.records[0].slot == Slot.PLUME
        assert session.state == ScanState.COMPLETED

    def test_slow_recognition_is_retried(self, make_scanner):
        scanner, fakes = make_scanner([flower_item()], options=_options(recognition_timeout=0.1))
        recognizer = fakes["recognizer"]
        original = recognizer._recognize
        pending = [True]
        lock = threading.Lock()

        def recognize(pixels):
            result = original(pixels)
            with lock:
                stall = bool(pending) and result.text == "4,780"
                if stall:
                    pending.pop()
            if stall:
                time.sleep(0.4)
            return result

        recognizer._recognize = recognize
        started = time.perf_counter()
        session = scanner.run()

        assert time.perf_counter() - started < 3.0
        assert ScanState.RETRYING in fakes["progress"].states()
        assert session.errors[ErrorCategory.CAPTURE_TIMEOUT] == 1
        assert session.accepted == 1


class TestInterrupts:
    def test_keyboard_interrupt_keeps_records(self, make_scanner):
        scanner, fakes = make_scanner([flower_item(), plume_item(), flower_item()])
        controller = fakes["controller"]
        original = controller.move_and_click

        def click(point):
            if len(controller.clicks) == 2:
                raise KeyboardInterrupt
            original(point)

        controller.move_and_click = click
        session = scanner.run()

        assert session.state == ScanState.ABORTED
        assert session.cancelled
        assert isinstance(session.abort_error, CancelledError)
        assert session.accepted == 2
        assert fakes["recognizer"].closed == 1

    def test_minimized_window_is_waited_out(self, make_scanner):
        scanner, fakes = make_scanner([flower_item(), plume_item()])
        controller = fakes["controller"]
        original = controller.get_window_rect

        def get_window_rect():
            # third read is the navigation to the second item
            if controller.window_reads == 2:
                controller.window_reads += 1
                raise CaptureError("the game window is minimized")
            return original()

        controller.get_window_rect = get_window_rect
        session = scanner.run()

        assert session.state == ScanState.COMPLETED
        assert session.errors[ErrorCategory.CAPTURE_TIMEOUT] == 1
        assert session.accepted == 2

    def test_window_that_stays_minimized_aborts(self, make_scanner):
        scanner, fakes = make_scanner([flower_item(), plume_item()])
        controller = fakes["controller"]
        original = controller.get_window_rect

        def get_window_rect():
            if controller.window_reads >= 2:
                raise CaptureError("the game window is minimized")
            return original()

        controller.get_window_rect = get_window_rect
        session = scanner.run()

        assert session.state == ScanState.ABORTED
        assert isinstance(session.abort_error, ControlError)
        assert session.errors[ErrorCategory.CAPTURE_TIMEOUT] == scanner.options.stall_limit
        assert session.accepted == 1
