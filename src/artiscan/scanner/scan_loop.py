from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .outcomes import _describe_category
from .progress import NullScanProgress, ScanProgress
from .session import ItemTiming, ScanSession, ScanState
from .timing import AdaptiveDelay, DelayBounds
from ..core.artifact import Artifact
from ..core.parser import RecordParser, is_empty_item
from ..core.validation import validate
from ..core.vocabulary import Vocabulary
from ..errors import (
    CancelledError,
    CaptureError,
    ControlError,
    ErrorCategory,
    NavigationStuckError,
    RecognitionError,
    ScanError,
    ValidationError,
)
from ..geometry import Rect
from ..interaction.capture import CaptureFrame, Capturer
from ..interaction.control import Controller
from ..layout import REQUIRED_REGIONS, Layout
from ..ocr.recognizer import RecognitionResult, TextRecognizer

DEFAULT_THRESHOLD = 0.7
DEFAULT_MAX_RETRIES = 2
DEFAULT_STALL_LIMIT = 5
DEFAULT_BASE_DELAY = 0.12
DEFAULT_WORKERS = 4
DEFAULT_CAPTURE_TIMEOUT = 1.5
DEFAULT_RECOGNITION_TIMEOUT = 4.0

# Allowed state changes; cancellation and fatal errors may abort from anywhere.
_TRANSITIONS: Dict[ScanState, Tuple[ScanState, ...]] = {
    ScanState.IDLE: (ScanState.NAVIGATING, ScanState.COMPLETED),
    ScanState.NAVIGATING: (ScanState.CAPTURING,),
    ScanState.CAPTURING: (ScanState.RECOGNIZING, ScanState.RETRYING, ScanState.SKIPPED),
    ScanState.RECOGNIZING: (ScanState.VALIDATING, ScanState.RETRYING, ScanState.SKIPPED),
    ScanState.VALIDATING: (
        ScanState.ACCEPTED,
        ScanState.RETRYING,
        ScanState.SKIPPED,
        ScanState.NAVIGATING,
        ScanState.COMPLETED,
    ),
    ScanState.ACCEPTED: (ScanState.NAVIGATING, ScanState.COMPLETED),
    ScanState.RETRYING: (ScanState.CAPTURING,),
    ScanState.SKIPPED: (ScanState.NAVIGATING, ScanState.COMPLETED),
    ScanState.COMPLETED: (),
    ScanState.ABORTED: (),
}


@dataclass(frozen=True)
class ScanOptions:
    confidence_threshold: float = DEFAULT_THRESHOLD
    max_retries: int = DEFAULT_MAX_RETRIES
    stall_limit: int = DEFAULT_STALL_LIMIT
    base_delay: float = DEFAULT_BASE_DELAY
    fast_mode: bool = False
    min_rarity: int = 1
    min_level: int = 0
    max_items: Optional[int] = None
    recognition_workers: int = DEFAULT_WORKERS
    capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT
    recognition_timeout: float = DEFAULT_RECOGNITION_TIMEOUT
    profile: bool = False

    def validate(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be between 0 and 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.stall_limit < 1:
            raise ValueError("stall_limit must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if not 1 <= self.min_rarity <= 5:
            raise ValueError("min_rarity must be between 1 and 5")
        if self.min_level < 0:
            raise ValueError("min_level must be >= 0")
        if self.max_items is not None and self.max_items < 1:
            raise ValueError("max_items must be >= 1")
        if self.recognition_workers < 1:
            raise ValueError("recognition_workers must be >= 1")
        if self.capture_timeout <= 0:
            raise ValueError("capture_timeout must be > 0")
        if self.recognition_timeout <= 0:
            raise ValueError("recognition_timeout must be > 0")


def recognize_regions(
    pool: ThreadPoolExecutor,
    frames: Mapping[str, CaptureFrame],
    recognizer: TextRecognizer,
    *,
    overrides: Optional[Mapping[str, TextRecognizer]] = None,
    timeout: float = DEFAULT_RECOGNITION_TIMEOUT,
) -> Dict[str, RecognitionResult]:
    """
    Recognize every frame on `pool` and return the results keyed in the
    order of `frames`, whatever order the workers finish in.
    """
    overrides = overrides or {}
    futures: Dict[str, Future] = {}
    for region_id, frame in frames.items():
        region_recognizer = overrides.get(region_id, recognizer)
        futures[region_id] = pool.submit(region_recognizer.recognize, frame.pixels)

    _done, pending = wait(futures.values(), timeout=timeout)
    if pending:
        raise RecognitionError(f"{len(pending)} region(s) still recognizing after {timeout:.2f}s")
    return {region_id: futures[region_id].result() for region_id in frames}


class _ItemEnd(Exception):
    """The cursor reached an empty slot past the last item."""


class ArtifactScanner:
    """
    Drive the inventory one item at a time:

        Idle -> Navigating -> Capturing -> Recognizing -> Validating
             -> (Accepted | Retrying | Skipped) -> Navigating ... -> Completed | Aborted

    The scanner is the only caller of the controller, and never issues an
    input action while a capture is in flight. Capture, recognition and
    control backends are passed in, so any of them can be swapped for a fake.
    """

    def __init__(
        self,
        *,
        capturer: Capturer,
        controller: Controller,
        recognizer: TextRecognizer,
        layout: Layout,
        vocabulary: Vocabulary,
        options: Optional[ScanOptions] = None,
        progress: Optional[ScanProgress] = None,
        region_recognizers: Optional[Mapping[str, TextRecognizer]] = None,
        expected_total: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.options = options or ScanOptions()
        self.options.validate()
        self.capturer = capturer
        self.controller = controller
        self.recognizer = recognizer
        self.region_recognizers: Dict[str, TextRecognizer] = dict(region_recognizers or {})
        self.layout = layout
        self.parser = RecordParser(vocabulary, threshold=self.options.confidence_threshold)
        self.progress = progress or NullScanProgress()
        self._sleep = sleep
        self._cancel = threading.Event()

        bounds = DelayBounds.from_base(self.options.base_delay, fast_mode=self.options.fast_mode)
        self.session = ScanSession(
            layout=layout,
            delay=AdaptiveDelay(bounds),
            expected_total=expected_total,
        )
        self._record_regions: Tuple[str, ...] = tuple(layout.record_regions())
        self._signature: Optional[Tuple[str, ...]] = None

        self._capture_pool: Optional[ThreadPoolExecutor] = None
        # A grab that outlived capture_timeout; it still owns the screen until done.
        self._stale_capture: Optional[Future] = None
        self._recognize_pool: Optional[ThreadPoolExecutor] = None

    # ----- Public API -----

    def cancel(self) -> None:
        """Request a stop; honored at the next state boundary."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def run(self) -> ScanSession:
        session = self.session
        if session.state != ScanState.IDLE:
            raise RuntimeError("a scanner runs once; build a new one for another scan")

        started = time.perf_counter()
        recognizers = self._all_recognizers()
        opened: List[TextRecognizer] = []
        self._capture_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        self._recognize_pool = ThreadPoolExecutor(
            max_workers=self.options.recognition_workers,
            thread_name_prefix="recognize",
        )
        try:
            for recognizer in recognizers:
                recognizer.open()
                opened.append(recognizer)
            self.progress.set_delay(session.delay.seconds)
            self._check_cancel()
            self.controller.activate_window()
            self._scan_items()
        except CancelledError as exc:
            session.cancelled = True
            self._abort(exc, "cancelled")
        except (ControlError, NavigationStuckError) as exc:
            session.errors.record(exc.category)
            self._abort(exc, str(exc))
        except KeyboardInterrupt:
            self._cancel.set()
            session.cancelled = True
            self._abort(CancelledError("scan interrupted"), "cancelled")
        finally:
            # In-flight capture or recognition is allowed to finish.
            self._capture_pool.shutdown(wait=True)
            self._recognize_pool.shutdown(wait=True)
            for recognizer in reversed(opened):
                recognizer.close()
            session.duration_seconds = time.perf_counter() - started

        return session

    # ----- State bookkeeping -----

    def _all_recognizers(self) -> List[TextRecognizer]:
        unique: List[TextRecognizer] = []
        for recognizer in [self.recognizer, *self.region_recognizers.values()]:
            if not any(recognizer is seen for seen in unique):
                unique.append(recognizer)
        return unique

    def _transition(self, state: ScanState) -> None:
        session = self.session
        previous = session.state
        if state != ScanState.ABORTED and state not in _TRANSITIONS[previous]:
            raise RuntimeError(f"invalid scan transition {previous.value} -> {state.value}")
        session.state = state
        self.progress.on_transition(previous, state, session.cursor)

    def _check_cancel(self) -> None:
        if self._cancel.is_set() or self.controller.stop_requested():
            self._cancel.set()
            raise CancelledError("scan cancelled")

    def _abort(self, error: ScanError, reason: str) -> None:
        session = self.session
        session.abort_error = error
        session.terminal_reason = reason
        if not session.state.is_terminal:
            self._transition(ScanState.ABORTED)
        style = "yellow" if session.cancelled else "red"
        self.progress.add_event(f"Scan stopped: {reason}", style=style)
        self.progress.set_phase("Cancelled" if session.cancelled else "Aborted")

    def _complete(self, reason: str) -> None:
        self.session.terminal_reason = reason
        self._transition(ScanState.COMPLETED)
        self.progress.add_event(f"Scan complete: {reason}.", style="green")
        self.progress.set_phase("Done")

    def _completion_reason(self) -> Optional[str]:
        session = self.session
        if self.options.max_items is not None and session.items_processed >= self.options.max_items:
            return f"reached max items ({self.options.max_items})"
        if session.expected_total is not None and session.cursor >= session.expected_total:
            return f"reached inventory count ({session.expected_total})"
        return None

    # ----- Main loop -----

    def _scan_items(self) -> None:
        session = self.session
        while True:
            self._check_cancel()
            reason = self._completion_reason()
            if reason is not None:
                self._complete(reason)
                return

            self._transition(ScanState.NAVIGATING)
            self._navigate(session.cursor)
            self._check_cancel()

            try:
                self._scan_item(session.cursor)
            except _ItemEnd:
                self._complete("end of list")
                return
            session.cursor += 1

    # ----- Navigating -----

    def _navigate(self, index: int) -> None:
        """
        Select item `index`, scrolling whole rows once the cursor passes the
        last visible row. Re-clicks while the item panel shows the same item
        as before, up to the stall limit.
        """
        session = self.session
        grid = self.layout.grid
        row, col = grid.position(index)

        window = self._window_rect()
        if row >= grid.rows:
            needed = row - (grid.rows - 1) - session.scrolled_rows
            if needed > 0:
                self._await_stale_capture()
                self.controller.scroll(-grid.scroll_ticks_per_row * needed)
                session.scrolled_rows += needed
        visible_row = row - session.scrolled_rows
        target = self.layout.screen_point(grid.cell_center(visible_row, col), window)

        stuck = 0
        while True:
            self._await_stale_capture()
            self.controller.move_and_click(target)
            self._sleep(grid.settle_seconds)

            signature = self._read_signature(window)
            if self._signature is None or signature is None or signature != self._signature:
                if signature is not None:
                    self._signature = signature
                return

            stuck += 1
            self.progress.add_event(
                f"Item #{index + 1} did not change after click ({stuck}/{self.options.stall_limit})",
                style="yellow",
            )
            if stuck >= self.options.stall_limit:
                raise NavigationStuckError(
                    f"list did not advance after {stuck} attempts at item #{index + 1}"
                )
            self._check_cancel()

    def _window_rect(self) -> Rect:
        """
        Client rect of the game window. A minimized or briefly unavailable
        window is waited out for up to `stall_limit` attempts.
        """
        attempts = 0
        while True:
            try:
                return self.controller.get_window_rect()
            except CaptureError as exc:
                attempts += 1
                self.session.errors.record(exc.category)
                self.progress.add_event(
                    f"Window unavailable ({attempts}/{self.options.stall_limit}): {exc}",
                    style="yellow",
                )
                if attempts >= self.options.stall_limit:
                    raise ControlError(f"game window stayed unavailable: {exc}") from exc
            self._check_cancel()
            self._sleep(self.layout.grid.settle_seconds)

    def _read_signature(self, window: Rect) -> Optional[Tuple[str, ...]]:
        region_ids = self.layout.reference_regions
        try:
            frames = self._capture(window, region_ids)
            results = self._recognize(frames)
        except (CaptureError, RecognitionError) as exc:
            self.session.errors.record(exc.category)
            self.progress.add_event(f"Reference read failed: {exc}", style="yellow")
            return None
        return tuple(results[region_id].text.strip() for region_id in region_ids)

    # ----- Capturing / Recognizing -----

    def _capture(self, window: Rect, region_ids: Sequence[str]) -> Dict[str, CaptureFrame]:
        def grab() -> Dict[str, CaptureFrame]:
            self.capturer.prepare(window)
            return {
                region_id: self.capturer.capture(self.layout.screen_rect(region_id, window))
                for region_id in region_ids
            }

        self._await_stale_capture()
        future = self._capture_pool.submit(grab)
        try:
            return future.result(timeout=self.options.capture_timeout)
        except FutureTimeoutError as exc:
            self._stale_capture = future
            raise CaptureError(
                f"capture did not finish within {self.options.capture_timeout:.2f}s"
            ) from exc

    def _await_stale_capture(self) -> None:
        """Block until a timed-out grab has stopped reading the screen."""
        future, self._stale_capture = self._stale_capture, None
        if future is not None:
            wait([future])

    def _recognize(self, frames: Mapping[str, CaptureFrame]) -> Dict[str, RecognitionResult]:
        return recognize_regions(
            self._recognize_pool,
            frames,
            self.recognizer,
            overrides=self.region_recognizers,
            timeout=self.options.recognition_timeout,
        )

    # ----- Per item -----

    def _scan_item(self, index: int) -> None:
        session = self.session
        item_started = time.perf_counter()
        capture_seconds = 0.0
        recognize_seconds = 0.0
        retries = 0
        attempts = 0

        while True:
            attempts += 1
            self._transition(ScanState.CAPTURING)
            self._sleep(session.delay.seconds)

            error: Optional[ScanError] = None
            retryable = True
            artifact: Optional[Artifact] = None
            try:
                started = time.perf_counter()
                try:
                    frames = self._capture(self.controller.get_window_rect(), self._record_regions)
                finally:
                    capture_seconds += time.perf_counter() - started
                self._check_cancel()

                self._transition(ScanState.RECOGNIZING)
                started = time.perf_counter()
                try:
                    results = self._recognize(frames)
                finally:
                    recognize_seconds += time.perf_counter() - started
                self._check_cancel()

                self._transition(ScanState.VALIDATING)
                if is_empty_item(results):
                    raise _ItemEnd()
                self._tune_delay(results)
                artifact = validate(self.parser.parse(results))
            except ValidationError as exc:
                error, retryable = exc, exc.retryable
            except (CaptureError, RecognitionError) as exc:
                error = exc

            if error is None:
                session.delay.reset_smoothing()
                self._finish_item(index, artifact)
                break

            category = error.category or ErrorCategory.INVALID_RECORD
            if retryable and retries < self.options.max_retries:
                retries += 1
                session.errors.record(category)
                self._transition(ScanState.RETRYING)
                self.progress.add_event(
                    f"Item #{index + 1}: {_describe_category(category)}, "
                    f"retry {retries}/{self.options.max_retries}",
                    style="magenta",
                )
                self._check_cancel()
                continue

            if not retryable:
                session.errors.record(category)
            session.record_skip(category)
            session.items_processed += 1
            self._transition(ScanState.SKIPPED)
            self.progress.add_event(f"Item #{index + 1} skipped: {error}", style="yellow")
            self.progress.update_item(f"#{index + 1}", _describe_category(category), "SKIPPED")
            break

        timing = ItemTiming(
            index=index,
            capture_seconds=capture_seconds,
            recognize_seconds=recognize_seconds,
            total_seconds=time.perf_counter() - item_started,
            attempts=attempts,
        )
        session.timings.append(timing)
        if self.options.profile:
            self.progress.add_event(
                f"perf item={index + 1:04d} capture={timing.capture_seconds:.3f}s "
                f"recognize={timing.recognize_seconds:.3f}s total={timing.total_seconds:.3f}s "
                f"attempts={attempts}",
            )

    def _tune_delay(self, results: Mapping[str, RecognitionResult]) -> None:
        delay = self.session.delay
        threshold = self.options.confidence_threshold
        low = any(
            not results[region_id].is_empty and results[region_id].confidence < threshold
            for region_id in REQUIRED_REGIONS
            if region_id in results
        )
        if low:
            delay.on_low_confidence()
        else:
            delay.on_high_confidence()
        self.progress.set_delay(delay.seconds)

    def _finish_item(self, index: int, artifact: Artifact) -> None:
        session = self.session
        session.items_processed += 1
        if artifact.rarity < self.options.min_rarity or artifact.level < self.options.min_level:
            session.filtered += 1
            self.progress.update_item(f"#{index + 1}", artifact.label, "FILTERED")
            return
        self._transition(ScanState.ACCEPTED)
        session.records.append(artifact)
        self.progress.update_item(f"#{index + 1}", artifact.label, "ACCEPTED")
