from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .progress import RichScanProgress, ScanProgress
from .rich_support import RICH_AVAILABLE
from .scan_loop import ArtifactScanner, ScanOptions
from .session import ScanSession
from ..core.parser import parse_inventory_count
from ..core.vocabulary import VOCABULARY_PATH, load_vocabulary
from ..geometry import Rect
from ..interaction.capture import Capturer, default_capturer
from ..interaction.desktop import (
    TARGET_WINDOW_TITLES,
    WINDOW_TIMEOUT,
    DesktopController,
    wait_for_target_window,
)
from ..interaction.keybinds import DEFAULT_STOP_KEY, normalize_stop_key
from ..layout import INVENTORY_COUNT, LOCK, RARITY, Layout, layout_for_size
from ..ocr.recognizer import TextRecognizer
from ..ocr.tesseract import DEFAULT_LANG, TesseractRecognizer
from ..ocr.vision import lock_recognizer, rarity_recognizer


def _validate_scan_args(
    *,
    options: ScanOptions,
    window_timeout: float,
    expected_total: Optional[int],
) -> None:
    options.validate()
    if window_timeout <= 0:
        raise ValueError("window_timeout must be > 0")
    if expected_total is not None and expected_total < 0:
        raise ValueError("expected_total must be >= 0")


def _build_progress_impl(
    show_progress: bool,
    progress: Optional[ScanProgress],
) -> Optional[ScanProgress]:
    if progress is not None:
        return progress
    if not show_progress or not RICH_AVAILABLE:
        return None
    try:
        return RichScanProgress()
    except Exception:
        return None


def _queue_event(
    progress_impl: Optional[ScanProgress],
    startup_events: List[Tuple[str, str]],
    message: str,
    *,
    style: str = "dim",
) -> None:
    if progress_impl is not None:
        progress_impl.add_event(message, style=style)
    else:
        startup_events.append((message, style))


def _detect_inventory_count(
    *,
    capturer: Capturer,
    recognizer: TextRecognizer,
    layout: Layout,
    window: Rect,
    startup_events: List[Tuple[str, str]],
) -> Tuple[Optional[int], str]:
    """
    Read the "Artifacts N/M" label in the backpack header.
    """
    if INVENTORY_COUNT not in layout:
        return None, ""
    try:
        recognizer.open()
        capturer.prepare(window)
        frame = capturer.capture(layout.screen_rect(INVENTORY_COUNT, window))
        text = recognizer.recognize(frame.pixels).text
    except Exception as exc:
        startup_events.append((f"Failed to read inventory count: {exc}", "yellow"))
        return None, ""
    return parse_inventory_count(text), text


def scan_artifacts(
    options: Optional[ScanOptions] = None,
    *,
    window_titles: Sequence[str] = TARGET_WINDOW_TITLES,
    window_timeout: float = WINDOW_TIMEOUT,
    stop_key: str = DEFAULT_STOP_KEY,
    tessdata: Optional[Path] = None,
    lang: str = DEFAULT_LANG,
    vocabulary_path: Path = VOCABULARY_PATH,
    expected_total: Optional[int] = None,
    show_progress: bool = True,
    progress: Optional[ScanProgress] = None,
) -> ScanSession:
    """
    Scan the artifact backpack of the focused game window.

    Waits for the game to become the active window, resolves the layout for
    its client size and, unless `expected_total` is given, reads the
    inventory count so the scan can stop right after the last artifact.
    The returned session holds every record gathered, also when the scan
    was cancelled or aborted.
    """
    options = options or ScanOptions()
    _validate_scan_args(
        options=options,
        window_timeout=window_timeout,
        expected_total=expected_total,
    )
    stop_key = normalize_stop_key(stop_key)
    vocabulary = load_vocabulary(vocabulary_path)

    progress_impl = _build_progress_impl(show_progress, progress)
    if progress_impl is not None:
        progress_impl.start()
        progress_impl.set_phase("Waiting for game window…")

    recognizer = TesseractRecognizer(
        tessdata,
        vocabulary_path,
        lang=lang,
        pool_size=options.recognition_workers,
    )
    capturer = default_capturer(snapshot=True)
    startup_events: List[Tuple[str, str]] = []
    scan_start = time.perf_counter()

    try:
        if progress_impl is None:
            print(f"waiting for {' / '.join(window_titles)} to be the active window...", flush=True)
        window = wait_for_target_window(titles=tuple(window_titles), timeout=window_timeout)
        controller = DesktopController(window, stop_key=stop_key)
        window_rect = controller.get_window_rect()
        layout = layout_for_size(window_rect.size)
        _queue_event(
            progress_impl,
            startup_events,
            f"Window {window_rect.width}x{window_rect.height} at "
            f"({window_rect.left},{window_rect.top}); layout {layout.name}",
        )

        count_text = ""
        if expected_total is None:
            expected_total, count_text = _detect_inventory_count(
                capturer=capturer,
                recognizer=recognizer,
                layout=layout,
                window=window_rect,
                startup_events=startup_events,
            )

        if progress_impl is not None:
            if expected_total is None and count_text:
                progress_impl.set_inventory_label(f"? artifacts (OCR '{count_text}')")
            else:
                label = expected_total if expected_total is not None else "?"
                progress_impl.set_inventory_label(f"{label} artifacts")
            progress_impl.set_total(expected_total or options.max_items)
            progress_impl.set_phase("Scanning…")
            progress_impl.start_timer()
            for message, style in startup_events:
                progress_impl.add_event(message, style=style)
            startup_events.clear()
        else:
            for message, _style in startup_events:
                print(f"[warning] {message}", flush=True)
            startup_events.clear()

        scanner = ArtifactScanner(
            capturer=capturer,
            controller=controller,
            recognizer=recognizer,
            layout=layout,
            vocabulary=vocabulary,
            options=options,
            progress=progress_impl,
            region_recognizers={RARITY: rarity_recognizer(), LOCK: lock_recognizer()},
            expected_total=expected_total,
        )
        session = scanner.run()
        session.inventory_count_text = count_text
        session.duration_seconds = time.perf_counter() - scan_start

        if options.profile:
            stats = recognizer.stats
            print(
                f"[perf] recognize calls={stats.calls} avg={stats.average_seconds * 1000:.1f}ms "
                f"total={stats.total_seconds:.2f}s",
                flush=True,
            )
        return session
    finally:
        recognizer.close()
        capturer.close()
        if progress_impl is not None:
            progress_impl.stop()
