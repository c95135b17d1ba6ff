from __future__ import annotations

import argparse
import time
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional

from .engine import scan_artifacts
from .report import render_session
from ..config import load_scan_settings
from ..export.sink import ExportFormat, FileExportSink
from ..interaction.desktop import TARGET_WINDOW_TITLES
from ..interaction.keybinds import stop_key_label
from ..ocr.tesseract import DEFAULT_LANG
from ..ocr.vision import enable_ocr_debug


def _positive_int_arg(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return parsed


def _non_negative_int_arg(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return parsed


def _rarity_arg(value: str) -> int:
    parsed = _positive_int_arg(value)
    if parsed > 5:
        raise argparse.ArgumentTypeError("must be between 1 and 5")
    return parsed


def _ratio_arg(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be a number") from exc
    if not 0.0 <= parsed <= 1.0:
        raise argparse.ArgumentTypeError("must be between 0 and 1")
    return parsed


def _default_output(fmt: ExportFormat) -> Path:
    return Path(f"artifacts_{time.strftime('%Y%m%d_%H%M%S')}{fmt.suffix}")


def build_parser(settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scan the artifact backpack and export the artifacts."
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Export file (default: artifacts_<timestamp>.json/.csv in the current folder).",
    )
    parser.add_argument(
        "--format",
        dest="export_format",
        choices=[fmt.value for fmt in ExportFormat],
        default=settings.export_format,
        help="Export format: GOOD JSON or one CSV row per artifact.",
    )
    parser.add_argument(
        "--min-rarity",
        type=_rarity_arg,
        default=settings.min_rarity,
        help="Drop artifacts below this star rarity (still scanned).",
    )
    parser.add_argument(
        "--min-level",
        type=_non_negative_int_arg,
        default=settings.min_level,
        help="Drop artifacts below this level (still scanned).",
    )
    parser.add_argument(
        "--max-items",
        type=_positive_int_arg,
        default=settings.max_items,
        help="Stop after this many artifacts.",
    )
    parser.add_argument(
        "--max-retries",
        type=_non_negative_int_arg,
        default=settings.max_retries,
        help="Re-captures per artifact before it is skipped.",
    )
    parser.add_argument(
        "--threshold",
        type=_ratio_arg,
        default=settings.confidence_threshold,
        help="Minimum recognition confidence for required fields (0-1).",
    )
    parser.add_argument(
        "--tessdata",
        type=Path,
        default=None,
        help="Tesseract model: a tessdata folder or a .traineddata file.",
    )
    parser.add_argument(
        "--lang",
        default=DEFAULT_LANG,
        help="Tesseract language of the model.",
    )
    parser.add_argument(
        "--window-title",
        action="append",
        dest="window_titles",
        default=None,
        help="Game window title to wait for (repeatable).",
    )

    fast_group = parser.add_mutually_exclusive_group()
    fast_group.add_argument(
        "--fast",
        dest="fast_mode",
        action="store_true",
        help="Shrink capture delays; needs a fast machine.",
    )
    fast_group.add_argument(
        "--no-fast",
        dest="fast_mode",
        action="store_false",
        help="Use normal capture delays (ignores saved scan configuration).",
    )
    parser.set_defaults(fast_mode=settings.fast_mode)

    profile_group = parser.add_mutually_exclusive_group()
    profile_group.add_argument(
        "--profile",
        dest="profile",
        action="store_true",
        help="Log per-item timing (capture, recognize, total) to identify bottlenecks.",
    )
    profile_group.add_argument(
        "--no-profile",
        dest="profile",
        action="store_false",
        help="Disable per-item profiling (ignores saved scan configuration).",
    )
    parser.set_defaults(profile=settings.profile)

    debug_group = parser.add_mutually_exclusive_group()
    debug_group.add_argument(
        "--debug",
        "--debug-ocr",
        dest="debug_ocr",
        action="store_true",
        help="Save OCR input images to ./ocr_debug for debugging.",
    )
    debug_group.add_argument(
        "--no-debug",
        dest="debug_ocr",
        action="store_false",
        help="Disable OCR debug images (ignores saved scan configuration).",
    )
    parser.set_defaults(debug_ocr=settings.debug_ocr)
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    settings = load_scan_settings()
    parser = build_parser(settings)
    args = parser.parse_args(list(argv) if argv is not None else None)

    settings = replace(
        settings,
        export_format=args.export_format,
        min_rarity=args.min_rarity,
        min_level=args.min_level,
        max_items=args.max_items,
        max_retries=args.max_retries,
        confidence_threshold=args.threshold,
        fast_mode=args.fast_mode,
        profile=args.profile,
        debug_ocr=args.debug_ocr,
    )
    fmt = ExportFormat(settings.export_format)
    output = args.output or _default_output(fmt)

    if args.debug_ocr:
        enable_ocr_debug(Path("ocr_debug"))

    print(f"Press {stop_key_label(settings.stop_key)} to stop the scan.", flush=True)
    try:
        session = scan_artifacts(
            settings.to_options(),
            window_titles=tuple(args.window_titles or TARGET_WINDOW_TITLES),
            stop_key=settings.stop_key,
            tessdata=args.tessdata,
            lang=args.lang,
            show_progress=True,
        )
    except KeyboardInterrupt:
        print(f"Aborted by {stop_key_label(settings.stop_key)} key.")
        return 0
    except ValueError as exc:
        print(f"Error: {exc}")
        return 1
    except TimeoutError as exc:
        print(exc)
        return 1
    except RuntimeError as exc:
        print(f"Fatal: {exc}")
        return 1

    render_session(session)
    FileExportSink(output).export(session.records, session.errors, fmt)

    if session.abort_error is not None and not session.cancelled:
        return 1
    return 0
