from __future__ import annotations

from dataclasses import replace

from ..config import ScanSettings, config_path, load_scan_settings, reset_scan_settings, save_scan_settings
from ..interaction.keybinds import normalize_stop_key, stop_key_label


def _format_settings(settings: ScanSettings) -> list[str]:
    max_items_label = "All" if settings.max_items is None else str(settings.max_items)
    return [
        f"Confidence threshold: {settings.confidence_threshold:.2f}",
        f"Retries per artifact: {settings.max_retries}",
        f"Base capture delay: {settings.base_delay_ms}ms",
        f"Fast mode: {'On' if settings.fast_mode else 'Off'}",
        f"Minimum rarity: {settings.min_rarity}*",
        f"Minimum level: +{settings.min_level}",
        f"Max artifacts: {max_items_label}",
        f"Stop key: {stop_key_label(settings.stop_key)}",
        f"Export format: {settings.export_format.upper()}",
        f"Debug OCR: {'On' if settings.debug_ocr else 'Off'}",
        f"Profile timing: {'On' if settings.profile else 'Off'}",
    ]


def _prompt_int(prompt: str, *, min_value: int, max_value: int = 10**6) -> int:
    while True:
        raw = input(prompt).strip()
        try:
            value = int(raw)
        except ValueError:
            print("Please enter a whole number.")
            continue
        if value < min_value or value > max_value:
            print(f"Please enter a value between {min_value} and {max_value}.")
            continue
        return value


def _prompt_ratio(prompt: str) -> float:
    while True:
        raw = input(prompt).strip()
        try:
            value = float(raw)
        except ValueError:
            print("Please enter a number.")
            continue
        if not 0.0 <= value <= 1.0:
            print("Please enter a value between 0 and 1.")
            continue
        return value


def main(argv=None) -> int:
    _ = argv
    while True:
        settings = load_scan_settings()
        print("\nScan Configuration (persists across sessions)\n")
        for idx, line in enumerate(_format_settings(settings), start=1):
            print(f"  {idx:>2}) {line}")
        print("  12) Reset all to defaults")
        print("   b) Back\n")
        print(f"Config file: {config_path()}\n")

        choice = input("Select an option: ").strip().lower()
        if choice == "b":
            return 0

        if choice == "1":
            threshold = _prompt_ratio("Confidence threshold (0-1): ")
            save_scan_settings(replace(settings, confidence_threshold=threshold))
            continue

        if choice == "2":
            retries = _prompt_int("Retries per artifact (0 disables): ", min_value=0)
            save_scan_settings(replace(settings, max_retries=retries))
            continue

        if choice == "3":
            delay_ms = _prompt_int("Base capture delay (ms): ", min_value=0)
            save_scan_settings(replace(settings, base_delay_ms=delay_ms))
            continue

        if choice == "4":
            save_scan_settings(replace(settings, fast_mode=not settings.fast_mode))
            continue

        if choice == "5":
            rarity = _prompt_int("Minimum rarity (1-5): ", min_value=1, max_value=5)
            save_scan_settings(replace(settings, min_rarity=rarity))
            continue

        if choice == "6":
            level = _prompt_int("Minimum level (0-20): ", min_value=0, max_value=20)
            save_scan_settings(replace(settings, min_level=level))
            continue

        if choice == "7":
            count = _prompt_int("Max artifacts (0 scans all): ", min_value=0)
            save_scan_settings(replace(settings, max_items=count or None))
            continue

        if choice == "8":
            key = input("Stop key (e.g. esc, f9, q): ")
            save_scan_settings(replace(settings, stop_key=normalize_stop_key(key)))
            continue

        if choice == "9":
            fmt = "csv" if settings.export_format == "good" else "good"
            save_scan_settings(replace(settings, export_format=fmt))
            continue

        if choice == "10":
            save_scan_settings(replace(settings, debug_ocr=not settings.debug_ocr))
            continue

        if choice == "11":
            save_scan_settings(replace(settings, profile=not settings.profile))
            continue

        if choice == "12":
            reset_scan_settings()
            continue

        print("Invalid choice.")
