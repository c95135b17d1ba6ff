from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from .interaction.keybinds import DEFAULT_STOP_KEY, normalize_stop_key
from .scanner.scan_loop import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_STALL_LIMIT,
    DEFAULT_THRESHOLD,
    ScanOptions,
)

CONFIG_VERSION = 1
APP_CONFIG_DIR_NAME = "Artiscan"
CONFIG_FILE_NAME = "config.json"


ExportFormatName = Literal["good", "csv"]


@dataclass(frozen=True)
class ScanSettings:
    confidence_threshold: float = DEFAULT_THRESHOLD
    max_retries: int = DEFAULT_MAX_RETRIES
    stall_limit: int = DEFAULT_STALL_LIMIT
    base_delay_ms: int = 120
    fast_mode: bool = False
    min_rarity: int = 1
    min_level: int = 0
    max_items: Optional[int] = None
    recognition_workers: int = 4
    capture_timeout_ms: int = 1500
    recognition_timeout_ms: int = 4000
    stop_key: str = DEFAULT_STOP_KEY
    export_format: ExportFormatName = "good"
    debug_ocr: bool = False
    profile: bool = False

    def to_options(self) -> ScanOptions:
        return ScanOptions(
            confidence_threshold=self.confidence_threshold,
            max_retries=self.max_retries,
            stall_limit=self.stall_limit,
            base_delay=self.base_delay_ms / 1000.0,
            fast_mode=self.fast_mode,
            min_rarity=self.min_rarity,
            min_level=self.min_level,
            max_items=self.max_items,
            recognition_workers=self.recognition_workers,
            capture_timeout=self.capture_timeout_ms / 1000.0,
            recognition_timeout=self.recognition_timeout_ms / 1000.0,
            profile=self.profile,
        )


def _config_dir() -> Path:
    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / APP_CONFIG_DIR_NAME
    return Path.home() / f".{APP_CONFIG_DIR_NAME.lower()}"


def config_path() -> Path:
    return _config_dir() / CONFIG_FILE_NAME


def _coerce_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _coerce_int(value: Any, default: int, *, min_value: int, max_value: Optional[int] = None) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    if value < min_value or (max_value is not None and value > max_value):
        return default
    return value


def _coerce_positive_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def _coerce_ratio(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not 0.0 <= value <= 1.0:
        return default
    return float(value)


def _from_raw_scan_settings(raw: Any) -> ScanSettings:
    if not isinstance(raw, dict):
        return ScanSettings()

    defaults = ScanSettings()
    export_format = raw.get("export_format")
    if export_format not in ("good", "csv"):
        export_format = defaults.export_format

    return ScanSettings(
        confidence_threshold=_coerce_ratio(
            raw.get("confidence_threshold"), defaults.confidence_threshold
        ),
        max_retries=_coerce_int(raw.get("max_retries"), defaults.max_retries, min_value=0),
        stall_limit=_coerce_int(raw.get("stall_limit"), defaults.stall_limit, min_value=1),
        base_delay_ms=_coerce_int(raw.get("base_delay_ms"), defaults.base_delay_ms, min_value=0),
        fast_mode=_coerce_bool(raw.get("fast_mode"), False),
        min_rarity=_coerce_int(raw.get("min_rarity"), 1, min_value=1, max_value=5),
        min_level=_coerce_int(raw.get("min_level"), 0, min_value=0, max_value=20),
        max_items=_coerce_positive_int(raw.get("max_items")),
        recognition_workers=_coerce_int(
            raw.get("recognition_workers"), defaults.recognition_workers, min_value=1
        ),
        capture_timeout_ms=_coerce_int(
            raw.get("capture_timeout_ms"), defaults.capture_timeout_ms, min_value=1
        ),
        recognition_timeout_ms=_coerce_int(
            raw.get("recognition_timeout_ms"), defaults.recognition_timeout_ms, min_value=1
        ),
        stop_key=normalize_stop_key(raw.get("stop_key")),
        export_format=export_format,
        debug_ocr=_coerce_bool(raw.get("debug_ocr"), False),
        profile=_coerce_bool(raw.get("profile"), False),
    )


def load_scan_settings() -> ScanSettings:
    path = config_path()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return ScanSettings()
    except (OSError, json.JSONDecodeError):
        return ScanSettings()

    if not isinstance(raw, dict):
        return ScanSettings()

    return _from_raw_scan_settings(raw.get("scan"))


def save_scan_settings(settings: ScanSettings) -> None:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    payload: Dict[str, Any] = {
        "version": CONFIG_VERSION,
        "scan": asdict(settings),
    }
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def reset_scan_settings() -> None:
    save_scan_settings(ScanSettings())
