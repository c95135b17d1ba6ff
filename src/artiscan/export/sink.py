from __future__ import annotations

import csv
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..core.artifact import MAX_SUB_STATS, Artifact, location_key
from ..errors import ErrorStats

GOOD_FORMAT = "GOOD"
GOOD_VERSION = 2
GOOD_SOURCE = "artiscan"

CSV_FIELDS = (
    ["set", "slot", "rarity", "level", "main_stat", "main_value"]
    + [f"sub{i}_{part}" for i in range(1, MAX_SUB_STATS + 1) for part in ("key", "value")]
    + ["location", "lock", "unknown_fields"]
)


class ExportFormat(str, Enum):
    GOOD = "good"
    CSV = "csv"

    @property
    def suffix(self) -> str:
        return ".json" if self is ExportFormat.GOOD else ".csv"


def good_document(records: Sequence[Artifact]) -> Dict[str, Any]:
    return {
        "format": GOOD_FORMAT,
        "version": GOOD_VERSION,
        "source": GOOD_SOURCE,
        "artifacts": [artifact.to_good() for artifact in records],
    }


def write_good(path: Path, records: Sequence[Artifact]) -> None:
    path.write_text(
        json.dumps(good_document(records), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


def _csv_row(artifact: Artifact) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "set": artifact.set_key,
        "slot": artifact.slot.value,
        "rarity": artifact.rarity,
        "level": artifact.level,
        "main_stat": artifact.main_stat.kind.value,
        "main_value": artifact.main_stat.value,
        "location": location_key(artifact.location) if artifact.location else "",
        "lock": "" if artifact.lock is None else str(artifact.lock).lower(),
        "unknown_fields": ";".join(sorted(artifact.unknown_fields)),
    }
    for i in range(MAX_SUB_STATS):
        stat = artifact.sub_stats[i] if i < len(artifact.sub_stats) else None
        row[f"sub{i + 1}_key"] = stat.kind.value if stat else ""
        row[f"sub{i + 1}_value"] = stat.value if stat else ""
    return row


def write_csv(path: Path, records: Sequence[Artifact]) -> None:
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for artifact in records:
            writer.writerow(_csv_row(artifact))


class ExportSink:
    """
    Receives the validated records of a finished scan, in traversal order,
    together with the session's error tally.
    """

    def export(self, records: Sequence[Artifact], errors: ErrorStats, fmt: ExportFormat) -> Path:
        raise NotImplementedError


class FileExportSink(ExportSink):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def export(
        self,
        records: Sequence[Artifact],
        errors: ErrorStats,
        fmt: ExportFormat = ExportFormat.GOOD,
    ) -> Path:
        try:
            fmt = ExportFormat(fmt)
        except ValueError as exc:
            supported = ", ".join(item.value for item in ExportFormat)
            raise ValueError(f"unsupported export format {fmt!r} (expected {supported})") from exc

        self.path.parent.mkdir(parents=True, exist_ok=True)
        items: List[Artifact] = list(records)
        if fmt is ExportFormat.GOOD:
            write_good(self.path, items)
        else:
            write_csv(self.path, items)

        print(
            f"[export] wrote {len(items)} artifact(s) to {self.path} ({fmt.value}); "
            f"errors: {errors.summary()}",
            flush=True,
        )
        return self.path
