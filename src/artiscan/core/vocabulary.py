from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from rapidfuzz import fuzz, process

from .artifact import Slot, StatKind

VOCABULARY_PATH = Path(__file__).resolve().parent.parent / "data" / "vocabulary_en.json"

# Minimum rapidfuzz ratio (0-100) for a closed-vocabulary match
DEFAULT_CUTOFF = 80.0


def normalize_label(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


@dataclass(frozen=True)
class StatLabel:
    flat: Optional[StatKind]
    percent: Optional[StatKind]


@dataclass(frozen=True)
class Vocabulary:
    """
    Closed sets of names the panel can show, keyed by display label.
    """

    sets: Mapping[str, str]
    slots: Mapping[str, Slot]
    stats: Mapping[str, StatLabel]
    phrases: Mapping[str, str]

    def match(
        self,
        text: str,
        choices: Mapping[str, object],
        cutoff: float = DEFAULT_CUTOFF,
    ) -> Optional[Tuple[str, float]]:
        """
        Best (label, score) for OCR text against `choices`, or None when
        nothing reaches `cutoff`.
        """
        query = normalize_label(text)
        if not query:
            return None
        best = process.extractOne(
            query,
            list(choices.keys()),
            scorer=fuzz.ratio,
            processor=normalize_label,
            score_cutoff=cutoff,
        )
        if best is None:
            return None
        label, score, _ = best
        return label, float(score)

    def set_key(self, text: str) -> Optional[str]:
        found = self.match(text, self.sets)
        return self.sets[found[0]] if found else None

    def slot(self, text: str) -> Optional[Slot]:
        found = self.match(text, self.slots)
        return self.slots[found[0]] if found else None

    def stat(self, text: str) -> Optional[StatLabel]:
        found = self.match(text, self.stats)
        return self.stats[found[0]] if found else None

    def phrase(self, key: str) -> str:
        return self.phrases.get(key, key)


def _parse_stats(raw: Dict[str, Dict[str, str]]) -> Dict[str, StatLabel]:
    stats: Dict[str, StatLabel] = {}
    for label, keys in raw.items():
        flat = keys.get("flat")
        percent = keys.get("percent")
        stats[label] = StatLabel(
            flat=StatKind(flat) if flat else None,
            percent=StatKind(percent) if percent else None,
        )
    return stats


def load_vocabulary(path: Path = VOCABULARY_PATH) -> Vocabulary:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise RuntimeError(f"vocabulary file not found at {path}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"could not parse vocabulary file {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise RuntimeError(f"vocabulary file {path} must be a JSON object")

    try:
        return Vocabulary(
            sets=dict(raw.get("sets", {})),
            slots={label: Slot(key) for label, key in raw.get("slots", {}).items()},
            stats=_parse_stats(raw.get("stats", {})),
            phrases=dict(raw.get("phrases", {})),
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise RuntimeError(f"invalid vocabulary file {path}: {exc}") from exc
