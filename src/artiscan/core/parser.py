"""
Text-to-field parsing for the artifact detail panel.

Each field parser takes raw OCR text and either returns a typed value or
raises ParseError for that field. Numeric fields go through a small
correction table first, since the OCR model confuses digits with
look-alike letters and the client may localize decimal punctuation.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional, Tuple

from rapidfuzz import fuzz

from .artifact import (
    MAX_SUB_STATS,
    UNKNOWN,
    CandidateRecord,
    Slot,
    Stat,
    StatKind,
)
from .vocabulary import Vocabulary, normalize_label
from ..errors import ParseError
from ..layout import (
    EQUIP,
    ITEM_NAME,
    LEVEL,
    LOCK,
    MAIN_STAT_NAME,
    MAIN_STAT_VALUE,
    RARITY,
    REQUIRED_REGIONS,
    SET_NAME,
    SLOT,
    SUB_STATS,
)
from ..ocr.recognizer import EMPTY_RESULT, RecognitionResult

# Letters the OCR model returns in place of digits
DIGIT_CORRECTIONS = {
    "O": "0",
    "o": "0",
    "D": "0",
    "Q": "0",
    "l": "1",
    "I": "1",
    "i": "1",
    "|": "1",
    "!": "1",
    "S": "5",
    "s": "5",
    "B": "8",
    "Z": "2",
    "z": "2",
    "G": "6",
    "g": "9",
    "T": "7",
}

# Full-width and localized punctuation
PUNCTUATION_CORRECTIONS = {
    "，": ",",
    "．": ".",
    "·": ".",
    "％": "%",
    "＋": "+",
    "٫": ".",
    " ": "",
    " ": "",
}

_NUMBER_RE = re.compile(r"^\+?(\d+(?:\.\d+)?)(%?)$")
# "4.780": a dot before groups of three digits separates thousands in some locales
_DOT_THOUSANDS_RE = re.compile(r"^\+?\d{1,3}(?:\.\d{3})+$")
_LEVEL_PREFIX_RE = re.compile(r"^(?:lv\.?|level)", re.IGNORECASE)
_INVENTORY_COUNT_RE = re.compile(r"(\d+)\s*/\s*(\d+)")
_STAR_CHARS = "★☆*"

INVENTORY_MAX_COUNT = 2100


def apply_corrections(text: str) -> str:
    """
    Normalize a numeric field: punctuation first, then digit look-alikes.
    Decimal commas become dots; thousands separators are dropped.
    """
    for src, dst in PUNCTUATION_CORRECTIONS.items():
        text = text.replace(src, dst)
    text = "".join(DIGIT_CORRECTIONS.get(ch, ch) for ch in text.strip())

    if "," in text:
        if "." in text:
            text = text.replace(",", "")
        elif re.search(r",\d{3}(?!\d)", text):
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
    return text


def parse_number(text: str, field: str = "value") -> Tuple[float, bool]:
    """(value, is_percent) from text such as "4,780", "46.6%" or "+3.9%"."""
    raw = text
    if "++" in text:
        raise ParseError(field, raw, "doubled sign")
    corrected = apply_corrections(text)
    match = _NUMBER_RE.match(corrected)
    if not match:
        raise ParseError(field, raw)
    return float(match.group(1)), bool(match.group(2))


def parse_level(text: str) -> int:
    stripped = _LEVEL_PREFIX_RE.sub("", text.strip()).strip()
    corrected = apply_corrections(stripped).lstrip("+")
    if not corrected.isdigit():
        raise ParseError("level", text)
    return int(corrected)


def parse_rarity(text: str) -> int:
    """
    Rarity from a digit ("5", "5★") or a run of stars ("★★★★★").
    Range is checked by validation, not here.
    """
    stripped = text.strip()
    if stripped and all(ch in _STAR_CHARS for ch in stripped.replace(" ", "")):
        return len(stripped.replace(" ", ""))
    corrected = apply_corrections(stripped.rstrip(_STAR_CHARS))
    if not corrected.isdigit():
        raise ParseError("rarity", text)
    return int(corrected)


def _whole_flat_value(value_text: str, field: str) -> float:
    corrected = apply_corrections(value_text)
    if _DOT_THOUSANDS_RE.match(corrected):
        return float(corrected.lstrip("+").replace(".", ""))
    raise ParseError(field, value_text, "flat stat is not a whole number")


def resolve_stat(
    vocabulary: Vocabulary,
    name: str,
    value: float,
    is_percent: bool,
    field: str,
    value_text: str = "",
) -> Stat:
    label = vocabulary.stat(name)
    if label is None:
        raise ParseError(field, name, "unknown stat name")
    kind: Optional[StatKind] = label.percent if is_percent else label.flat
    if kind is None:
        # Stats like CRIT Rate only exist as percentages; accept a dropped "%".
        kind = label.percent if label.flat is None else None
        if kind is None:
            raise ParseError(field, f"{name}+{value}", "percent sign does not fit stat")
    if not kind.is_percent and not float(value).is_integer():
        value = _whole_flat_value(value_text or f"{value}", field)
    return Stat(kind, value)


def parse_stat_line(vocabulary: Vocabulary, text: str, field: str = "sub-stat") -> Stat:
    """A sub-stat line such as "CRIT Rate+3.9%"."""
    raw = text
    cleaned = text.strip().lstrip("•·-. ")
    if "++" in cleaned:
        raise ParseError(field, raw, "doubled sign")
    name, sep, value_text = cleaned.rpartition("+")
    if not sep:
        raise ParseError(field, raw, "missing '+'")
    name = name.strip()
    value_text = value_text.strip()
    if not name or not value_text:
        raise ParseError(field, raw, "empty name or value")
    value, is_percent = parse_number(value_text, field)
    return resolve_stat(vocabulary, name, value, is_percent, field, value_text)


def parse_main_stat(vocabulary: Vocabulary, name_text: str, value_text: str) -> Stat:
    if not name_text.strip():
        raise ParseError("main-stat-name", name_text, "empty")
    if not value_text.strip():
        raise ParseError("main-stat-value", value_text, "empty")
    value, is_percent = parse_number(value_text, "main-stat-value")
    return resolve_stat(
        vocabulary, name_text, value, is_percent, "main-stat-name", value_text
    )


def parse_slot(vocabulary: Vocabulary, text: str) -> Slot:
    slot = vocabulary.slot(text)
    if slot is None:
        raise ParseError("slot", text)
    return slot


def parse_set_name(vocabulary: Vocabulary, text: str) -> str:
    key = vocabulary.set_key(text.strip().rstrip(":："))
    if key is None:
        raise ParseError("set-name", text)
    return key


def parse_item_name(text: str) -> str:
    name = " ".join(text.split())
    if not name:
        raise ParseError("item-name", text, "empty")
    return name


def parse_equip(vocabulary: Vocabulary, text: str) -> Optional[str]:
    """
    Character name from "Equipped: Furina"; None when nothing is equipped.
    """
    cleaned = " ".join(text.split())
    if not cleaned:
        return None
    prefix, sep, name = cleaned.partition(":")
    if not sep:
        prefix, sep, name = cleaned.partition("：")
    if not sep:
        raise ParseError("equip", text, "missing ':'")
    expected = normalize_label(vocabulary.phrase("equipped"))
    if fuzz.ratio(normalize_label(prefix), expected) < 70:
        raise ParseError("equip", text, "unexpected prefix")
    name = name.strip()
    if not name:
        raise ParseError("equip", text, "empty character name")
    return name


def parse_lock(vocabulary: Vocabulary, text: str) -> bool:
    lowered = normalize_label(text)
    if lowered == normalize_label(vocabulary.phrase("locked")):
        return True
    if lowered == normalize_label(vocabulary.phrase("unlocked")):
        return False
    raise ParseError("lock", text)


def parse_inventory_count(text: str) -> Optional[int]:
    """
    Item total from the backpack header, e.g. "Artifacts 1234/2100".
    """
    match = _INVENTORY_COUNT_RE.search(apply_corrections_keep_spacing(text))
    if not match:
        return None
    count = int(match.group(1))
    return min(count, INVENTORY_MAX_COUNT)


def apply_corrections_keep_spacing(text: str) -> str:
    """Digit corrections applied only to tokens that already contain a digit."""
    tokens = []
    for token in text.split():
        if any(ch.isdigit() for ch in token):
            token = "".join(DIGIT_CORRECTIONS.get(ch, ch) for ch in token)
        tokens.append(token)
    return " ".join(tokens)


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------


class RecordParser:
    """
    Assemble a CandidateRecord from the recognized regions of one item.

    Required fields are never relaxed: a low-confidence read is reported as
    such and a parse failure is kept as a field error. Optional fields that
    are unreadable, or read below threshold, are marked unknown instead.
    """

    def __init__(self, vocabulary: Vocabulary, threshold: float = 0.7) -> None:
        self.vocabulary = vocabulary
        self.threshold = threshold

    def parse(self, results: Mapping[str, RecognitionResult]) -> CandidateRecord:
        candidate = CandidateRecord()

        for region_id in REQUIRED_REGIONS:
            result = results.get(region_id)
            if result is None or result.is_empty:
                continue
            if result.confidence < self.threshold:
                candidate.low_confidence.append(region_id)

        trusted = {
            region_id: result
            for region_id, result in results.items()
            if region_id not in candidate.low_confidence
        }
        self._parse_required(candidate, trusted)
        self._parse_optional(candidate, results)
        return candidate

    def _run(self, candidate: CandidateRecord, region_id: str, fn, *args):
        try:
            return fn(*args)
        except ParseError as exc:
            candidate.errors[region_id] = exc
            return None

    def _parse_required(
        self, candidate: CandidateRecord, results: Mapping[str, RecognitionResult]
    ) -> None:
        vocab = self.vocabulary

        def text(region_id: str) -> str:
            return results.get(region_id, EMPTY_RESULT).text

        if text(ITEM_NAME):
            candidate.item_name = self._run(candidate, ITEM_NAME, parse_item_name, text(ITEM_NAME))
        if text(SET_NAME):
            candidate.set_key = self._run(candidate, SET_NAME, parse_set_name, vocab, text(SET_NAME))
        if text(SLOT):
            candidate.slot = self._run(candidate, SLOT, parse_slot, vocab, text(SLOT))
        if text(RARITY):
            candidate.rarity = self._run(candidate, RARITY, parse_rarity, text(RARITY))
        if text(LEVEL):
            candidate.level = self._run(candidate, LEVEL, parse_level, text(LEVEL))
        if text(MAIN_STAT_NAME) and text(MAIN_STAT_VALUE):
            try:
                candidate.main_stat = parse_main_stat(
                    vocab, text(MAIN_STAT_NAME), text(MAIN_STAT_VALUE)
                )
            except ParseError as exc:
                candidate.errors[exc.field] = exc

    def _parse_optional(
        self, candidate: CandidateRecord, results: Mapping[str, RecognitionResult]
    ) -> None:
        vocab = self.vocabulary

        for region_id in SUB_STATS[:MAX_SUB_STATS]:
            result = results.get(region_id)
            if result is None or result.is_empty:
                continue
            if result.confidence < self.threshold:
                candidate.mark_unknown(region_id)
                continue
            try:
                candidate.sub_stats.append(parse_stat_line(vocab, result.text, region_id))
            except ParseError as exc:
                candidate.errors[region_id] = exc
                candidate.mark_unknown(region_id)

        equip = results.get(EQUIP)
        if equip is not None and not equip.is_empty:
            if equip.confidence < self.threshold:
                candidate.location = UNKNOWN
                candidate.mark_unknown(EQUIP)
            else:
                try:
                    candidate.location = parse_equip(vocab, equip.text)
                except ParseError as exc:
                    candidate.errors[EQUIP] = exc
                    candidate.location = UNKNOWN
                    candidate.mark_unknown(EQUIP)

        lock = results.get(LOCK)
        if lock is not None and not lock.is_empty:
            if lock.confidence < self.threshold:
                candidate.lock = UNKNOWN
                candidate.mark_unknown(LOCK)
            else:
                try:
                    candidate.lock = parse_lock(vocab, lock.text)
                except ParseError as exc:
                    candidate.errors[LOCK] = exc
                    candidate.lock = UNKNOWN
                    candidate.mark_unknown(LOCK)


def is_empty_item(results: Mapping[str, RecognitionResult]) -> bool:
    """
    True when every required region came back blank: the cursor sits on an
    empty slot past the end of the list.
    """
    required = [results.get(region_id) for region_id in REQUIRED_REGIONS]
    present = [result for result in required if result is not None]
    return bool(present) and all(result.is_empty for result in present)
