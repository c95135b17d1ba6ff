from __future__ import annotations

from typing import List

from .artifact import (
    ALLOWED_MAIN_STATS,
    MAX_LEVEL_BY_RARITY,
    MAX_SUB_STATS,
    SUB_STAT_KINDS,
    UNKNOWN,
    Artifact,
    CandidateRecord,
    Stat,
)
from ..errors import ErrorCategory, ValidationError
from ..layout import ITEM_NAME, LEVEL, MAIN_STAT_NAME, RARITY, REQUIRED_REGIONS, SET_NAME, SLOT

# Display rounding tolerance when comparing against stat maxima
VALUE_TOLERANCE = 0.05

_REQUIRED_FIELDS = {
    ITEM_NAME: "item_name",
    SET_NAME: "set_key",
    SLOT: "slot",
    RARITY: "rarity",
    LEVEL: "level",
    MAIN_STAT_NAME: "main_stat",
}


def _check_value(stat: Stat, where: str) -> None:
    if stat.value <= 0 or stat.value > stat.kind.max_value + VALUE_TOLERANCE:
        raise ValidationError(
            f"{where} {stat} is outside (0, {stat.kind.max_value:g}]",
            retryable=False,
        )
    if not stat.kind.is_percent and not float(stat.value).is_integer():
        raise ValidationError(f"{where} {stat} is not a whole number", retryable=False)


def _check_sub_stats(candidate: CandidateRecord) -> None:
    subs: List[Stat] = candidate.sub_stats
    if len(subs) > MAX_SUB_STATS:
        raise ValidationError(f"{len(subs)} sub-stats (max {MAX_SUB_STATS})", retryable=False)
    seen = set()
    for stat in subs:
        if stat.kind not in SUB_STAT_KINDS:
            raise ValidationError(f"{stat.kind.value} cannot be a sub-stat", retryable=False)
        if stat.kind in seen:
            raise ValidationError(f"duplicate sub-stat {stat.kind.value}", retryable=False)
        if candidate.main_stat is not None and stat.kind == candidate.main_stat.kind:
            raise ValidationError(
                f"sub-stat {stat.kind.value} repeats the main stat", retryable=False
            )
        seen.add(stat.kind)
        _check_value(stat, "sub-stat")


def validate(candidate: CandidateRecord) -> Artifact:
    """
    Promote a candidate to a validated Artifact or raise ValidationError.

    Unreadable or unparsable required fields are retryable; a record whose
    fields parsed but contradict each other is not. An impossible rarity
    rejects the item outright, whatever the other fields say.
    """
    if candidate.rarity is not None and candidate.rarity not in MAX_LEVEL_BY_RARITY:
        raise ValidationError(f"rarity {candidate.rarity} is outside 1-5", retryable=False)

    if candidate.low_confidence:
        raise ValidationError(
            f"low confidence in {', '.join(candidate.low_confidence)}",
            retryable=True,
            category=ErrorCategory.LOW_CONFIDENCE,
        )

    required_errors = [
        region_id for region_id in candidate.errors if region_id in REQUIRED_REGIONS
    ]
    if required_errors:
        details = "; ".join(str(candidate.errors[r]) for r in required_errors)
        raise ValidationError(details, retryable=True, category=ErrorCategory.PARSE_MISMATCH)

    missing = [
        region_id
        for region_id, attr in _REQUIRED_FIELDS.items()
        if getattr(candidate, attr) is None
    ]
    if missing:
        raise ValidationError(
            f"missing required fields: {', '.join(missing)}",
            retryable=True,
            category=ErrorCategory.PARSE_MISMATCH,
        )

    rarity = candidate.rarity
    level = candidate.level
    max_level = MAX_LEVEL_BY_RARITY[rarity]
    if level < 0 or level > max_level:
        raise ValidationError(
            f"level {level} exceeds the {rarity}-star maximum of {max_level}",
            retryable=False,
        )

    main_stat = candidate.main_stat
    if main_stat.kind not in ALLOWED_MAIN_STATS[candidate.slot]:
        raise ValidationError(
            f"{main_stat.kind.value} is not a {candidate.slot.value} main stat",
            retryable=False,
        )
    _check_value(main_stat, "main stat")
    _check_sub_stats(candidate)

    location = None if candidate.location is UNKNOWN else candidate.location
    lock = None if candidate.lock is UNKNOWN else candidate.lock

    return Artifact(
        set_key=candidate.set_key,
        slot=candidate.slot,
        rarity=rarity,
        level=level,
        main_stat=main_stat,
        sub_stats=tuple(candidate.sub_stats),
        item_name=candidate.item_name or "",
        location=location,
        lock=lock,
        unknown_fields=frozenset(candidate.unknown_fields),
    )
