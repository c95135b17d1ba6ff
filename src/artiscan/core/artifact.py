"""
Artifact record types.

`CandidateRecord` is filled field by field while an item's regions are
parsed; `Artifact` is the validated, immutable record handed to exporters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from ..errors import ParseError


class StatKind(str, Enum):
    """Stat identifiers; values are GOOD stat keys."""

    HP = "hp"
    HP_PERCENT = "hp_"
    ATK = "atk"
    ATK_PERCENT = "atk_"
    DEF = "def"
    DEF_PERCENT = "def_"
    ELEMENTAL_MASTERY = "eleMas"
    ENERGY_RECHARGE = "enerRech_"
    CRIT_RATE = "critRate_"
    CRIT_DMG = "critDMG_"
    HEALING_BONUS = "heal_"
    PYRO_DMG = "pyro_dmg_"
    HYDRO_DMG = "hydro_dmg_"
    ELECTRO_DMG = "electro_dmg_"
    CRYO_DMG = "cryo_dmg_"
    ANEMO_DMG = "anemo_dmg_"
    GEO_DMG = "geo_dmg_"
    DENDRO_DMG = "dendro_dmg_"
    PHYSICAL_DMG = "physical_dmg_"

    @property
    def is_percent(self) -> bool:
        return self.value.endswith("_")

    @property
    def max_value(self) -> float:
        return STAT_MAX_VALUES[self]


# Largest value a stat can show on any artifact: the 5-star +20 main stat,
# or five max rolls for stats that only appear as sub-stats.
STAT_MAX_VALUES: Dict[StatKind, float] = {
    StatKind.HP: 4780,
    StatKind.HP_PERCENT: 46.6,
    StatKind.ATK: 311,
    StatKind.ATK_PERCENT: 46.6,
    StatKind.DEF: 139,
    StatKind.DEF_PERCENT: 58.3,
    StatKind.ELEMENTAL_MASTERY: 187,
    StatKind.ENERGY_RECHARGE: 51.8,
    StatKind.CRIT_RATE: 31.1,
    StatKind.CRIT_DMG: 62.2,
    StatKind.HEALING_BONUS: 35.9,
    StatKind.PYRO_DMG: 46.6,
    StatKind.HYDRO_DMG: 46.6,
    StatKind.ELECTRO_DMG: 46.6,
    StatKind.CRYO_DMG: 46.6,
    StatKind.ANEMO_DMG: 46.6,
    StatKind.GEO_DMG: 46.6,
    StatKind.DENDRO_DMG: 46.6,
    StatKind.PHYSICAL_DMG: 58.3,
}

ELEMENTAL_DMG = frozenset(
    {
        StatKind.PYRO_DMG,
        StatKind.HYDRO_DMG,
        StatKind.ELECTRO_DMG,
        StatKind.CRYO_DMG,
        StatKind.ANEMO_DMG,
        StatKind.GEO_DMG,
        StatKind.DENDRO_DMG,
        StatKind.PHYSICAL_DMG,
    }
)

SUB_STAT_KINDS = frozenset(
    {
        StatKind.HP,
        StatKind.HP_PERCENT,
        StatKind.ATK,
        StatKind.ATK_PERCENT,
        StatKind.DEF,
        StatKind.DEF_PERCENT,
        StatKind.ELEMENTAL_MASTERY,
        StatKind.ENERGY_RECHARGE,
        StatKind.CRIT_RATE,
        StatKind.CRIT_DMG,
    }
)


class Slot(str, Enum):
    FLOWER = "flower"
    PLUME = "plume"
    SANDS = "sands"
    GOBLET = "goblet"
    CIRCLET = "circlet"


_COMMON_PERCENT_MAINS = frozenset(
    {StatKind.HP_PERCENT, StatKind.ATK_PERCENT, StatKind.DEF_PERCENT, StatKind.ELEMENTAL_MASTERY}
)

ALLOWED_MAIN_STATS: Dict[Slot, FrozenSet[StatKind]] = {
    Slot.FLOWER: frozenset({StatKind.HP}),
    Slot.PLUME: frozenset({StatKind.ATK}),
    Slot.SANDS: _COMMON_PERCENT_MAINS | {StatKind.ENERGY_RECHARGE},
    Slot.GOBLET: _COMMON_PERCENT_MAINS | ELEMENTAL_DMG,
    Slot.CIRCLET: _COMMON_PERCENT_MAINS
    | {StatKind.CRIT_RATE, StatKind.CRIT_DMG, StatKind.HEALING_BONUS},
}

MAX_LEVEL_BY_RARITY: Dict[int, int] = {1: 4, 2: 4, 3: 12, 4: 16, 5: 20}
MAX_SUB_STATS = 4


class _Unknown:
    """Marks a field that was read but could not be trusted."""

    _instance: Optional["_Unknown"] = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()


@dataclass(frozen=True)
class Stat:
    kind: StatKind
    value: float

    def __str__(self) -> str:
        suffix = "%" if self.kind.is_percent else ""
        value = f"{self.value:g}"
        return f"{self.kind.value}={value}{suffix}"


def location_key(name: str) -> str:
    """GOOD character key: "Raiden Shogun" -> "RaidenShogun"."""
    words = re.findall(r"[A-Za-z0-9]+", name.replace("'", ""))
    return "".join(word[:1].upper() + word[1:] for word in words)


@dataclass
class CandidateRecord:
    item_name: Optional[str] = None
    set_key: Optional[str] = None
    slot: Optional[Slot] = None
    rarity: Optional[int] = None
    level: Optional[int] = None
    main_stat: Optional[Stat] = None
    sub_stats: List[Stat] = field(default_factory=list)
    location: Any = None
    lock: Any = None
    unknown_fields: Set[str] = field(default_factory=set)
    low_confidence: List[str] = field(default_factory=list)
    errors: Dict[str, ParseError] = field(default_factory=dict)

    def mark_unknown(self, region_id: str) -> None:
        self.unknown_fields.add(region_id)


@dataclass(frozen=True)
class Artifact:
    set_key: str
    slot: Slot
    rarity: int
    level: int
    main_stat: Stat
    sub_stats: Tuple[Stat, ...] = ()
    item_name: str = ""
    location: Optional[str] = None
    lock: Optional[bool] = None
    unknown_fields: FrozenSet[str] = frozenset()

    @property
    def label(self) -> str:
        name = self.item_name or self.set_key
        return f"{name} ({self.rarity}* +{self.level} {self.slot.value})"

    def to_good(self) -> Dict[str, Any]:
        return {
            "setKey": self.set_key,
            "slotKey": self.slot.value,
            "level": self.level,
            "rarity": self.rarity,
            "mainStatKey": self.main_stat.kind.value,
            "location": location_key(self.location) if self.location else "",
            "lock": bool(self.lock),
            "substats": [
                {"key": stat.kind.value, "value": stat.value} for stat in self.sub_stats
            ],
        }
