from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

DEFAULT_STOP_KEY = "escape"


@dataclass(frozen=True)
class NamedKey:
    """A non-printable key the scanner accepts as its stop key."""

    name: str
    label: str
    virtual_key: int
    aliases: Tuple[str, ...] = ()


NAMED_KEYS: Tuple[NamedKey, ...] = (
    NamedKey("escape", "Esc", 0x1B, ("esc",)),
    NamedKey("enter", "Enter", 0x0D, ("return",)),
    NamedKey("space", "Space", 0x20, ("spacebar",)),
    NamedKey("tab", "Tab", 0x09),
    NamedKey("backspace", "Backspace", 0x08),
    NamedKey("delete", "Delete", 0x2E, ("del",)),
    NamedKey("insert", "Insert", 0x2D, ("ins",)),
    NamedKey("home", "Home", 0x24),
    NamedKey("end", "End", 0x23),
    NamedKey("pageup", "Page Up", 0x21, ("pgup", "page_up")),
    NamedKey("pagedown", "Page Down", 0x22, ("pgdn", "page_down")),
    NamedKey("up", "Up Arrow", 0x26),
    NamedKey("down", "Down Arrow", 0x28),
    NamedKey("left", "Left Arrow", 0x25),
    NamedKey("right", "Right Arrow", 0x27),
)

_BY_SPELLING: Dict[str, NamedKey] = {
    spelling: key for key in NAMED_KEYS for spelling in (key.name, *key.aliases)
}
_BY_NAME: Dict[str, NamedKey] = {key.name: key for key in NAMED_KEYS}

# F1..F12; the game reserves nothing above that.
_F_KEY = re.compile(r"^f(1[0-2]|[1-9])$")
_VK_F1 = 0x70


def normalize_stop_key(value: object) -> str:
    """
    Canonical key name for a config or CLI value.

    Named keys and their aliases, F1-F12 and single printable characters
    are accepted; anything else becomes Esc.
    """
    if not isinstance(value, str):
        return DEFAULT_STOP_KEY
    raw = value.strip()
    lowered = raw.lower()

    named = _BY_SPELLING.get(lowered)
    if named is not None:
        return named.name
    if _F_KEY.match(lowered):
        return lowered
    if len(raw) == 1 and raw.isprintable() and not raw.isspace():
        return lowered
    return DEFAULT_STOP_KEY


def stop_key_label(key: object) -> str:
    canonical = normalize_stop_key(key)
    named = _BY_NAME.get(canonical)
    return named.label if named is not None else canonical.upper()


def virtual_key_code(key: str) -> Optional[int]:
    """Windows virtual-key code for named and function keys; None for characters."""
    canonical = normalize_stop_key(key)
    named = _BY_NAME.get(canonical)
    if named is not None:
        return named.virtual_key
    if _F_KEY.match(canonical):
        return _VK_F1 + int(canonical[1:]) - 1
    return None
