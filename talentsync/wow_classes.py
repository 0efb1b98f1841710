"""Class and specialization tables for retail WoW.

The slot number of a specialization is its 1-based position in the class's
spec list. TalentLoadoutsEx stores builds under that slot, so the order below
must match the in-game specialization order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

try:
    from .errors import ConfigError
except ImportError:
    from errors import ConfigError


@dataclass(frozen=True)
class WowClass:
    key: str
    url_segment: str
    lua_token: str
    specs: Tuple[str, ...]

    def spec_index(self, spec_name: str) -> int:
        name = SPEC_ALIASES.get((self.lua_token, spec_name.strip().lower()), spec_name.strip().lower())
        if name not in self.specs:
            raise ConfigError(
                f"Invalid spec '{spec_name}' for class {self.key} (expected one of: {', '.join(self.specs)})"
            )
        return self.specs.index(name) + 1

    def spec_url_segment(self, spec_name: str) -> str:
        return self.specs[self.spec_index(spec_name) - 1]


CLASSES: List[WowClass] = [
    WowClass("Warrior", "warrior", "WARRIOR", ("arms", "fury", "protection")),
    WowClass("Paladin", "paladin", "PALADIN", ("holy", "protection", "retribution")),
    WowClass("Hunter", "hunter", "HUNTER", ("beast-mastery", "marksmanship", "survival")),
    WowClass("Rogue", "rogue", "ROGUE", ("assassination", "outlaw", "subtlety")),
    WowClass("Priest", "priest", "PRIEST", ("discipline", "holy", "shadow")),
    WowClass("DeathKnight", "death-knight", "DEATHKNIGHT", ("blood", "frost", "unholy")),
    WowClass("Shaman", "shaman", "SHAMAN", ("elemental", "enhancement", "restoration")),
    WowClass("Mage", "mage", "MAGE", ("arcane", "fire", "frost")),
    WowClass("Warlock", "warlock", "WARLOCK", ("affliction", "demonology", "destruction")),
    WowClass("Monk", "monk", "MONK", ("brewmaster", "mistweaver", "windwalker")),
    WowClass("Druid", "druid", "DRUID", ("balance", "feral", "guardian", "restoration")),
    WowClass("DemonHunter", "demon-hunter", "DEMONHUNTER", ("havoc", "vengeance")),
    WowClass("Evoker", "evoker", "EVOKER", ("devastation", "preservation", "augmentation")),
]

# Pre-Legion rogue spec name, still common in hand-written rosters.
SPEC_ALIASES: Dict[Tuple[str, str], str] = {
    ("ROGUE", "combat"): "outlaw",
}

LUA_TOKENS = frozenset(c.lua_token for c in CLASSES)

_CLASS_KEY_RE = re.compile(r"[\s_\-]+")
_BY_NORMALIZED_KEY: Dict[str, WowClass] = {c.lua_token.lower(): c for c in CLASSES}


def normalize_class_key(value: str) -> str:
    return _CLASS_KEY_RE.sub("", value or "").lower()


def get_class(class_key: str) -> WowClass:
    wow_class = _BY_NORMALIZED_KEY.get(normalize_class_key(class_key))
    if wow_class is None:
        raise ConfigError(f"Invalid class: {class_key!r}")
    return wow_class


def spec_index(class_key: str, spec_name: str) -> int:
    return get_class(class_key).spec_index(spec_name)
