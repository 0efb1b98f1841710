"""Build archon.gg talent-build URLs and the identifiers stored with each build.

URL shapes:
  raid:        {base}/{spec}/{class}/raid/overview/{difficulty}/{boss}
  mythic-plus: {base}/{spec}/{class}/mythic-plus/overview/10//{dungeon}/{this-week|last-week}

The empty difficulty segment in Mythic+ URLs (the "//") is what archon.gg
expects; do not collapse it.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Union

try:
    from .errors import ConfigError
    from .wow_classes import get_class
except ImportError:
    from errors import ConfigError
    from wow_classes import get_class

DEFAULT_BASE_URL = "https://www.archon.gg/wow/builds"
GENERATED_SUFFIX = "_ARCT"

RAID_DIFFICULTIES = ("normal", "heroic", "mythic")

THIS_WEEK = "this-week"
LAST_WEEK = "last-week"

# Weekly reset day, Monday == 0.
DEFAULT_RESET_WEEKDAY = 2


def parse_difficulty(value: str) -> str:
    difficulty = (value or "").strip().lower()
    if difficulty not in RAID_DIFFICULTIES:
        raise ConfigError(f"Invalid difficulty: {value!r}")
    return difficulty


@dataclass(frozen=True)
class RaidRequest:
    difficulty: str
    boss: str

    @property
    def identifier(self) -> str:
        return f"R-{self.difficulty}-{self.boss}"

    @property
    def is_time_windowed(self) -> bool:
        return False


@dataclass(frozen=True)
class DungeonRequest:
    dungeon: str

    @property
    def identifier(self) -> str:
        return f"M+-{self.dungeon}"

    @property
    def is_time_windowed(self) -> bool:
        return True


ContentRequest = Union[RaidRequest, DungeonRequest]


def talent_label(identifier: str) -> str:
    return identifier + GENERATED_SUFFIX


def is_generated_label(label: str) -> bool:
    return label.endswith(GENERATED_SUFFIX)


def primary_timespan(today: Optional[dt.date] = None, reset_weekday: int = DEFAULT_RESET_WEEKDAY) -> str:
    """On reset day the current week has almost no runs, so prefer last week."""
    if today is None:
        today = dt.date.today()
    if today.weekday() == reset_weekday:
        return LAST_WEEK
    return THIS_WEEK


def fallback_timespan(timespan: str) -> str:
    if timespan == THIS_WEEK:
        return LAST_WEEK
    if timespan == LAST_WEEK:
        return THIS_WEEK
    raise ValueError(f"Unknown timespan: {timespan!r}")


def build_url(
    class_key: str,
    spec: str,
    request: ContentRequest,
    timespan: Optional[str] = None,
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    wow_class = get_class(class_key)
    spec_segment = wow_class.spec_url_segment(spec)
    prefix = f"{base_url.rstrip('/')}/{spec_segment}/{wow_class.url_segment}"
    if isinstance(request, RaidRequest):
        return f"{prefix}/raid/overview/{request.difficulty}/{request.boss}"
    if timespan is None:
        raise ValueError("Mythic+ URLs need a timespan")
    return f"{prefix}/mythic-plus/overview/10//{request.dungeon}/{timespan}"
