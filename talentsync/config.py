"""Sync configuration: roster, content lists, output path and fetch settings.

The JSON shape matches what the desktop front-end writes:

  {
    "characters": [{"name": "Frostbolt", "class": "Mage", "specializations": ["frost"]}],
    "raidDifficulties": ["heroic"],
    "raidBosses": ["broodtwister"],
    "dungeons": ["ara-kara"],
    "clearPreviousBuilds": false,
    "outputPath": ".../SavedVariables/TalentLoadoutsEx.lua"
  }
"""

from __future__ import annotations

import json
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List

try:
    from .build_urls import DEFAULT_BASE_URL, DEFAULT_RESET_WEEKDAY, parse_difficulty
    from .errors import ConfigError
    from .wow_classes import get_class
except ImportError:
    from build_urls import DEFAULT_BASE_URL, DEFAULT_RESET_WEEKDAY, parse_difficulty
    from errors import ConfigError
    from wow_classes import get_class

EXAMPLE_OUTPUT_PATH = (
    "/Applications/World of Warcraft/_retail_/WTF/Account/YOUR_ACCOUNT_ID/SavedVariables/TalentLoadoutsEx.lua"
)


@dataclass
class FetchConfig:
    base_url: str = DEFAULT_BASE_URL
    max_concurrency: int = 5
    timeout_seconds: float = 180.0
    max_connections_per_host: int = 10
    reset_weekday: int = DEFAULT_RESET_WEEKDAY
    verbose: bool = False

    def validate(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigError("max_concurrency must be >= 1")
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be > 0")
        if self.max_connections_per_host < 1:
            raise ConfigError("max_connections_per_host must be >= 1")
        if not 0 <= self.reset_weekday <= 6:
            raise ConfigError("reset_weekday must be between 0 (Monday) and 6 (Sunday)")


@dataclass
class Character:
    name: str
    class_key: str
    specializations: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Character":
        if not isinstance(raw, dict):
            raise ConfigError(f"Character entry must be an object, got {type(raw).__name__}")
        specs = raw.get("specializations") or []
        if not isinstance(specs, list):
            raise ConfigError(f"Character '{raw.get('name', '')}' specializations must be a list")
        return cls(
            name=str(raw.get("name", "")),
            class_key=str(raw.get("class", "")),
            specializations=[str(s) for s in specs],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "class": self.class_key, "specializations": list(self.specializations)}


@dataclass
class SyncConfig:
    characters: List[Character] = field(default_factory=list)
    raid_difficulties: List[str] = field(default_factory=list)
    raid_bosses: List[str] = field(default_factory=list)
    dungeons: List[str] = field(default_factory=list)
    clear_previous_builds: bool = False
    output_path: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SyncConfig":
        if not isinstance(raw, dict):
            raise ConfigError("Configuration must be a JSON object")

        def str_list(key: str) -> List[str]:
            value = raw.get(key) or []
            if not isinstance(value, list):
                raise ConfigError(f"'{key}' must be a list")
            return [str(v) for v in value]

        return cls(
            characters=[Character.from_dict(c) for c in raw.get("characters") or []],
            raid_difficulties=str_list("raidDifficulties"),
            raid_bosses=str_list("raidBosses"),
            dungeons=str_list("dungeons"),
            clear_previous_builds=bool(raw.get("clearPreviousBuilds", False)),
            output_path=str(raw.get("outputPath") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "characters": [c.to_dict() for c in self.characters],
            "raidDifficulties": list(self.raid_difficulties),
            "raidBosses": list(self.raid_bosses),
            "dungeons": list(self.dungeons),
            "clearPreviousBuilds": self.clear_previous_builds,
            "outputPath": self.output_path,
        }

    def validate(self) -> None:
        if not self.characters:
            raise ConfigError("Configuration must include at least one character")
        if not self.raid_difficulties and not self.raid_bosses and not self.dungeons:
            raise ConfigError("Configuration must include at least one of: raid difficulties/bosses or dungeons")
        if not self.output_path:
            raise ConfigError("Configuration must include an output path")
        for character in self.characters:
            if not character.class_key:
                raise ConfigError(f"Character '{character.name}' has no class specified")
            if not character.specializations:
                raise ConfigError(f"Character '{character.name}' has no specializations specified")
            wow_class = get_class(character.class_key)
            for spec in character.specializations:
                wow_class.spec_index(spec)
        for difficulty in self.raid_difficulties:
            parse_difficulty(difficulty)
        for slug in self.raid_bosses + self.dungeons:
            if not slug.strip():
                raise ConfigError("Boss and dungeon names must not be empty")


def load_config(path: pathlib.Path) -> SyncConfig:
    try:
        raw = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to read config {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config {path} is not valid JSON: {exc}") from exc
    config = SyncConfig.from_dict(raw)
    config.validate()
    return config


def example_config() -> SyncConfig:
    return SyncConfig(
        characters=[
            Character(name="MyWarrior", class_key="Warrior", specializations=["arms", "fury"]),
            Character(name="MyMage", class_key="Mage", specializations=["frost", "fire"]),
        ],
        raid_difficulties=["heroic", "normal"],
        raid_bosses=["broodtwister", "sikran", "queen-ansurek"],
        dungeons=["ara-kara", "city-of-threads", "mists-of-tirna-scithe"],
        clear_previous_builds=False,
        output_path=EXAMPLE_OUTPUT_PATH,
    )
