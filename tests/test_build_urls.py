from __future__ import annotations

import datetime as dt

import pytest

from talentsync.build_urls import (
    LAST_WEEK,
    THIS_WEEK,
    DungeonRequest,
    RaidRequest,
    build_url,
    fallback_timespan,
    is_generated_label,
    parse_difficulty,
    primary_timespan,
    talent_label,
)
from talentsync.errors import ConfigError
from talentsync.wow_classes import CLASSES, get_class, spec_index

WEDNESDAY = dt.date(2024, 10, 2)
THURSDAY = dt.date(2024, 10, 3)


def test_spec_slots_are_total_and_unique() -> None:
    assert len(CLASSES) == 13
    for wow_class in CLASSES:
        slots = [wow_class.spec_index(spec) for spec in wow_class.specs]
        assert slots == list(range(1, len(wow_class.specs) + 1))


def test_spec_slot_arity() -> None:
    assert len(get_class("Druid").specs) == 4
    assert len(get_class("DemonHunter").specs) == 2
    assert len(get_class("Evoker").specs) == 3
    assert spec_index("Warrior", "arms") == 1
    assert spec_index("Warrior", "protection") == 3
    assert spec_index("Mage", "frost") == 3
    assert spec_index("DeathKnight", "frost") == 2
    assert spec_index("Druid", "restoration") == 4
    assert spec_index("Rogue", "combat") == spec_index("Rogue", "outlaw") == 2


def test_class_key_forms() -> None:
    assert get_class("DeathKnight").lua_token == "DEATHKNIGHT"
    assert get_class("death knight").url_segment == "death-knight"
    assert get_class("DEMONHUNTER").url_segment == "demon-hunter"
    hyphenated = [c.key for c in CLASSES if "-" in c.url_segment]
    assert sorted(hyphenated) == ["DeathKnight", "DemonHunter"]
    for wow_class in CLASSES:
        if wow_class.key not in hyphenated:
            assert wow_class.url_segment == wow_class.key.lower()


def test_unknown_class_and_spec_are_config_errors() -> None:
    with pytest.raises(ConfigError):
        get_class("Bard")
    with pytest.raises(ConfigError):
        spec_index("Mage", "holy")
    with pytest.raises(ConfigError):
        parse_difficulty("lfr")


def test_identifiers() -> None:
    raid = RaidRequest(difficulty="heroic", boss="sikran")
    dungeon = DungeonRequest(dungeon="ara-kara")
    assert raid.identifier == "R-heroic-sikran"
    assert dungeon.identifier == "M+-ara-kara"
    assert talent_label(raid.identifier) == "R-heroic-sikran_ARCT"
    assert is_generated_label("M+-ara-kara_ARCT")
    assert not is_generated_label("My Build")


def test_raid_url() -> None:
    url = build_url("Mage", "frost", RaidRequest(difficulty="heroic", boss="broodtwister"))
    assert url == "https://www.archon.gg/wow/builds/frost/mage/raid/overview/heroic/broodtwister"

    url = build_url("DeathKnight", "unholy", RaidRequest(difficulty="heroic", boss="sikran"))
    assert url == "https://www.archon.gg/wow/builds/unholy/death-knight/raid/overview/heroic/sikran"


def test_mythic_plus_url_keeps_empty_difficulty_segment() -> None:
    url = build_url("Warrior", "protection", DungeonRequest(dungeon="ara-kara"), THIS_WEEK)
    assert url == "https://www.archon.gg/wow/builds/protection/warrior/mythic-plus/overview/10//ara-kara/this-week"

    url = build_url("DemonHunter", "havoc", DungeonRequest(dungeon="mists-of-tirna-scithe"), LAST_WEEK)
    assert url.endswith("/havoc/demon-hunter/mythic-plus/overview/10//mists-of-tirna-scithe/last-week")

    with pytest.raises(ValueError):
        build_url("Warrior", "arms", DungeonRequest(dungeon="ara-kara"))


def test_url_is_deterministic() -> None:
    request = RaidRequest(difficulty="mythic", boss="queen-ansurek")
    assert build_url("Evoker", "augmentation", request) == build_url("Evoker", "augmentation", request)


def test_primary_timespan_follows_reset_day() -> None:
    assert primary_timespan(WEDNESDAY) == LAST_WEEK
    assert primary_timespan(THURSDAY) == THIS_WEEK
    # Tuesday reset (US realms)
    assert primary_timespan(dt.date(2024, 10, 1), reset_weekday=1) == LAST_WEEK
    assert fallback_timespan(THIS_WEEK) == LAST_WEEK
    assert fallback_timespan(LAST_WEEK) == THIS_WEEK
