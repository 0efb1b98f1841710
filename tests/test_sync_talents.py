from __future__ import annotations

import datetime as dt
import gc
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from talentsync.config import Character, FetchConfig, SyncConfig
from talentsync.errors import ConfigError, SyncCancelled
from talentsync.fetch_talents import FetchClient
from talentsync.sync_talents import _PATH_LOCKS, TalentSync, path_lock, plan_tasks
from talentsync.talent_store import load_store

WEDNESDAY = dt.date(2024, 10, 2)
THURSDAY = dt.date(2024, 10, 3)
BASE = "https://www.archon.gg/wow/builds"
BROODTWISTER = f"{BASE}/frost/mage/raid/overview/heroic/broodtwister"
ARA_KARA = f"{BASE}/frost/mage/mythic-plus/overview/10//ara-kara"

EXISTING = """TalentLoadoutEx = {
  ["MAGE"] = {
    [3] = {
      { ["icon"] = 135846, ["name"] = "My Frost Build", ["text"] = "mage/frost/MINE" },
      { ["icon"] = 0, ["name"] = "R-heroic-broodtwister_ARCT", ["text"] = "mage/frost/OLD" },
      { ["icon"] = 0, ["name"] = "M+-ara-kara_ARCT", ["text"] = "mage/frost/OLDMPLUS" },
    },
  },
  ["OPTION"] = { ["IsEnabledPvp"] = false },
}
"""


def page(code: str) -> str:
    return f'<html><a href="https://www.wowhead.com/talent-calc/blizzard/{code}">Open in calculator</a></html>'


class FakeResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, pages: Dict[str, object], on_get: Optional[object] = None) -> None:
        self.pages = pages
        self.on_get = on_get
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def get(self, url: str, headers=None, timeout=None) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
        if self.on_get is not None:
            self.on_get()
        status, body = self.pages.get(url, (500, ""))
        return FakeResponse(status, body)

    def close(self) -> None:
        pass


def make_config(output: Path, **overrides) -> SyncConfig:
    values = dict(
        characters=[Character(name="Frostbolt", class_key="Mage", specializations=["frost"])],
        raid_difficulties=["heroic"],
        raid_bosses=["broodtwister"],
        dungeons=[],
        clear_previous_builds=False,
        output_path=str(output),
    )
    values.update(overrides)
    return SyncConfig(**values)


def run_sync(config: SyncConfig, session: FakeSession, today: dt.date, cancel_event=None):
    client = FetchClient(FetchConfig(), session=session)
    return TalentSync(config, client=client, today=today, cancel_event=cancel_event).run()


def test_raid_build_lands_in_frost_slot(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    session = FakeSession({BROODTWISTER: (200, page("mage/frost/XYZ"))})

    summary = run_sync(make_config(output), session, THURSDAY)

    assert session.calls == [BROODTWISTER]
    assert summary.to_dict() == {
        "totalTalentsUpdated": 1,
        "raidTalents": 1,
        "mythicPlusTalents": 0,
        "charactersProcessed": 1,
    }
    entries = load_store(output).spec_entries("MAGE", 3)
    assert [(e.icon, e.name, e.text) for e in entries] == [(0, "R-heroic-broodtwister_ARCT", "mage/frost/XYZ")]


def test_reset_day_mythic_plus_uses_fallback_window(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    session = FakeSession({f"{ARA_KARA}/this-week": (200, page("mage/frost/NEW"))})
    config = make_config(output, raid_difficulties=[], raid_bosses=[], dungeons=["ara-kara"])

    summary = run_sync(config, session, WEDNESDAY)

    assert session.calls == [f"{ARA_KARA}/last-week", f"{ARA_KARA}/this-week"]
    assert summary.mythic_plus_talents == 1
    entries = load_store(output).spec_entries("MAGE", 3)
    assert [(e.name, e.text) for e in entries] == [("M+-ara-kara_ARCT", "mage/frost/NEW")]


def test_no_data_replaces_stale_builds_and_keeps_manual(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    output.write_text(EXISTING, encoding="utf-8")
    session = FakeSession({BROODTWISTER: (500, "Internal Server Error")})

    summary = run_sync(make_config(output), session, THURSDAY)

    assert summary.total_talents_updated == 0
    assert summary.builds_without_data == 1
    names = [e.name for e in load_store(output).spec_entries("MAGE", 3)]
    assert names == ["My Frost Build"]
    assert '["OPTION"] = { ["IsEnabledPvp"] = false },' in output.read_text(encoding="utf-8")


def test_transport_error_keeps_previous_build(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    output.write_text(EXISTING, encoding="utf-8")
    session = FakeSession(
        {
            BROODTWISTER: (200, page("mage/frost/XYZ")),
            f"{ARA_KARA}/this-week": (403, "Forbidden"),
        }
    )
    config = make_config(output, dungeons=["ara-kara"])

    summary = run_sync(config, session, THURSDAY)

    assert summary.total_talents_updated == 1
    assert summary.builds_failed == 1
    # Forbidden is not "no data", so the other window is not tried.
    assert f"{ARA_KARA}/last-week" not in session.calls
    entries = {e.name: e.text for e in load_store(output).spec_entries("MAGE", 3)}
    assert entries == {
        "My Frost Build": "mage/frost/MINE",
        "M+-ara-kara_ARCT": "mage/frost/OLDMPLUS",
        "R-heroic-broodtwister_ARCT": "mage/frost/XYZ",
    }


def test_clear_previous_drops_generated_builds_everywhere(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    output.write_text(
        EXISTING.replace(
            '  ["OPTION"]',
            '  ["WARRIOR"] = { [1] = { { ["icon"] = 0, ["name"] = "R-heroic-sikran_ARCT", ["text"] = "w" } } },\n  ["OPTION"]',
        ),
        encoding="utf-8",
    )
    session = FakeSession({BROODTWISTER: (200, page("mage/frost/XYZ"))})

    run_sync(make_config(output, clear_previous_builds=True), session, THURSDAY)

    store = load_store(output)
    assert store.spec_entries("WARRIOR", 1) == []
    assert [e.name for e in store.spec_entries("MAGE", 3)] == ["My Frost Build", "R-heroic-broodtwister_ARCT"]


def test_duplicate_specs_are_fetched_once(tmp_path: Path) -> None:
    config = make_config(
        tmp_path / "out.lua",
        characters=[
            Character(name="One", class_key="Mage", specializations=["frost"]),
            Character(name="Two", class_key="mage", specializations=["Frost"]),
        ],
    )
    assert len(plan_tasks(config)) == 1


def test_invalid_config_fails_before_any_fetch(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    session = FakeSession({})
    bad = make_config(output, characters=[Character(name="X", class_key="Mage", specializations=["holy"])])

    with pytest.raises(ConfigError):
        run_sync(bad, session, THURSDAY)
    with pytest.raises(ConfigError):
        run_sync(make_config(output, raid_difficulties=["lfr"]), session, THURSDAY)

    assert session.calls == []
    assert not output.exists()


def test_cancel_during_fetch_writes_nothing(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    output.write_text(EXISTING, encoding="utf-8")
    cancel = threading.Event()
    session = FakeSession({BROODTWISTER: (200, page("mage/frost/XYZ"))}, on_get=cancel.set)

    with pytest.raises(SyncCancelled):
        run_sync(make_config(output), session, THURSDAY, cancel_event=cancel)

    assert output.read_text(encoding="utf-8") == EXISTING


def test_roster_specs_are_swept_even_without_content_to_fetch(tmp_path: Path) -> None:
    output = tmp_path / "TalentLoadoutsEx.lua"
    output.write_text(EXISTING, encoding="utf-8")
    session = FakeSession({})
    # Difficulties but no bosses expand to nothing to fetch.
    config = make_config(output, raid_bosses=[], dungeons=[])

    summary = run_sync(config, session, THURSDAY)

    assert session.calls == []
    assert summary.total_talents_updated == 0
    assert [e.name for e in load_store(output).spec_entries("MAGE", 3)] == ["My Frost Build"]


def test_path_lock_is_shared_then_released(tmp_path: Path) -> None:
    target = tmp_path / "TalentLoadoutsEx.lua"
    key = os.path.normcase(os.path.abspath(str(target)))

    lock = path_lock(target)
    assert path_lock(target) is lock
    assert key in _PATH_LOCKS

    del lock
    gc.collect()
    assert key not in _PATH_LOCKS
