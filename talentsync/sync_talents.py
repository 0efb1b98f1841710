#!/usr/bin/env python3
"""Fetch archon.gg talent builds for a roster and merge them into TalentLoadoutsEx.lua.

Run steps:
1) Expand roster x specs x (raid difficulty x boss + dungeons) into build tasks.
2) Fetch every task concurrently (bounded by FetchConfig.max_concurrency).
3) Load the existing loadout file (missing file == empty).
4) Drop stale generated (_ARCT) loadouts and insert the fresh ones.
5) Write the file atomically and return a summary.

A failed or empty fetch only means that build is skipped. Config, read and
write problems end the run.
"""

from __future__ import annotations

import argparse
import datetime as dt
import json
import os
import pathlib
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

try:
    from .build_urls import ContentRequest, DungeonRequest, RaidRequest, parse_difficulty, talent_label
    from .config import FetchConfig, SyncConfig, example_config, load_config
    from .console import error, log
    from .errors import ConfigError, StoreError, SyncCancelled
    from .fetch_talents import TRANSPORT_ERROR, FetchClient, FetchResult, fetch_build
    from .talent_store import GeneratedBuild, load_store, merge_builds, write_store
    from .wow_classes import get_class
except ImportError:
    from build_urls import ContentRequest, DungeonRequest, RaidRequest, parse_difficulty, talent_label
    from config import FetchConfig, SyncConfig, example_config, load_config
    from console import error, log
    from errors import ConfigError, StoreError, SyncCancelled
    from fetch_talents import TRANSPORT_ERROR, FetchClient, FetchResult, fetch_build
    from talent_store import GeneratedBuild, load_store, merge_builds, write_store
    from wow_classes import get_class

BuildKey = Tuple[str, int, str]

# Entries go away once no run holds the lock.
_PATH_LOCKS: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
_PATH_LOCKS_GUARD = threading.Lock()


def path_lock(path: pathlib.Path) -> threading.Lock:
    """One lock per output file, so two runs never write the same file at once."""
    key = os.path.normcase(os.path.abspath(str(path)))
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.Lock()
        return lock


@dataclass(frozen=True)
class BuildTask:
    class_key: str
    class_token: str
    spec: str
    spec_index: int
    request: ContentRequest

    @property
    def key(self) -> BuildKey:
        return (self.class_token, self.spec_index, self.request.identifier)


@dataclass
class SyncSummary:
    total_talents_updated: int = 0
    raid_talents: int = 0
    mythic_plus_talents: int = 0
    characters_processed: int = 0
    builds_without_data: int = 0
    builds_failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalTalentsUpdated": self.total_talents_updated,
            "raidTalents": self.raid_talents,
            "mythicPlusTalents": self.mythic_plus_talents,
            "charactersProcessed": self.characters_processed,
        }


def content_requests(config: SyncConfig) -> List[ContentRequest]:
    contents: List[ContentRequest] = []
    if config.raid_bosses and config.raid_difficulties:
        for boss in config.raid_bosses:
            for difficulty in config.raid_difficulties:
                contents.append(RaidRequest(difficulty=parse_difficulty(difficulty), boss=boss))
    for dungeon in config.dungeons:
        contents.append(DungeonRequest(dungeon=dungeon))
    return contents


def roster_slots(config: SyncConfig) -> List[Tuple[str, int]]:
    """Every (class token, slot) the roster selects, whether or not any content expands for it."""
    slots: List[Tuple[str, int]] = []
    for character in config.characters:
        wow_class = get_class(character.class_key)
        for spec in character.specializations:
            pair = (wow_class.lua_token, wow_class.spec_index(spec))
            if pair not in slots:
                slots.append(pair)
    return slots


def plan_tasks(config: SyncConfig) -> List[BuildTask]:
    """Every (class, spec, content) combination once, in roster order."""
    contents = content_requests(config)
    tasks: List[BuildTask] = []
    seen: Set[BuildKey] = set()
    for character in config.characters:
        wow_class = get_class(character.class_key)
        for spec in character.specializations:
            spec_index = wow_class.spec_index(spec)
            for request in contents:
                task = BuildTask(
                    class_key=wow_class.key,
                    class_token=wow_class.lua_token,
                    spec=wow_class.spec_url_segment(spec),
                    spec_index=spec_index,
                    request=request,
                )
                if task.key in seen:
                    continue
                seen.add(task.key)
                tasks.append(task)
    return tasks


class TalentSync:
    """One synchronization run. Create a new instance per run."""

    def __init__(
        self,
        config: SyncConfig,
        fetch_config: Optional[FetchConfig] = None,
        client: Optional[FetchClient] = None,
        today: Optional[dt.date] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.fetch_config = fetch_config or FetchConfig()
        self.client = client
        self.today = today
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelled("Talent sync cancelled; talent file left unchanged")

    def _fetch_task(self, client: FetchClient, task: BuildTask) -> FetchResult:
        if self.cancel_event.is_set():
            return FetchResult.transport_error("cancelled")
        result = fetch_build(
            client.fetch,
            task.class_key,
            task.spec,
            task.request,
            base_url=self.fetch_config.base_url,
            today=self.today,
            reset_weekday=self.fetch_config.reset_weekday,
        )
        label = f"{task.class_token}[{task.spec_index}] {task.request.identifier}"
        if result.ok:
            window = f" ({result.timespan})" if result.timespan else ""
            log(f"  - {label}: found talent build{window}", enabled=self.fetch_config.verbose)
        elif result.status == TRANSPORT_ERROR:
            log(f"  - {label}: fetch failed: {result.detail}", enabled=self.fetch_config.verbose)
        else:
            log(f"  - {label}: no talent build available", enabled=self.fetch_config.verbose)
        return result

    def fetch_all(self, client: FetchClient, tasks: List[BuildTask]) -> Dict[BuildKey, FetchResult]:
        results: Dict[BuildKey, FetchResult] = {}
        if not tasks:
            return results
        # Extra workers queue on the client semaphore so a free slot is always picked up immediately.
        workers = min(len(tasks), self.fetch_config.max_concurrency * 2)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="talent-fetch")
        try:
            futures = {pool.submit(self._fetch_task, client, task): task for task in tasks}
            for future in as_completed(futures):
                results[futures[future].key] = future.result()
        except BaseException:
            self.cancel_event.set()
            pool.shutdown(wait=True, cancel_futures=True)
            raise
        pool.shutdown(wait=True)
        return results

    def run(self) -> SyncSummary:
        self.config.validate()
        self.fetch_config.validate()
        tasks = plan_tasks(self.config)
        output_path = pathlib.Path(self.config.output_path).expanduser()

        with path_lock(output_path):
            self._check_cancelled()
            log(f"[1/4] Fetching {len(tasks)} talent builds from archon.gg")
            if self.client is not None:
                results = self.fetch_all(self.client, tasks)
            else:
                with FetchClient(self.fetch_config) as client:
                    results = self.fetch_all(client, tasks)
            self._check_cancelled()

            log(f"[2/4] Loading existing talents from {output_path}")
            store = load_store(output_path)

            log("[3/4] Merging talent builds")
            summary = SyncSummary(characters_processed=len(self.config.characters))
            builds: List[GeneratedBuild] = []
            touched = roster_slots(self.config)
            keep_labels: Dict[Tuple[str, int], Set[str]] = {}
            for task in tasks:
                pair = (task.class_token, task.spec_index)
                result = results[task.key]
                if result.ok and result.talent_code:
                    builds.append(GeneratedBuild(task.class_token, task.spec_index, task.request.identifier, result.talent_code))
                    if isinstance(task.request, RaidRequest):
                        summary.raid_talents += 1
                    else:
                        summary.mythic_plus_talents += 1
                elif result.status == TRANSPORT_ERROR:
                    summary.builds_failed += 1
                    keep_labels.setdefault(pair, set()).add(talent_label(task.request.identifier))
                else:
                    summary.builds_without_data += 1

            if self.config.clear_previous_builds:
                log("  Clearing all previous auto-generated builds")
            summary.total_talents_updated = merge_builds(
                store,
                builds,
                touched,
                clear_previous=self.config.clear_previous_builds,
                keep_labels=keep_labels,
            )

            self._check_cancelled()
            log(f"[4/4] Writing talents to {output_path}")
            write_store(store, output_path)

        log(
            f"Done. {summary.total_talents_updated} talents updated "
            f"({summary.raid_talents} raid, {summary.mythic_plus_talents} M+)"
            + (f", {summary.builds_failed} fetches failed" if summary.builds_failed else "")
        )
        return summary


def sync_talents(
    config: SyncConfig,
    fetch_config: Optional[FetchConfig] = None,
    *,
    today: Optional[dt.date] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SyncSummary:
    return TalentSync(config, fetch_config, today=today, cancel_event=cancel_event).run()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Update TalentLoadoutsEx.lua with raid and Mythic+ talent builds from archon.gg."
    )
    parser.add_argument("--config", type=pathlib.Path, help="Path to the sync config JSON")
    parser.add_argument("--output", default=None, help="Override outputPath from the config")
    parser.add_argument(
        "--clear-previous",
        action="store_true",
        help="Remove every generated (_ARCT) loadout, not just those for the configured specs.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=FetchConfig.max_concurrency,
        help="Maximum number of archon.gg requests in flight.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=FetchConfig.timeout_seconds,
        help="Per-request timeout in seconds.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every build fetched.")
    parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    parser.add_argument(
        "--write-example",
        type=pathlib.Path,
        default=None,
        metavar="PATH",
        help="Write an example config to PATH and exit.",
    )
    args = parser.parse_args()

    if args.write_example is not None:
        args.write_example.write_text(json.dumps(example_config().to_dict(), indent=2) + "\n", encoding="utf-8")
        print(f"Wrote example config to {args.write_example.resolve()}")
        return 0
    if args.config is None:
        parser.error("--config is required unless --write-example is given")

    try:
        config = load_config(args.config)
        if args.output:
            config.output_path = args.output
        if args.clear_previous:
            config.clear_previous_builds = True
        fetch_config = FetchConfig(
            max_concurrency=args.concurrency,
            timeout_seconds=args.timeout,
            verbose=args.verbose,
        )
        summary = sync_talents(config, fetch_config)
    except (ConfigError, StoreError, SyncCancelled) as exc:
        error(f"Failed to update talents: {exc}")
        return 1
    except KeyboardInterrupt:
        error("Cancelled; talent file left unchanged.")
        return 130

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
