#!/usr/bin/env python3
"""Discover the current raid bosses and Mythic+ dungeons from Warcraft Logs.

The zone sidebar feed lists every expansion; the first expansion of the
"raid-content" block is the current tier, and the first section of the
"dungeons-content" block is the current Mythic+ season. Names are turned into
the lowercase-hyphenated slugs archon.gg uses in its URLs.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

try:
    from .config import FetchConfig, SyncConfig, load_config
    from .console import error, log
    from .errors import ConfigError
    from .fetch_talents import REQUEST_HEADERS
except ImportError:
    from config import FetchConfig, SyncConfig, load_config
    from console import error, log
    from errors import ConfigError
    from fetch_talents import REQUEST_HEADERS

WARCRAFT_LOGS_SIDEBAR_URL = "https://www.warcraftlogs.com/zone-sidebar/v2/"

SLUG_DROP_RE = re.compile(r"[',:\"().!&]")


@dataclass
class DiscoveredContent:
    raid_bosses: List[str] = field(default_factory=list)
    dungeons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"raidBosses": list(self.raid_bosses), "dungeons": list(self.dungeons)}


def to_slug(name: str) -> str:
    slug = SLUG_DROP_RE.sub("", name).strip().lower().replace(" ", "-")
    return slug.replace("--", "-")


def _find_block(data: List[Dict[str, Any]], block_id: str) -> Optional[Dict[str, Any]]:
    for block in data:
        if isinstance(block, dict) and block.get("id") == block_id:
            return block
    return None


def _current_sections(block: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not block:
        return []
    expansions = block.get("expansions") or []
    if not expansions:
        return []
    panel = expansions[0].get("panel") or {}
    return [s for s in panel.get("sections") or [] if isinstance(s, dict)]


def _boss_slugs(section: Dict[str, Any]) -> List[str]:
    slugs: List[str] = []
    for child in section.get("children") or []:
        title = (child.get("title") or "").strip()
        if child.get("type") == "boss" and title:
            slug = to_slug(title)
            if slug not in slugs:
                slugs.append(slug)
    return slugs


def parse_sidebar(data: List[Dict[str, Any]]) -> DiscoveredContent:
    content = DiscoveredContent()

    for section in _current_sections(_find_block(data, "raid-content")):
        header = section.get("header") or {}
        if header.get("contentTypeName") != "zones":
            continue
        for slug in _boss_slugs(section):
            if slug not in content.raid_bosses:
                content.raid_bosses.append(slug)

    dungeon_sections = _current_sections(_find_block(data, "dungeons-content"))
    if dungeon_sections:
        content.dungeons = _boss_slugs(dungeon_sections[0])

    return content


def discover_current_content(
    session: Optional[requests.Session] = None,
    timeout: float = FetchConfig.timeout_seconds,
) -> DiscoveredContent:
    http = session if session is not None else requests.Session()
    try:
        response = http.get(WARCRAFT_LOGS_SIDEBAR_URL, headers=REQUEST_HEADERS, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise RuntimeError(f"Failed to fetch content from Warcraft Logs: {exc}") from exc
    finally:
        if session is None:
            http.close()
    if not isinstance(data, list):
        raise RuntimeError("Unexpected Warcraft Logs response: expected a list of zone blocks")
    return parse_sidebar(data)


def apply_to_config(config: SyncConfig, content: DiscoveredContent) -> SyncConfig:
    if content.raid_bosses:
        config.raid_bosses = list(content.raid_bosses)
    if content.dungeons:
        config.dungeons = list(content.dungeons)
    return config


def main() -> int:
    parser = argparse.ArgumentParser(description="List the current raid bosses and Mythic+ dungeons as archon.gg slugs.")
    parser.add_argument(
        "--update-config",
        type=pathlib.Path,
        default=None,
        metavar="PATH",
        help="Replace raidBosses/dungeons in this sync config with the discovered lists.",
    )
    parser.add_argument("--json", action="store_true", help="Output JSON")
    args = parser.parse_args()

    try:
        content = discover_current_content()
    except RuntimeError as exc:
        error(str(exc))
        return 1

    if args.update_config is not None:
        try:
            config = apply_to_config(load_config(args.update_config), content)
        except ConfigError as exc:
            error(f"Failed to update config: {exc}")
            return 1
        args.update_config.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
        log(f"Updated {args.update_config}: {len(config.raid_bosses)} bosses, {len(config.dungeons)} dungeons")

    if args.json:
        print(json.dumps(content.to_dict(), indent=2))
        return 0

    print(f"Raid bosses ({len(content.raid_bosses)}): {', '.join(content.raid_bosses) or '-'}")
    print(f"Dungeons ({len(content.dungeons)}): {', '.join(content.dungeons) or '-'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
