#!/usr/bin/env python3
"""Read, merge and write TalentLoadoutsEx.lua (the TalentLoadoutEx saved variable).

File layout written by the addon:

  TalentLoadoutEx = {
    ["MAGE"] = {
      [3] = {
        { ["icon"] = 135846, ["name"] = "My Frost Build", ["text"] = "mage/frost/..." },
        { ["icon"] = 0, ["name"] = "R-heroic-broodtwister_ARCT", ["text"] = "mage/frost/..." },
      },
    },
    ["OPTION"] = { ["IsEnabledPvp"] = false },
  }

Entries whose name ends in _ARCT were written by this tool and may be replaced.
Everything else in the file, including fields and sections this module does not
know about, is carried through unchanged.
"""

from __future__ import annotations

import argparse
import contextlib
import math
import os
import pathlib
import tempfile
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from lupa import LuaError, LuaRuntime, lua_type

try:
    from .build_urls import is_generated_label, talent_label
    from .console import error
    from .errors import StoreError
    from .wow_classes import LUA_TOKENS
except ImportError:
    from build_urls import is_generated_label, talent_label
    from console import error
    from errors import StoreError
    from wow_classes import LUA_TOKENS

SAVED_VARIABLE = "TalentLoadoutEx"
DEFAULT_SECTIONS: Dict[Any, Any] = {"OPTION": {"IsEnabledPvp": False}}
ENTRY_FIELD_ORDER = ("icon", "name", "text")


@dataclass
class TalentEntry:
    """One saved loadout. Unknown fields are kept in `fields` alongside the known ones."""

    fields: Dict[Any, Any] = field(default_factory=dict)

    @classmethod
    def generated(cls, identifier: str, talent_code: str) -> "TalentEntry":
        return cls({"icon": 0, "name": talent_label(identifier), "text": talent_code})

    @property
    def icon(self) -> int:
        value = self.fields.get("icon", 0)
        return value if isinstance(value, int) and not isinstance(value, bool) else 0

    @property
    def name(self) -> str:
        value = self.fields.get("name", "")
        return value if isinstance(value, str) else ""

    @property
    def text(self) -> str:
        value = self.fields.get("text", "")
        return value if isinstance(value, str) else ""

    @property
    def is_generated(self) -> bool:
        return is_generated_label(self.name)


@dataclass(frozen=True)
class GeneratedBuild:
    class_token: str
    spec_index: int
    identifier: str
    talent_code: str


@dataclass
class TalentStore:
    # class token -> spec slot -> entries (TalentEntry, or a raw value the addon put there)
    classes: Dict[str, Dict[int, List[Any]]] = field(default_factory=dict)
    # non-slot keys found inside a class table
    class_extras: Dict[str, Dict[Any, Any]] = field(default_factory=dict)
    # keys of a spec table outside its 1..n entry sequence
    spec_extras: Dict[str, Dict[int, Dict[Any, Any]]] = field(default_factory=dict)
    # non-class keys of TalentLoadoutEx, e.g. OPTION
    sections: Dict[Any, Any] = field(default_factory=dict)
    # other globals defined by the file
    other_globals: Dict[str, Any] = field(default_factory=dict)

    def spec_entries(self, class_token: str, spec_index: int) -> List[Any]:
        return self.classes.get(class_token, {}).get(spec_index, [])

    def iter_entries(self) -> Iterator[Tuple[str, int, TalentEntry]]:
        for class_token in sorted(self.classes):
            for spec_index in sorted(self.classes[class_token]):
                for item in self.classes[class_token][spec_index]:
                    if isinstance(item, TalentEntry):
                        yield class_token, spec_index, item

    def remove_generated(self, class_token: str, spec_index: int, keep_labels: Iterable[str] = ()) -> int:
        entries = self.classes.get(class_token, {}).get(spec_index)
        if entries is None:
            return 0
        keep = set(keep_labels)
        remaining = [
            item
            for item in entries
            if not (isinstance(item, TalentEntry) and item.is_generated and item.name not in keep)
        ]
        removed = len(entries) - len(remaining)
        entries[:] = remaining
        return removed

    def remove_all_generated(self) -> int:
        removed = 0
        for class_token, specs in self.classes.items():
            for spec_index in specs:
                removed += self.remove_generated(class_token, spec_index)
        return removed

    def add_entry(self, class_token: str, spec_index: int, entry: TalentEntry) -> None:
        entries = self.classes.setdefault(class_token, {}).setdefault(spec_index, [])
        if entry.is_generated:
            entries[:] = [
                item
                for item in entries
                if not (isinstance(item, TalentEntry) and item.is_generated and item.name == entry.name)
            ]
        entries.append(entry)


def merge_builds(
    store: TalentStore,
    builds: Iterable[GeneratedBuild],
    touched: Iterable[Tuple[str, int]],
    *,
    clear_previous: bool,
    keep_labels: Optional[Dict[Tuple[str, int], Set[str]]] = None,
) -> int:
    """Replace generated entries with freshly fetched builds; returns the number written.

    Without clear_previous only the touched (class, slot) pairs are swept, and
    labels listed in keep_labels for a pair survive the sweep. With
    clear_previous every generated entry in the file is removed first.
    """
    keep_labels = keep_labels or {}
    if clear_previous:
        store.remove_all_generated()
    else:
        for class_token, spec_index in touched:
            store.remove_generated(class_token, spec_index, keep_labels.get((class_token, spec_index), ()))

    written = 0
    for build in builds:
        store.add_entry(build.class_token, build.spec_index, TalentEntry.generated(build.identifier, build.talent_code))
        written += 1
    return written


# --- reading -----------------------------------------------------------------


def _from_lua(value: Any) -> Any:
    if lua_type(value) == "table":
        return {k: _from_lua(v) for k, v in value.items()}
    return value


def _is_slot_key(key: Any) -> bool:
    return isinstance(key, int) and not isinstance(key, bool)


def _entry_list(table: Dict[Any, Any]) -> Tuple[List[Any], Dict[Any, Any]]:
    """Split a spec table into its 1..n entry sequence and everything else."""
    items: List[Any] = []
    while len(items) + 1 in table:
        value = table[len(items) + 1]
        items.append(TalentEntry(value) if isinstance(value, dict) else value)
    extras = {k: v for k, v in table.items() if not (_is_slot_key(k) and 1 <= k <= len(items))}
    return items, extras


def build_store(saved: Dict[Any, Any], other_globals: Optional[Dict[str, Any]] = None) -> TalentStore:
    store = TalentStore(other_globals=dict(other_globals or {}))
    for key, value in saved.items():
        if key not in LUA_TOKENS or not isinstance(value, dict):
            store.sections[key] = value
            continue
        specs: Dict[int, List[Any]] = {}
        extras: Dict[Any, Any] = {}
        for spec_key, spec_value in value.items():
            if _is_slot_key(spec_key) and isinstance(spec_value, dict):
                specs[spec_key], slot_extras = _entry_list(spec_value)
                if slot_extras:
                    store.spec_extras.setdefault(key, {})[spec_key] = slot_extras
            else:
                extras[spec_key] = spec_value
        store.classes[key] = specs
        if extras:
            store.class_extras[key] = extras
    return store


# The file only ever sees this environment: no os, io, require or load.
# math.huge is what the writer emits for infinite numbers.
_LOADER = """
function(text, chunkname)
  local env = setmetatable({}, { __index = { math = { huge = math.huge } } })
  local chunk, err = load(text, chunkname, "t", env)
  if not chunk then
    error(err, 0)
  end
  chunk()
  return env
end
"""


def parse_store(lua_text: str) -> TalentStore:
    lua = LuaRuntime(unpack_returned_tuples=True, register_eval=False, register_builtins=False)
    loader = lua.eval(_LOADER)
    try:
        env = loader(lua_text, "=" + SAVED_VARIABLE)
    except LuaError as exc:
        raise StoreError(f"Failed to parse {SAVED_VARIABLE} file: {exc}") from exc

    saved: Dict[Any, Any] = {}
    other_globals: Dict[str, Any] = {}
    try:
        for name, raw in list(env.items()):
            if lua_type(raw) in ("function", "userdata", "thread"):
                continue
            value = _from_lua(raw)
            if name == SAVED_VARIABLE:
                if not isinstance(value, dict):
                    raise StoreError(f"{SAVED_VARIABLE} is not a table")
                saved = value
            else:
                other_globals[name] = value
    except UnicodeDecodeError as exc:
        raise StoreError(f"{SAVED_VARIABLE} file contains text that is not valid UTF-8: {exc}") from exc
    return build_store(saved, other_globals)


def load_store(path: pathlib.Path) -> TalentStore:
    path = pathlib.Path(path)
    if not path.exists():
        return TalentStore()
    try:
        lua_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise StoreError(f"Failed to read {path}: {exc}") from exc
    return parse_store(lua_text)


# --- writing -----------------------------------------------------------------


def lua_quote(value: str) -> str:
    out: List[str] = ['"']
    for ch in value:
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ord(ch) < 32 or ord(ch) == 127:
            out.append(f"\\{ord(ch):03d}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def lua_number(value: float) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "(0/0)"
    if math.isinf(value):
        return "math.huge" if value > 0 else "-math.huge"
    return repr(value)


def _key_order(key: Any) -> Tuple[int, Any]:
    if isinstance(key, bool):
        return (2, key)
    if isinstance(key, (int, float)):
        return (0, key)
    return (1, str(key))


def lua_key(key: Any) -> str:
    if isinstance(key, bool):
        return "[true]" if key else "[false]"
    if isinstance(key, (int, float)):
        return f"[{lua_number(key)}]"
    return f"[{lua_quote(str(key))}]"


def lua_value(value: Any, indent: Optional[int] = None) -> str:
    """Render a Python value as a Lua expression; indent=None renders tables on one line."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return lua_number(value)
    if isinstance(value, str):
        return lua_quote(value)
    if isinstance(value, TalentEntry):
        return format_entry(value)
    if isinstance(value, dict):
        if not value:
            return "{}"
        keys = sorted(value, key=_key_order)
        if indent is None:
            parts = ", ".join(f"{lua_key(k)} = {lua_value(value[k])}" for k in keys)
            return "{ " + parts + " }"
        pad = "  " * (indent + 1)
        lines = ["{"]
        for k in keys:
            lines.append(f"{pad}{lua_key(k)} = {lua_value(value[k], indent + 1)},")
        lines.append("  " * indent + "}")
        return "\n".join(lines)
    raise TypeError(f"Cannot write {type(value).__name__} to Lua")


def format_entry(entry: TalentEntry) -> str:
    known = [k for k in ENTRY_FIELD_ORDER if k in entry.fields]
    rest = sorted((k for k in entry.fields if k not in ENTRY_FIELD_ORDER), key=_key_order)
    parts = ", ".join(f"{lua_key(k)} = {lua_value(entry.fields[k])}" for k in known + rest)
    return "{ " + parts + " }" if parts else "{}"


def _slot_layout(items: List[Any], extras: Dict[Any, Any]) -> Tuple[List[Any], Dict[Any, Any]]:
    # A keyed integer the sequence has grown into would be overwritten, so it joins the sequence.
    items = list(items)
    keyed: Dict[Any, Any] = {}
    for key in sorted(extras, key=_key_order):
        if _is_slot_key(key) and 1 <= key <= len(items):
            items.append(extras[key])
        else:
            keyed[key] = extras[key]
    return items, keyed


def to_lua_string(store: TalentStore) -> str:
    lines: List[str] = [f"{SAVED_VARIABLE} = {{"]

    for class_token in sorted(store.classes):
        lines.append(f"  {lua_key(class_token)} = {{")
        specs = store.classes[class_token]
        for spec_index in sorted(specs):
            items, keyed = _slot_layout(specs[spec_index], store.spec_extras.get(class_token, {}).get(spec_index, {}))
            lines.append(f"    [{spec_index}] = {{")
            for item in items:
                lines.append(f"      {lua_value(item)},")
            for key in sorted(keyed, key=_key_order):
                lines.append(f"      {lua_key(key)} = {lua_value(keyed[key], 3)},")
            lines.append("    },")
        extras = store.class_extras.get(class_token, {})
        for key in sorted(extras, key=_key_order):
            lines.append(f"    {lua_key(key)} = {lua_value(extras[key], 2)},")
        lines.append("  },")

    sections = store.sections if store.sections else DEFAULT_SECTIONS
    for key in sorted(sections, key=_key_order):
        lines.append(f"  {lua_key(key)} = {lua_value(sections[key])},")

    lines.append("}")

    for name in sorted(store.other_globals):
        lines.append(f"{name} = {lua_value(store.other_globals[name], 0)}")

    return "\n".join(lines) + "\n"


def write_store(store: TalentStore, path: pathlib.Path) -> None:
    """Write via a temp file in the same directory, then rename over the target."""
    path = pathlib.Path(path)
    content = to_lua_string(store)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise StoreError(f"Failed to write {path}: {exc}") from exc


def main() -> int:
    parser = argparse.ArgumentParser(description="Show generated vs hand-made loadouts in a TalentLoadoutsEx.lua file.")
    parser.add_argument("path", type=pathlib.Path, help="Path to TalentLoadoutsEx.lua")
    parser.add_argument("--names", action="store_true", help="List loadout names, not just counts")
    args = parser.parse_args()

    try:
        store = load_store(args.path)
    except StoreError as exc:
        error(str(exc))
        return 1
    counts: Dict[Tuple[str, int], List[int]] = defaultdict(lambda: [0, 0])
    names: Dict[Tuple[str, int], List[str]] = defaultdict(list)
    for class_token, spec_index, entry in store.iter_entries():
        counts[(class_token, spec_index)][0 if entry.is_generated else 1] += 1
        names[(class_token, spec_index)].append(entry.name)

    if not counts:
        print(f"No loadouts in {args.path}")
        return 0
    for (class_token, spec_index), (generated, manual) in sorted(counts.items()):
        print(f"{class_token} [{spec_index}]: generated={generated} manual={manual}")
        if args.names:
            for name in names[(class_token, spec_index)]:
                print(f"    - {name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
