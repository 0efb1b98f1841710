#!/usr/bin/env python3
"""Extract the talent import code from a saved archon.gg build page.

archon.gg links every build to the Wowhead talent calculator, e.g.
  https://www.wowhead.com/talent-calc/blizzard/mage/frost/CAEAAAAAAAAAAA...
Everything after the calculator prefix ("mage/frost/CAEA...") is what
TalentLoadoutsEx stores as the loadout text.
"""

from __future__ import annotations

import argparse
import html as html_lib
import json
import pathlib
import re
from typing import List, Optional

TALENT_CALC_PREFIX = "wowhead.com/talent-calc/blizzard/"

ANCHOR_HREF_RE = re.compile(
    r"<a\b[^>]*?\bhref\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s>]+))",
    re.IGNORECASE | re.DOTALL,
)


def iter_anchor_hrefs(html_text: str) -> List[str]:
    hrefs: List[str] = []
    for m in ANCHOR_HREF_RE.finditer(html_text):
        raw = m.group(1) if m.group(1) is not None else m.group(2) if m.group(2) is not None else m.group(3)
        hrefs.append(html_lib.unescape(raw).replace("\\/", "/"))
    return hrefs


def extract_talent_code(html_text: str) -> Optional[str]:
    """Return the talent code from the first calculator link.

    None when the page has no calculator link, or when the first one carries no code.
    """
    for href in iter_anchor_hrefs(html_text):
        idx = href.find(TALENT_CALC_PREFIX)
        if idx < 0:
            continue
        code = href[idx + len(TALENT_CALC_PREFIX):].strip()
        return code or None
    return None


def main() -> int:
    parser = argparse.ArgumentParser(description="Print the talent code found in saved archon.gg build pages.")
    parser.add_argument("paths", nargs="+", type=pathlib.Path, help="HTML files to inspect")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    args = parser.parse_args()

    results = []
    for path in args.paths:
        html_text = path.read_text(encoding="utf-8", errors="replace")
        results.append({"path": str(path), "talent_code": extract_talent_code(html_text)})

    if args.json:
        print(json.dumps(results, indent=2))
        return 0

    missing = 0
    for row in results:
        if row["talent_code"] is None:
            missing += 1
            print(f"{row['path']}: no talent calculator link")
        else:
            print(f"{row['path']}: {row['talent_code']}")
    return 1 if missing == len(results) else 0


if __name__ == "__main__":
    raise SystemExit(main())
