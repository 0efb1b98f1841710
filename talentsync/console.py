"""Console progress output shared by the command-line modules."""

from __future__ import annotations

import sys


def log(msg: str, *, enabled: bool = True) -> None:
    if enabled:
        print(msg, flush=True)


def error(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)
