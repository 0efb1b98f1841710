#!/usr/bin/env python3
"""Fetch archon.gg build pages and turn them into talent codes.

A fetch never raises for network trouble. Every outcome is a FetchResult:
  success          page had a talent calculator link
  no_data          page had no link, or the site answered HTTP 500 (too few logs)
  transport_error  timeout, connection failure, or any other HTTP status

Mythic+ builds are fetched for the preferred weekly window first and, when
that window has no data, once more for the other window. Nothing is retried
beyond that.
"""

from __future__ import annotations

import argparse
import dataclasses
import datetime as dt
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter

try:
    from .build_urls import (
        DungeonRequest,
        ContentRequest,
        RaidRequest,
        build_url,
        fallback_timespan,
        parse_difficulty,
        primary_timespan,
    )
    from .config import FetchConfig
    from .console import log
    from .extract_talent_code import extract_talent_code
except ImportError:
    from build_urls import (
        DungeonRequest,
        ContentRequest,
        RaidRequest,
        build_url,
        fallback_timespan,
        parse_difficulty,
        primary_timespan,
    )
    from config import FetchConfig
    from console import log
    from extract_talent_code import extract_talent_code

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36"
)

REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

SUCCESS = "success"
NO_DATA = "no_data"
TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class FetchResult:
    status: str
    talent_code: Optional[str] = None
    detail: str = ""
    timespan: Optional[str] = None

    @classmethod
    def success(cls, talent_code: str) -> "FetchResult":
        return cls(status=SUCCESS, talent_code=talent_code)

    @classmethod
    def no_data(cls, detail: str = "") -> "FetchResult":
        return cls(status=NO_DATA, detail=detail)

    @classmethod
    def transport_error(cls, detail: str) -> "FetchResult":
        return cls(status=TRANSPORT_ERROR, detail=detail)

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def for_timespan(self, timespan: Optional[str]) -> "FetchResult":
        return dataclasses.replace(self, timespan=timespan)


def build_session(cfg: FetchConfig) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=cfg.max_connections_per_host,
        pool_maxsize=cfg.max_connections_per_host,
        max_retries=0,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(REQUEST_HEADERS)
    return session


class FetchClient:
    """Bounded HTTP client shared by every build request of one run."""

    def __init__(self, cfg: FetchConfig, session: Optional[requests.Session] = None) -> None:
        cfg.validate()
        self.cfg = cfg
        self.session = session if session is not None else build_session(cfg)
        self._semaphore = threading.BoundedSemaphore(cfg.max_concurrency)

    def __enter__(self) -> "FetchClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def fetch(self, url: str) -> FetchResult:
        with self._semaphore:
            try:
                response = self.session.get(url, headers=REQUEST_HEADERS, timeout=self.cfg.timeout_seconds)
                status = response.status_code
                body = response.text if status == 200 else ""
            except requests.RequestException as exc:
                return FetchResult.transport_error(f"request failed for {url}: {exc}")

        if status == 500:
            return FetchResult.no_data("HTTP 500 (not enough logs)")
        if status != 200:
            return FetchResult.transport_error(f"HTTP {status} for {url}")

        talent_code = extract_talent_code(body)
        if talent_code is None:
            return FetchResult.no_data("no talent calculator link")
        return FetchResult.success(talent_code)


def fetch_build(
    fetch: Callable[[str], FetchResult],
    class_key: str,
    spec: str,
    request: ContentRequest,
    *,
    base_url: str,
    today: Optional[dt.date] = None,
    reset_weekday: int = FetchConfig.reset_weekday,
) -> FetchResult:
    """Fetch one build. Mythic+ falls back to the other weekly window once on no_data."""
    if not request.is_time_windowed:
        return fetch(build_url(class_key, spec, request, base_url=base_url))

    primary = primary_timespan(today, reset_weekday)
    result = fetch(build_url(class_key, spec, request, primary, base_url=base_url))
    if result.status != NO_DATA:
        return result.for_timespan(primary)

    secondary = fallback_timespan(primary)
    return fetch(build_url(class_key, spec, request, secondary, base_url=base_url)).for_timespan(secondary)


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch a single archon.gg talent build and print its talent code.")
    parser.add_argument("--class", dest="class_key", required=True, help="Class, e.g. Mage or DeathKnight")
    parser.add_argument("--spec", required=True, help="Specialization, e.g. frost")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--boss", help="Raid boss slug, e.g. broodtwister")
    target.add_argument("--dungeon", help="Mythic+ dungeon slug, e.g. ara-kara")
    parser.add_argument("--difficulty", default="heroic", help="Raid difficulty (normal, heroic, mythic)")
    parser.add_argument("--timeout", type=float, default=FetchConfig.timeout_seconds)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    request: ContentRequest
    if args.boss:
        request = RaidRequest(difficulty=parse_difficulty(args.difficulty), boss=args.boss)
    else:
        request = DungeonRequest(dungeon=args.dungeon)

    cfg = FetchConfig(timeout_seconds=args.timeout, verbose=args.verbose)

    def traced_fetch(url: str) -> FetchResult:
        log(f"GET {url}", enabled=cfg.verbose)
        return client.fetch(url)

    with FetchClient(cfg) as client:
        result = fetch_build(
            traced_fetch,
            args.class_key,
            args.spec,
            request,
            base_url=cfg.base_url,
            reset_weekday=cfg.reset_weekday,
        )

    if result.ok:
        suffix = f" ({result.timespan})" if result.timespan else ""
        print(f"{request.identifier}{suffix}: {result.talent_code}")
        return 0
    print(f"{request.identifier}: {result.status} {result.detail}".rstrip())
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
