#!/usr/bin/env python3
"""JIRA + TMetric -> time db.

Fetches the `--days` days that end at 23:59:59 today (local time).
JIRA runs first; if it fails, TMetric is skipped so its entries do not land on
anonymous tickets.

Examples:
  python scripts/run_fetch.py --days 7
  python scripts/run_fetch.py --days 30 --no-tmetric
  python scripts/run_fetch.py --days 1 --raw tmetric
"""
from __future__ import annotations

import argparse
import logging
import sys

from timetrack.config import DEFAULT_CONFIG_PATH, load_config
from timetrack.errors import TimeTrackError
from timetrack.sync.fetch_runner import build_fetchers, fetch_window, run_fetchers
from timetrack.timedb.store import TimeDB
from timetrack.utils.logging import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch issues and time entries into the time db")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    parser.add_argument("--days", type=int, default=0, help="Number of days of history to fetch")
    parser.add_argument("--no-jira", action="store_true", help="Skip fetching JIRA tickets")
    parser.add_argument("--no-tmetric", action="store_true", help="Skip fetching TMetric times")
    parser.add_argument("--raw", choices=("jira", "tmetric"), default=None, help="Print the raw source payload and exit")
    parser.add_argument("--log-file", default=None, help="Also log to this file")
    args = parser.parse_args()

    configure_logging(log_file=args.log_file)
    log = logging.getLogger("fetch")

    window = fetch_window(args.days)
    if window is None:
        log.info("days is less than 1. Not doing anything")
        return 0
    start, end = window
    log.info("Range: start=%s end=%s", start.isoformat(), end.isoformat())

    try:
        cfg = load_config(args.config)
        if args.raw:
            (fetcher,) = build_fetchers(jira=args.raw == "jira", tmetric=args.raw == "tmetric")
            fetcher.load_configuration(cfg)
            sys.stdout.buffer.write(fetcher.fetch_raw(start, end))
            return 0
        db = TimeDB.connect(cfg)
    except TimeTrackError as exc:
        log.error("%s", exc)
        return 1

    fetchers = build_fetchers(jira=not args.no_jira, tmetric=not args.no_tmetric)
    if run_fetchers(db, fetchers, cfg, start, end):
        return 0
    log.info("Finished with errors")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
