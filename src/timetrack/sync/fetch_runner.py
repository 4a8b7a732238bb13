from __future__ import annotations
import logging
import time
from datetime import datetime, timedelta
from typing import Sequence

from timetrack.errors import TimeTrackError
from timetrack.sources.base import Fetcher, Sink
from timetrack.sources.jira import JiraFetcher
from timetrack.sources.tmetric import TMetricFetcher


def fetch_window(days: int, now: datetime | None = None) -> tuple[datetime, datetime] | None:
    """Window ending at 23:59:59 local time today and reaching ``days`` days back."""
    if days <= 0:
        return None
    now = now or datetime.now()
    end = now.replace(hour=23, minute=59, second=59, microsecond=0)
    return end - timedelta(days=days), end

def build_fetchers(jira: bool = True, tmetric: bool = True) -> list[Fetcher]:
    # JIRA first: TMetric entries resolve against the tickets it creates
    fetchers: list[Fetcher] = []
    if jira:
        fetchers.append(JiraFetcher())
    if tmetric:
        fetchers.append(TMetricFetcher())
    return fetchers

def run_fetchers(
    sink: Sink,
    fetchers: Sequence[Fetcher],
    config: dict,
    start: datetime,
    end: datetime,
) -> bool:
    """Run each fetcher in order and stop at the first failure.

    Later sources are skipped after a failure, otherwise TMetric would create
    anonymous tickets for work JIRA failed to deliver.
    """
    log = logging.getLogger("fetch")
    for f in fetchers:
        log.info("%s enabled", f.name)

    for f in fetchers:
        try:
            f.load_configuration(config)
        except TimeTrackError as exc:
            log.error("Error loading config for %s: %s", f.name, exc)
            return False
        t0 = time.time()
        try:
            f.fetch(sink, start, end)
        except TimeTrackError as exc:
            log.error("Error fetching from %s: %s", f.name, exc)
            return False
        log.info("%s fetched in %ss", f.name, int(time.time() - t0))

    log.info("Finished successfully")
    return True
