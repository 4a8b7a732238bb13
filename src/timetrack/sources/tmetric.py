"""TMetric detailed-report adapter.

TMetric's login is cookie based, so the session cookies are taken from config.
The detailed CSV report summarizes time per user and task; it carries durations
only, e.g.::

    Day,User,Project,Project Code,Client,Time Entry,Tags,Time,Issue Id,Link
    2017-10-30,ben,Team Infrastructure,,,Implement theme query API,,4:01:00,TI-2362,...

Older reports name the task column ``Task`` instead of ``Time Entry``.
"""
from __future__ import annotations
import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Tuple
import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from timetrack.config import number, require, section
from timetrack.errors import ConfigError, SourceError, SourceFormatError
from timetrack.sources.base import Fetcher, Sink
from timetrack.timedb.models import SystemType, TimeEntryRecord

DEFAULT_BASE_URL = "https://app.tmetric.com"
DEFAULT_HTTP_TIMEOUT = 60
API_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.000Z"

# Only durations are reported, so every task is pretended to start at this hour
DEFAULT_TASK_START_HOUR = 1

BOM = b"\xef\xbb\xbf"

_transient = retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    stop=stop_after_attempt(5),
    wait=wait_exponential(min=1, max=30),
    reraise=True,
)


def round_down_to_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def split_days(start: datetime, end: datetime) -> Iterator[Tuple[datetime, datetime]]:
    """Yield day-long chunks covering [start, end]; the last one is clipped to ``end``."""
    pos = round_down_to_day(start)
    while pos < end:
        nxt = min(pos + timedelta(days=1), end)
        yield pos, nxt
        pos = nxt


def _api_date(value: datetime) -> str:
    # naive values are local time
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).strftime(API_DATE_FORMAT)


def strip_bom(raw: bytes) -> bytes:
    return raw[len(BOM):] if raw.startswith(BOM) else raw


def parse_duration(value: str) -> timedelta:
    try:
        hours, minutes, seconds = (int(p) for p in value.strip().split(":"))
    except ValueError as exc:
        raise SourceFormatError("TMetric", f"bad duration {value!r}") from exc
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def _column_positions(header: List[str]) -> Tuple[int, int, int]:
    positions: Dict[str, int] = {}
    for pos, name in enumerate(header):
        name = name.strip()
        if name == "Task":
            name = "Time Entry"
        positions.setdefault(name, pos)
    for needed, label in (("User", "User"), ("Time Entry", "Task"), ("Time", "Time")):
        if needed not in positions:
            raise SourceFormatError(
                "TMetric", f"Unable to find {label} field in CSV. First line = '{','.join(header)}'"
            )
    return positions["User"], positions["Time Entry"], positions["Time"]


def parse_report(
    raw: bytes,
    day: datetime,
    email_suffix: str = "",
    task_start_hour: int = DEFAULT_TASK_START_HOUR,
) -> List[TimeEntryRecord]:
    """Turn one day's CSV report into time-entry records."""
    text = strip_bom(raw).decode("utf-8", errors="replace")
    rows = [r for r in csv.reader(io.StringIO(text)) if r]
    if not rows:
        return []
    user_pos, task_pos, time_pos = _column_positions(rows[0])
    task_start = round_down_to_day(day) + timedelta(hours=task_start_hour)
    entries: List[TimeEntryRecord] = []
    width = max(user_pos, task_pos, time_pos)
    for rec in rows[1:]:
        if len(rec) <= width:
            raise SourceFormatError("TMetric", f"Short CSV row: '{','.join(rec)}'")
        entries.append(TimeEntryRecord(
            system=SystemType.TMETRIC.value,
            email=rec[user_pos] + email_suffix,
            task_title=rec[task_pos],
            start=task_start,
            end=task_start + parse_duration(rec[time_pos]),
        ))
    return entries


class TMetricFetcher(Fetcher):
    name = "TMetric"

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()
        self.log = logging.getLogger("tmetric")
        self.base_url = DEFAULT_BASE_URL
        self.account_id = ""
        self.email_suffix = ""
        self.task_start_hour = DEFAULT_TASK_START_HOUR
        self.timeout = DEFAULT_HTTP_TIMEOUT

    def load_configuration(self, config: dict) -> None:
        cfg = section(config, "tmetric")
        self.account_id = str(require(cfg, "tmetric", "account_id"))
        self.email_suffix = cfg.get("email_suffix") or ""
        self.base_url = (cfg.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self.task_start_hour = number(cfg, "tmetric", "task_start_hour", DEFAULT_TASK_START_HOUR)
        self.timeout = number(cfg, "tmetric", "http_timeout", DEFAULT_HTTP_TIMEOUT, float)
        cookies = cfg.get("cookies") or {}
        if not isinstance(cookies, dict):
            raise ConfigError("'tmetric.cookies' must be a mapping")
        for k, v in cookies.items():
            self.session.cookies.set(k, str(v))
        self.session.headers.update({
            "Accept": "text/html, application/xhtml+xml, image/jxr, */*",
            "Referer": f"{self.base_url}/",
        })

    def fetch(self, sink: Sink, start: datetime, end: datetime) -> None:
        # The report API summarizes per request, so ask one day at a time
        for day_start, day_end in split_days(start, end):
            self.log.info("Fetching TMetric from %s to %s", day_start.isoformat(), day_end.isoformat())
            raw = self.fetch_raw(day_start, day_end)
            entries = parse_report(raw, day_start, self.email_suffix, self.task_start_hour)
            sink.upsert_time_entries(entries)

    @_transient
    def _request(self, params: List[Tuple[str, str]]) -> requests.Response:
        return self.session.get(f"{self.base_url}/api/reports/detailed/csv", params=params, timeout=self.timeout)

    def fetch_raw(self, start: datetime, end: datetime) -> bytes:
        params = [
            ("accountId", self.account_id),
            ("activeProjectsOnly", "false"),
            ("budget", "false"),
            ("endDate", _api_date(end)),
            ("groupColumnNames", "project"),
            ("groupColumnNames", "user"),
            ("noRounding", "false"),
            ("startDate", _api_date(start)),
        ]
        try:
            resp = self._request(params)
        except requests.RequestException as exc:
            raise SourceError(self.name, f"report request failed: {exc}") from exc
        if resp.status_code != 200:
            raise SourceError(self.name, f"HTTP Error: {resp.status_code} {resp.reason}")
        return resp.content
