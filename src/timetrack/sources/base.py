from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Protocol

from timetrack.timedb.models import IssueRecord, TimeEntryRecord, UpsertStats


class Sink(Protocol):
    def upsert_issues(self, issues: Iterable[IssueRecord]) -> UpsertStats: ...

    def upsert_time_entries(self, entries: Iterable[TimeEntryRecord]) -> UpsertStats: ...


class Fetcher(ABC):
    """A source adapter turning one external system into canonical records."""

    name: str = ""

    @abstractmethod
    def load_configuration(self, config: dict) -> None:
        """Read this source's section of the config; raise ConfigError if unusable."""

    @abstractmethod
    def fetch(self, sink: Sink, start: datetime, end: datetime) -> None:
        """Retrieve records for [start, end] and write them to ``sink`` in batches."""

    @abstractmethod
    def fetch_raw(self, start: datetime, end: datetime) -> bytes:
        """Return the unprocessed source payload for [start, end], for debugging."""
