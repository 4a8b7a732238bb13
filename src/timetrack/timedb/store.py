from __future__ import annotations
from typing import Iterable
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from timetrack.db.connection import get_engine
from timetrack.db.schema import ensure_schema
from timetrack.errors import ConnectivityError
from timetrack.timedb.models import IssueRecord, TimeEntryRecord, UpsertStats
from timetrack.timedb.upsert import upsert_issues, upsert_time_entries


class TimeDB:
    """The sink fetchers write into: one engine plus the two batch upserts."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def connect(cls, config: dict | None = None, engine: Engine | None = None) -> "TimeDB":
        """Open the store, check it is reachable and make sure the schema exists."""
        engine = engine or get_engine(config)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError as exc:
            raise ConnectivityError(f"Error connecting to time db: {exc}") from exc
        ensure_schema(engine)
        return cls(engine)

    def upsert_issues(self, issues: Iterable[IssueRecord]) -> UpsertStats:
        return upsert_issues(self.engine, issues)

    def upsert_time_entries(self, entries: Iterable[TimeEntryRecord]) -> UpsertStats:
        return upsert_time_entries(self.engine, entries)
