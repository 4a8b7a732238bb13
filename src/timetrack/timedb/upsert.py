from __future__ import annotations
import logging
from datetime import datetime
from typing import Iterable
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from timetrack.errors import ConnectivityError, StoreError
from timetrack.timedb.cache import RunCache
from timetrack.timedb.models import IssueRecord, TimeEntryRecord, UpsertStats, category_from_issue_type
from timetrack.timedb.resolvers import resolve_ticket, resolve_user

log = logging.getLogger("timedb")

_UPDATE_TICKET = text("""
    UPDATE tickets
    SET title = :title, ticket_type = :ticket_type, story_points = :story_points
    WHERE system = :system AND systemid = :systemid
""")
_INSERT_TICKET = text("""
    INSERT INTO tickets (system, systemid, title, ticket_type, story_points, create_time)
    VALUES (:system, :systemid, :title, :ticket_type, :story_points, :create_time)
""").bindparams(bindparam("create_time", type_=DateTime()))

_UPDATE_TIME = text("""
    UPDATE times
    SET start_time = :start_time, end_time = :end_time
    WHERE system = :system AND systemid = :systemid
""").bindparams(
    bindparam("start_time", type_=DateTime()),
    bindparam("end_time", type_=DateTime()),
)
_INSERT_TIME = text("""
    INSERT INTO times (userid, system, systemid, start_time, end_time, ticketid)
    VALUES (:userid, :system, :systemid, :start_time, :end_time, :ticketid)
""").bindparams(
    bindparam("start_time", type_=DateTime()),
    bindparam("end_time", type_=DateTime()),
)


def day_system_id(ticket_id: int, start: datetime) -> str:
    """Synthesize a time-entry id for sources that only report daily summaries.

    Assumes a ticket appears at most once per day in the source report. If a
    ticket later vanishes from a day it was reported on, the old row stays.

    The day part is year + day-of-year, so e.g. 2024-01-02 and 2023-01-03 share
    a value for the same ticket.
    """
    return f"{ticket_id}:{start.year + start.timetuple().tm_yday}"


def _connect(engine: Engine) -> Connection:
    try:
        return engine.connect()
    except OperationalError as exc:
        raise ConnectivityError(f"Unable to connect to time db: {exc}") from exc


def _apply_issue(conn: Connection, issue: IssueRecord, stats: UpsertStats) -> None:
    params = {
        "system": issue.system,
        "systemid": issue.system_id,
        "title": issue.title,
        "ticket_type": category_from_issue_type(issue.category).value,
        "story_points": issue.story_points,
    }
    res = conn.execute(_UPDATE_TICKET, params)
    if res.rowcount == 0:
        conn.execute(_INSERT_TICKET, {**params, "create_time": issue.created_at})
        stats.inserted += 1
    else:
        stats.updated += 1


def upsert_issues(engine: Engine, issues: Iterable[IssueRecord]) -> UpsertStats:
    """Write a batch of issues in one transaction; nothing is kept if any write fails."""
    issues = list(issues)
    stats = UpsertStats()
    with _connect(engine) as conn:
        try:
            with conn.begin():
                for issue in issues:
                    _apply_issue(conn, issue, stats)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error writing {len(issues)} issues: {exc}") from exc
    log.info("Issues upserted: inserted=%s updated=%s", stats.inserted, stats.updated)
    return stats


def _apply_time_entry(conn: Connection, cache: RunCache, entry: TimeEntryRecord, stats: UpsertStats) -> None:
    user_id = resolve_user(conn, cache, entry.email)
    ticket_id, created = resolve_ticket(conn, cache, user_id, entry.task_title, allow_create=True)
    if created:
        stats.anonymous_tickets.append(ticket_id)
    params = {
        "system": entry.system,
        "systemid": day_system_id(ticket_id, entry.start),
        "start_time": entry.start,
        "end_time": entry.end,
    }
    res = conn.execute(_UPDATE_TIME, params)
    if res.rowcount == 0:
        conn.execute(_INSERT_TIME, {**params, "userid": user_id, "ticketid": ticket_id})
        stats.inserted += 1
    else:
        stats.updated += 1


def upsert_time_entries(engine: Engine, entries: Iterable[TimeEntryRecord]) -> UpsertStats:
    """Resolve users and tickets for a batch of time entries and write them in one transaction.

    Task titles without a matching ticket land on an anonymous ticket owned by
    the entry's user; those ticket ids are reported in ``anonymous_tickets``.
    """
    entries = list(entries)
    stats = UpsertStats()
    cache = RunCache()
    with _connect(engine) as conn:
        try:
            with conn.begin():
                for entry in entries:
                    _apply_time_entry(conn, cache, entry, stats)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error writing {len(entries)} time entries: {exc}") from exc
    log.info(
        "Time entries upserted: inserted=%s updated=%s anonymous_tickets=%s",
        stats.inserted, stats.updated, len(stats.anonymous_tickets),
    )
    return stats
