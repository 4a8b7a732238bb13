from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.engine import Engine

from timetrack.db.schema import tickets, times, users
from timetrack.errors import ConfigError
from timetrack.timedb.models import TicketType

ALL_TEAMS = "all teams"
DEFAULT_HISTORY_DAYS = 365
REPORT_COLUMNS = ["year", "month", "bug_seconds", "feature_seconds"]


def load_teams(config: dict) -> List[Dict]:
    teams = (config or {}).get("teams") or []
    if not isinstance(teams, list):
        raise ConfigError("'teams' must be a list")
    out: List[Dict] = []
    for t in teams:
        if not isinstance(t, dict) or not t.get("name"):
            raise ConfigError(f"Every team needs a name: {t!r}")
        out.append({"name": str(t["name"]), "members": [str(m) for m in (t.get("members") or [])]})
    return out


def user_ids_by_email(engine: Engine) -> Dict[str, int]:
    with engine.connect() as conn:
        rows = conn.execute(select(users.c.userid, users.c.email)).all()
    return {email.lower(): int(uid) for uid, email in rows}


def users_in_team(engine: Engine, teams: Iterable[Dict], team_name: str) -> List[int]:
    """User ids of the team's members that have data; ``"all teams"`` selects every team."""
    ids_by_email = user_ids_by_email(engine)
    ids: List[int] = []
    for t in teams:
        if team_name != ALL_TEAMS and t["name"] != team_name:
            continue
        for email in t["members"]:
            uid = ids_by_email.get(email.lower())
            if uid is not None and uid not in ids:
                ids.append(uid)
    if not ids:
        logging.getLogger("report").warning("No users with data in team %r; the report will be empty", team_name)
    return ids


def members_without_data(engine: Engine, team: Dict) -> List[str]:
    ids_by_email = user_ids_by_email(engine)
    return [email for email in team["members"] if email.lower() not in ids_by_email]


def monthly_report(
    engine: Engine,
    user_ids: Optional[Iterable[int]] = None,
    since: Optional[datetime] = None,
) -> pd.DataFrame:
    """Seconds spent on bugs and features per calendar month.

    ``user_ids=None`` covers everyone; an empty collection yields an empty report.
    ``since`` defaults to one year ago.
    """
    log = logging.getLogger("report")
    since = since or datetime.now() - timedelta(days=DEFAULT_HISTORY_DAYS)
    q = (
        select(times.c.start_time, times.c.end_time, tickets.c.ticket_type)
        .select_from(times.join(tickets, tickets.c.ticketid == times.c.ticketid))
        .where(times.c.start_time > since)
    )
    if user_ids is not None:
        user_ids = list(user_ids)
        if not user_ids:
            return pd.DataFrame(columns=REPORT_COLUMNS)
        q = q.where(times.c.userid.in_(user_ids))

    with engine.connect() as conn:
        rows = conn.execute(q).all()
    if not rows:
        return pd.DataFrame(columns=REPORT_COLUMNS)

    df = pd.DataFrame(rows, columns=["start_time", "end_time", "ticket_type"])
    start = pd.to_datetime(df["start_time"])
    df["seconds"] = (pd.to_datetime(df["end_time"]) - start).dt.total_seconds()
    df["year"] = start.dt.year
    df["month"] = start.dt.month

    by_type = df.groupby(["year", "month", "ticket_type"])["seconds"].sum().unstack("ticket_type", fill_value=0.0)
    out = pd.DataFrame(index=by_type.index)
    for col, category in (("bug_seconds", TicketType.BUG.value), ("feature_seconds", TicketType.FEATURE.value)):
        out[col] = by_type[category] if category in by_type.columns else 0.0
    out = out.reset_index().sort_values(["year", "month"]).reset_index(drop=True)
    log.info("Monthly report: %s months from %s entries", len(out), len(df))
    return out[REPORT_COLUMNS]
