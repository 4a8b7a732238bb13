from __future__ import annotations
import argparse
import logging
from datetime import datetime, timedelta
from timetrack.config import DEFAULT_CONFIG_PATH, load_config
from timetrack.errors import TimeTrackError
from timetrack.reporting.monthly import (
    ALL_TEAMS,
    DEFAULT_HISTORY_DAYS,
    load_teams,
    members_without_data,
    monthly_report,
    users_in_team,
)
from timetrack.timedb.store import TimeDB
from timetrack.utils.logging import configure_logging

def main() -> int:
    parser = argparse.ArgumentParser(description="Monthly bug/feature effort report")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    who = parser.add_mutually_exclusive_group(required=True)
    who.add_argument("--user-id", type=int, help="Report for one user id")
    who.add_argument("--team", help=f"Report for a configured team, or '{ALL_TEAMS}'")
    parser.add_argument("--history-days", type=int, default=DEFAULT_HISTORY_DAYS)
    args = parser.parse_args()

    configure_logging()
    log = logging.getLogger("report")
    try:
        cfg = load_config(args.config)
        db = TimeDB.connect(cfg)
        if args.user_id is not None:
            user_ids = [args.user_id]
        else:
            teams = load_teams(cfg)
            for t in teams:
                if args.team in (ALL_TEAMS, t["name"]):
                    missing = members_without_data(db.engine, t)
                    if missing:
                        log.warning("No data for %s members: %s", t["name"], ", ".join(missing))
            user_ids = users_in_team(db.engine, teams, args.team)
        df = monthly_report(db.engine, user_ids, datetime.now() - timedelta(days=args.history_days))
    except TimeTrackError as exc:
        log.error("%s", exc)
        return 1
    print(df.to_string(index=False))
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
