from __future__ import annotations
import argparse
import logging
from timetrack.config import DEFAULT_CONFIG_PATH, load_config
from timetrack.errors import TimeTrackError
from timetrack.timedb.store import TimeDB
from timetrack.utils.logging import configure_logging

def main() -> int:
    parser = argparse.ArgumentParser(description="Create the time db tables and indexes if missing")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    args = parser.parse_args()

    configure_logging()
    log = logging.getLogger("init_db")
    try:
        TimeDB.connect(load_config(args.config))
    except TimeTrackError as exc:
        log.error("%s", exc)
        return 1
    log.info("DB schema applied successfully.")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
