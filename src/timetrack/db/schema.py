from __future__ import annotations
import logging
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    func,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

# SQLite only auto-increments INTEGER PRIMARY KEY
_Id = BigInteger().with_variant(Integer(), "sqlite")

users = Table(
    "users",
    metadata,
    Column("userid", _Id, primary_key=True, autoincrement=True),
    Column("email", String, nullable=False),
)
Index("idx_users_email", func.lower(users.c.email), unique=True)

# userid is only set for anonymous tickets
tickets = Table(
    "tickets",
    metadata,
    Column("ticketid", _Id, primary_key=True, autoincrement=True),
    Column("system", String, nullable=False),
    Column("systemid", String),
    Column("title", String),
    Column("ticket_type", String),
    Column("story_points", Integer),
    Column("userid", BigInteger),
    Column("create_time", DateTime),
)
Index("idx_tickets_systemid", tickets.c.system, tickets.c.systemid, unique=True)
Index("idx_tickets_title", tickets.c.title)

times = Table(
    "times",
    metadata,
    Column("userid", BigInteger, nullable=False),
    Column("system", String, nullable=False),
    Column("systemid", String, nullable=False),
    Column("start_time", DateTime),
    Column("end_time", DateTime),
    Column("ticketid", BigInteger, nullable=False),
)
Index("idx_times_userid", times.c.userid)
Index("idx_times_ticket", times.c.ticketid)
Index("idx_times_systemid", times.c.system, times.c.systemid, unique=True)


def ensure_schema(engine: Engine) -> None:
    """Create any missing tables and indexes. Safe to run on every start."""
    log = logging.getLogger("timedb")
    with engine.begin() as conn:
        metadata.create_all(conn, checkfirst=True)
    log.info("DB schema ensured (%s)", ", ".join(sorted(metadata.tables)))
