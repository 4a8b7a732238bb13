from __future__ import annotations

from datetime import datetime

from sqlalchemy import text

from timetrack.db.schema import ensure_schema
from timetrack.timedb.cache import RunCache
from timetrack.timedb.resolvers import resolve_ticket, resolve_user


def _unique_email(tag: str) -> str:
    return f"pg-{tag}-{datetime.now():%Y%m%d%H%M%S%f}@example.com"


class _Scalar:
    def __init__(self, value) -> None:
        self.value = value

    def scalar(self):
        return self.value


class RacingConn:
    """Wraps a real connection; runs ``on_miss`` right after the first user lookup."""

    def __init__(self, conn, on_miss) -> None:
        self.conn = conn
        self.on_miss = on_miss
        self.raced = False

    def execute(self, stmt, params=None):
        value = self.conn.execute(stmt, params).scalar()
        if not self.raced and str(stmt).strip().startswith("SELECT userid"):
            self.raced = True
            self.on_miss()
        return _Scalar(value)

    def begin_nested(self):
        return self.conn.begin_nested()


def test_resolvers_against_postgres(db_engine):
    ensure_schema(db_engine)
    email = _unique_email("smoke")
    with db_engine.connect() as conn:
        trans = conn.begin()
        try:
            cache = RunCache()
            uid = resolve_user(conn, cache, email.upper())
            assert resolve_user(conn, RunCache(), email) == uid

            ticket_id, created = resolve_ticket(conn, cache, uid, "pg smoke task", allow_create=True)
            assert created
            assert resolve_ticket(conn, RunCache(), uid, "pg smoke task") == (ticket_id, False)

            row = conn.execute(
                text("SELECT system, ticket_type FROM tickets WHERE ticketid = :id"), {"id": ticket_id}
            ).one()
            assert tuple(row) == ("anon", "anonymous")
        finally:
            trans.rollback()


def test_concurrent_user_insert_is_reread(db_engine):
    ensure_schema(db_engine)
    email = _unique_email("race")

    def other_writer():
        with db_engine.begin() as other:
            other.execute(text("INSERT INTO users (email) VALUES (:email)"), {"email": email})

    try:
        with db_engine.connect() as conn:
            trans = conn.begin()
            try:
                user_id = resolve_user(RacingConn(conn, other_writer), RunCache(), email)
                # the transaction survives the unique violation
                assert conn.execute(text("SELECT 1")).scalar() == 1
            finally:
                trans.rollback()
        with db_engine.connect() as conn:
            committed = conn.execute(text("SELECT userid FROM users WHERE email = :email"), {"email": email}).scalar()
        assert user_id == committed
    finally:
        with db_engine.begin() as conn:
            conn.execute(text("DELETE FROM users WHERE email = :email"), {"email": email})
