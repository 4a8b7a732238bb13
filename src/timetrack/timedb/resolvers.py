from __future__ import annotations
import logging
import re
from datetime import datetime
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from timetrack.errors import StoreError
from timetrack.timedb.cache import RunCache
from timetrack.timedb.models import SystemType, TicketType

log = logging.getLogger("timedb")

_SELECT_USER = text("SELECT userid FROM users WHERE lower(email) = :email")
_INSERT_USER = text("INSERT INTO users (email) VALUES (:email)")

_SELECT_TICKET_BY_TITLE = text("""
    SELECT ticketid FROM tickets
    WHERE title = :title
    ORDER BY create_time DESC NULLS LAST, ticketid DESC
    LIMIT 1
""")
_INSERT_ANON_TICKET = text("""
    INSERT INTO tickets (system, title, ticket_type, userid, create_time)
    VALUES (:system, :title, :ticket_type, :userid, :create_time)
""").bindparams(bindparam("create_time", type_=DateTime()))
_SELECT_ANON_TICKET = text("""
    SELECT ticketid FROM tickets
    WHERE system = :system AND title = :title AND userid = :userid
    ORDER BY ticketid DESC
    LIMIT 1
""")

_ANON_NAME_RE = re.compile(r"^anon\((\d+)\): (.*)$", re.DOTALL)


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlstate", None) == "23505":
        return True
    msg = str(orig if orig is not None else exc)
    return "duplicate key value violates unique constraint" in msg or "UNIQUE constraint failed" in msg


def resolve_user(conn: Connection, cache: RunCache, email: str) -> int:
    """Return the user id for ``email``, creating the user on first sight."""
    email = email.lower()
    user_id = cache.email_to_user.get(email)
    if user_id is not None:
        return user_id

    # read, insert, re-read; a conflicting insert means another writer won the race
    for attempt in range(2):
        user_id = conn.execute(_SELECT_USER, {"email": email}).scalar()
        if user_id is not None:
            break
        if attempt:
            raise StoreError(f"User {email!r} not found after insert")
        try:
            with conn.begin_nested():
                conn.execute(_INSERT_USER, {"email": email})
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            log.info("User %s was created concurrently, re-reading", email)

    cache.email_to_user[email] = int(user_id)
    return int(user_id)


def anonymous_task_name(user_id: int, title: str) -> str:
    return f"anon({user_id}): {title}"


def parse_anonymous_task_name(name: str) -> tuple[int, str] | None:
    """Inverse of anonymous_task_name; None when ``name`` is not an anonymous task."""
    m = _ANON_NAME_RE.match(name or "")
    if not m:
        return None
    return int(m.group(1)), m.group(2)


def _title_to_ticket(conn: Connection, cache: RunCache, title: str) -> int:
    # Returns 0 when no ticket has this exact title
    if title in cache.title_to_ticket:
        return cache.title_to_ticket[title]
    ticket_id = conn.execute(_SELECT_TICKET_BY_TITLE, {"title": title}).scalar()
    ticket_id = int(ticket_id) if ticket_id is not None else 0
    cache.title_to_ticket[title] = ticket_id
    return ticket_id


def create_anonymous_ticket(conn: Connection, user_id: int, title: str) -> int:
    anon_title = anonymous_task_name(user_id, title)
    params = {"system": SystemType.ANON.value, "title": anon_title, "userid": user_id}
    conn.execute(_INSERT_ANON_TICKET, {**params, "ticket_type": TicketType.ANON.value, "create_time": datetime.now()})
    ticket_id = conn.execute(_SELECT_ANON_TICKET, params).scalar()
    if ticket_id is None:
        raise StoreError(f"Anonymous ticket {anon_title!r} not found after insert")
    return int(ticket_id)


def resolve_ticket(
    conn: Connection,
    cache: RunCache,
    user_id: int,
    title: str,
    allow_create: bool = False,
) -> tuple[int, bool]:
    """Resolve a task title to a ticket id.

    Looks for a ticket with exactly this title, then for this user's anonymous
    task of the same name. When both miss, returns ``(0, False)`` unless
    ``allow_create`` is set, in which case a new anonymous ticket owned by
    ``user_id`` is created and ``(ticket_id, True)`` is returned.
    """
    ticket_id = _title_to_ticket(conn, cache, title)
    if ticket_id:
        return ticket_id, False
    anon_title = anonymous_task_name(user_id, title)
    ticket_id = _title_to_ticket(conn, cache, anon_title)
    if ticket_id:
        return ticket_id, False

    if not allow_create:
        return 0, False

    log.info("Unable to find ticket %r for userid=%s. Creating an anonymous task", title, user_id)
    ticket_id = create_anonymous_ticket(conn, user_id, title)
    cache.title_to_ticket[anon_title] = ticket_id
    return ticket_id, True
