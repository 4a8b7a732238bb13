from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
import requests
from sqlalchemy import create_engine, event, text


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from timetrack.db.schema import ensure_schema  # noqa: E402


def _db_url_from_env() -> str:
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5433")
    name = os.getenv("DB_NAME", "timetrack")
    user = os.getenv("DB_USER", "timetrack")
    password = os.getenv("DB_PASSWORD", "timetrack")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def db_engine():
    url = _db_url_from_env()
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        pytest.skip(f"Database not available for tests: {exc}")
    return engine


@pytest.fixture
def engine(tmp_path):
    """A throwaway SQLite time db with the schema applied."""
    eng = create_engine(f"sqlite:///{tmp_path / 'timetrack.db'}")

    # let SQLAlchemy drive BEGIN so SAVEPOINTs behave
    @event.listens_for(eng, "connect")
    def _connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    ensure_schema(eng)
    yield eng
    eng.dispose()


class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200, reason: str = "OK") -> None:
        self.content = content
        self.status_code = status_code
        self.reason = reason

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class FakeSession:
    """Stands in for requests.Session: replays canned responses, records requests."""

    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, object]] = []
        self.auth = None
        self.headers: dict[str, str] = {}
        self.cookies = requests.cookies.RequestsCookieJar()

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if not self.responses:
            raise AssertionError(f"unexpected request to {url}")
        return self.responses.pop(0)


class RecordingSink:
    def __init__(self) -> None:
        self.issue_batches: list[list] = []
        self.time_batches: list[list] = []

    def upsert_issues(self, issues):
        self.issue_batches.append(list(issues))

    def upsert_time_entries(self, entries):
        self.time_batches.append(list(entries))


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def sink():
    return RecordingSink()
