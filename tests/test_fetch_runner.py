from __future__ import annotations

from datetime import datetime

from timetrack.errors import ConfigError, SourceError, StoreError
from timetrack.sources.base import Fetcher
from timetrack.sources.jira import JiraFetcher
from timetrack.sources.tmetric import TMetricFetcher
from timetrack.sync.fetch_runner import build_fetchers, fetch_window, run_fetchers

START = datetime(2024, 1, 1)
END = datetime(2024, 1, 7, 23, 59, 59)


class StubFetcher(Fetcher):
    def __init__(self, name, config_error=None, fetch_error=None):
        self.name = name
        self.config_error = config_error
        self.fetch_error = fetch_error
        self.fetched = []

    def load_configuration(self, config):
        if self.config_error:
            raise self.config_error

    def fetch(self, sink, start, end):
        if self.fetch_error:
            raise self.fetch_error
        self.fetched.append((start, end))

    def fetch_raw(self, start, end):
        return b""


def test_fetch_window():
    start, end = fetch_window(7, now=datetime(2024, 1, 10, 13, 5))
    assert end == datetime(2024, 1, 10, 23, 59, 59)
    assert start == datetime(2024, 1, 3, 23, 59, 59)
    assert fetch_window(0) is None


def test_build_fetchers_orders_jira_first():
    fetchers = build_fetchers()
    assert [type(f) for f in fetchers] == [JiraFetcher, TMetricFetcher]
    assert [type(f) for f in build_fetchers(jira=False)] == [TMetricFetcher]


def test_run_all_fetchers(sink):
    a, b = StubFetcher("A"), StubFetcher("B")
    assert run_fetchers(sink, [a, b], {}, START, END) is True
    assert a.fetched == [(START, END)]
    assert b.fetched == [(START, END)]


def test_fetch_failure_skips_later_sources(sink, caplog):
    jira = StubFetcher("JIRA", fetch_error=SourceError("JIRA", "HTTP 500"))
    tmetric = StubFetcher("TMetric")
    assert run_fetchers(sink, [jira, tmetric], {}, START, END) is False
    assert tmetric.fetched == []
    assert "Error fetching from JIRA" in caplog.text


def test_store_failure_stops_run(sink):
    jira = StubFetcher("JIRA", fetch_error=StoreError("boom"))
    tmetric = StubFetcher("TMetric")
    assert run_fetchers(sink, [jira, tmetric], {}, START, END) is False
    assert tmetric.fetched == []


def test_malformed_source_setting_is_reported(sink, fake_session, caplog):
    jira = JiraFetcher(session=fake_session([]))
    tmetric = StubFetcher("TMetric")
    config = {"jira": {"url": "https://jira", "username": "u", "password": "p", "page_size": "fifty"}}
    assert run_fetchers(sink, [jira, tmetric], config, START, END) is False
    assert tmetric.fetched == []
    assert "Error loading config for JIRA" in caplog.text


def test_config_failure_stops_run(sink):
    jira = StubFetcher("JIRA", config_error=ConfigError("Missing 'jira' section in config"))
    tmetric = StubFetcher("TMetric")
    assert run_fetchers(sink, [jira, tmetric], {}, START, END) is False
    assert tmetric.fetched == []
