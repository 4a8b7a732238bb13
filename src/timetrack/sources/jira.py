from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Dict, List
import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from timetrack.config import number, require, section
from timetrack.errors import SourceError, SourceFormatError
from timetrack.sources.base import Fetcher, Sink
from timetrack.timedb.models import IssueRecord, SystemType

DEFAULT_STORY_POINTS_FIELD = "customfield_10004"
DEFAULT_PAGE_SIZE = 50
DEFAULT_HTTP_TIMEOUT = 60

# "2016-12-05T09:55:24.000+0200"
JIRA_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

_transient = retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    stop=stop_after_attempt(5),
    wait=wait_exponential(min=1, max=30),
    reraise=True,
)


def parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, JIRA_TIME_FORMAT)
    except ValueError:
        logging.getLogger("jira").warning("Unparseable JIRA time %r", value)
        return None


def issue_to_record(issue: Dict[str, Any], story_points_field: str = DEFAULT_STORY_POINTS_FIELD) -> IssueRecord:
    fields = issue.get("fields") or {}
    points = fields.get(story_points_field)
    return IssueRecord(
        system=SystemType.JIRA.value,
        system_id=str(issue["id"]),
        title=fields.get("summary") or "",
        # native label; the upsert maps it to a category
        category=(fields.get("issuetype") or {}).get("name") or "",
        story_points=int(points) if points is not None else 0,
        created_at=parse_time(fields.get("created")),
    )


class JiraFetcher(Fetcher):
    name = "JIRA"

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()
        self.log = logging.getLogger("jira")
        self.url = ""
        self.story_points_field = DEFAULT_STORY_POINTS_FIELD
        self.page_size = DEFAULT_PAGE_SIZE
        self.timeout = DEFAULT_HTTP_TIMEOUT

    def load_configuration(self, config: dict) -> None:
        cfg = section(config, "jira")
        self.url = str(require(cfg, "jira", "url")).rstrip("/")
        self.session.auth = (require(cfg, "jira", "username"), require(cfg, "jira", "password"))
        self.story_points_field = cfg.get("story_points_field") or DEFAULT_STORY_POINTS_FIELD
        self.page_size = number(cfg, "jira", "page_size", DEFAULT_PAGE_SIZE)
        self.timeout = number(cfg, "jira", "http_timeout", DEFAULT_HTTP_TIMEOUT, float)

    def _search_params(self, start: datetime, end: datetime, offset: int) -> Dict[str, Any]:
        jql = f'created>="{start:%Y-%m-%d}" AND created<="{end:%Y-%m-%d}"'
        return {"startAt": offset, "maxResults": self.page_size, "jql": jql}

    @_transient
    def _request(self, path: str, params: Dict[str, Any]) -> requests.Response:
        return self.session.get(f"{self.url}{path}", params=params, timeout=self.timeout)

    def _get(self, path: str, params: Dict[str, Any]) -> bytes:
        try:
            resp = self._request(path, params)
        except requests.RequestException as exc:
            raise SourceError(self.name, f"request to {path} failed: {exc}") from exc
        if resp.status_code != 200:
            raise SourceError(self.name, f"HTTP {resp.status_code} for {path}: {resp.text[:500]}")
        return resp.content

    def search_page(self, start: datetime, end: datetime, offset: int) -> Dict[str, Any]:
        body = self._get("/rest/api/2/search", self._search_params(start, end, offset))
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise SourceFormatError(self.name, f"search response is not JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise SourceFormatError(self.name, "search response is not a JSON object")
        return payload

    def fetch(self, sink: Sink, start: datetime, end: datetime) -> None:
        offset = 0
        while True:
            payload = self.search_page(start, end, offset)
            issues: List[Dict[str, Any]] = payload.get("issues") or []
            self.log.info("Fetching JIRA issues %s/%s", offset, payload.get("total", "?"))
            if not issues:
                break
            sink.upsert_issues([issue_to_record(i, self.story_points_field) for i in issues])
            offset += len(issues)

    def fetch_raw(self, start: datetime, end: datetime) -> bytes:
        return self._get("/rest/api/2/search", self._search_params(start, end, 0))
