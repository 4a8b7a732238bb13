from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SystemType(str, Enum):
    ANON = "anon"
    JIRA = "jira"
    TMETRIC = "tmet"


class TicketType(str, Enum):
    BUG = "bug"
    FEATURE = "feature"
    BAU = "bau"  # business as usual
    TEST = "test"
    INTERRUPT = "interrupt"
    EPIC = "epic"
    SPIKE = "spike"
    OTHER = "other"
    ANON = "anonymous"


# Issue-type labels as reported by the issue tracker, lower-cased
ISSUE_TYPE_CATEGORIES: dict[str, TicketType] = {
    "story": TicketType.FEATURE,
    "bug": TicketType.BUG,
    "bau": TicketType.BAU,
    "test": TicketType.TEST,
    "interrupt": TicketType.INTERRUPT,
    "spike": TicketType.SPIKE,
    "epic": TicketType.EPIC,
}

# anonymous is reserved for tickets the resolver creates
_CANONICAL = {t.value: t for t in TicketType if t is not TicketType.ANON}


def category_from_issue_type(label: str | None) -> TicketType:
    """Map a native issue-type label (or an already canonical code) to a category.

    Unknown labels are logged and mapped to ``other``; this never fails.
    """
    key = (label or "").strip().lower()
    if key in ISSUE_TYPE_CATEGORIES:
        return ISSUE_TYPE_CATEGORIES[key]
    if key in _CANONICAL:
        return _CANONICAL[key]
    logging.getLogger("timedb").warning("Unrecognized issue type %r, using %r", label, TicketType.OTHER.value)
    return TicketType.OTHER


@dataclass(frozen=True)
class IssueRecord:
    """One issue as reported by an issue tracker."""
    system: str
    system_id: str
    title: str
    category: str
    story_points: int | None
    created_at: datetime | None


@dataclass(frozen=True)
class TimeEntryRecord:
    """Time spent by one user on one task, summarized per day by the source."""
    system: str
    email: str
    task_title: str
    start: datetime
    end: datetime


@dataclass
class UpsertStats:
    inserted: int = 0
    updated: int = 0
    anonymous_tickets: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.updated
