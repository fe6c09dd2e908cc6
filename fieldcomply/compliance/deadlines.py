"""Deadline Tracker — upcoming and overdue obligations, projected at read time."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable

from pydantic import BaseModel

from fieldcomply.config import DEADLINE_HORIZON_DAYS, LL97_FILING_DUE
from fieldcomply.models import (
    Category,
    ComplianceIssue,
    EmissionsFiling,
    IssueStatus,
    SanitationSchedule,
)
from fieldcomply.models.records import WEEKDAY_NAMES

logger = logging.getLogger(__name__)

_CLOSED_STATUSES = frozenset({IssueStatus.RESOLVED, IssueStatus.EXPIRED})


class ComplianceDeadline(BaseModel):
    """A projected obligation for one building.

    ``days_remaining`` is derived from ``as_of``, the date the deadline
    was projected for, and is left out of serialized output; use
    :meth:`days_remaining_on` to re-project.
    """

    building_id: str
    category: Category
    due_date: date
    description: str
    as_of: date
    kind: str = "issue"
    """'issue', 'collection' or 'filing'."""

    issue_id: str | None = None
    status: IssueStatus | None = None

    @property
    def days_remaining(self) -> int:
        return (self.due_date - self.as_of).days

    def days_remaining_on(self, today: date) -> int:
        return (self.due_date - today).days

    @property
    def is_overdue(self) -> bool:
        if self.days_remaining >= 0:
            return False
        return self.status is None or self.status == IssueStatus.OPEN


def next_occurrence(weekdays: Iterable[int], now: datetime, at: time) -> date | None:
    """Soonest date, today or later, falling on one of *weekdays*.

    Today only counts while *at* has not yet passed; otherwise the same
    weekday next week is the next occurrence.
    """
    days = set(weekdays)
    if not days:
        return None
    today = now.date()
    for offset in range(8):
        candidate = today + timedelta(days=offset)
        if candidate.weekday() not in days:
            continue
        if offset == 0 and now.time() >= at:
            continue
        return candidate
    return None


def next_filing_due(today: date) -> date:
    """Next annual emissions report due date on or after *today*."""
    month, day = LL97_FILING_DUE
    due = date(today.year, month, day)
    if due < today:
        due = date(today.year + 1, month, day)
    return due


class DeadlineTracker:
    """Derive deadlines from issue due dates and recurring obligations.

    Parameters
    ----------
    horizon_days:
        Deadlines due within this many days are critical.
    collection_time:
        Time of day a collection window closes.
    """

    def __init__(
        self,
        horizon_days: int = DEADLINE_HORIZON_DAYS,
        collection_time: time = time(6, 0),
    ) -> None:
        self.horizon_days = horizon_days
        self.collection_time = collection_time

    # -- issues -------------------------------------------------------------

    def issue_deadlines(
        self, issues: Iterable[ComplianceIssue], today: date
    ) -> list[ComplianceDeadline]:
        """Deadlines for every still-actionable issue that has a due date."""
        deadlines: list[ComplianceDeadline] = []
        for issue in issues:
            if issue.due_date is None or issue.status in _CLOSED_STATUSES:
                continue
            deadlines.append(
                ComplianceDeadline(
                    building_id=issue.building_id,
                    category=issue.category,
                    due_date=issue.due_date,
                    description=issue.title or issue.description,
                    as_of=today,
                    kind="issue",
                    issue_id=issue.id,
                    status=issue.status,
                )
            )
        return deadlines

    def overdue_issues(
        self, issues: Iterable[ComplianceIssue], today: date
    ) -> list[ComplianceIssue]:
        return [issue for issue in issues if issue.is_overdue(today)]

    # -- recurring obligations ---------------------------------------------

    def collection_deadlines(
        self, schedule: SanitationSchedule | None, now: datetime
    ) -> list[ComplianceDeadline]:
        """Next pickup for every waste stream on the schedule."""
        if schedule is None:
            return []
        deadlines: list[ComplianceDeadline] = []
        for stream in schedule.streams:
            due = next_occurrence(stream.weekdays, now, self.collection_time)
            if due is None:
                continue
            deadlines.append(
                ComplianceDeadline(
                    building_id=schedule.building_id,
                    category=Category.SANITATION,
                    due_date=due,
                    description=(
                        f"{stream.stream.capitalize()} collection "
                        f"({WEEKDAY_NAMES[due.weekday()]})"
                    ),
                    as_of=now.date(),
                    kind="collection",
                )
            )
        return deadlines

    def filing_deadlines(
        self, building_id: str, filings: Iterable[EmissionsFiling], today: date
    ) -> list[ComplianceDeadline]:
        """Next annual emissions report, unless that year is already filed.

        Buildings with no filing history are assumed not to be covered.
        """
        years = {f.calendar_year for f in filings}
        if not years:
            return []
        due = next_filing_due(today)
        reporting_year = due.year - 1
        if reporting_year in years:
            return []
        return [
            ComplianceDeadline(
                building_id=building_id,
                category=Category.EMISSIONS,
                due_date=due,
                description=f"{reporting_year} emissions report due",
                as_of=today,
                kind="filing",
            )
        ]

    # -- selection ----------------------------------------------------------

    def is_critical(self, deadline: ComplianceDeadline) -> bool:
        days = deadline.days_remaining
        if 0 <= days <= self.horizon_days:
            return True
        return deadline.is_overdue

    def critical(self, deadlines: Iterable[ComplianceDeadline]) -> list[ComplianceDeadline]:
        """Deadlines inside the horizon or overdue, soonest first."""
        selected = [d for d in deadlines if self.is_critical(d)]
        selected.sort(key=lambda d: (d.due_date, d.building_id, d.category.value, d.description))
        return selected
