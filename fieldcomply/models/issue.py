"""ComplianceIssue and the enums shared by every regulatory category."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Category(str, Enum):
    """Regulatory domain an issue belongs to."""

    HOUSING = "HOUSING"
    PERMIT = "PERMIT"
    SANITATION = "SANITATION"
    EMISSIONS = "EMISSIONS"
    FIRE = "FIRE"
    WATER = "WATER"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class IssueStatus(str, Enum):
    OPEN = "OPEN"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    EXPIRED = "EXPIRED"


class SourceRef(BaseModel):
    """Pointer back to the raw source record, for drill-through."""

    model_config = ConfigDict(frozen=True)

    source: str
    """Dataset label, e.g. 'hpd_violations'."""

    native_id: str
    """Record identity within its source."""

    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw: dict[str, Any] = Field(default_factory=dict)


class ComplianceIssue(BaseModel):
    """One regulatory finding, normalised across sources.

    Instances are immutable. A refresh produces new issues rather than
    updating existing ones.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    """Stable identity, unique within its category."""

    building_id: str
    category: Category
    severity: Severity
    status: IssueStatus
    issued_date: date | None = None
    due_date: date | None = None
    resolved_date: date | None = None
    title: str = ""
    description: str = ""
    source_ref: SourceRef
    penalty_amount: float = 0.0
    """Outstanding penalty in dollars, 0 when none applies."""

    @model_validator(mode="after")
    def _resolved_date_implies_resolved(self) -> ComplianceIssue:
        if self.resolved_date is not None and self.status != IssueStatus.RESOLVED:
            raise ValueError(
                f"Issue {self.id} has resolved_date but status {self.status.value}"
            )
        return self

    @property
    def dedupe_key(self) -> tuple[str, str]:
        return (self.category.value, self.source_ref.native_id)

    def is_open(self) -> bool:
        return self.status == IssueStatus.OPEN

    def is_overdue(self, today: date) -> bool:
        """True when the issue is OPEN and its due date has passed.

        Issues without a due date are never overdue. PENDING issues are not
        overdue either, since remediation may already be submitted.
        """
        if self.due_date is None or not self.is_open():
            return False
        return self.due_date < today
