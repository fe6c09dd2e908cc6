"""Housing maintenance violations adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fieldcomply.errors import SourceDataInvalid
from fieldcomply.models import (
    BuildingRecord,
    Category,
    ComplianceIssue,
    IssueStatus,
    Severity,
    SourceRef,
)
from fieldcomply.sources.base import (
    SourceAdapter,
    SourceResult,
    parse_amount,
    parse_date,
    text,
)

logger = logging.getLogger(__name__)

DATASET = "hpd_violations"

# Class A is the most hazardous: immediately hazardous conditions.
_CLASS_SEVERITY: dict[str, Severity] = {
    "A": Severity.CRITICAL,
    "B": Severity.HIGH,
    "C": Severity.MEDIUM,
}

_RESOLVED_STATUSES = frozenset({
    "CLOSE",
    "CLOSED",
    "RESOLVED",
    "CERTIFIED",
    "VIOLATION CLOSED",
    "VIOLATION DISMISSED",
})

_PENDING_STATUSES = frozenset({
    "PENDING",
    "IN PROGRESS",
    "NOV CERTIFIED ON TIME",
    "NOV CERTIFIED LATE",
    "CERTIFICATION POSTPONMENT GRANTED",
})


def map_severity(violation_class: str) -> Severity:
    """Map a housing violation class to severity; unknown classes are LOW."""
    return _CLASS_SEVERITY.get(violation_class.strip().upper(), Severity.LOW)


def map_status(violation_status: str, current_status: str) -> IssueStatus:
    """Map the open/close flag and the detailed current status to IssueStatus."""
    flag = violation_status.strip().upper()
    current = current_status.strip().upper()
    if flag in _RESOLVED_STATUSES or current in _RESOLVED_STATUSES:
        return IssueStatus.RESOLVED
    if current in _PENDING_STATUSES:
        return IssueStatus.PENDING
    if current and current not in ("OPEN", "ACTIVE", "VIOLATION OPEN", "NOV SENT OUT"):
        logger.debug("Unrecognised housing status %r, treating as OPEN", current)
    return IssueStatus.OPEN


class HousingViolationsAdapter(SourceAdapter):
    """Maps housing violation records (class A/B/C) to HOUSING issues."""

    category = Category.HOUSING
    datasets = (DATASET,)

    async def fetch(self, building: BuildingRecord) -> SourceResult:
        fetched_at = self._now()
        records = await self._records(DATASET, building)
        issues, skipped = self._convert_all(
            records, lambda r: self.to_issue(r, building, fetched_at), building
        )
        return SourceResult(
            building_id=building.building_id,
            category=self.category,
            issues=issues,
            fetched_at=fetched_at,
            skipped_records=skipped,
        )

    def to_issue(
        self, record: dict[str, Any], building: BuildingRecord, fetched_at: datetime
    ) -> ComplianceIssue:
        native_id = text(record, "violationid")
        if not native_id:
            raise SourceDataInvalid("Housing violation without violationid")

        violation_class = text(record, "violationclass", "class")
        status = map_status(
            text(record, "violationstatus"), text(record, "currentstatus")
        )
        resolved_date = None
        if status == IssueStatus.RESOLVED:
            resolved_date = parse_date(
                text(record, "certifieddate", "currentstatusdate") or None,
                native_id=native_id,
            )

        description = text(record, "novdescription")
        return ComplianceIssue(
            id=f"hpd-{native_id}",
            building_id=building.building_id,
            category=self.category,
            severity=map_severity(violation_class),
            status=status,
            issued_date=parse_date(
                text(record, "novissueddate", "inspectiondate") or None, native_id=native_id
            ),
            due_date=parse_date(
                text(record, "newcorrectbydate", "originalcorrectbydate") or None,
                native_id=native_id,
            ),
            resolved_date=resolved_date,
            title=f"Class {violation_class.upper() or '?'} housing violation",
            description=description,
            source_ref=SourceRef(
                source=DATASET, native_id=native_id, fetched_at=fetched_at, raw=dict(record)
            ),
            penalty_amount=parse_amount(record.get("penaltyimposed"), native_id=native_id),
        )
