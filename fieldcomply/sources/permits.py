"""Building permits adapter."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from fieldcomply.errors import SourceDataInvalid
from fieldcomply.models import (
    BuildingRecord,
    Category,
    ComplianceIssue,
    IssueStatus,
    PermitRecord,
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

DATASET = "dob_permits"

_LAPSED_STATUSES = frozenset({"EXPIRED", "REVOKED"})
_WORKING_STATUSES = frozenset({"ACTIVE", "IN PROGRESS"})


class PermitsAdapter(SourceAdapter):
    """Maps permit filings to PermitRecords, and problem permits to PERMIT issues.

    Only two situations count as a compliance issue: a permit that has
    lapsed (expired or revoked) and a permit still in progress after its
    job end date. Every other filing is informational.
    """

    category = Category.PERMIT
    datasets = (DATASET,)

    async def fetch(self, building: BuildingRecord) -> SourceResult:
        fetched_at = self._now()
        records = await self._records(DATASET, building)
        permits, skipped = self._convert_all(
            records, lambda r: self.to_permit(r, building, fetched_at), building
        )
        today = self._today()
        issues = [issue for issue in (self.to_issue(p, today) for p in permits) if issue]
        return SourceResult(
            building_id=building.building_id,
            category=self.category,
            issues=issues,
            permits=permits,
            fetched_at=fetched_at,
            skipped_records=skipped,
        )

    def to_permit(
        self, record: dict[str, Any], building: BuildingRecord, fetched_at: datetime
    ) -> PermitRecord:
        native_id = text(record, "job_filing_number", "job__")
        if not native_id:
            raise SourceDataInvalid("Permit record without job_filing_number")

        return PermitRecord(
            building_id=building.building_id,
            job_filing_number=native_id,
            job_type=text(record, "job_type"),
            job_status=text(record, "job_status").upper(),
            job_status_description=text(record, "job_status_descrp"),
            job_status_date=parse_date(record.get("job_status_date"), native_id=native_id),
            job_start_date=parse_date(record.get("job_start_date"), native_id=native_id),
            job_end_date=parse_date(record.get("job_end_date"), native_id=native_id),
            job_cost=parse_amount(record.get("job_cost"), native_id=native_id),
            source_ref=SourceRef(
                source=DATASET, native_id=native_id, fetched_at=fetched_at, raw=dict(record)
            ),
        )

    def to_issue(self, permit: PermitRecord, today: date) -> ComplianceIssue | None:
        """Return a PERMIT issue for a lapsed or overrunning permit, else None."""
        if permit.job_status in _LAPSED_STATUSES:
            severity = Severity.HIGH
            title = f"Permit {permit.job_status.lower()}: {permit.job_type or 'job'}"
        elif (
            permit.job_status in _WORKING_STATUSES
            and permit.job_end_date is not None
            and permit.job_end_date < today
        ):
            severity = Severity.MEDIUM
            title = f"Permit work past end date: {permit.job_type or 'job'}"
        else:
            return None

        return ComplianceIssue(
            id=f"dob-{permit.job_filing_number}",
            building_id=permit.building_id,
            category=self.category,
            severity=severity,
            status=IssueStatus.OPEN,
            issued_date=permit.job_status_date or permit.job_start_date,
            due_date=permit.job_end_date,
            title=title,
            description=permit.job_status_description,
            source_ref=permit.source_ref,
        )
