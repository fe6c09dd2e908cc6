"""Carbon-emissions (Local Law 97) filings adapter."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from fieldcomply.config import LL97_DEFAULT_INTENSITY_LIMIT, LL97_FILING_DUE, LL97_PENALTY_PER_TON
from fieldcomply.errors import SourceDataInvalid
from fieldcomply.models import (
    BuildingRecord,
    Category,
    ComplianceIssue,
    EmissionsFiling,
    IssueStatus,
    Severity,
    SourceRef,
)
from fieldcomply.sources.base import (
    Clock,
    RecordClient,
    SourceAdapter,
    SourceResult,
    parse_amount,
    parse_date,
    parse_optional_amount,
    text,
)

logger = logging.getLogger(__name__)

DATASET = "ll97_emissions"

MIN_CALENDAR_YEAR = 1900
MAX_CALENDAR_YEAR = 9998


def excess_severity(excess: float, limit: float) -> Severity:
    """Grade an over-limit filing by how far it exceeds the limit."""
    ratio = excess / limit if limit > 0 else 1.0
    if ratio > 0.5:
        return Severity.CRITICAL
    if ratio > 0.2:
        return Severity.HIGH
    if ratio > 0.05:
        return Severity.MEDIUM
    return Severity.LOW


def filing_due_date(calendar_year: int) -> date:
    """Report for *calendar_year* is due on May 1 of the following year."""
    month, day = LL97_FILING_DUE
    return date(calendar_year + 1, month, day)


class EmissionsAdapter(SourceAdapter):
    """Maps annual emissions records to filings, and over-limit years to issues.

    Parameters
    ----------
    client:
        Raw record client.
    intensity_limit:
        Limit in tCO2e per square foot, used when a record carries gross
        floor area but no explicit ``emissions_limit``.
    penalty_per_ton:
        Dollars assessed per tCO2e above the limit.
    """

    category = Category.EMISSIONS
    datasets = (DATASET,)

    def __init__(
        self,
        client: RecordClient,
        *,
        clock: Clock | None = None,
        intensity_limit: float = LL97_DEFAULT_INTENSITY_LIMIT,
        penalty_per_ton: float = LL97_PENALTY_PER_TON,
    ) -> None:
        super().__init__(client, clock=clock)
        self.intensity_limit = intensity_limit
        self.penalty_per_ton = penalty_per_ton

    async def fetch(self, building: BuildingRecord) -> SourceResult:
        fetched_at = self._now()
        records = await self._records(DATASET, building)
        filings, skipped = self._convert_all(
            records, lambda r: self.to_filing(r, building, fetched_at), building
        )
        filings.sort(key=lambda f: f.calendar_year, reverse=True)
        issues = [issue for issue in (self.to_issue(f) for f in filings) if issue]
        return SourceResult(
            building_id=building.building_id,
            category=self.category,
            issues=issues,
            filings=filings,
            fetched_at=fetched_at,
            skipped_records=skipped,
        )

    def to_filing(
        self, record: dict[str, Any], building: BuildingRecord, fetched_at: datetime
    ) -> EmissionsFiling:
        bbl = text(record, "bbl") or building.bbl
        year_raw = text(record, "calendar_year", "reporting_year")
        native_id = f"{bbl}-{year_raw}"
        try:
            calendar_year = int(float(year_raw))
        except (ValueError, OverflowError):
            calendar_year = 0
        # The filing due date falls in the following year, so that must be a valid date too.
        if not MIN_CALENDAR_YEAR <= calendar_year <= MAX_CALENDAR_YEAR:
            raise SourceDataInvalid(
                f"Emissions record with calendar_year {year_raw!r}", native_id=native_id
            )

        gross_floor_area = parse_optional_amount(
            record.get("gross_floor_area") or record.get("property_gfa_self_reported_ft"),
            native_id=native_id,
        )
        limit = parse_optional_amount(record.get("emissions_limit"), native_id=native_id)
        if limit is None and gross_floor_area:
            limit = round(gross_floor_area * self.intensity_limit, 2)

        return EmissionsFiling(
            building_id=building.building_id,
            bbl=bbl,
            calendar_year=calendar_year,
            total_ghg_emissions=parse_amount(record.get("total_ghg_emissions"), native_id=native_id),
            ghg_intensity=parse_optional_amount(
                record.get("total_ghg_emissions_intensity"), native_id=native_id
            ),
            gross_floor_area=gross_floor_area,
            emissions_limit=limit,
            penalty_per_ton=self.penalty_per_ton,
            filed_date=parse_date(record.get("filed_date"), native_id=native_id),
            source_ref=SourceRef(
                source=DATASET, native_id=native_id, fetched_at=fetched_at, raw=dict(record)
            ),
        )

    def to_issue(self, filing: EmissionsFiling) -> ComplianceIssue | None:
        """Return an EMISSIONS issue when the filing exceeds its limit."""
        if not filing.is_over_limit or filing.emissions_limit is None:
            return None
        excess = filing.excess_emissions
        return ComplianceIssue(
            id=f"ll97-{filing.source_ref.native_id}",
            building_id=filing.building_id,
            category=self.category,
            severity=excess_severity(excess, filing.emissions_limit),
            status=IssueStatus.OPEN,
            issued_date=filing.filed_date or date(filing.calendar_year, 12, 31),
            due_date=filing_due_date(filing.calendar_year),
            title=f"{filing.calendar_year} emissions over limit",
            description=(
                f"{filing.total_ghg_emissions:,.1f} tCO2e against a limit of "
                f"{filing.emissions_limit:,.1f} tCO2e ({excess:,.1f} over)"
            ),
            source_ref=filing.source_ref,
            penalty_amount=filing.estimated_penalty,
        )
