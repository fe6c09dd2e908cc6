"""Sanitation adapter: collection schedules plus sanitation summonses."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from fieldcomply.errors import SourceDataInvalid, SourceError
from fieldcomply.models import (
    BuildingRecord,
    Category,
    CollectionStream,
    ComplianceIssue,
    IssueStatus,
    SanitationSchedule,
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

ROUTES_DATASET = "dsny_routes"
SUMMONS_DATASET = "dsny_summons"

# stream name -> (day field, frequency field)
_STREAM_FIELDS: dict[str, tuple[str, str]] = {
    "refuse": ("collection_day", "collection_frequency"),
    "recycling": ("recycling_day", "recycling_frequency"),
    "organics": ("organics_day", "organics_frequency"),
    "bulk": ("bulk_pickup_day", "bulk_pickup_frequency"),
}

_DAY_PREFIXES: dict[str, int] = {
    "MO": 0,
    "TU": 1,
    "WE": 2,
    "TH": 3,
    "FR": 4,
    "SA": 5,
    "SU": 6,
}

_DAY_SEPARATORS = re.compile(r"[,/;&+\s]+|\bAND\b")

_DISMISSED_RESULTS = frozenset({"DISMISSED", "WRITTEN OFF", "NOT GUILTY"})
_DEFAULTED_STATUSES = frozenset({"DEFAULTED", "DOCKETED", "DEFAULT"})
_PENDING_HINTS = ("PENDING", "ADJOURN", "RESCHEDULED", "NEW ISSUANCE")


def parse_weekdays(value: str) -> tuple[int, ...]:
    """Parse a day list such as ``"MONDAY,THURSDAY"`` or ``"Mon/Thu"``.

    Returns sorted weekday numbers (0 = Monday). Unknown tokens are ignored.
    """
    days: set[int] = set()
    for token in _DAY_SEPARATORS.split(value.upper()):
        token = token.strip(". ")
        if not token:
            continue
        day = _DAY_PREFIXES.get(token[:2])
        if day is None:
            logger.debug("Ignoring unrecognised collection day %r", token)
            continue
        days.add(day)
    return tuple(sorted(days))


def summons_severity(balance: float) -> Severity:
    if balance >= 2000:
        return Severity.HIGH
    if balance >= 500:
        return Severity.MEDIUM
    return Severity.LOW


def summons_status(record: dict[str, Any], balance: float) -> IssueStatus:
    """Map hearing status, hearing result and payment state to IssueStatus."""
    hearing_status = text(record, "hearing_status").upper()
    hearing_result = text(record, "hearing_result").upper()
    compliance = text(record, "compliance_status").upper()

    if hearing_result in _DISMISSED_RESULTS:
        return IssueStatus.EXPIRED
    if compliance == "PAID IN FULL" or (hearing_result == "PAID" and balance <= 0):
        return IssueStatus.RESOLVED
    if hearing_status in _DEFAULTED_STATUSES or hearing_result in _DEFAULTED_STATUSES:
        return IssueStatus.OPEN
    if any(hint in hearing_status for hint in _PENDING_HINTS):
        return IssueStatus.PENDING
    return IssueStatus.OPEN


class SanitationAdapter(SourceAdapter):
    """Maps collection routes to a schedule and summonses to SANITATION issues."""

    category = Category.SANITATION
    datasets = (ROUTES_DATASET, SUMMONS_DATASET)

    async def fetch(self, building: BuildingRecord) -> SourceResult:
        fetched_at = self._now()
        routes = await self._records(ROUTES_DATASET, building)
        try:
            summonses = await self._records(SUMMONS_DATASET, building)
        except SourceError as exc:
            if exc.retryable:
                raise
            # Summonses are keyed by block and lot; a BIN-only building still has a schedule.
            logger.warning(
                "Sanitation summonses unavailable for %s: %s", building.building_id, exc
            )
            summonses = []

        issues, skipped = self._convert_all(
            summonses, lambda r: self.to_issue(r, building, fetched_at), building
        )
        return SourceResult(
            building_id=building.building_id,
            category=self.category,
            issues=issues,
            schedule=self.to_schedule(routes, building, fetched_at),
            fetched_at=fetched_at,
            skipped_records=skipped,
        )

    async def fetch_schedule(self, building: BuildingRecord) -> SanitationSchedule | None:
        """Fetch only the collection schedule."""
        routes = await self._records(ROUTES_DATASET, building)
        return self.to_schedule(routes, building, self._now())

    def to_schedule(
        self,
        routes: list[dict[str, Any]],
        building: BuildingRecord,
        fetched_at: datetime,
    ) -> SanitationSchedule | None:
        """Merge route records into one weekly schedule, or None when absent."""
        weekdays: dict[str, set[int]] = {name: set() for name in _STREAM_FIELDS}
        frequency: dict[str, str] = {}
        district = ""
        for route in routes:
            if not isinstance(route, dict):
                continue
            district = district or text(route, "sanitation_district", "district")
            for name, (day_field, freq_field) in _STREAM_FIELDS.items():
                weekdays[name].update(parse_weekdays(text(route, day_field)))
                frequency.setdefault(name, text(route, freq_field))

        streams = tuple(
            CollectionStream(
                stream=name, weekdays=tuple(sorted(days)), frequency=frequency.get(name, "")
            )
            for name, days in weekdays.items()
            if days
        )
        if not streams:
            return None

        first = next(r for r in routes if isinstance(r, dict))
        return SanitationSchedule(
            building_id=building.building_id,
            district=district,
            streams=streams,
            source_ref=SourceRef(
                source=ROUTES_DATASET,
                native_id=text(first, "bin", "bbl") or building.building_id,
                fetched_at=fetched_at,
                raw=dict(first),
            ),
        )

    def to_issue(
        self, record: dict[str, Any], building: BuildingRecord, fetched_at: datetime
    ) -> ComplianceIssue:
        native_id = text(record, "ticket_number")
        if not native_id:
            raise SourceDataInvalid("Summons record without ticket_number")

        if text(record, "balance_due"):
            balance = parse_amount(record.get("balance_due"), native_id=native_id)
        else:
            balance = max(
                0.0,
                parse_amount(record.get("penalty_imposed"), native_id=native_id)
                - parse_amount(record.get("paid_amount"), native_id=native_id),
            )

        status = summons_status(record, balance)
        if text(record, "hearing_status").upper() in _DEFAULTED_STATUSES:
            severity = Severity.HIGH
        else:
            severity = summons_severity(balance)

        resolved_date = None
        if status == IssueStatus.RESOLVED:
            resolved_date = parse_date(record.get("decision_date"), native_id=native_id)

        charge = text(record, "charge_1_code_description", "violation_details")
        return ComplianceIssue(
            id=f"dsny-{native_id}",
            building_id=building.building_id,
            category=self.category,
            severity=severity,
            status=status,
            issued_date=parse_date(record.get("violation_date"), native_id=native_id),
            due_date=parse_date(record.get("hearing_date"), native_id=native_id),
            resolved_date=resolved_date,
            title=f"Sanitation summons {native_id}",
            description=charge,
            source_ref=SourceRef(
                source=SUMMONS_DATASET, native_id=native_id, fetched_at=fetched_at, raw=dict(record)
            ),
            penalty_amount=0.0 if status in (IssueStatus.RESOLVED, IssueStatus.EXPIRED) else balance,
        )
