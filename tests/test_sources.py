"""Tests for the four source adapters and the shared field parsers.

All tests use an in-memory record client. No network access.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any

import pytest

from fieldcomply.errors import SourceDataInvalid, SourceError, SourceUnavailable
from fieldcomply.models import BuildingRecord, Category, IssueStatus, Severity
from fieldcomply.sources import (
    EmissionsAdapter,
    HousingViolationsAdapter,
    PermitsAdapter,
    SanitationAdapter,
)
from fieldcomply.sources.base import parse_amount, parse_date, text
from fieldcomply.sources.emissions import excess_severity, filing_due_date
from fieldcomply.sources.housing import map_severity, map_status
from fieldcomply.sources.sanitation import parse_weekdays, summons_severity, summons_status

NOW = datetime(2026, 10, 21, 14, 0, tzinfo=timezone.utc)
BUILDING = BuildingRecord(building_id="B", name="12 West 18th", bbl="1008180021", bin="1015862")


def _clock() -> datetime:
    return NOW


def _hpd(
    violation_id: str = "1001",
    violation_class: str = "A",
    violation_status: str = "Open",
    current_status: str = "VIOLATION OPEN",
    **extra: Any,
) -> dict[str, Any]:
    record = {
        "violationid": violation_id,
        "violationclass": violation_class,
        "violationstatus": violation_status,
        "currentstatus": current_status,
        "novissueddate": "2026-09-15T00:00:00.000",
        "originalcorrectbydate": "2026-11-15T00:00:00.000",
        "novdescription": "REPAIR THE BROKEN SMOKE DETECTOR",
    }
    record.update(extra)
    return record


def _permit(number: str, status: str, **extra: Any) -> dict[str, Any]:
    record = {
        "job_filing_number": number,
        "job_type": "A2",
        "job_status": status,
        "job_status_descrp": f"Permit {status.lower()}",
        "job_status_date": "2026-10-10T00:00:00.000",
        "job_start_date": "2026-03-01T00:00:00.000",
        "job_end_date": "2026-12-31T00:00:00.000",
        "job_cost": "$12,500.00",
    }
    record.update(extra)
    return record


def _summons(ticket: str, **extra: Any) -> dict[str, Any]:
    record = {
        "ticket_number": ticket,
        "violation_date": "2026-09-20T00:00:00.000",
        "issuing_agency": "DEPT OF SANITATION",
        "charge_1_code_description": "FAILURE TO SEPARATE RECYCLABLES",
        "hearing_status": "HEARING PENDING",
        "hearing_date": "2026-11-05T00:00:00.000",
        "penalty_imposed": "300",
        "paid_amount": "0",
    }
    record.update(extra)
    return record


def _emissions(year: str, total: str, **extra: Any) -> dict[str, Any]:
    record = {"bbl": "1008180021", "calendar_year": year, "total_ghg_emissions": total}
    record.update(extra)
    return record


class _StaticClient:
    """Minimal record client for adapter tests."""

    def __init__(
        self,
        records: dict[str, Any],
        failure: Exception | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.records = records
        self.failure = failure
        self.failures = failures or {}

    async def fetch_records(self, dataset: str, building: BuildingRecord) -> Any:
        if self.failure is not None:
            raise self.failure
        if dataset in self.failures:
            raise self.failures[dataset]
        return self.records.get(dataset, [])


def _fetch(adapter: Any) -> Any:
    return asyncio.run(adapter.fetch(BUILDING))


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------


class TestParsing:
    def test_iso_timestamp(self) -> None:
        assert parse_date("2026-09-15T00:00:00.000") == date(2026, 9, 15)

    def test_us_date(self) -> None:
        assert parse_date("09/15/2026") == date(2026, 9, 15)

    def test_compact_date(self) -> None:
        assert parse_date("20260915") == date(2026, 9, 15)

    def test_empty_date_is_none(self) -> None:
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_bad_date_is_invalid(self) -> None:
        with pytest.raises(SourceDataInvalid):
            parse_date("next tuesday", native_id="x")

    def test_amounts(self) -> None:
        assert parse_amount("$12,500.00") == 12500.0
        assert parse_amount(None) == 0.0
        assert parse_amount(7) == 7.0
        with pytest.raises(SourceDataInvalid):
            parse_amount("twelve")

    def test_text_takes_first_non_empty(self) -> None:
        assert text({"a": " ", "b": "x "}, "a", "b") == "x"
        assert text({}, "a") == ""


# ---------------------------------------------------------------------------
# Housing violations
# ---------------------------------------------------------------------------


class TestHousingVocabulary:
    @pytest.mark.parametrize(
        "violation_class, expected",
        [("A", Severity.CRITICAL), ("b", Severity.HIGH), ("C", Severity.MEDIUM), ("I", Severity.LOW)],
    )
    def test_class_to_severity(self, violation_class: str, expected: Severity) -> None:
        assert map_severity(violation_class) == expected

    def test_closed_is_resolved(self) -> None:
        assert map_status("Close", "VIOLATION CLOSED") == IssueStatus.RESOLVED

    def test_certified_on_time_is_pending(self) -> None:
        assert map_status("Open", "NOV CERTIFIED ON TIME") == IssueStatus.PENDING

    def test_unknown_status_defaults_open(self) -> None:
        assert map_status("Open", "FIRST NO ACCESS TO RE-INSPECT") == IssueStatus.OPEN
        assert map_status("", "") == IssueStatus.OPEN


class TestHousingAdapter:
    def test_maps_open_violation(self) -> None:
        adapter = HousingViolationsAdapter(_StaticClient({"hpd_violations": [_hpd()]}), clock=_clock)
        result = _fetch(adapter)
        assert result.category == Category.HOUSING
        [issue] = result.issues
        assert issue.id == "hpd-1001"
        assert issue.building_id == "B"
        assert issue.severity == Severity.CRITICAL
        assert issue.status == IssueStatus.OPEN
        assert issue.issued_date == date(2026, 9, 15)
        assert issue.due_date == date(2026, 11, 15)
        assert issue.resolved_date is None
        assert issue.source_ref.native_id == "1001"
        assert issue.source_ref.fetched_at == NOW

    def test_new_correct_by_date_wins(self) -> None:
        record = _hpd(newcorrectbydate="2026-12-01T00:00:00.000")
        adapter = HousingViolationsAdapter(_StaticClient({"hpd_violations": [record]}), clock=_clock)
        assert _fetch(adapter).issues[0].due_date == date(2026, 12, 1)

    def test_resolved_violation_carries_certified_date(self) -> None:
        record = _hpd(
            violation_class="B",
            violation_status="Close",
            current_status="VIOLATION CLOSED",
            certifieddate="2026-10-02T00:00:00.000",
        )
        adapter = HousingViolationsAdapter(_StaticClient({"hpd_violations": [record]}), clock=_clock)
        issue = _fetch(adapter).issues[0]
        assert issue.status == IssueStatus.RESOLVED
        assert issue.resolved_date == date(2026, 10, 2)

    def test_open_violation_ignores_certified_date(self) -> None:
        record = _hpd(certifieddate="2026-10-02T00:00:00.000")
        adapter = HousingViolationsAdapter(_StaticClient({"hpd_violations": [record]}), clock=_clock)
        assert _fetch(adapter).issues[0].resolved_date is None

    def test_missing_due_date(self) -> None:
        record = _hpd(originalcorrectbydate="")
        adapter = HousingViolationsAdapter(_StaticClient({"hpd_violations": [record]}), clock=_clock)
        assert _fetch(adapter).issues[0].due_date is None

    def test_malformed_records_are_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        records = [_hpd(), _hpd(violation_id=""), _hpd(violation_id="1002", novissueddate="garbage"), "junk"]
        adapter = HousingViolationsAdapter(_StaticClient({"hpd_violations": records}), clock=_clock)
        with caplog.at_level(logging.WARNING):
            result = _fetch(adapter)
        assert [i.id for i in result.issues] == ["hpd-1001"]
        assert result.skipped_records == 3
        assert "skipping" in caplog.text

    def test_client_failure_propagates(self) -> None:
        client = _StaticClient({}, failure=SourceUnavailable("HTTP 503"))
        adapter = HousingViolationsAdapter(client, clock=_clock)
        with pytest.raises(SourceUnavailable) as info:
            _fetch(adapter)
        assert info.value.category == "HOUSING"
        assert info.value.building_id == "B"

    def test_non_list_response_is_unavailable(self) -> None:
        adapter = HousingViolationsAdapter(
            _StaticClient({"hpd_violations": {"error": "bad"}}), clock=_clock
        )
        with pytest.raises(SourceUnavailable):
            _fetch(adapter)

    def test_fetch_issues_for_building(self) -> None:
        adapter = HousingViolationsAdapter(
            _StaticClient({"hpd_violations": [_hpd(), _hpd(violation_id="1002")]}), clock=_clock
        )
        issues = asyncio.run(adapter.fetch_issues_for_building(BUILDING))
        assert {i.id for i in issues} == {"hpd-1001", "hpd-1002"}


# ---------------------------------------------------------------------------
# Permits
# ---------------------------------------------------------------------------


class TestPermitsAdapter:
    def test_permits_and_issue_rules(self) -> None:
        records = [
            _permit("J1", "EXPIRED"),
            _permit("J2", "IN PROGRESS", job_end_date="2026-09-30T00:00:00.000"),
            _permit("J3", "IN PROGRESS"),
            _permit("J4", "COMPLETED"),
        ]
        adapter = PermitsAdapter(_StaticClient({"dob_permits": records}), clock=_clock)
        result = _fetch(adapter)

        assert [p.job_filing_number for p in result.permits] == ["J1", "J2", "J3", "J4"]
        issues = {i.id: i for i in result.issues}
        assert set(issues) == {"dob-J1", "dob-J2"}
        assert issues["dob-J1"].severity == Severity.HIGH
        assert issues["dob-J2"].severity == Severity.MEDIUM
        assert issues["dob-J2"].due_date == date(2026, 9, 30)
        assert all(i.status == IssueStatus.OPEN for i in issues.values())

    def test_permit_fields(self) -> None:
        adapter = PermitsAdapter(_StaticClient({"dob_permits": [_permit("J3", "in progress")]}), clock=_clock)
        permit = _fetch(adapter).permits[0]
        assert permit.job_status == "IN PROGRESS"
        assert permit.is_active
        assert permit.job_cost == 12500.0
        assert permit.job_end_date == date(2026, 12, 31)

    def test_permit_without_number_is_skipped(self) -> None:
        adapter = PermitsAdapter(
            _StaticClient({"dob_permits": [_permit("", "ACTIVE")]}), clock=_clock
        )
        result = _fetch(adapter)
        assert result.permits == []
        assert result.skipped_records == 1


# ---------------------------------------------------------------------------
# Sanitation
# ---------------------------------------------------------------------------


class TestWeekdayParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("MONDAY,THURSDAY", (0, 3)),
            ("Mon/Thu", (0, 3)),
            ("Tuesday and Friday", (1, 4)),
            ("SATURDAY", (5,)),
            ("", ()),
            ("ON CALL", ()),
        ],
    )
    def test_parse(self, raw: str, expected: tuple[int, ...]) -> None:
        assert parse_weekdays(raw) == expected


class TestSummonsVocabulary:
    def test_paid_in_full_is_resolved(self) -> None:
        record = _summons("T1", compliance_status="PAID IN FULL")
        assert summons_status(record, 0.0) == IssueStatus.RESOLVED

    def test_dismissed_is_expired(self) -> None:
        record = _summons("T1", hearing_result="DISMISSED")
        assert summons_status(record, 300.0) == IssueStatus.EXPIRED

    def test_defaulted_is_open(self) -> None:
        record = _summons("T1", hearing_status="DEFAULTED")
        assert summons_status(record, 300.0) == IssueStatus.OPEN

    def test_pending_hearing(self) -> None:
        assert summons_status(_summons("T1"), 300.0) == IssueStatus.PENDING

    def test_severity_by_balance(self) -> None:
        assert summons_severity(2500) == Severity.HIGH
        assert summons_severity(500) == Severity.MEDIUM
        assert summons_severity(100) == Severity.LOW


class TestSanitationAdapter:
    def test_schedule_from_routes(self) -> None:
        route = {
            "bin": "1015862",
            "sanitation_district": "MN05",
            "collection_day": "TUESDAY,FRIDAY",
            "recycling_day": "WEDNESDAY",
            "organics_day": "MONDAY,THURSDAY",
        }
        adapter = SanitationAdapter(_StaticClient({"dsny_routes": [route]}), clock=_clock)
        schedule = _fetch(adapter).schedule
        assert schedule is not None
        assert schedule.district == "MN05"
        assert [s.stream for s in schedule.streams] == ["refuse", "recycling", "organics"]
        organics = schedule.stream("organics")
        assert organics is not None and organics.weekdays == (0, 3)

    def test_no_routes_means_no_schedule(self) -> None:
        adapter = SanitationAdapter(_StaticClient({}), clock=_clock)
        result = _fetch(adapter)
        assert result.schedule is None
        assert result.issues == []

    def test_fetch_schedule_only(self) -> None:
        route = {"bin": "1015862", "organics_day": "MONDAY"}
        adapter = SanitationAdapter(_StaticClient({"dsny_routes": [route]}), clock=_clock)
        schedule = asyncio.run(adapter.fetch_schedule(BUILDING))
        assert schedule is not None
        assert schedule.streams[0].weekdays == (0,)

    def test_summons_issues(self) -> None:
        records = [
            _summons("T1"),
            _summons("T2", hearing_status="DEFAULTED", balance_due="750"),
            _summons("T3", compliance_status="PAID IN FULL", balance_due="0",
                     decision_date="2026-10-01T00:00:00.000"),
            _summons("T4", hearing_result="DISMISSED"),
        ]
        adapter = SanitationAdapter(_StaticClient({"dsny_summons": records}), clock=_clock)
        issues = {i.id: i for i in _fetch(adapter).issues}

        assert issues["dsny-T1"].status == IssueStatus.PENDING
        assert issues["dsny-T1"].penalty_amount == 300.0
        assert issues["dsny-T1"].due_date == date(2026, 11, 5)
        assert issues["dsny-T2"].status == IssueStatus.OPEN
        assert issues["dsny-T2"].severity == Severity.HIGH
        assert issues["dsny-T2"].penalty_amount == 750.0
        assert issues["dsny-T3"].status == IssueStatus.RESOLVED
        assert issues["dsny-T3"].resolved_date == date(2026, 10, 1)
        assert issues["dsny-T3"].penalty_amount == 0.0
        assert issues["dsny-T4"].status == IssueStatus.EXPIRED
        assert all(i.category == Category.SANITATION for i in issues.values())

    def test_schedule_survives_unqueryable_summonses(self, caplog: pytest.LogCaptureFixture) -> None:
        route = {"bin": "1015862", "organics_day": "MONDAY,THURSDAY"}
        client = _StaticClient(
            {"dsny_routes": [route]},
            failures={"dsny_summons": SourceError("BBL must have 10 digits, got ''")},
        )
        adapter = SanitationAdapter(client, clock=_clock)
        with caplog.at_level(logging.WARNING):
            result = _fetch(adapter)
        assert result.issues == []
        assert result.schedule is not None
        assert result.schedule.stream("organics").weekdays == (0, 3)
        assert "summonses unavailable" in caplog.text

    def test_summons_outage_still_fails(self) -> None:
        route = {"bin": "1015862", "organics_day": "MONDAY"}
        client = _StaticClient(
            {"dsny_routes": [route]}, failures={"dsny_summons": SourceUnavailable("HTTP 503")}
        )
        adapter = SanitationAdapter(client, clock=_clock)
        with pytest.raises(SourceUnavailable) as info:
            _fetch(adapter)
        assert info.value.category == "SANITATION"


# ---------------------------------------------------------------------------
# Emissions
# ---------------------------------------------------------------------------


class TestEmissionsAdapter:
    def test_over_limit_filing_becomes_issue(self) -> None:
        records = [_emissions("2025", "1300", emissions_limit="1000")]
        adapter = EmissionsAdapter(_StaticClient({"ll97_emissions": records}), clock=_clock)
        result = _fetch(adapter)

        [filing] = result.filings
        assert filing.excess_emissions == pytest.approx(300.0)
        [issue] = result.issues
        assert issue.id == "ll97-1008180021-2025"
        assert issue.severity == Severity.HIGH
        assert issue.due_date == date(2026, 5, 1)
        assert issue.penalty_amount == pytest.approx(80400.0)

    def test_limit_from_floor_area(self) -> None:
        records = [_emissions("2025", "600", gross_floor_area="100000")]
        adapter = EmissionsAdapter(_StaticClient({"ll97_emissions": records}), clock=_clock)
        result = _fetch(adapter)
        assert result.filings[0].emissions_limit == pytest.approx(675.0)
        assert result.issues == []

    def test_filings_sorted_newest_first(self) -> None:
        records = [_emissions("2023", "500"), _emissions("2025", "450"), _emissions("2024", "480")]
        adapter = EmissionsAdapter(_StaticClient({"ll97_emissions": records}), clock=_clock)
        assert [f.calendar_year for f in _fetch(adapter).filings] == [2025, 2024, 2023]

    def test_bad_year_is_skipped(self) -> None:
        records = [_emissions("", "500"), _emissions("2025", "450")]
        adapter = EmissionsAdapter(_StaticClient({"ll97_emissions": records}), clock=_clock)
        result = _fetch(adapter)
        assert len(result.filings) == 1
        assert result.skipped_records == 1

    @pytest.mark.parametrize("year", ["20225", "0", "-5", "inf", "1e400", "nan"])
    def test_out_of_range_year_is_skipped(self, year: str) -> None:
        records = [_emissions(year, "500", emissions_limit="100"), _emissions("2025", "450")]
        adapter = EmissionsAdapter(_StaticClient({"ll97_emissions": records}), clock=_clock)
        result = _fetch(adapter)
        assert [f.calendar_year for f in result.filings] == [2025]
        assert result.issues == []
        assert result.skipped_records == 1

    def test_custom_penalty_rate(self) -> None:
        records = [_emissions("2025", "1100", emissions_limit="1000")]
        adapter = EmissionsAdapter(
            _StaticClient({"ll97_emissions": records}), clock=_clock, penalty_per_ton=100.0
        )
        assert _fetch(adapter).issues[0].penalty_amount == pytest.approx(10000.0)

    @pytest.mark.parametrize(
        "excess, expected",
        [(600, Severity.CRITICAL), (300, Severity.HIGH), (100, Severity.MEDIUM), (10, Severity.LOW)],
    )
    def test_excess_severity(self, excess: float, expected: Severity) -> None:
        assert excess_severity(excess, 1000.0) == expected

    def test_filing_due_date(self) -> None:
        assert filing_due_date(2025) == date(2026, 5, 1)
