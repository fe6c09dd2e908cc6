"""Rules-based predictive insights, building alerts and violation trend series."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Sequence

from fieldcomply.compliance.report import (
    AlertType,
    BuildingComplianceSummary,
    ComplianceAlert,
    CriticalBuilding,
    PredictiveInsight,
    ViolationTrendPoint,
)
from fieldcomply.compliance.scoring import ComplianceStatus
from fieldcomply.config import TREND_MONTHS
from fieldcomply.models import (
    Category,
    ComplianceIssue,
    EmissionsFiling,
    IssueStatus,
    Severity,
)

RECENT_WINDOW_DAYS = 60
RECENT_ISSUE_THRESHOLD = 3
ALERT_PENALTY_THRESHOLD = 1000.0

_FLAGGED_STATUSES = frozenset({ComplianceStatus.CRITICAL, ComplianceStatus.WARNING})


def building_insights(
    building_id: str,
    issues: Sequence[ComplianceIssue],
    filings: Sequence[EmissionsFiling],
    today: date,
) -> list[PredictiveInsight]:
    insights: list[PredictiveInsight] = []

    window_start = today - timedelta(days=RECENT_WINDOW_DAYS)
    recent = [i for i in issues if i.issued_date is not None and i.issued_date > window_start]
    if len(recent) >= RECENT_ISSUE_THRESHOLD:
        insights.append(
            PredictiveInsight(
                id=f"insight_{building_id}_high_risk",
                building_id=building_id,
                title="High Risk: Multiple Recent Violations",
                description=(
                    f"{len(recent)} violations in the last {RECENT_WINDOW_DAYS} days "
                    "indicate potential systemic issues"
                ),
                risk_score=0.85,
                confidence=0.7,
            )
        )

    overdue_critical = [
        i for i in issues if i.severity == Severity.CRITICAL and i.is_overdue(today)
    ]
    if overdue_critical:
        insights.append(
            PredictiveInsight(
                id=f"insight_{building_id}_overdue_critical",
                building_id=building_id,
                title="Overdue Critical Violation",
                description=(
                    f"{len(overdue_critical)} critical violation(s) past their correction date"
                ),
                risk_score=0.9,
                confidence=0.9,
                category=overdue_critical[0].category,
            )
        )

    by_year = sorted(filings, key=lambda f: f.calendar_year, reverse=True)
    if len(by_year) >= 2 and by_year[0].total_ghg_emissions > by_year[1].total_ghg_emissions:
        latest, previous = by_year[0], by_year[1]
        insights.append(
            PredictiveInsight(
                id=f"insight_{building_id}_emissions_rising",
                building_id=building_id,
                title="Emissions Rising",
                description=(
                    f"Emissions rose from {previous.total_ghg_emissions:,.1f} tCO2e in "
                    f"{previous.calendar_year} to {latest.total_ghg_emissions:,.1f} tCO2e "
                    f"in {latest.calendar_year}"
                ),
                risk_score=0.6,
                confidence=0.6,
                category=Category.EMISSIONS,
            )
        )
    return insights


def rank_insights(insights: Iterable[PredictiveInsight]) -> list[PredictiveInsight]:
    return sorted(insights, key=lambda i: (-i.risk_score, i.building_id, i.id))


def building_alerts(
    summary: BuildingComplianceSummary,
    issues: Sequence[ComplianceIssue],
    warning_threshold: float,
) -> list[ComplianceAlert]:
    """Alerts for one building.

    Open critical housing violations, outstanding penalties above
    ``ALERT_PENALTY_THRESHOLD`` and an overall score below
    *warning_threshold* each raise one alert.
    """
    building_id = summary.building_id
    name = summary.building_name or building_id
    alerts: list[ComplianceAlert] = []

    critical_housing = [
        i
        for i in issues
        if i.category == Category.HOUSING and i.severity == Severity.CRITICAL and i.is_open()
    ]
    if critical_housing:
        alerts.append(
            ComplianceAlert(
                id=f"alert-{building_id}-critical",
                type=AlertType.CRITICAL,
                title="Critical Housing Violations",
                message=(
                    f"{name} has {len(critical_housing)} open critical housing "
                    "violation(s) requiring immediate attention"
                ),
                building_id=building_id,
                building_name=summary.building_name,
                priority=1,
                category=Category.HOUSING,
            )
        )

    if summary.outstanding_penalties > ALERT_PENALTY_THRESHOLD:
        alerts.append(
            ComplianceAlert(
                id=f"alert-{building_id}-penalties",
                type=AlertType.WARNING,
                title="High Outstanding Penalties",
                message=f"{name} has ${summary.outstanding_penalties:,.2f} in outstanding penalties",
                building_id=building_id,
                building_name=summary.building_name,
                priority=2,
            )
        )

    score = summary.overall_score
    if score is not None and score < warning_threshold:
        alerts.append(
            ComplianceAlert(
                id=f"alert-{building_id}-score",
                type=AlertType.WARNING,
                title="Low Compliance Score",
                message=f"{name} has a compliance score of {score:.0%} ({summary.letter_grade})",
                building_id=building_id,
                building_name=summary.building_name,
                priority=3,
            )
        )
    return alerts


def rank_alerts(alerts: Iterable[ComplianceAlert]) -> list[ComplianceAlert]:
    return sorted(alerts, key=lambda a: (a.priority, a.building_id, a.id))


def critical_buildings(
    summaries: Iterable[BuildingComplianceSummary],
) -> list[CriticalBuilding]:
    """Buildings graded WARNING or CRITICAL, worst overall score first."""
    flagged = [
        CriticalBuilding(
            building_id=s.building_id,
            building_name=s.building_name,
            overall_score=s.overall_score,
            letter_grade=s.letter_grade,
            compliance_status=s.compliance_status,
            open_violations=s.open_violations,
            outstanding_penalties=s.outstanding_penalties,
        )
        for s in summaries
        if s.overall_score is not None and s.compliance_status in _FLAGGED_STATUSES
    ]
    return sorted(flagged, key=lambda b: (b.overall_score, b.building_id))


def _month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def violation_trend(
    issues: Iterable[ComplianceIssue], today: date, months: int = TREND_MONTHS
) -> list[ViolationTrendPoint]:
    """Issues issued per month over the last *months* months, oldest first."""
    labels: list[str] = []
    year, month = today.year, today.month
    for _ in range(months):
        labels.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    labels.reverse()

    counts = dict.fromkeys(labels, 0)
    for issue in issues:
        if issue.issued_date is None:
            continue
        key = _month_key(issue.issued_date)
        if key in counts:
            counts[key] += 1
    return [ViolationTrendPoint(month=label, count=counts[label]) for label in labels]


def resolved_in_month(issues: Iterable[ComplianceIssue], today: date) -> int:
    return sum(
        1
        for i in issues
        if i.status == IssueStatus.RESOLVED
        and i.resolved_date is not None
        and (i.resolved_date.year, i.resolved_date.month) == (today.year, today.month)
    )
