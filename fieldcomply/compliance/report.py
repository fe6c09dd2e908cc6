"""Dashboard result models and Markdown rendering."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from fieldcomply.compliance.deadlines import ComplianceDeadline
from fieldcomply.compliance.scoring import ComplianceStatus
from fieldcomply.models import Category, ComplianceIssue


def format_compliance_cost(amount: float) -> str:
    """Currency display for an outstanding penalty total: ``$12K``, ``$850``."""
    if amount >= 1000:
        return f"${round(amount / 1000):,}K"
    return f"${amount:,.0f}"


class DegradedCategory(BaseModel):
    """A category whose source failed during this refresh."""

    building_id: str
    category: Category
    reason: str = ""
    retryable: bool = True


class PredictiveInsight(BaseModel):
    """Rules-based advisory with a confidence estimate."""

    id: str
    building_id: str
    title: str
    description: str
    risk_score: float = 0.0
    confidence: float = 0.0
    category: Category | None = None


class AlertType(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class ComplianceAlert(BaseModel):
    """Building-level alert; lower ``priority`` is more urgent."""

    id: str
    type: AlertType
    title: str
    message: str
    building_id: str
    building_name: str = ""
    priority: int = 3
    category: Category | None = None


class CriticalBuilding(BaseModel):
    """A building graded WARNING or CRITICAL, listed worst score first."""

    building_id: str
    building_name: str = ""
    overall_score: float
    letter_grade: str
    compliance_status: ComplianceStatus
    open_violations: int = 0
    outstanding_penalties: float = 0.0

    @property
    def formatted_compliance_cost(self) -> str:
        return format_compliance_cost(self.outstanding_penalties)


class BuildingComplianceSummary(BaseModel):
    """Per-building roll-up returned by the summary accessor."""

    building_id: str
    building_name: str = ""
    compliance_status: ComplianceStatus = ComplianceStatus.UNKNOWN
    overall_score: float | None = None
    letter_grade: str = "N/A"
    category_scores: dict[Category, float | None] = Field(default_factory=dict)
    """Every scored category; None marks a degraded (unknown) category."""

    total_violations: int = 0
    open_violations: int = 0
    pending_inspections: int = 0
    overdue_violations: int = 0
    active_permits: int = 0
    recent_permits: int = 0
    outstanding_penalties: float = 0.0
    degraded_categories: list[Category] = Field(default_factory=list)
    critical_deadlines: list[ComplianceDeadline] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_categories)

    @property
    def formatted_compliance_cost(self) -> str:
        return format_compliance_cost(self.outstanding_penalties)


class ComplianceMetrics(BaseModel):
    """Portfolio aggregate over every building in a dashboard."""

    overall_score: float | None = None
    letter_grade: str = "N/A"
    category_scores: dict[Category, float | None] = Field(default_factory=dict)
    active_violations: int = 0
    pending_inspections: int = 0
    resolved_this_month: int = 0
    overdue_violations: int = 0
    outstanding_penalties: float = 0.0
    """Raw dollar total of penalties on issues that are not resolved."""

    violations_trend: int = 0
    inspections_trend: int = 0
    resolution_trend: int = 0
    cost_trend: float = 0.0

    @property
    def formatted_compliance_cost(self) -> str:
        return format_compliance_cost(self.outstanding_penalties)


class ViolationTrendPoint(BaseModel):
    month: str
    """``YYYY-MM``."""

    count: int = 0


class ComplianceDashboardData(BaseModel):
    """Snapshot returned by a dashboard refresh. Never updated in place."""

    metrics: ComplianceMetrics = Field(default_factory=ComplianceMetrics)
    building_compliance: dict[str, float | None] = Field(default_factory=dict)
    summaries: dict[str, BuildingComplianceSummary] = Field(default_factory=dict)
    recent_violations: list[ComplianceIssue] = Field(default_factory=list)
    critical_deadlines: list[ComplianceDeadline] = Field(default_factory=list)
    predictive_insights: list[PredictiveInsight] = Field(default_factory=list)
    alerts: list[ComplianceAlert] = Field(default_factory=list)
    critical_buildings: list[CriticalBuilding] = Field(default_factory=list)
    violation_trend: list[ViolationTrendPoint] = Field(default_factory=list)
    degraded_categories: list[DegradedCategory] = Field(default_factory=list)
    unresolved_buildings: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    as_of: date | None = None

    @property
    def is_partial(self) -> bool:
        return bool(self.degraded_categories or self.unresolved_buildings)

    def to_markdown(self) -> str:
        """Render the dashboard as a Markdown report."""
        m = self.metrics
        score = "unknown" if m.overall_score is None else f"{m.overall_score:.2f}"
        lines: list[str] = [
            "# Compliance Dashboard",
            "",
            f"**Generated:** {self.generated_at.isoformat()}",
            f"**Overall Score:** {score} ({m.letter_grade})",
            f"**Outstanding Penalties:** {m.formatted_compliance_cost}",
            "",
            "## Metrics",
            "",
            "| Metric | Value | Trend |",
            "|--------|-------|-------|",
            f"| Active violations | {m.active_violations} | {m.violations_trend:+d} |",
            f"| Pending inspections | {m.pending_inspections} | {m.inspections_trend:+d} |",
            f"| Resolved this month | {m.resolved_this_month} | {m.resolution_trend:+d} |",
            f"| Overdue violations | {m.overdue_violations} | |",
            "",
            "## Buildings",
            "",
            "| Building | Status | Score | Open | Permits |",
            "|----------|--------|-------|------|---------|",
        ]
        for building_id, summary in sorted(self.summaries.items()):
            bscore = "-" if summary.overall_score is None else f"{summary.overall_score:.2f}"
            lines.append(
                f"| {summary.building_name or building_id} | {summary.compliance_status.value} "
                f"| {bscore} | {summary.open_violations} | {summary.active_permits} |"
            )
        lines.append("")

        if self.alerts:
            lines.extend(["## Alerts", ""])
            for alert in self.alerts:
                lines.append(
                    f"- [{alert.type.value.upper()}] **{alert.title}** "
                    f"({alert.building_id}): {alert.message}"
                )
            lines.append("")

        if self.degraded_categories or self.unresolved_buildings:
            lines.extend(["## Data Unavailable", ""])
            for d in self.degraded_categories:
                lines.append(f"- {d.building_id}: {d.category.value} ({d.reason or 'unavailable'})")
            for building_id in self.unresolved_buildings:
                lines.append(f"- {building_id}: building not found")
            lines.append("")

        lines.extend(["## Critical Deadlines", ""])
        if self.critical_deadlines:
            for d in self.critical_deadlines:
                when = "overdue" if d.days_remaining < 0 else f"{d.days_remaining}d"
                lines.append(
                    f"- **{d.due_date.isoformat()}** [{d.category.value}] "
                    f"{d.building_id}: {d.description} ({when})"
                )
        else:
            lines.append("No deadlines inside the horizon.")
        lines.append("")

        lines.extend(["## Recent Violations", ""])
        if self.recent_violations:
            for issue in self.recent_violations:
                issued = issue.issued_date.isoformat() if issue.issued_date else "undated"
                lines.append(
                    f"- {issued} [{issue.severity.value}] {issue.building_id}: "
                    f"{issue.title} ({issue.status.value})"
                )
        else:
            lines.append("No violations on record.")
        lines.append("")

        if self.predictive_insights:
            lines.extend(["## Insights", ""])
            for insight in self.predictive_insights:
                lines.append(
                    f"- **{insight.title}** ({insight.building_id}, "
                    f"confidence {insight.confidence:.0%}): {insight.description}"
                )
            lines.append("")

        return "\n".join(lines)
