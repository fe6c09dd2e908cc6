"""Dashboard Aggregator — fan out to adapters, fan in to one dashboard snapshot.

Suspension points are the adapter calls only. Once every category for a
building has completed (or failed), normalisation, scoring, deadline
projection and aggregation are plain synchronous functions of the results.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from functools import cached_property
from typing import Callable, Mapping, Sequence

from fieldcomply.compliance.cache import RefreshCache
from fieldcomply.compliance.deadlines import ComplianceDeadline, DeadlineTracker
from fieldcomply.compliance.history import MetricsSnapshot, SnapshotHistory
from fieldcomply.compliance.insights import (
    building_alerts,
    building_insights,
    critical_buildings,
    rank_alerts,
    rank_insights,
    resolved_in_month,
    violation_trend,
)
from fieldcomply.compliance.normalizer import normalize_issues
from fieldcomply.compliance.report import (
    BuildingComplianceSummary,
    ComplianceAlert,
    ComplianceDashboardData,
    ComplianceMetrics,
    DegradedCategory,
    PredictiveInsight,
)
from fieldcomply.compliance.scoring import ScoringEngine, letter_grade
from fieldcomply.config import RECENT_PERMIT_DAYS, EngineSettings
from fieldcomply.errors import BuildingNotFound, SourceError, SourceUnavailable
from fieldcomply.models import (
    BuildingRecord,
    Category,
    ComplianceIssue,
    IssueStatus,
    PermitRecord,
)
from fieldcomply.registry import BuildingRegistry
from fieldcomply.sources.base import SourceAdapter, SourceResult

logger = logging.getLogger(__name__)

_OUTSTANDING = frozenset({IssueStatus.OPEN, IssueStatus.PENDING})


@dataclass
class BuildingFetch:
    """Completed fan-out for one building: results and degraded markers."""

    building: BuildingRecord
    results: dict[Category, SourceResult] = field(default_factory=dict)
    degraded: dict[Category, DegradedCategory] = field(default_factory=dict)

    @cached_property
    def issues(self) -> list[ComplianceIssue]:
        return normalize_issues(r.issues for r in self.results.values())


class DashboardAggregator:
    """Orchestrate adapters, cache, scoring and deadlines across buildings.

    Parameters
    ----------
    adapters:
        One adapter per category to query.
    registry:
        Resolves building ids to the identifiers sources are keyed on.
    cache:
        Per (building, category) refresh cache owned by this aggregator.
    clock:
        Returns the current local time; "today" derives from it.
    """

    def __init__(
        self,
        adapters: Mapping[Category, SourceAdapter],
        registry: BuildingRegistry,
        *,
        settings: EngineSettings | None = None,
        cache: RefreshCache | None = None,
        history: SnapshotHistory | None = None,
        clock: Callable[[], datetime],
    ) -> None:
        self.settings = settings or EngineSettings()
        self.adapters = dict(adapters)
        self.registry = registry
        self.cache = cache or RefreshCache(self.settings.ttl_for)
        self.history = history or SnapshotHistory(self.settings.history_db)
        self.scoring = ScoringEngine(self.settings)
        self.deadlines = DeadlineTracker(
            self.settings.deadline_horizon_days, self.settings.collection_time
        )
        self._clock = clock

    # -- fetching -------------------------------------------------------------

    async def fetch_category(
        self, building: BuildingRecord, category: Category
    ) -> SourceResult:
        """Cached, time-limited fetch of one category; raises SourceError."""
        adapter = self.adapters[category]
        timeout = self.settings.adapter_timeout_seconds

        async def _fetch() -> SourceResult:
            try:
                return await asyncio.wait_for(adapter.fetch(building), timeout)
            except asyncio.TimeoutError:
                raise SourceUnavailable(
                    f"{category.value} source timed out after {timeout:g}s",
                    category=category.value,
                    building_id=building.building_id,
                ) from None

        return await self.cache.get(building.building_id, category, _fetch)

    async def fetch_building(self, building_id: str) -> BuildingFetch:
        """Fan out to every adapter; failed categories become degraded markers.

        Raises :class:`BuildingNotFound` when the building cannot be resolved.
        """
        building = self.registry.resolve(building_id)
        categories = list(self.adapters)
        outcomes = await asyncio.gather(
            *(self._fetch_or_degrade(building, c) for c in categories)
        )
        fetched = BuildingFetch(building=building)
        for category, outcome in zip(categories, outcomes):
            if isinstance(outcome, DegradedCategory):
                fetched.degraded[category] = outcome
            else:
                fetched.results[category] = outcome
        return fetched

    async def _fetch_or_degrade(
        self, building: BuildingRecord, category: Category
    ) -> SourceResult | DegradedCategory:
        try:
            return await self.fetch_category(building, category)
        except SourceError as exc:
            logger.warning(
                "%s unavailable for %s: %s", category.value, building.building_id, exc
            )
            return DegradedCategory(
                building_id=building.building_id,
                category=category,
                reason=str(exc),
                retryable=exc.retryable,
            )

    # -- per building -----------------------------------------------------------

    def summarize(self, fetched: BuildingFetch, now: datetime) -> BuildingComplianceSummary:
        """Score and project deadlines for one building. Pure given its inputs."""
        today = now.date()
        building_id = fetched.building.building_id
        issues = fetched.issues

        category_scores = self.scoring.score_building(
            issues, self.adapters, degraded=fetched.degraded
        )
        overall = self.scoring.overall(category_scores)

        permits: list[PermitRecord] = []
        permit_result = fetched.results.get(Category.PERMIT)
        if permit_result is not None:
            permits = permit_result.permits
        recent_cutoff = today - timedelta(days=RECENT_PERMIT_DAYS)

        return BuildingComplianceSummary(
            building_id=building_id,
            building_name=fetched.building.name,
            compliance_status=self.scoring.status(overall),
            overall_score=overall,
            letter_grade=letter_grade(overall),
            category_scores={c: s.score for c, s in category_scores.items()},
            total_violations=len(issues),
            open_violations=sum(1 for i in issues if i.is_open()),
            pending_inspections=sum(1 for i in issues if i.status == IssueStatus.PENDING),
            overdue_violations=len(self.deadlines.overdue_issues(issues, today)),
            active_permits=sum(1 for p in permits if p.is_active),
            recent_permits=sum(
                1
                for p in permits
                if p.job_status_date is not None and p.job_status_date >= recent_cutoff
            ),
            outstanding_penalties=sum(
                i.penalty_amount for i in issues if i.status in _OUTSTANDING
            ),
            degraded_categories=sorted(fetched.degraded, key=lambda c: c.value),
            critical_deadlines=self.deadlines.critical(self.project_deadlines(fetched, now)),
            generated_at=now,
        )

    def project_deadlines(self, fetched: BuildingFetch, now: datetime) -> list[ComplianceDeadline]:
        today = now.date()
        building_id = fetched.building.building_id
        deadlines = self.deadlines.issue_deadlines(fetched.issues, today)

        sanitation = fetched.results.get(Category.SANITATION)
        if sanitation is not None:
            deadlines.extend(self.deadlines.collection_deadlines(sanitation.schedule, now))

        emissions = fetched.results.get(Category.EMISSIONS)
        if emissions is not None:
            deadlines.extend(
                self.deadlines.filing_deadlines(building_id, emissions.filings, today)
            )
        return deadlines

    # -- portfolio --------------------------------------------------------------

    async def load(self, building_ids: Sequence[str]) -> ComplianceDashboardData:
        """Build one dashboard snapshot for *building_ids*.

        Each building is fetched independently: a building that cannot be
        resolved is listed in ``unresolved_buildings`` and a failed source
        in ``degraded_categories``; neither aborts the batch.
        """
        ids = list(dict.fromkeys(building_ids))
        logger.info("Refreshing compliance data for %d building(s)", len(ids))
        outcomes = await asyncio.gather(
            *(self._fetch_or_unresolved(b) for b in ids)
        )
        now = self._clock()

        fetched: list[BuildingFetch] = []
        unresolved: list[str] = []
        for building_id, outcome in zip(ids, outcomes):
            if outcome is None:
                unresolved.append(building_id)
            else:
                fetched.append(outcome)

        data = self.assemble(ids, fetched, unresolved, now)
        logger.info(
            "Compliance snapshot: %d building(s), %d degraded source(s), %d unresolved",
            len(data.summaries), len(data.degraded_categories), len(unresolved),
        )
        return data

    async def _fetch_or_unresolved(self, building_id: str) -> BuildingFetch | None:
        try:
            return await self.fetch_building(building_id)
        except BuildingNotFound:
            logger.warning("Building %s not found in registry", building_id)
            return None

    def assemble(
        self,
        building_ids: Sequence[str],
        fetched: Sequence[BuildingFetch],
        unresolved: Sequence[str],
        now: datetime,
    ) -> ComplianceDashboardData:
        """Combine per-building results into a dashboard and record its counts."""
        today = now.date()
        summaries: dict[str, BuildingComplianceSummary] = {}
        all_issues: list[ComplianceIssue] = []
        deadlines: list[ComplianceDeadline] = []
        degraded: list[DegradedCategory] = []
        insights: list[PredictiveInsight] = []
        alerts: list[ComplianceAlert] = []

        for item in fetched:
            summary = self.summarize(item, now)
            building_id = summary.building_id
            summaries[building_id] = summary
            issues = item.issues
            all_issues.extend(issues)
            deadlines.extend(summary.critical_deadlines)
            degraded.extend(item.degraded[c] for c in summary.degraded_categories)
            emissions = item.results.get(Category.EMISSIONS)
            insights.extend(
                building_insights(
                    building_id, issues, emissions.filings if emissions else [], today
                )
            )
            alerts.extend(
                building_alerts(summary, issues, self.settings.warning_threshold)
            )

        metrics = self._portfolio_metrics(summaries, all_issues, today)
        previous = self.history.latest(building_ids)
        if previous is not None:
            metrics.violations_trend = metrics.active_violations - previous.active_violations
            metrics.inspections_trend = metrics.pending_inspections - previous.pending_inspections
            metrics.resolution_trend = metrics.resolved_this_month - previous.resolved_this_month
            metrics.cost_trend = round(
                metrics.outstanding_penalties - previous.outstanding_penalties, 2
            )

        data = ComplianceDashboardData(
            metrics=metrics,
            building_compliance={b: s.overall_score for b, s in summaries.items()},
            summaries=summaries,
            recent_violations=normalize_issues([all_issues])[
                : self.settings.recent_violations_limit
            ],
            critical_deadlines=self.deadlines.critical(deadlines),
            predictive_insights=rank_insights(insights),
            alerts=rank_alerts(alerts),
            critical_buildings=critical_buildings(summaries.values()),
            violation_trend=violation_trend(all_issues, today),
            degraded_categories=degraded,
            unresolved_buildings=list(unresolved),
            generated_at=now,
            as_of=today,
        )

        # Partial snapshots undercount, so only complete ones become the baseline.
        if not data.is_partial:
            self.history.record(
                building_ids,
                MetricsSnapshot(
                    active_violations=metrics.active_violations,
                    pending_inspections=metrics.pending_inspections,
                    resolved_this_month=metrics.resolved_this_month,
                    outstanding_penalties=metrics.outstanding_penalties,
                    overall_score=metrics.overall_score,
                    taken_at=now,
                ),
            )
        return data

    def _portfolio_metrics(
        self,
        summaries: Mapping[str, BuildingComplianceSummary],
        issues: Sequence[ComplianceIssue],
        today: date,
    ) -> ComplianceMetrics:
        known = [s.overall_score for s in summaries.values() if s.overall_score is not None]
        overall = sum(known) / len(known) if known else None

        category_scores: dict[Category, float | None] = {}
        for category in self.adapters:
            values = [
                s.category_scores[category]
                for s in summaries.values()
                if s.category_scores.get(category) is not None
            ]
            category_scores[category] = sum(values) / len(values) if values else None

        return ComplianceMetrics(
            overall_score=overall,
            letter_grade=letter_grade(overall),
            category_scores=category_scores,
            active_violations=sum(s.open_violations for s in summaries.values()),
            pending_inspections=sum(s.pending_inspections for s in summaries.values()),
            resolved_this_month=resolved_in_month(issues, today),
            overdue_violations=sum(s.overdue_violations for s in summaries.values()),
            outstanding_penalties=round(
                sum(s.outstanding_penalties for s in summaries.values()), 2
            ),
        )
