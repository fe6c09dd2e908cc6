"""Compliance aggregation: normalise, score, track deadlines, build dashboards."""

from fieldcomply.compliance.cache import CacheState, RefreshCache
from fieldcomply.compliance.deadlines import ComplianceDeadline, DeadlineTracker
from fieldcomply.compliance.engine import ComplianceEngine, build_default_engine
from fieldcomply.compliance.normalizer import normalize_issues
from fieldcomply.compliance.report import (
    BuildingComplianceSummary,
    ComplianceAlert,
    ComplianceDashboardData,
    ComplianceMetrics,
    CriticalBuilding,
    DegradedCategory,
    PredictiveInsight,
)
from fieldcomply.compliance.scoring import ComplianceStatus, ScoringEngine, grade_for_score

__all__ = [
    "BuildingComplianceSummary",
    "CacheState",
    "ComplianceAlert",
    "ComplianceDashboardData",
    "ComplianceDeadline",
    "ComplianceEngine",
    "ComplianceMetrics",
    "ComplianceStatus",
    "CriticalBuilding",
    "DeadlineTracker",
    "DegradedCategory",
    "PredictiveInsight",
    "RefreshCache",
    "ScoringEngine",
    "build_default_engine",
    "grade_for_score",
    "normalize_issues",
]
