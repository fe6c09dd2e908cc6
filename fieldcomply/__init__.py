"""fieldcomply: compliance aggregation and scoring for building portfolios."""

__version__ = "0.1.0"

from fieldcomply.compliance import (
    BuildingComplianceSummary,
    ComplianceDashboardData,
    ComplianceEngine,
    build_default_engine,
)
from fieldcomply.config import EngineSettings
from fieldcomply.errors import BuildingNotFound, SourceDataInvalid, SourceUnavailable
from fieldcomply.models import BuildingRecord, Category, ComplianceIssue, IssueStatus, Severity
from fieldcomply.registry import BuildingRegistry

__all__ = [
    "BuildingComplianceSummary",
    "BuildingNotFound",
    "BuildingRecord",
    "BuildingRegistry",
    "Category",
    "ComplianceDashboardData",
    "ComplianceEngine",
    "ComplianceIssue",
    "EngineSettings",
    "IssueStatus",
    "Severity",
    "SourceDataInvalid",
    "SourceUnavailable",
    "build_default_engine",
]
