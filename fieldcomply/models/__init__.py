"""Value objects shared by adapters, scoring and the dashboard."""

from fieldcomply.models.issue import (
    Category,
    ComplianceIssue,
    IssueStatus,
    Severity,
    SourceRef,
)
from fieldcomply.models.records import (
    BuildingRecord,
    CollectionStream,
    EmissionsFiling,
    PermitRecord,
    SanitationSchedule,
)

__all__ = [
    "BuildingRecord",
    "Category",
    "CollectionStream",
    "ComplianceIssue",
    "EmissionsFiling",
    "IssueStatus",
    "PermitRecord",
    "SanitationSchedule",
    "Severity",
    "SourceRef",
]
