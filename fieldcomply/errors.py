"""Error taxonomy for source adapters and building resolution."""

from __future__ import annotations


class ComplianceError(Exception):
    """Base class for every error raised by fieldcomply."""


class SourceError(ComplianceError):
    """A regulatory source could not supply usable data."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        category: str | None = None,
        building_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.building_id = building_id


class SourceUnavailable(SourceError):
    """Network failure, timeout, 5xx or rate-limit response from a source."""

    retryable = True


class SourceDataInvalid(SourceError):
    """A source record had an unexpected shape and was skipped."""

    def __init__(
        self,
        message: str,
        *,
        native_id: str | None = None,
        category: str | None = None,
        building_id: str | None = None,
    ) -> None:
        super().__init__(message, category=category, building_id=building_id)
        self.native_id = native_id


class BuildingNotFound(ComplianceError):
    """No address or identifier mapping exists for the building."""

    def __init__(self, building_id: str) -> None:
        super().__init__(f"Unknown building: {building_id}")
        self.building_id = building_id
