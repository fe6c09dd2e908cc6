"""Typed non-issue records: permits, collection schedules, emissions filings."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict

from fieldcomply.config import LL97_PENALTY_PER_TON
from fieldcomply.models.issue import SourceRef

ACTIVE_PERMIT_STATUSES = frozenset({"ACTIVE", "IN PROGRESS"})

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class BuildingRecord(BaseModel):
    """Registry entry mapping a building id to the keys regulatory sources use."""

    building_id: str
    name: str = ""
    address: str = ""
    bbl: str = ""
    """Borough-block-lot, the key for housing, emissions and permit data."""

    bin: str = ""
    """Building identification number."""


class PermitRecord(BaseModel):
    """A building permit filing as reported by the permits source."""

    model_config = ConfigDict(frozen=True)

    building_id: str
    job_filing_number: str
    job_type: str = ""
    job_status: str = ""
    """Upper-cased source status, e.g. 'ACTIVE', 'IN PROGRESS', 'EXPIRED'."""

    job_status_description: str = ""
    job_status_date: date | None = None
    job_start_date: date | None = None
    job_end_date: date | None = None
    job_cost: float = 0.0
    source_ref: SourceRef

    @property
    def is_active(self) -> bool:
        return self.job_status in ACTIVE_PERMIT_STATUSES


class CollectionStream(BaseModel):
    """Scheduled pickups for one waste stream."""

    model_config = ConfigDict(frozen=True)

    stream: str
    """'refuse', 'recycling', 'organics' or 'bulk'."""

    weekdays: tuple[int, ...] = ()
    """Collection weekdays, 0 = Monday."""

    frequency: str = ""

    @property
    def day_names(self) -> list[str]:
        return [WEEKDAY_NAMES[d] for d in self.weekdays]


class SanitationSchedule(BaseModel):
    """Weekly collection schedule for a building."""

    model_config = ConfigDict(frozen=True)

    building_id: str
    district: str = ""
    streams: tuple[CollectionStream, ...] = ()
    source_ref: SourceRef | None = None

    def stream(self, name: str) -> CollectionStream | None:
        for s in self.streams:
            if s.stream == name:
                return s
        return None


class EmissionsFiling(BaseModel):
    """Annual carbon-emissions report for one calendar year."""

    model_config = ConfigDict(frozen=True)

    building_id: str
    bbl: str = ""
    calendar_year: int
    total_ghg_emissions: float = 0.0
    """Total emissions in tCO2e."""

    ghg_intensity: float | None = None
    gross_floor_area: float | None = None
    emissions_limit: float | None = None
    """Building limit in tCO2e, when known."""

    penalty_per_ton: float = LL97_PENALTY_PER_TON
    source_ref: SourceRef
    filed_date: date | None = None

    @property
    def excess_emissions(self) -> float:
        if self.emissions_limit is None:
            return 0.0
        return max(0.0, self.total_ghg_emissions - self.emissions_limit)

    @property
    def estimated_penalty(self) -> float:
        return round(self.excess_emissions * self.penalty_per_ton, 2)

    @property
    def is_over_limit(self) -> bool:
        return self.excess_emissions > 0
