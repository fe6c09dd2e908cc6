"""Shared fixtures: an in-memory record client and a pinned clock.

All tests run offline. "Today" is Wednesday 2026-10-21, 10:00 New York time.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

import pytest

from fieldcomply.compliance.engine import ComplianceEngine
from fieldcomply.compliance.history import SnapshotHistory
from fieldcomply.config import EngineSettings
from fieldcomply.models import BuildingRecord
from fieldcomply.registry import BuildingRegistry
from fieldcomply.sources import (
    EmissionsAdapter,
    HousingViolationsAdapter,
    PermitsAdapter,
    SanitationAdapter,
)
from fieldcomply.sources.base import RecordClient

NY = ZoneInfo("America/New_York")
FIXED_NOW = datetime(2026, 10, 21, 10, 0, tzinfo=NY)


class FakeRecordClient(RecordClient):
    """Serves canned records per (dataset, building id) and counts calls."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], list[Any]] = {}
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None

    def add(self, dataset: str, building_id: str, *records: Any) -> None:
        self.records.setdefault((dataset, building_id), []).extend(records)

    def count(self, dataset: str) -> int:
        return sum(1 for d, _ in self.calls if d == dataset)

    async def fetch_records(self, dataset: str, building: BuildingRecord) -> list[Any]:
        self.calls.append((dataset, building.building_id))
        if self.gate is not None:
            await self.gate.wait()
        delay = self.delays.get(dataset)
        if delay:
            await asyncio.sleep(delay)
        failure = self.failures.get(dataset)
        if failure is not None:
            raise failure
        return list(self.records.get((dataset, building.building_id), []))


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def client() -> FakeRecordClient:
    return FakeRecordClient()


@pytest.fixture
def registry() -> BuildingRegistry:
    return BuildingRegistry([
        BuildingRecord(building_id="B", name="12 West 18th", bbl="1008180021", bin="1015862"),
        BuildingRecord(building_id="C", name="68 Perry", bbl="1006210041", bin="1011234"),
    ])


@pytest.fixture
def make_engine(
    client: FakeRecordClient, registry: BuildingRegistry
) -> Callable[..., ComplianceEngine]:
    """Factory for an engine wired to the fake client with all four adapters."""

    def _make(
        settings: EngineSettings | None = None,
        history: SnapshotHistory | None = None,
    ) -> ComplianceEngine:
        settings = settings or EngineSettings()
        adapters = [
            HousingViolationsAdapter(client, clock=fixed_clock),
            PermitsAdapter(client, clock=fixed_clock),
            SanitationAdapter(client, clock=fixed_clock),
            EmissionsAdapter(client, clock=fixed_clock),
        ]
        return ComplianceEngine(
            adapters,
            registry,
            settings=settings,
            history=history or SnapshotHistory(":memory:"),
            clock=fixed_clock,
        )

    return _make
