"""ComplianceEngine — main entry point for compliance aggregation and scoring.

Usage::

    from fieldcomply import BuildingRecord, build_default_engine

    engine = build_default_engine([BuildingRecord(building_id="b1", bbl="1000670001")])
    dashboard = await engine.load_compliance_data(["b1"])
    print(dashboard.to_markdown())
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence
from zoneinfo import ZoneInfo

from fieldcomply.compliance.aggregator import DashboardAggregator
from fieldcomply.compliance.cache import CacheState, CacheStats, RefreshCache, SingleFlight
from fieldcomply.compliance.history import SnapshotHistory
from fieldcomply.compliance.normalizer import normalize_issues
from fieldcomply.compliance.report import BuildingComplianceSummary, ComplianceDashboardData
from fieldcomply.config import EngineSettings, set_log_level
from fieldcomply.errors import SourceError
from fieldcomply.models import (
    BuildingRecord,
    Category,
    ComplianceIssue,
    EmissionsFiling,
    PermitRecord,
    SanitationSchedule,
)
from fieldcomply.registry import BuildingRegistry
from fieldcomply.sources import (
    EmissionsAdapter,
    HousingViolationsAdapter,
    PermitsAdapter,
    SanitationAdapter,
    SocrataClient,
)
from fieldcomply.sources.base import SourceAdapter, SourceResult

logger = logging.getLogger(__name__)


def local_clock(timezone_name: str) -> Callable[[], datetime]:
    """Clock returning the current time in *timezone_name*."""
    tz = ZoneInfo(timezone_name)

    def _now() -> datetime:
        return datetime.now(tz)

    return _now


class ComplianceEngine:
    """Aggregate regulatory sources into compliance summaries and dashboards.

    Parameters
    ----------
    adapters:
        Source adapters, either as a ``{Category: adapter}`` mapping or an
        iterable (each adapter declares its own category).
    registry:
        Building registry used to resolve ids into source identifiers.
    settings:
        Scoring tables, TTLs and timeouts. Defaults to :class:`EngineSettings`.
    cache:
        Refresh cache; a private one is created when omitted.
    history:
        Snapshot store for trend deltas.
    clock:
        Returns the current local time. Defaults to now in ``settings.timezone``.
    """

    def __init__(
        self,
        adapters: Mapping[Category, SourceAdapter] | Iterable[SourceAdapter],
        registry: BuildingRegistry,
        *,
        settings: EngineSettings | None = None,
        cache: RefreshCache | None = None,
        history: SnapshotHistory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        if isinstance(adapters, Mapping):
            adapter_map = dict(adapters)
        else:
            adapter_map = {adapter.category: adapter for adapter in adapters}
        if clock is None:
            clock = local_clock(self.settings.timezone)
        self._clock = clock
        self._aggregator = DashboardAggregator(
            adapter_map,
            registry,
            settings=self.settings,
            cache=cache,
            history=history,
            clock=clock,
        )
        self._loads = SingleFlight()
        self._resources: list[Any] = []

    @property
    def registry(self) -> BuildingRegistry:
        return self._aggregator.registry

    @property
    def cache(self) -> RefreshCache:
        return self._aggregator.cache

    @property
    def categories(self) -> list[Category]:
        return list(self._aggregator.adapters)

    # -- dashboard --------------------------------------------------------------

    async def load_compliance_data(self, building_ids: Sequence[str]) -> ComplianceDashboardData:
        """Refresh and return the dashboard for *building_ids*.

        Concurrent calls for the same building list share one refresh and
        receive the same snapshot object.
        """
        key = tuple(dict.fromkeys(building_ids))
        data, joined = await self._loads.run(key, lambda: self._aggregator.load(key))
        if joined:
            logger.debug("Joined in-flight refresh for %d building(s)", len(key))
        return data

    async def get_building_compliance_summary(self, building_id: str) -> BuildingComplianceSummary:
        """Summary for one building; raises :class:`BuildingNotFound` if unknown.

        Failed sources are reported in ``degraded_categories`` rather than
        raised.
        """
        fetched = await self._aggregator.fetch_building(building_id)
        return self._aggregator.summarize(fetched, self._clock())

    # -- per-source accessors -----------------------------------------------------

    async def _source(self, building_id: str, category: Category) -> SourceResult:
        building = self.registry.resolve(building_id)
        if category not in self._aggregator.adapters:
            raise SourceError(
                f"No {category.value} source configured",
                category=category.value,
                building_id=building_id,
            )
        return await self._aggregator.fetch_category(building, category)

    async def get_hpd_violations_for_building(self, building_id: str) -> list[ComplianceIssue]:
        """Normalised housing issues. Raises SourceError when the source fails."""
        result = await self._source(building_id, Category.HOUSING)
        return normalize_issues([result.issues])

    async def get_dob_permits_for_building(self, building_id: str) -> list[PermitRecord]:
        result = await self._source(building_id, Category.PERMIT)
        return list(result.permits)

    async def get_dsny_collection_schedule_for_building(
        self, building_id: str
    ) -> SanitationSchedule | None:
        """Weekly collection schedule, or None when the building has no route."""
        result = await self._source(building_id, Category.SANITATION)
        return result.schedule

    async def get_ll97_emissions_for_building(self, building_id: str) -> list[EmissionsFiling]:
        """Annual emissions filings, most recent year first."""
        result = await self._source(building_id, Category.EMISSIONS)
        return list(result.filings)

    # -- cache control ------------------------------------------------------------

    def cache_state(self, building_id: str, category: Category) -> CacheState:
        return self.cache.state(building_id, category)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def invalidate(self, building_id: str, category: Category | None = None) -> int:
        """Force the next access to re-query sources for *building_id*."""
        return self.cache.invalidate(building_id, category)

    def add_resource(self, resource: Any) -> None:
        """Register something with an async ``aclose()`` to release on :meth:`aclose`."""
        self._resources.append(resource)

    async def aclose(self) -> None:
        for resource in self._resources:
            await resource.aclose()
        self._resources.clear()
        self._aggregator.history.close()


def build_default_engine(
    buildings: Iterable[BuildingRecord],
    settings: EngineSettings | None = None,
) -> ComplianceEngine:
    """Engine wired to the city open-data API with all four adapters."""
    settings = settings or EngineSettings.from_env()
    set_log_level(settings.log_level)
    client = SocrataClient(
        settings.socrata_base_url,
        app_token=settings.socrata_app_token,
        timeout=settings.adapter_timeout_seconds,
    )
    clock = local_clock(settings.timezone)
    adapters: list[SourceAdapter] = [
        HousingViolationsAdapter(client, clock=clock),
        PermitsAdapter(client, clock=clock),
        SanitationAdapter(client, clock=clock),
        EmissionsAdapter(
            client,
            clock=clock,
            intensity_limit=settings.ll97_intensity_limit,
            penalty_per_ton=settings.ll97_penalty_per_ton,
        ),
    ]
    engine = ComplianceEngine(
        adapters,
        BuildingRegistry(buildings),
        settings=settings,
        history=SnapshotHistory(settings.history_db),
        clock=clock,
    )
    engine.add_resource(client)
    logger.info("Compliance engine ready with %d source(s)", len(adapters))
    return engine
