"""Source adapter interface, raw record client interface and parse helpers."""

from __future__ import annotations

import abc
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, TypeVar

from pydantic import BaseModel, Field, ValidationError

from fieldcomply.errors import SourceDataInvalid, SourceError, SourceUnavailable
from fieldcomply.models import (
    BuildingRecord,
    Category,
    ComplianceIssue,
    EmissionsFiling,
    PermitRecord,
    SanitationSchedule,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceResult(BaseModel):
    """Everything one adapter fetched for one building in a single pass."""

    building_id: str
    category: Category
    issues: list[ComplianceIssue] = Field(default_factory=list)
    permits: list[PermitRecord] = Field(default_factory=list)
    schedule: SanitationSchedule | None = None
    filings: list[EmissionsFiling] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utc_now)
    skipped_records: int = 0
    """Records dropped as malformed."""


class RecordClient(abc.ABC):
    """Raw access to regulatory datasets.

    Implementations return the records of *dataset* that belong to
    *building* as plain dicts, or raise :class:`SourceUnavailable` on
    network, timeout, rate-limit or decoding failures.
    """

    @abc.abstractmethod
    async def fetch_records(
        self, dataset: str, building: BuildingRecord
    ) -> list[dict[str, Any]]:
        """Return raw records of *dataset* for *building*."""


class SourceAdapter(abc.ABC):
    """Converts one regulatory source into the common issue model.

    Parameters
    ----------
    client:
        Raw record client shared by the adapters.
    clock:
        Returns the current time. Injected so tests can pin "today".
    """

    category: Category
    datasets: tuple[str, ...] = ()

    def __init__(self, client: RecordClient, *, clock: Clock | None = None) -> None:
        self._client = client
        self._clock = clock or utc_now

    @abc.abstractmethod
    async def fetch(self, building: BuildingRecord) -> SourceResult:
        """Fetch and convert everything this source knows about *building*."""

    async def fetch_issues_for_building(
        self, building: BuildingRecord
    ) -> list[ComplianceIssue]:
        result = await self.fetch(building)
        return result.issues

    async def _records(self, dataset: str, building: BuildingRecord) -> list[dict[str, Any]]:
        try:
            records = await self._client.fetch_records(dataset, building)
        except SourceError as exc:
            exc.category = exc.category or self.category.value
            exc.building_id = exc.building_id or building.building_id
            raise
        if not isinstance(records, list):
            raise SourceUnavailable(
                f"{dataset}: expected a list of records, got {type(records).__name__}",
                category=self.category.value,
                building_id=building.building_id,
            )
        return records

    def _convert_all(
        self,
        records: Iterable[dict[str, Any]],
        convert: Callable[[dict[str, Any]], T | None],
        building: BuildingRecord,
    ) -> tuple[list[T], int]:
        """Apply *convert* to each record, skipping the malformed ones.

        *convert* may return None for records that are valid but not
        relevant. Returns the converted items and the number skipped.
        """
        items: list[T] = []
        skipped = 0
        for record in records:
            if not isinstance(record, dict):
                skipped += 1
                logger.warning(
                    "%s: skipping non-object record for %s",
                    self.category.value, building.building_id,
                )
                continue
            try:
                item = convert(record)
            except SourceDataInvalid as exc:
                skipped += 1
                logger.warning(
                    "%s: skipping record %s for %s: %s",
                    self.category.value, exc.native_id or "?", building.building_id, exc,
                )
                continue
            except ValidationError as exc:
                skipped += 1
                logger.warning(
                    "%s: record for %s failed validation: %s",
                    self.category.value, building.building_id, exc.errors()[0]["msg"],
                )
                continue
            if item is not None:
                items.append(item)
        return items, skipped

    def _now(self) -> datetime:
        return self._clock()

    def _today(self) -> date:
        return self._clock().date()


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y%m%d")


def text(record: dict[str, Any], *keys: str) -> str:
    """Return the first non-empty value among *keys*, stripped."""
    for key in keys:
        value = record.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def parse_date(value: Any, *, native_id: str | None = None) -> date | None:
    """Parse Socrata date strings (ISO timestamps, ``MM/DD/YYYY``, ``YYYYMMDD``).

    Empty values give None. Anything else unparseable is invalid data.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    # Floating timestamps: 2024-03-01T00:00:00.000
    head = raw.split("T", 1)[0].split(" ", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).date()
        except ValueError:
            continue
    raise SourceDataInvalid(f"Unparseable date {raw!r}", native_id=native_id)


def parse_amount(value: Any, *, native_id: str | None = None) -> float:
    """Parse a money or quantity field; empty values give 0.0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    raw = re.sub(r"[$,\s]", "", str(value))
    if not raw:
        return 0.0
    try:
        return float(raw)
    except ValueError:
        raise SourceDataInvalid(f"Unparseable amount {value!r}", native_id=native_id) from None


def parse_optional_amount(value: Any, *, native_id: str | None = None) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_amount(value, native_id=native_id)
