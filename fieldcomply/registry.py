"""BuildingRegistry — building id to address/identifier lookup."""

from __future__ import annotations

import logging
from typing import Iterable

from fieldcomply.errors import BuildingNotFound
from fieldcomply.models import BuildingRecord

logger = logging.getLogger(__name__)


class BuildingRegistry:
    """In-memory registry of the buildings a portfolio contains.

    Regulatory sources are keyed by BBL/BIN rather than by our own building
    ids, so every fetch starts with :meth:`resolve`.
    """

    def __init__(self, buildings: Iterable[BuildingRecord] = ()) -> None:
        self._buildings: dict[str, BuildingRecord] = {}
        for record in buildings:
            self.register(record)

    def register(self, record: BuildingRecord) -> None:
        if record.building_id in self._buildings:
            logger.debug("Replacing registry entry for %s", record.building_id)
        self._buildings[record.building_id] = record

    def resolve(self, building_id: str) -> BuildingRecord:
        """Return the record for *building_id* or raise :class:`BuildingNotFound`.

        A record with neither BBL, BIN nor address cannot be matched against
        any source and is treated as missing.
        """
        record = self._buildings.get(building_id)
        if record is None or not (record.bbl or record.bin or record.address):
            raise BuildingNotFound(building_id)
        return record

    def __contains__(self, building_id: object) -> bool:
        return building_id in self._buildings

    def __len__(self) -> int:
        return len(self._buildings)

    def building_ids(self) -> list[str]:
        return sorted(self._buildings)
