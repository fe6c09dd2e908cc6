"""SocrataClient — raw record access to NYC Open Data over HTTP."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from fieldcomply.config import (
    ADAPTER_TIMEOUT_SECONDS,
    DOB_PERMITS_DATASET,
    DSNY_ROUTES_DATASET,
    HPD_VIOLATIONS_DATASET,
    LL97_EMISSIONS_DATASET,
    OATH_HEARINGS_DATASET,
    SOCRATA_BASE_URL,
    SOCRATA_PAGE_LIMIT,
)
from fieldcomply.errors import SourceError, SourceUnavailable
from fieldcomply.models import BuildingRecord
from fieldcomply.sources.base import RecordClient

logger = logging.getLogger(__name__)

# dataset label -> (Socrata dataset id, building keys to filter on, order clause)
_DATASETS: dict[str, tuple[str, tuple[str, ...], str]] = {
    "hpd_violations": (HPD_VIOLATIONS_DATASET, ("bbl", "bin"), "inspectiondate DESC"),
    "dob_permits": (DOB_PERMITS_DATASET, ("bin", "bbl"), "job_status_date DESC"),
    "dsny_routes": (DSNY_ROUTES_DATASET, ("bin", "bbl"), ""),
    "ll97_emissions": (LL97_EMISSIONS_DATASET, ("bbl",), "calendar_year DESC"),
}


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def summons_where(bbl: str) -> str:
    """SoQL filter for sanitation summonses issued at the lot identified by *bbl*."""
    digits = "".join(ch for ch in bbl if ch.isdigit())
    if len(digits) != 10:
        raise ValueError(f"BBL must have 10 digits, got {bbl!r}")
    block = str(int(digits[1:6]))
    lot = str(int(digits[6:]))
    return (
        f"violation_location_block_no={_quote(block)} "
        f"AND violation_location_lot_no={_quote(lot)} "
        "AND upper(issuing_agency) like '%SANITATION%'"
    )


class SocrataClient(RecordClient):
    """Fetch regulatory records from the city's Socrata open-data API.

    Parameters
    ----------
    base_url:
        Resource root, e.g. ``https://data.cityofnewyork.us/resource``.
    app_token:
        Optional Socrata app token; raises the rate limit when present.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport, used by tests to serve canned responses.
    """

    def __init__(
        self,
        base_url: str = SOCRATA_BASE_URL,
        *,
        app_token: str = "",
        timeout: float = ADAPTER_TIMEOUT_SECONDS,
        limit: int = SOCRATA_PAGE_LIMIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if app_token:
            headers["X-App-Token"] = app_token
        self._limit = limit
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> SocrataClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def build_query(self, dataset: str, building: BuildingRecord) -> tuple[str, dict[str, Any]]:
        """Return the resource path and query parameters for *dataset*."""
        if dataset == "dsny_summons":
            try:
                where = summons_where(building.bbl)
            except ValueError as exc:
                raise SourceError(str(exc), building_id=building.building_id) from None
            return f"/{OATH_HEARINGS_DATASET}.json", {
                "$where": where,
                "$order": "violation_date DESC",
                "$limit": self._limit,
            }

        try:
            dataset_id, keys, order = _DATASETS[dataset]
        except KeyError:
            raise ValueError(f"Unknown dataset {dataset!r}") from None

        for key in keys:
            value = getattr(building, key)
            if value:
                params: dict[str, Any] = {"$where": f"{key}={_quote(value)}", "$limit": self._limit}
                if order:
                    params["$order"] = order
                return f"/{dataset_id}.json", params
        raise SourceError(
            f"{dataset}: building has no {' or '.join(keys)} to match on",
            building_id=building.building_id,
        )

    async def fetch_records(
        self, dataset: str, building: BuildingRecord
    ) -> list[dict[str, Any]]:
        path, params = self.build_query(dataset, building)
        logger.debug("GET %s %s", path, params.get("$where"))
        try:
            response = await self._http.get(path, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise SourceUnavailable(
                f"{dataset}: request timed out", building_id=building.building_id
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                f"{dataset}: HTTP {exc.response.status_code}", building_id=building.building_id
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(
                f"{dataset}: {exc.__class__.__name__}", building_id=building.building_id
            ) from exc
        except ValueError as exc:
            raise SourceUnavailable(
                f"{dataset}: response was not valid JSON", building_id=building.building_id
            ) from exc

        if not isinstance(data, list):
            raise SourceUnavailable(
                f"{dataset}: expected a JSON array", building_id=building.building_id
            )
        return data
