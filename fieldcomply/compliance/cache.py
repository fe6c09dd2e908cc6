"""Refresh/Cache Controller — per (building, category) TTL cache with shared fetches.

Each entry moves STALE -> FETCHING -> FRESH -> (after its TTL) STALE.
While a key is FETCHING every caller awaits the same task, so a source
is queried once no matter how many callers ask.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

from pydantic import BaseModel

from fieldcomply.config import DEFAULT_CACHE_TTL_SECONDS
from fieldcomply.models import Category

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheState(str, Enum):
    STALE = "STALE"
    FETCHING = "FETCHING"
    FRESH = "FRESH"


@dataclass
class CacheEntry(Generic[T]):
    """A stored value and the monotonic time it was stored."""

    value: T
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


@dataclass
class _Flight:
    task: asyncio.Future[Any]
    waiters: int = field(default=0)


class SingleFlight:
    """Coalesce concurrent calls for the same key into one task.

    A caller that is cancelled stops waiting without cancelling the shared
    task. When the last waiter leaves before the task finishes, the task is
    cancelled so no rate-limited request is wasted.
    """

    def __init__(self) -> None:
        self._flights: dict[Hashable, _Flight] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._flights

    def __len__(self) -> int:
        return len(self._flights)

    async def run(
        self, key: Hashable, factory: Callable[[], Awaitable[T]]
    ) -> tuple[T, bool]:
        """Await the shared result for *key*; returns ``(value, joined)``.

        *joined* is True when this caller attached to a task started by
        another caller.
        """
        flight = self._flights.get(key)
        joined = flight is not None
        if flight is None:
            flight = _Flight(task=asyncio.ensure_future(factory()))
            self._flights[key] = flight
            flight.task.add_done_callback(lambda _t, k=key, f=flight: self._forget(k, f))

        flight.waiters += 1
        try:
            value = await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                logger.debug("No callers left for %r; cancelling fetch", key)
                flight.task.cancel()
                self._forget(key, flight)
        return value, joined

    def _forget(self, key: Hashable, flight: _Flight) -> None:
        if self._flights.get(key) is flight:
            del self._flights[key]


class CacheStats(BaseModel):
    entries: int = 0
    fresh: int = 0
    in_flight: int = 0
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    shared: int = 0
    """Callers served by a fetch another caller started."""


class RefreshCache:
    """Cache of source results keyed by ``(building_id, category)``.

    Parameters
    ----------
    ttl_for:
        Returns the TTL in seconds for a category value.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_for: Callable[[str], float] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_for = ttl_for or (lambda _category: DEFAULT_CACHE_TTL_SECONDS)
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry[Any]] = {}
        self._flight = SingleFlight()
        self._hits = 0
        self._misses = 0
        self._fetches = 0
        self._shared = 0

    @staticmethod
    def _key(building_id: str, category: Category | str) -> tuple[str, str]:
        return (building_id, Category(category).value)

    def state(self, building_id: str, category: Category | str) -> CacheState:
        key = self._key(building_id, category)
        if self._flight.in_flight(key):
            return CacheState.FETCHING
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._clock()):
            return CacheState.STALE
        return CacheState.FRESH

    def peek(self, building_id: str, category: Category | str) -> Any | None:
        """Return the FRESH value without fetching, else None."""
        entry = self._entries.get(self._key(building_id, category))
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.value

    async def get(
        self,
        building_id: str,
        category: Category | str,
        fetch: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached value, fetching it when missing or expired.

        A failed fetch leaves the previous entry untouched and propagates
        the error to every waiter.
        """
        key = self._key(building_id, category)
        entry = self._entries.get(key)
        if entry is not None and not entry.is_expired(self._clock()):
            self._hits += 1
            logger.debug("Cache hit for %s/%s", *key)
            return entry.value

        self._misses += 1
        ttl = self._ttl_for(key[1])

        async def _load() -> T:
            self._fetches += 1
            value = await fetch()
            # Only the fetch that owns this flight stores its result.
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl)
            return value

        value, joined = await self._flight.run(key, _load)
        if joined:
            self._shared += 1
        return value

    def invalidate(self, building_id: str, category: Category | str | None = None) -> int:
        """Drop cached entries for a building (optionally one category)."""
        if category is not None:
            return 1 if self._entries.pop(self._key(building_id, category), None) else 0
        keys = [k for k in self._entries if k[0] == building_id]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        now = self._clock()
        return CacheStats(
            entries=len(self._entries),
            fresh=sum(1 for e in self._entries.values() if not e.is_expired(now)),
            in_flight=len(self._flight),
            hits=self._hits,
            misses=self._misses,
            fetches=self._fetches,
            shared=self._shared,
        )
