"""SnapshotHistory — previous metric counts per building set, for trend deltas.

Uses stdlib sqlite3. ``':memory:'`` keeps history for the life of the
engine; a file path keeps it across restarts.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    set_key TEXT NOT NULL,
    taken_at TEXT NOT NULL,
    active_violations INTEGER NOT NULL,
    pending_inspections INTEGER NOT NULL,
    resolved_this_month INTEGER NOT NULL,
    outstanding_penalties REAL NOT NULL DEFAULT 0,
    overall_score REAL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_set ON snapshots(set_key, id);
"""


def building_set_key(building_ids: Iterable[str]) -> str:
    """Order-independent key for a set of building ids."""
    joined = "\n".join(sorted(set(building_ids)))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


class MetricsSnapshot(BaseModel):
    """The counts a later refresh compares against."""

    active_violations: int = 0
    pending_inspections: int = 0
    resolved_this_month: int = 0
    outstanding_penalties: float = 0.0
    overall_score: float | None = None
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SnapshotHistory:
    """SQLite-backed store of the latest metrics snapshot per building set.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file, or ``':memory:'``.
    keep:
        Snapshots retained per building set; older rows are pruned.
    """

    def __init__(self, db_path: str | Path = ":memory:", *, keep: int = 30) -> None:
        self._db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._keep = keep

    @property
    def conn(self) -> sqlite3.Connection:
        """Lazy-initialise and return the database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA_SQL)
            self._conn.commit()
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def latest(self, building_ids: Iterable[str]) -> MetricsSnapshot | None:
        """Most recent snapshot for exactly this building set, or None."""
        row = self.conn.execute(
            "SELECT * FROM snapshots WHERE set_key = ? ORDER BY id DESC LIMIT 1",
            (building_set_key(building_ids),),
        ).fetchone()
        if row is None:
            return None
        return MetricsSnapshot(
            active_violations=row["active_violations"],
            pending_inspections=row["pending_inspections"],
            resolved_this_month=row["resolved_this_month"],
            outstanding_penalties=row["outstanding_penalties"],
            overall_score=row["overall_score"],
            taken_at=datetime.fromisoformat(row["taken_at"]),
        )

    def record(self, building_ids: Iterable[str], snapshot: MetricsSnapshot) -> None:
        key = building_set_key(building_ids)
        self.conn.execute(
            """\
            INSERT INTO snapshots (set_key, taken_at, active_violations,
                                   pending_inspections, resolved_this_month,
                                   outstanding_penalties, overall_score)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                key,
                snapshot.taken_at.isoformat(),
                snapshot.active_violations,
                snapshot.pending_inspections,
                snapshot.resolved_this_month,
                snapshot.outstanding_penalties,
                snapshot.overall_score,
            ),
        )
        self.conn.execute(
            """\
            DELETE FROM snapshots WHERE set_key = ? AND id NOT IN (
                SELECT id FROM snapshots WHERE set_key = ? ORDER BY id DESC LIMIT ?
            )
            """,
            (key, key, self._keep),
        )
        self.conn.commit()
        logger.debug("Recorded metrics snapshot for set %s", key[:12])

    def count(self, building_ids: Iterable[str]) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM snapshots WHERE set_key = ?",
            (building_set_key(building_ids),),
        ).fetchone()
        return row[0] if row else 0
