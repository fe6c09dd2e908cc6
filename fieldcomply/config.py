"""Global configuration: scoring tables, cache TTLs, source endpoints, settings."""

from __future__ import annotations

import logging
import os
import sys
from datetime import time
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Weight of a single open issue, by severity
SEVERITY_WEIGHTS: dict[str, float] = {
    "CRITICAL": 4.0,
    "HIGH": 2.0,
    "MEDIUM": 1.0,
    "LOW": 0.5,
}

# Weighted open severity at which a category bottoms out at 0.0.
# Categories see very different issue volumes, so each has its own ceiling.
CATEGORY_MAX_SEVERITY: dict[str, float] = {
    "HOUSING": 20.0,
    "FIRE": 12.0,
    "PERMIT": 10.0,
    "SANITATION": 8.0,
    "EMISSIONS": 8.0,
    "WATER": 8.0,
}

# Contribution of each category to the overall score (re-normalised over
# whichever categories are actually scored)
CATEGORY_WEIGHTS: dict[str, float] = {
    "HOUSING": 0.30,
    "FIRE": 0.25,
    "PERMIT": 0.15,
    "EMISSIONS": 0.15,
    "SANITATION": 0.10,
    "WATER": 0.05,
}

COMPLIANT_THRESHOLD = 0.9
WARNING_THRESHOLD = 0.7

# Letter grades on the 0-100 scale, highest first
LETTER_GRADES: tuple[tuple[float, str], ...] = (
    (95.0, "A+"),
    (90.0, "A"),
    (85.0, "A-"),
    (80.0, "B+"),
    (75.0, "B"),
    (70.0, "B-"),
    (65.0, "C+"),
    (60.0, "C"),
    (55.0, "C-"),
    (50.0, "D"),
)

DEADLINE_HORIZON_DAYS = 30
RECENT_VIOLATIONS_LIMIT = 10
RECENT_PERMIT_DAYS = 30
TREND_MONTHS = 12

# Seconds a FRESH cache entry stays valid, per category
CACHE_TTL_SECONDS: dict[str, float] = {
    "HOUSING": 30 * 60.0,
    "PERMIT": 30 * 60.0,
    "SANITATION": 24 * 60 * 60.0,
    "EMISSIONS": 24 * 60 * 60.0,
    "FIRE": 30 * 60.0,
    "WATER": 60 * 60.0,
}
DEFAULT_CACHE_TTL_SECONDS = 15 * 60.0

ADAPTER_TIMEOUT_SECONDS = 20.0

# Curbside set-out deadline used when projecting collection windows
COLLECTION_TIME = time(6, 0)

DEFAULT_TIMEZONE = "America/New_York"

# Local Law 97 penalty, dollars per tCO2e above the building limit
LL97_PENALTY_PER_TON = 268.0
# Default 2024-2029 emissions intensity limit, tCO2e per square foot
LL97_DEFAULT_INTENSITY_LIMIT = 0.00675
# Annual LL97 report due date (month, day) for the previous calendar year
LL97_FILING_DUE = (5, 1)

# NYC Open Data (Socrata) datasets
SOCRATA_BASE_URL = "https://data.cityofnewyork.us/resource"
HPD_VIOLATIONS_DATASET = "wvxf-dwi5"
DOB_PERMITS_DATASET = "ic3t-wcy2"
DSNY_ROUTES_DATASET = "rv63-53db"
OATH_HEARINGS_DATASET = "jz4z-kudi"
LL97_EMISSIONS_DATASET = "8vys-2eex"
SOCRATA_PAGE_LIMIT = 1000

# Environment variables read by EngineSettings.from_env
_ENV_KEYS: dict[str, str] = {
    "FIELDCOMPLY_LOG_LEVEL": "log_level",
    "FIELDCOMPLY_DEADLINE_HORIZON_DAYS": "deadline_horizon_days",
    "FIELDCOMPLY_ADAPTER_TIMEOUT": "adapter_timeout_seconds",
    "FIELDCOMPLY_SOCRATA_APP_TOKEN": "socrata_app_token",
    "FIELDCOMPLY_SOCRATA_BASE_URL": "socrata_base_url",
    "FIELDCOMPLY_HISTORY_DB": "history_db",
    "FIELDCOMPLY_TIMEZONE": "timezone",
}


class EngineSettings(BaseModel):
    """Tunables for one engine instance.

    Every table defaults to a copy of the module-level constant, so two
    engines never share mutable configuration.
    """

    severity_weights: dict[str, float] = Field(default_factory=lambda: dict(SEVERITY_WEIGHTS))
    category_max_severity: dict[str, float] = Field(
        default_factory=lambda: dict(CATEGORY_MAX_SEVERITY)
    )
    category_weights: dict[str, float] = Field(default_factory=lambda: dict(CATEGORY_WEIGHTS))
    compliant_threshold: float = COMPLIANT_THRESHOLD
    warning_threshold: float = WARNING_THRESHOLD

    deadline_horizon_days: int = DEADLINE_HORIZON_DAYS
    """Deadlines due within this many days are flagged critical."""

    recent_violations_limit: int = RECENT_VIOLATIONS_LIMIT
    cache_ttl_seconds: dict[str, float] = Field(default_factory=lambda: dict(CACHE_TTL_SECONDS))
    default_cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS

    adapter_timeout_seconds: float = ADAPTER_TIMEOUT_SECONDS
    """Independent timeout applied to every adapter call."""

    collection_time: time = COLLECTION_TIME
    timezone: str = DEFAULT_TIMEZONE
    ll97_intensity_limit: float = LL97_DEFAULT_INTENSITY_LIMIT
    ll97_penalty_per_ton: float = LL97_PENALTY_PER_TON

    socrata_base_url: str = SOCRATA_BASE_URL
    socrata_app_token: str = ""
    history_db: str = ":memory:"
    log_level: str = "INFO"

    def ttl_for(self, category: str) -> float:
        """Return the cache TTL in seconds for *category*."""
        return self.cache_ttl_seconds.get(category, self.default_cache_ttl_seconds)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineSettings:
        """Build settings from defaults overlaid with ``FIELDCOMPLY_*`` variables.

        Malformed values are ignored with a warning and the default kept.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        overrides: dict[str, Any] = {}

        for key, field_name in _ENV_KEYS.items():
            raw = env.get(key)
            if raw is None or raw == "":
                continue
            current = getattr(defaults, field_name)
            try:
                if isinstance(current, int):
                    value: Any = int(raw)
                elif isinstance(current, float):
                    value = float(raw)
                else:
                    value = raw.strip()
            except ValueError:
                logger.warning("Ignoring malformed %s=%r", key, raw)
                continue
            overrides[field_name] = value

        return cls(**overrides)


def set_log_level(level: str | int) -> logging.Logger:
    """Set the level of the ``fieldcomply`` logger without touching handlers.

    Level names are case-insensitive. An unknown name is ignored with a
    warning and the current level kept.
    """
    pkg_logger = logging.getLogger("fieldcomply")
    if isinstance(level, str):
        level = level.strip().upper()
    try:
        pkg_logger.setLevel(level)
    except (ValueError, TypeError):
        logger.warning("Ignoring unknown log level %r", level)
    return pkg_logger


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a single stream handler to the ``fieldcomply`` logger.

    Safe to call repeatedly; existing handlers installed here are replaced.
    The root logger is left alone.
    """
    pkg_logger = set_log_level(level)

    for handler in list(pkg_logger.handlers):
        if getattr(handler, "_fieldcomply", False):
            pkg_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler._fieldcomply = True  # type: ignore[attr-defined]
    pkg_logger.addHandler(handler)
    return pkg_logger
