"""Source adapters: one per regulatory domain, plus the open-data client."""

from fieldcomply.sources.base import RecordClient, SourceAdapter, SourceResult
from fieldcomply.sources.emissions import EmissionsAdapter
from fieldcomply.sources.housing import HousingViolationsAdapter
from fieldcomply.sources.permits import PermitsAdapter
from fieldcomply.sources.sanitation import SanitationAdapter
from fieldcomply.sources.socrata import SocrataClient

__all__ = [
    "EmissionsAdapter",
    "HousingViolationsAdapter",
    "PermitsAdapter",
    "RecordClient",
    "SanitationAdapter",
    "SocrataClient",
    "SourceAdapter",
    "SourceResult",
]
