"""Zone backend collaborators: protocols, HTTP client and in-memory mock."""

from canvass.api.base import LocationDirectory, OverlapChecker, ZoneRepository
from canvass.api.client import ZoneApiClient
from canvass.api.mock import MockZoneApi

__all__ = [
    "LocationDirectory",
    "MockZoneApi",
    "OverlapChecker",
    "ZoneApiClient",
    "ZoneRepository",
]
