"""Building detection data models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from canvass.geo.models import Point
from canvass.residents.models import Resident, ResidentStatus


class BuildingSource(StrEnum):
    """Where a detected building came from."""

    OSM = "osm"
    SIMULATED = "simulated"


class DetectedBuilding(BaseModel):
    """A candidate addressable structure inside a polygon."""

    id: str
    latitude: float
    longitude: float
    address: str
    building_number: int | None = None
    source: BuildingSource = BuildingSource.OSM

    @property
    def point(self) -> Point:
        return Point(latitude=self.latitude, longitude=self.longitude)

    def to_resident(self) -> Resident:
        return Resident(
            id=self.id,
            name=self.address,
            address=self.address,
            latitude=self.latitude,
            longitude=self.longitude,
            status=ResidentStatus.NOT_VISITED,
        )


class DetectionResult(BaseModel):
    """Buildings found for a polygon plus non-fatal warnings."""

    buildings: list[DetectedBuilding] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
