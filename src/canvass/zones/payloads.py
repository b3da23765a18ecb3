"""Wire-level models for the zone backend.

Boundaries travel as GeoJSON polygons with ``[longitude, latitude]`` pairs;
everything in memory uses :class:`~canvass.geo.models.Point`. The axis swap
happens only in this module and in :mod:`canvass.geo.polygon`.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from canvass.detection.models import DetectedBuilding
from canvass.geo.models import Point
from canvass.geo.polygon import from_geojson_polygon, normalize, to_geojson_polygon
from canvass.zones.models import LocationRef, LocationSelection


class UpdateHint(StrEnum):
    """Tells the backend which subset of a zone changed."""

    BOUNDARY_ONLY = "isBoundaryUpdateOnly"
    NAME_DESCRIPTION_ONLY = "isNameDescriptionUpdateOnly"


class OverlappingZone(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None


class OverlapCheckResult(BaseModel):
    """Response of the overlap/duplicate check."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_overlap: bool = Field(default=False, alias="hasOverlap")
    overlapping_zones: list[OverlappingZone] = Field(
        default_factory=list, alias="overlappingZones"
    )
    duplicate_buildings: list[str] = Field(
        default_factory=list, alias="duplicateBuildings"
    )

    @field_validator("overlapping_zones", "duplicate_buildings", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    @property
    def zone_names(self) -> list[str]:
        return [zone.name for zone in self.overlapping_zones if zone.name]


class AgentZone(BaseModel):
    """A zone as returned by the backend."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default="", alias="_id")
    name: str = ""
    description: str | None = None
    boundary: dict[str, Any] | None = None
    building_data: dict[str, Any] | None = Field(default=None, alias="buildingData")
    status: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    area: LocationRef = Field(default_factory=LocationRef, alias="areaId")
    municipality: LocationRef = Field(default_factory=LocationRef, alias="municipalityId")
    community: LocationRef = Field(default_factory=LocationRef, alias="communityId")
    assigned_agent: dict[str, Any] | None = Field(default=None, alias="assignedAgentId")

    @field_validator("area", "municipality", "community", mode="before")
    @classmethod
    def _parse_location(cls, value: Any) -> LocationRef:
        if isinstance(value, LocationRef):
            return value
        return LocationRef.parse(value)

    @field_validator("assigned_agent", mode="before")
    @classmethod
    def _parse_agent(cls, value: Any) -> dict[str, Any] | None:
        if isinstance(value, str):
            return {"_id": value}
        return value if isinstance(value, dict) else None

    @property
    def boundary_ring(self) -> list[Point]:
        """Boundary as sent by the server, closing point included."""
        return from_geojson_polygon(self.boundary)

    @property
    def polygon(self) -> list[Point]:
        """Canonical (open) boundary."""
        return normalize(self.boundary_ring)

    @property
    def location(self) -> LocationSelection:
        return LocationSelection(
            area=self.area, municipality=self.municipality, community=self.community
        )

    @property
    def assigned_agent_name(self) -> str | None:
        if self.assigned_agent:
            return self.assigned_agent.get("name")
        return None


def building_data(buildings: Sequence[DetectedBuilding]) -> dict[str, Any] | None:
    """``buildingData`` sub-object, or None when no building has an address."""
    addresses = list(dict.fromkeys(b.address for b in buildings if b.address))
    if not addresses:
        return None
    return {
        "addresses": addresses,
        "coordinates": [b.point.to_lnglat() for b in buildings],
    }


def build_overlap_request(
    polygon: Sequence[Point], exclude_zone_id: str | None = None
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "boundary": to_geojson_polygon(polygon),
        "buildingData": {"addresses": [], "coordinates": []},
    }
    if exclude_zone_id:
        payload["excludeZoneId"] = exclude_zone_id
    return payload


class ZonePayloadBuilder:
    """Builds create/update bodies, attaching optional parts only when valid.

    Usage::

        body = (
            ZonePayloadBuilder("North", "", polygon, selection)
            .with_buildings(buildings)
            .with_hint(UpdateHint.BOUNDARY_ONLY)
            .build()
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        polygon: Sequence[Point],
        location: LocationSelection,
    ) -> None:
        if len(normalize(polygon)) < 3:
            raise ValueError("A zone boundary needs at least three points")
        self._name = name.strip()
        self._description = description.strip()
        self._boundary = to_geojson_polygon(normalize(polygon))
        self._location = location
        self._building_data: dict[str, Any] | None = None
        self._hint: UpdateHint | None = None

    @property
    def boundary(self) -> dict[str, Any]:
        return self._boundary

    def with_buildings(self, buildings: Sequence[DetectedBuilding]) -> ZonePayloadBuilder:
        self._building_data = building_data(buildings)
        return self

    def with_hint(self, hint: UpdateHint | None) -> ZonePayloadBuilder:
        self._hint = hint
        return self

    def build(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self._name,
            "description": self._description,
            "boundary": self._boundary,
        }
        if self._building_data is not None:
            payload["buildingData"] = self._building_data
        for key, ref in (
            ("areaId", self._location.area),
            ("municipalityId", self._location.municipality),
            ("communityId", self._location.community),
        ):
            if ref.id:
                payload[key] = ref.id
        if self._hint is not None:
            payload[self._hint.value] = True
        return payload
