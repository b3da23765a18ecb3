"""Territory data models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from canvass.detection.models import DetectedBuilding
from canvass.geo.models import Point
from canvass.residents.models import Resident


class WorkflowStep(StrEnum):
    """Which part of the capture workflow the agent is in."""

    DRAWING = "drawing"
    SAVING = "saving"


class TerritoryStatus(StrEnum):
    DRAFT = "draft"
    ASSIGNED = "assigned"
    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def parse(cls, value: Any) -> TerritoryStatus:
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.DRAFT


class LocationRef(BaseModel):
    """A node of the area/municipality/community hierarchy."""

    id: str = ""
    name: str = ""

    @classmethod
    def parse(cls, value: Any) -> LocationRef:
        """Accept either a bare id or a populated ``{_id, name}`` object."""
        if isinstance(value, str):
            return cls(id=value)
        if isinstance(value, dict):
            ref_id = value.get("_id") or value.get("id") or ""
            return cls(id=str(ref_id), name=value.get("name") or "")
        return cls()


class LocationSelection(BaseModel):
    """The agent's area/municipality/community choice."""

    area: LocationRef = Field(default_factory=LocationRef)
    municipality: LocationRef = Field(default_factory=LocationRef)
    community: LocationRef = Field(default_factory=LocationRef)

    @property
    def is_complete(self) -> bool:
        return bool(self.area.id and self.municipality.id and self.community.id)

    def same_ids(self, other: LocationSelection) -> bool:
        return (
            self.area.id == other.area.id
            and self.municipality.id == other.municipality.id
            and self.community.id == other.community.id
        )


class PendingTerritory(BaseModel):
    """A validated, not yet persisted drawing. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    polygon: list[Point]
    residents: list[Resident] = Field(default_factory=list)
    duplicate_addresses: list[str] = Field(default_factory=list)
    detected_buildings: list[DetectedBuilding] = Field(default_factory=list)


class Territory(BaseModel):
    """A persisted territory as held in memory."""

    id: str
    name: str
    description: str = ""
    polygon: list[Point] = Field(default_factory=list)
    status: TerritoryStatus = TerritoryStatus.DRAFT
    assigned_to: str | None = None
    assigned_date: datetime | None = None
    location: LocationSelection = Field(default_factory=LocationSelection)
    residents: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
