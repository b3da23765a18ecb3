"""Resident (addressable property) models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from canvass.geo.models import Point


class ResidentStatus(StrEnum):
    NOT_VISITED = "not-visited"
    INTERESTED = "interested"
    VISITED = "visited"
    CALLBACK = "callback"
    APPOINTMENT = "appointment"
    FOLLOW_UP = "follow-up"
    NOT_INTERESTED = "not-interested"
    NOT_OPENED = "not-opened"

    @classmethod
    def parse(cls, value: Any) -> ResidentStatus:
        """Lenient parse for backend payloads; unknown values become not-visited."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.NOT_VISITED


class Resident(BaseModel):
    """One addressable property known to the agent."""

    id: str
    name: str = ""
    address: str
    latitude: float
    longitude: float
    status: ResidentStatus = ResidentStatus.NOT_VISITED
    phone: str | None = None
    email: str | None = None
    notes: str | None = None
    last_visited: datetime | None = None

    @property
    def point(self) -> Point:
        return Point(latitude=self.latitude, longitude=self.longitude)

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> Resident | None:
        """Map a backend resident/property payload.

        Accepts ``lat``/``lng``, ``latitude``/``longitude`` or a GeoJSON-style
        ``coordinates: [lng, lat]`` pair. Returns None when no usable
        latitude is present.
        """
        if not data:
            return None

        coords = data.get("coordinates")
        has_pair = isinstance(coords, (list, tuple)) and len(coords) >= 2
        lat = _first_number(
            data.get("lat"), data.get("latitude"), coords[1] if has_pair else None
        )
        lng = _first_number(
            data.get("lng"), data.get("longitude"), coords[0] if has_pair else None
        )
        if lat is None or lng is None:
            return None

        address = (
            data.get("address")
            or data.get("formattedAddress")
            or f"{lat:.4f}, {lng:.4f}"
        )
        return cls(
            id=str(data.get("_id") or data.get("id") or f"{lat}-{lng}"),
            name=data.get("name") or f"Resident at {lat:.4f}, {lng:.4f}",
            address=address,
            latitude=lat,
            longitude=lng,
            status=ResidentStatus.parse(data.get("status")),
            phone=data.get("phone"),
            email=data.get("email"),
            notes=data.get("notes"),
            last_visited=data.get("lastVisited"),
        )


def _first_number(*candidates: Any) -> float | None:
    for value in candidates:
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value == value:
            return float(value)
    return None
