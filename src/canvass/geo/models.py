"""Geometry data models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Point(BaseModel):
    """A map coordinate in degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    def to_lnglat(self) -> list[float]:
        return [self.longitude, self.latitude]


class BoundingBox(BaseModel):
    """Axis-aligned bounds of a set of points."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, point: Point) -> bool:
        return (
            self.min_lat <= point.latitude <= self.max_lat
            and self.min_lng <= point.longitude <= self.max_lng
        )
