"""Building detection protocol, mock and factory."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from canvass.core.config import DetectionConfig
from canvass.detection.models import BuildingSource, DetectedBuilding, DetectionResult
from canvass.geo.models import Point
from canvass.geo.polygon import normalize, point_in_polygon


@runtime_checkable
class BuildingDetector(Protocol):
    """Proposes addressable structures inside a polygon. Best effort."""

    async def detect(self, polygon: Sequence[Point]) -> DetectionResult: ...


class MockBuildingDetector:
    """Mock detector with fixture buildings around downtown Toronto."""

    def __init__(
        self,
        buildings: Iterable[DetectedBuilding] | None = None,
        warnings: Iterable[str] = (),
    ) -> None:
        self._buildings: list[DetectedBuilding] = []
        self._warnings = list(warnings)
        self.requests: list[list[Point]] = []
        if buildings is None:
            self._load_fixtures()
        else:
            self._buildings = list(buildings)

    def _load_fixtures(self) -> None:
        self._buildings = [
            DetectedBuilding(
                id="osm-1001",
                latitude=43.6545,
                longitude=-79.3840,
                address="12 Queen St W, Toronto, ON",
                building_number=12,
                source=BuildingSource.OSM,
            ),
            DetectedBuilding(
                id="osm-1002",
                latitude=43.6551,
                longitude=-79.3825,
                address="40 Bay St, Toronto, ON",
                building_number=40,
                source=BuildingSource.OSM,
            ),
            DetectedBuilding(
                id="osm-1003",
                latitude=43.6528,
                longitude=-79.3811,
                address="7 King St E, Toronto, ON",
                building_number=7,
                source=BuildingSource.OSM,
            ),
        ]

    def add_building(self, building: DetectedBuilding) -> None:
        self._buildings.append(building)

    async def detect(self, polygon: Sequence[Point]) -> DetectionResult:
        ring = normalize(polygon)
        self.requests.append(ring)
        if len(ring) < 3:
            return DetectionResult()
        inside = [b for b in self._buildings if point_in_polygon(b.point, ring)]
        return DetectionResult(buildings=inside, warnings=list(self._warnings))


def create_building_detector(config: DetectionConfig | None = None) -> BuildingDetector:
    """Factory: select and instantiate a detector based on config.provider."""

    config = config or DetectionConfig()
    provider = config.provider.lower()
    if provider == "mock":
        return MockBuildingDetector()
    if provider == "overpass":
        from canvass.detection.overpass import OverpassBuildingDetector

        return OverpassBuildingDetector(config)
    raise ValueError(
        f"Unknown building detection provider {config.provider!r}. "
        "Available: mock, overpass"
    )
