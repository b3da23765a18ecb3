"""Building detection backed by OpenStreetMap (Overpass) and reverse geocoding.

OSM and geocoding failures are never fatal: missing real buildings are
filled with simulated ones spread randomly inside the polygon, and a
warning says so.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from collections.abc import Sequence
from typing import Any

import httpx

from canvass.core.config import DetectionConfig
from canvass.detection.models import BuildingSource, DetectedBuilding, DetectionResult
from canvass.geo.models import BoundingBox, Point
from canvass.geo.polygon import bounding_box, normalize, point_in_polygon, polygon_area_m2

logger = logging.getLogger(__name__)

NO_API_KEY_WARNING = "Google Maps API key not configured. Using coordinates as addresses."
NO_REAL_DATA_WARNING = (
    "Unable to fetch real building data. "
    "Generated simulated buildings to approximate the area."
)
LIMITED_REAL_DATA_WARNING = (
    "Limited real building data available. "
    "Added simulated buildings to approximate the area."
)

_HOUSE_NUMBER = re.compile(r"^(\d+)\D?")


def _overpass_query(bbox: BoundingBox) -> str:
    box = f"{bbox.min_lat},{bbox.min_lng},{bbox.max_lat},{bbox.max_lng}"
    return (
        "[out:json];("
        f'way["building"]({box});'
        f'relation["building"]({box});'
        f'node["building"]({box});'
        ");out center;"
    )


def _element_point(element: dict[str, Any]) -> Point | None:
    """Position of an Overpass element: node coords, way center, or first vertex."""
    candidates = [element, element.get("center") or {}]
    geometry = element.get("geometry")
    if isinstance(geometry, list) and geometry:
        candidates.append(geometry[0] or {})
    for candidate in candidates:
        lat, lon = candidate.get("lat"), candidate.get("lon")
        if isinstance(lat, (int, float)) and isinstance(lon, (int, float)):
            return Point(latitude=float(lat), longitude=float(lon))
    return None


def _coordinate_address(point: Point) -> str:
    return f"Building at {point.latitude:.6f}, {point.longitude:.6f}"


class OverpassBuildingDetector:
    """Detects buildings from OSM, names them via the Google geocoding API."""

    def __init__(
        self,
        config: DetectionConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self._rng = rng or random.Random()
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout_seconds))

    async def close(self) -> None:
        await self._http.aclose()

    def target_count(self, polygon: Sequence[Point]) -> int:
        """How many buildings a polygon of this size should yield."""
        estimate = round(polygon_area_m2(polygon) / self.config.square_meters_per_building)
        return max(self.config.min_buildings, min(self.config.max_buildings, estimate))

    async def detect(self, polygon: Sequence[Point]) -> DetectionResult:
        ring = normalize(polygon)
        if len(ring) < 3:
            return DetectionResult()

        warnings: list[str] = []
        target = self.target_count(ring)
        bbox = bounding_box(ring)

        osm_points = await self._fetch_osm_buildings(ring, bbox)
        buildings: list[DetectedBuilding] = []
        for osm_id, point in osm_points:
            address, number, warning = await self._reverse_geocode(point)
            if warning and warning not in warnings:
                warnings.append(warning)
            buildings.append(
                DetectedBuilding(
                    id=f"osm-{osm_id}",
                    latitude=point.latitude,
                    longitude=point.longitude,
                    address=address,
                    building_number=number,
                    source=BuildingSource.OSM,
                )
            )
            if len(buildings) >= target:
                break

        simulated = self._simulate(ring, bbox, target - len(buildings))
        if simulated:
            buildings.extend(simulated)
            warnings.append(
                LIMITED_REAL_DATA_WARNING if osm_points else NO_REAL_DATA_WARNING
            )

        return DetectionResult(buildings=buildings, warnings=warnings)

    # -- OSM -----------------------------------------------------------------

    async def _fetch_osm_buildings(
        self, ring: list[Point], bbox: BoundingBox
    ) -> list[tuple[str, Point]]:
        try:
            resp = await self._get_with_retry(
                self.config.overpass_url, params={"data": _overpass_query(bbox)}
            )
        except httpx.HTTPError as exc:
            logger.warning("Overpass request failed: %s", exc)
            return []

        if resp.status_code != 200:
            logger.warning("Overpass returned %d, skipping OSM buildings", resp.status_code)
            return []
        try:
            elements = resp.json().get("elements")
        except ValueError:
            logger.warning("Overpass returned a non-JSON body")
            return []
        if not isinstance(elements, list):
            logger.warning("Overpass response is missing its elements array")
            return []

        found: list[tuple[str, Point]] = []
        for element in elements:
            if not isinstance(element, dict):
                continue
            point = _element_point(element)
            if point is not None and point_in_polygon(point, ring):
                found.append((str(element.get("id")), point))
        logger.info("Found %d OSM buildings inside the polygon", len(found))
        return found

    # -- geocoding -----------------------------------------------------------

    async def _reverse_geocode(self, point: Point) -> tuple[str, int | None, str | None]:
        if not self.config.google_api_key:
            return _coordinate_address(point), None, NO_API_KEY_WARNING

        params = {
            "latlng": f"{point.latitude},{point.longitude}",
            "key": self.config.google_api_key,
        }
        try:
            resp = await self._get_with_retry(self.config.geocode_url, params=params)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Reverse geocoding failed for %s: %s", point, exc)
            return _coordinate_address(point), None, None

        results = data.get("results") if isinstance(data, dict) else None
        if results and data.get("status") == "OK":
            address = results[0].get("formatted_address") or _coordinate_address(point)
            match = _HOUSE_NUMBER.match(address)
            return address, int(match.group(1)) if match else None, None
        return _coordinate_address(point), None, None

    # -- simulation ----------------------------------------------------------

    def _simulate(
        self, ring: list[Point], bbox: BoundingBox, missing: int
    ) -> list[DetectedBuilding]:
        simulated: list[DetectedBuilding] = []
        stamp = int(time.time() * 1000)
        for i in range(max(0, missing)):
            point = self._random_point_inside(ring, bbox)
            if point is None:
                break
            simulated.append(
                DetectedBuilding(
                    id=f"sim-{stamp}-{i}",
                    latitude=point.latitude,
                    longitude=point.longitude,
                    address=(
                        f"Simulated building near "
                        f"{point.latitude:.6f}, {point.longitude:.6f}"
                    ),
                    source=BuildingSource.SIMULATED,
                )
            )
        return simulated

    def _random_point_inside(self, ring: list[Point], bbox: BoundingBox) -> Point | None:
        for _ in range(30):
            point = Point(
                latitude=self._rng.uniform(bbox.min_lat, bbox.max_lat),
                longitude=self._rng.uniform(bbox.min_lng, bbox.max_lng),
            )
            if point_in_polygon(point, ring):
                return point
        return None

    # -- internal ------------------------------------------------------------

    async def _get_with_retry(self, url: str, **kwargs: Any) -> httpx.Response:
        last_exc: Exception | None = None
        for attempt in range(self.config.max_retries + 1):
            try:
                return await self._http.get(url, **kwargs)
            except httpx.TransportError as exc:
                last_exc = exc
                if attempt < self.config.max_retries:
                    await asyncio.sleep(2**attempt * 0.5)
                    continue
                raise
        raise last_exc  # type: ignore[misc]
