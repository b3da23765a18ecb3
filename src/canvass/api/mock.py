"""In-memory zone backend for development and testing."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon

from canvass.geo.models import Point
from canvass.geo.polygon import from_geojson_polygon, normalize, to_geojson_polygon
from canvass.zones.locations import LocationOption
from canvass.zones.payloads import AgentZone, OverlapCheckResult, OverlappingZone


def _shape(points: Sequence[Point]) -> ShapelyPolygon:
    return ShapelyPolygon([(p.longitude, p.latitude) for p in normalize(points)])


class MockZoneApi:
    """Mock zone backend with fixture locations.

    Overlap is a true geometric intersection (shared edges do not count).
    Every call is appended to :attr:`calls` as ``(method, args)`` so tests
    can assert on what was sent.
    """

    def __init__(self) -> None:
        self._zones: dict[str, dict[str, Any]] = {}
        self._properties: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._areas: list[LocationOption] = []
        self._municipalities: list[LocationOption] = []
        self._communities: list[LocationOption] = []
        self._load_fixtures()

    def _load_fixtures(self) -> None:
        self._areas = [
            LocationOption(id="area-gta", name="Greater Toronto Area", type="area"),
            LocationOption(id="area-ott", name="Ottawa Region", type="area"),
        ]
        self._municipalities = [
            LocationOption(
                id="mun-tor", name="Toronto", type="municipality", area_id="area-gta"
            ),
            LocationOption(
                id="mun-mis", name="Mississauga", type="municipality", area_id="area-gta"
            ),
            LocationOption(
                id="mun-ott", name="Ottawa", type="municipality", area_id="area-ott"
            ),
        ]
        self._communities = [
            LocationOption(
                id="com-annex",
                name="The Annex",
                type="community",
                municipality_id="mun-tor",
                area_id="area-gta",
            ),
            LocationOption(
                id="com-leslieville",
                name="Leslieville",
                type="community",
                municipality_id="mun-tor",
                area_id="area-gta",
            ),
            LocationOption(
                id="com-glebe",
                name="The Glebe",
                type="community",
                municipality_id="mun-ott",
                area_id="area-ott",
            ),
        ]

    # -- seeding -------------------------------------------------------------

    def seed_zone(
        self,
        name: str,
        polygon: Sequence[Point],
        *,
        zone_id: str | None = None,
        properties: list[dict[str, Any]] | None = None,
        **extra: Any,
    ) -> AgentZone:
        """Register an existing zone, optionally with its properties."""
        zone_id = zone_id or f"zone-{uuid.uuid4().hex[:8]}"
        now = datetime.now(timezone.utc).isoformat()
        record = {
            "_id": zone_id,
            "name": name,
            "description": extra.pop("description", ""),
            "boundary": to_geojson_polygon(polygon),
            "status": extra.pop("status", "draft"),
            "createdAt": now,
            "updatedAt": now,
            **extra,
        }
        self._zones[zone_id] = record
        self._properties[zone_id] = list(properties or [])
        return AgentZone.model_validate(self._resolve(record))

    # -- OverlapChecker ------------------------------------------------------

    async def check_overlap(
        self, polygon: Sequence[Point], exclude_zone_id: str | None = None
    ) -> OverlapCheckResult:
        self.calls.append(("check_overlap", (list(polygon), exclude_zone_id)))
        candidate = _shape(polygon)
        overlapping: list[OverlappingZone] = []
        duplicates: list[str] = []
        for zone_id, record in self._zones.items():
            if zone_id == exclude_zone_id:
                continue
            existing = _shape(from_geojson_polygon(record["boundary"]))
            if candidate.intersects(existing) and not candidate.touches(existing):
                overlapping.append(OverlappingZone(name=record["name"]))
            for prop in self._properties.get(zone_id, []):
                lng, lat = prop["coordinates"][:2]
                if candidate.contains(ShapelyPoint(lng, lat)):
                    duplicates.append(prop.get("address", ""))
        return OverlapCheckResult(
            has_overlap=bool(overlapping),
            overlapping_zones=overlapping,
            duplicate_buildings=duplicates,
        )

    # -- ZoneRepository ------------------------------------------------------

    async def create_zone(self, payload: dict[str, Any]) -> AgentZone:
        self.calls.append(("create_zone", (payload,)))
        zone_id = f"zone-{uuid.uuid4().hex[:8]}"
        now = datetime.now(timezone.utc).isoformat()
        record = {
            **payload,
            "_id": zone_id,
            "status": "draft",
            "createdAt": now,
            "updatedAt": now,
        }
        self._zones[zone_id] = record
        self._properties[zone_id] = _properties_from_building_data(payload)
        return AgentZone.model_validate(self._resolve(record))

    async def update_zone(self, zone_id: str, payload: dict[str, Any]) -> AgentZone:
        self.calls.append(("update_zone", (zone_id, payload)))
        record = self._zones.get(zone_id)
        if record is None:
            raise KeyError(f"Zone {zone_id!r} not found")
        fields = {k: v for k, v in payload.items() if not k.startswith("is")}
        record.update(fields)
        record["updatedAt"] = datetime.now(timezone.utc).isoformat()
        if "buildingData" in payload:
            self._properties[zone_id] = _properties_from_building_data(payload)
        return AgentZone.model_validate(self._resolve(record))

    async def fetch_zone(self, zone_id: str) -> AgentZone:
        self.calls.append(("fetch_zone", (zone_id,)))
        record = self._zones.get(zone_id)
        if record is None:
            raise KeyError(f"Zone {zone_id!r} not found")
        return AgentZone.model_validate(self._resolve(record))

    async def list_zones(self) -> list[dict[str, Any]]:
        self.calls.append(("list_zones", ()))
        zones = []
        for zone_id, record in self._zones.items():
            zones.append({**self._resolve(record), "residents": self._properties[zone_id]})
        return zones

    async def fetch_map_view(self, zone_id: str) -> list[dict[str, Any]]:
        self.calls.append(("fetch_map_view", (zone_id,)))
        return list(self._properties.get(zone_id, []))

    # -- LocationDirectory ---------------------------------------------------

    async def list_areas(self) -> list[LocationOption]:
        return list(self._areas)

    async def list_municipalities(self, area_id: str) -> list[LocationOption]:
        return [m for m in self._municipalities if m.area_id == area_id]

    async def list_communities(self, municipality_id: str) -> list[LocationOption]:
        return [c for c in self._communities if c.municipality_id == municipality_id]

    # -- internal ------------------------------------------------------------

    def _resolve(self, record: dict[str, Any]) -> dict[str, Any]:
        """Populate hierarchy ids with names, as the real backend does."""
        resolved = dict(record)
        for key, options in (
            ("areaId", self._areas),
            ("municipalityId", self._municipalities),
            ("communityId", self._communities),
        ):
            ref_id = record.get(key)
            if isinstance(ref_id, str):
                match = next((o for o in options if o.id == ref_id), None)
                resolved[key] = {"_id": ref_id, "name": match.name if match else ""}
        return resolved


def _properties_from_building_data(payload: dict[str, Any]) -> list[dict[str, Any]]:
    data = payload.get("buildingData") or {}
    addresses = data.get("addresses") or []
    coordinates = data.get("coordinates") or []
    return [
        {
            "_id": f"prop-{uuid.uuid4().hex[:8]}",
            "address": address,
            "coordinates": coords,
            "status": "not-visited",
        }
        for address, coords in zip(addresses, coordinates)
    ]
