"""Map backend zone payloads into in-memory territories and residents."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from canvass.api.base import ZoneRepository
from canvass.detection.models import BuildingSource, DetectedBuilding
from canvass.geo.models import Point
from canvass.residents.models import Resident, ResidentStatus
from canvass.zones.models import Territory, TerritoryStatus
from canvass.zones.payloads import AgentZone

logger = logging.getLogger(__name__)

ACTOR = "loader"


class EditContext(BaseModel):
    """Everything needed to re-open a persisted zone for editing."""

    zone: AgentZone
    polygon: list[Point] = Field(default_factory=list)
    residents: list[Resident] = Field(default_factory=list)
    detected_buildings: list[DetectedBuilding] = Field(default_factory=list)


def territory_from_zone(
    zone: AgentZone,
    resident_ids: list[str] | None = None,
    fallback_id: str | None = None,
    fallback_polygon: list[Point] | None = None,
) -> Territory:
    now = datetime.now(timezone.utc)
    polygon = zone.polygon or list(fallback_polygon or [])
    return Territory(
        id=zone.id or fallback_id or f"zone-{int(now.timestamp() * 1000)}",
        name=zone.name or "Untitled Territory",
        description=zone.description or "",
        polygon=polygon,
        status=TerritoryStatus.parse(zone.status),
        assigned_to=zone.assigned_agent_name,
        assigned_date=zone.created_at,
        location=zone.location,
        residents=list(resident_ids or []),
        created_at=zone.created_at or now,
        updated_at=zone.updated_at or now,
    )


def parse_zone_listing(
    items: list[dict[str, Any]],
) -> tuple[list[Territory], list[Resident]]:
    """Territories (with at least three vertices) and their embedded residents."""
    territories: list[Territory] = []
    residents: list[Resident] = []
    for item in items:
        zone = AgentZone.model_validate(item)
        if len(zone.polygon) < 3:
            continue
        zone_residents = [
            r
            for r in (Resident.from_api(raw) for raw in item.get("residents") or [])
            if r is not None
        ]
        territories.append(territory_from_zone(zone, [r.id for r in zone_residents]))
        residents.extend(zone_residents)
    return territories, residents


def parse_map_view(
    properties: list[dict[str, Any]],
) -> tuple[list[Resident], list[DetectedBuilding]]:
    """Residents and building records for the properties of one zone."""
    residents: list[Resident] = []
    buildings: list[DetectedBuilding] = []
    for index, prop in enumerate(properties):
        coords = prop.get("coordinates")
        if not isinstance(coords, (list, tuple)) or len(coords) < 2:
            continue
        lng, lat = coords[0], coords[1]
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            continue

        address = prop.get("address")
        if not isinstance(address, str) or not address.strip():
            address = f"Property {prop.get('houseNumber') or index + 1}"
        prop_id = str(prop["_id"]) if prop.get("_id") else None

        residents.append(
            Resident(
                id=prop_id or f"property-{index}",
                name=address,
                address=address,
                latitude=float(lat),
                longitude=float(lng),
                status=ResidentStatus.parse(prop.get("status")),
            )
        )
        house_number = prop.get("houseNumber")
        buildings.append(
            DetectedBuilding(
                id=f"existing-{prop_id or index}",
                latitude=float(lat),
                longitude=float(lng),
                address=address,
                building_number=house_number if isinstance(house_number, int) else None,
                source=(
                    BuildingSource.SIMULATED
                    if prop.get("dataSource") == "MANUAL"
                    else BuildingSource.OSM
                ),
            )
        )
    return residents, buildings


async def load_for_edit(repository: ZoneRepository, zone_id: str) -> EditContext:
    """Fetch a zone and its properties.

    Raises:
        KeyError: If the zone does not exist (propagated from the repository).
    """
    zone = await repository.fetch_zone(zone_id)
    residents: list[Resident] = []
    buildings: list[DetectedBuilding] = []
    try:
        properties = await repository.fetch_map_view(zone_id)
        residents, buildings = parse_map_view(properties)
    except Exception as exc:
        # Properties only enrich the edit; the boundary is still editable.
        logger.warning("Failed to load existing properties for zone %r: %s", zone_id, exc)
    return EditContext(
        zone=zone,
        polygon=zone.polygon,
        residents=residents,
        detected_buildings=buildings,
    )
