"""Tests for mapping backend zones into territories and edit contexts."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from canvass.api.mock import MockZoneApi
from canvass.detection.models import BuildingSource
from canvass.draft.loader import (
    load_for_edit,
    parse_map_view,
    parse_zone_listing,
    territory_from_zone,
)
from canvass.residents.models import ResidentStatus
from canvass.zones.models import TerritoryStatus
from canvass.zones.payloads import AgentZone
from tests.conftest import UNIT_SQUARE, pt

CLOSED_UNIT_RING = [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]


def _zone_item(**overrides):
    item = {
        "_id": "zone-1",
        "name": "North",
        "boundary": {"type": "Polygon", "coordinates": [CLOSED_UNIT_RING]},
        "status": "active",
        "createdAt": "2024-05-01T12:00:00Z",
        "updatedAt": "2024-05-02T12:00:00Z",
    }
    item.update(overrides)
    return item


class TestTerritoryFromZone:
    def test_maps_fields(self):
        zone = AgentZone.model_validate(
            _zone_item(assignedAgentId={"_id": "a1", "name": "Sam"})
        )
        territory = territory_from_zone(zone, ["r1"])
        assert territory.id == "zone-1"
        assert territory.polygon == UNIT_SQUARE
        assert territory.status is TerritoryStatus.ACTIVE
        assert territory.assigned_to == "Sam"
        assert territory.assigned_date == zone.created_at
        assert territory.residents == ["r1"]

    def test_fallbacks(self):
        zone = AgentZone.model_validate({"status": "weird"})
        territory = territory_from_zone(
            zone, fallback_id="zone-9", fallback_polygon=UNIT_SQUARE
        )
        assert territory.id == "zone-9"
        assert territory.name == "Untitled Territory"
        assert territory.status is TerritoryStatus.DRAFT
        assert territory.polygon == UNIT_SQUARE


class TestParseZoneListing:
    def test_skips_degenerate_boundaries(self):
        items = [
            _zone_item(
                residents=[
                    {"_id": "r1", "lat": 0.5, "lng": 0.5, "address": "1 Centre St"},
                    {"_id": "r-bad", "address": "no coordinates"},
                ]
            ),
            _zone_item(
                _id="zone-2",
                boundary={"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [0, 0]]]},
            ),
        ]
        territories, residents = parse_zone_listing(items)
        assert [t.id for t in territories] == ["zone-1"]
        assert territories[0].residents == ["r1"]
        assert [r.id for r in residents] == ["r1"]


class TestParseMapView:
    def test_properties_become_residents_and_buildings(self):
        residents, buildings = parse_map_view(
            [
                {
                    "_id": "p1",
                    "address": "1 Centre St",
                    "coordinates": [-79.4, 43.6],
                    "status": "callback",
                    "houseNumber": 1,
                },
                {"_id": "p2", "address": "", "coordinates": [-79.5, 43.7], "dataSource": "MANUAL"},
                {"_id": "p3", "coordinates": "broken"},
            ]
        )
        assert [r.id for r in residents] == ["p1", "p2"]
        assert residents[0].point == pt(43.6, -79.4)
        assert residents[0].status is ResidentStatus.CALLBACK
        assert residents[1].address == "Property 2"

        assert [b.id for b in buildings] == ["existing-p1", "existing-p2"]
        assert buildings[0].building_number == 1
        assert buildings[0].source is BuildingSource.OSM
        assert buildings[1].source is BuildingSource.SIMULATED

    def test_missing_ids(self):
        residents, buildings = parse_map_view([{"coordinates": [1, 2]}])
        assert residents[0].id == "property-0"
        assert buildings[0].id == "existing-0"


class TestLoadForEdit:
    @pytest.mark.asyncio
    async def test_loads_zone_and_properties(self):
        api = MockZoneApi()
        api.seed_zone(
            "North",
            UNIT_SQUARE,
            zone_id="zone-1",
            properties=[{"_id": "p1", "address": "1 Centre St", "coordinates": [0.5, 0.5]}],
        )
        context = await load_for_edit(api, "zone-1")
        assert context.zone.name == "North"
        assert context.polygon == UNIT_SQUARE
        assert [r.id for r in context.residents] == ["p1"]

    @pytest.mark.asyncio
    async def test_property_failure_is_tolerated(self, caplog):
        api = MockZoneApi()
        api.seed_zone("North", UNIT_SQUARE, zone_id="zone-1")
        api.fetch_map_view = AsyncMock(side_effect=RuntimeError("map view down"))

        context = await load_for_edit(api, "zone-1")

        assert context.polygon == UNIT_SQUARE
        assert context.residents == []
        assert "map view down" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_zone_raises(self):
        with pytest.raises(KeyError):
            await load_for_edit(MockZoneApi(), "zone-404")
