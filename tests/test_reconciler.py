"""Tests for create/update reconciliation against the in-memory backend."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from canvass.api.mock import MockZoneApi
from canvass.draft.reconciler import SAVE_FAILED, ChangeSet, PersistenceReconciler
from canvass.zones.models import LocationRef, LocationSelection, WorkflowStep
from canvass.zones.payloads import UpdateHint
from tests.conftest import UNIT_SQUARE, draw, pt

CLOSED_UNIT_RING = [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]

ANNEX = LocationSelection(
    area=LocationRef(id="area-gta"),
    municipality=LocationRef(id="mun-tor"),
    community=LocationRef(id="com-annex"),
)


@pytest.fixture
def api():
    return MockZoneApi()


@pytest.fixture
def reconciler(api, residents, territories):
    return PersistenceReconciler(api, residents, territories)


@pytest.fixture
def seeded_zone(api):
    return api.seed_zone(
        "A",
        UNIT_SQUARE,
        zone_id="zone-1",
        description="Original",
        areaId="area-gta",
        municipalityId="mun-tor",
        communityId="com-annex",
        properties=[
            {
                "_id": "p1",
                "address": "1 Centre St",
                "coordinates": [0.5, 0.5],
                "status": "visited",
            }
        ],
    )


def _last_call(api, method):
    return [args for name, args in api.calls if name == method][-1]


class TestChangeSet:
    @pytest.mark.parametrize(
        ("boundary", "metadata", "location", "hint"),
        [
            (True, False, False, UpdateHint.BOUNDARY_ONLY),
            (False, True, False, UpdateHint.NAME_DESCRIPTION_ONLY),
            (True, True, False, None),
            (False, False, True, None),
            (True, False, True, None),
            (False, False, False, None),
        ],
    )
    def test_hint(self, boundary, metadata, location, hint):
        changes = ChangeSet(boundary=boundary, metadata=metadata, location=location)
        assert changes.hint is hint


class TestGuards:
    @pytest.mark.asyncio
    async def test_nothing_to_save(self, reconciler, draft, api):
        draft.name = "North"
        outcome = await reconciler.save(draft)
        assert not outcome.success
        assert outcome.title == "Nothing to save"
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_reopened_drawing_refused(self, reconciler, draft, api):
        draw(draft, UNIT_SQUARE)
        assert await draft.complete_shape()
        draft.name = "North"
        draft.location = ANNEX
        assert draft.start_drawing()
        draw(draft, [pt(0.5, -0.5)])

        outcome = await reconciler.save(draft)

        assert not outcome.success
        assert outcome.title == "Finish the shape"
        assert api.calls == []
        assert draft.step is WorkflowStep.DRAWING
        assert len(draft.drawing) == 5

    @pytest.mark.asyncio
    async def test_missing_pending_raises_past_guard(self, reconciler, draft):
        draft.name = "North"
        reconciler.check = lambda draft, original: None
        with pytest.raises(ValueError, match="no pending territory"):
            await reconciler.save(draft)

    @pytest.mark.asyncio
    async def test_missing_name(self, reconciler, draft, api):
        draw(draft, UNIT_SQUARE)
        await draft.complete_shape()
        draft.name = "   "
        draft.location = ANNEX
        outcome = await reconciler.save(draft)
        assert outcome.title == "Missing name"
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_create_requires_full_location(self, reconciler, draft, api):
        draw(draft, UNIT_SQUARE)
        await draft.complete_shape()
        draft.name = "North"
        draft.location = LocationSelection(area=LocationRef(id="area-gta"))
        outcome = await reconciler.save(draft)
        assert outcome.title == "Select location"
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_busy_draft(self, reconciler, draft, api):
        draw(draft, UNIT_SQUARE)
        await draft.complete_shape()
        draft.name = "North"
        draft.location = ANNEX
        with draft.save_in_flight():
            outcome = await reconciler.save(draft)
        assert outcome.title == "Please wait"
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_edit_mode_without_original(self, reconciler, draft):
        draft.edit_territory_id = "zone-404"
        with pytest.raises(ValueError, match="zone-404"):
            await reconciler.save(draft)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_resets_draft_and_stores(
        self, reconciler, draft, api, residents, territories
    ):
        draw(draft, UNIT_SQUARE)
        await draft.complete_shape()
        draft.name = " North "
        draft.description = "Corner lots"
        draft.location = ANNEX

        outcome = await reconciler.save(draft)

        assert outcome.success
        assert outcome.title == "Territory Created"
        assert outcome.message == 'Zone "North" has been assigned successfully.'
        assert outcome.hint is None

        (payload,) = _last_call(api, "create_zone")
        assert payload["name"] == "North"
        assert payload["description"] == "Corner lots"
        assert payload["boundary"]["coordinates"] == [CLOSED_UNIT_RING]
        assert payload["buildingData"]["addresses"] == ["1 Centre St"]
        assert payload["communityId"] == "com-annex"
        assert not any(key.startswith("is") for key in payload)

        territory = territories.get(outcome.territory.id)
        assert territory.residents == ["b-1"]
        assert territory.location.community.name == "The Annex"
        assert "b-1" in residents
        assert residents.changes[-1].actor == "reconciler"
        assert territories.changes[-1].actor == "reconciler"

        assert draft.step is WorkflowStep.DRAWING
        assert draft.pending is None
        assert draft.name == ""
        assert not draft.is_saving


class TestUpdate:
    @pytest.mark.asyncio
    async def test_open_for_edit_installs_pending(
        self, reconciler, draft, api, seeded_zone, overlap_checker
    ):
        zone = await reconciler.open_for_edit(draft, "zone-1")

        assert zone.id == "zone-1"
        assert reconciler.original("zone-1") is zone
        assert draft.is_edit_mode
        assert draft.name == "A"
        assert draft.description == "Original"
        assert draft.location.municipality == LocationRef(id="mun-tor", name="Toronto")
        assert draft.step is WorkflowStep.SAVING
        assert draft.pending.polygon == UNIT_SQUARE
        assert [r.id for r in draft.pending.residents] == ["p1"]
        assert [b.id for b in draft.pending.detected_buildings] == ["existing-p1"]
        overlap_checker.check_overlap.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rename_sends_name_only_with_original_boundary(
        self, reconciler, draft, api, seeded_zone
    ):
        await reconciler.open_for_edit(draft, "zone-1")
        draft.name = "B"

        outcome = await reconciler.save(draft)

        assert outcome.success
        assert outcome.title == "Territory Updated"
        assert outcome.message == 'Zone "B" has been updated successfully.'
        assert outcome.hint is UpdateHint.NAME_DESCRIPTION_ONLY

        zone_id, payload = _last_call(api, "update_zone")
        assert zone_id == "zone-1"
        assert payload["isNameDescriptionUpdateOnly"] is True
        assert "isBoundaryUpdateOnly" not in payload
        assert payload["boundary"]["coordinates"] == [CLOSED_UNIT_RING]
        assert payload["name"] == "B"

        assert draft.step is WorkflowStep.SAVING
        assert draft.pending.polygon == UNIT_SQUARE
        assert reconciler.original("zone-1").name == "B"

    @pytest.mark.asyncio
    async def test_boundary_change_sends_boundary_only(
        self, reconciler, draft, api, seeded_zone, overlap_checker
    ):
        await reconciler.open_for_edit(draft, "zone-1")
        assert draft.start_drawing()
        draw(draft, [pt(0.5, -0.5)])
        assert await draft.complete_shape()
        overlap_checker.check_overlap.assert_awaited_once()
        assert overlap_checker.check_overlap.await_args.args[1] == "zone-1"

        outcome = await reconciler.save(draft)

        assert outcome.hint is UpdateHint.BOUNDARY_ONLY
        _, payload = _last_call(api, "update_zone")
        assert payload["isBoundaryUpdateOnly"] is True
        assert len(payload["boundary"]["coordinates"][0]) == 6
        assert len(draft.pending.polygon) == 5

    @pytest.mark.asyncio
    async def test_location_change_is_full_update(
        self, reconciler, draft, api, seeded_zone
    ):
        await reconciler.open_for_edit(draft, "zone-1")
        draft.location = ANNEX.model_copy(
            update={"community": LocationRef(id="com-leslieville")}
        )

        outcome = await reconciler.save(draft)

        assert outcome.success
        assert outcome.hint is None
        _, payload = _last_call(api, "update_zone")
        assert payload["communityId"] == "com-leslieville"
        assert not any(key.startswith("is") for key in payload)
        assert draft.location.community == LocationRef(
            id="com-leslieville", name="Leslieville"
        )

    @pytest.mark.asyncio
    async def test_incomplete_location_change_refused(
        self, reconciler, draft, api, seeded_zone
    ):
        await reconciler.open_for_edit(draft, "zone-1")
        draft.location = LocationSelection(area=LocationRef(id="area-ott"))
        outcome = await reconciler.save(draft)
        assert outcome.title == "Select location"
        assert all(name != "update_zone" for name, _ in api.calls)

    @pytest.mark.asyncio
    async def test_zone_without_location_can_be_renamed(self, reconciler, draft, api):
        api.seed_zone("Legacy", UNIT_SQUARE, zone_id="zone-2")
        await reconciler.open_for_edit(draft, "zone-2")
        draft.name = "Legacy North"
        outcome = await reconciler.save(draft)
        assert outcome.success
        _, payload = _last_call(api, "update_zone")
        assert payload["isNameDescriptionUpdateOnly"] is True
        assert "areaId" not in payload

    @pytest.mark.asyncio
    async def test_failure_keeps_draft_and_reports_server_message(
        self, reconciler, draft, api, seeded_zone, territories
    ):
        await reconciler.open_for_edit(draft, "zone-1")
        request = httpx.Request("PUT", "http://backend/agent-zones/zone-1")
        response = httpx.Response(
            409, json={"message": "Name already in use"}, request=request
        )
        api.update_zone = AsyncMock(
            side_effect=httpx.HTTPStatusError("conflict", request=request, response=response)
        )
        draft.name = "B"

        outcome = await reconciler.save(draft)

        assert not outcome.success
        assert outcome.title == "Failed to update territory"
        assert outcome.message == "Name already in use"
        assert draft.step is WorkflowStep.SAVING
        assert draft.name == "B"
        assert not draft.is_saving
        assert len(territories) == 0

    @pytest.mark.asyncio
    async def test_failure_without_server_message(self, reconciler, draft, api):
        api.create_zone = AsyncMock(side_effect=ConnectionError("offline"))
        draw(draft, UNIT_SQUARE)
        await draft.complete_shape()
        draft.name = "North"
        draft.location = ANNEX

        outcome = await reconciler.save(draft)

        assert outcome.title == "Failed to save territory"
        assert outcome.message == SAVE_FAILED
        assert draft.pending is not None


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_loads_zones_and_residents(
        self, reconciler, api, seeded_zone, residents, territories
    ):
        api.seed_zone("Sliver", [pt(5, 5), pt(5, 6)], zone_id="zone-bad")

        assert await reconciler.refresh() == 1
        territory = territories.get("zone-1")
        assert territory.name == "A"
        assert territory.residents == ["p1"]
        assert territories.get("zone-bad") is None
        assert residents.get("p1").address == "1 Centre St"
        assert territories.changes[-1].actor == "loader"
        assert residents.changes[-1].actor == "loader"
