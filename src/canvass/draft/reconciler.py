"""Persist a reviewed draft, sending only what changed."""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from canvass.api.base import ZoneRepository
from canvass.api.client import server_message
from canvass.core.config import DraftConfig
from canvass.draft.loader import ACTOR as LOADER
from canvass.draft.loader import load_for_edit, parse_zone_listing, territory_from_zone
from canvass.draft.machine import TerritoryDraft
from canvass.geo.polygon import normalize, polygons_equal
from canvass.zones.models import LocationRef, LocationSelection, Territory, WorkflowStep
from canvass.zones.payloads import AgentZone, UpdateHint, ZonePayloadBuilder
from canvass.zones.store import ResidentStore, TerritoryStore

logger = logging.getLogger(__name__)

ACTOR = "reconciler"

SAVE_FAILED = "We couldn't save this territory. Please try again."


class SaveOutcome(BaseModel):
    """Result of a save attempt, phrased for an alert."""

    success: bool
    title: str
    message: str
    territory: Territory | None = None
    hint: UpdateHint | None = None


class ChangeSet(BaseModel):
    """What differs between a draft and the persisted zone it edits."""

    boundary: bool = True
    metadata: bool = True
    location: bool = True

    @property
    def hint(self) -> UpdateHint | None:
        if self.boundary and not self.metadata and not self.location:
            return UpdateHint.BOUNDARY_ONLY
        if self.metadata and not self.boundary and not self.location:
            return UpdateHint.NAME_DESCRIPTION_ONLY
        return None


class PersistenceReconciler:
    """Builds minimal create/update requests and folds responses back in.

    Args:
        repository: The create/update collaborator.
        residents: Shared resident store.
        territories: Shared territory store.
        config: Draft configuration (save timeout, tolerance).
    """

    def __init__(
        self,
        repository: ZoneRepository,
        residents: ResidentStore,
        territories: TerritoryStore,
        config: DraftConfig | None = None,
    ) -> None:
        self._repository = repository
        self._residents = residents
        self._territories = territories
        self._config = config or DraftConfig()
        self._originals: dict[str, AgentZone] = {}

    def original(self, zone_id: str) -> AgentZone | None:
        return self._originals.get(zone_id)

    # -- loading -------------------------------------------------------------

    async def refresh(self) -> int:
        """Pull every zone from the backend into the stores."""
        territories, residents = parse_zone_listing(await self._repository.list_zones())
        for territory in territories:
            self._territories.upsert(territory, actor=LOADER)
        self._residents.add_many(residents, actor=LOADER)
        return len(territories)

    async def open_for_edit(self, draft: TerritoryDraft, zone_id: str) -> AgentZone:
        """Load a persisted zone into ``draft`` and remember it as the original."""
        context = await load_for_edit(self._repository, zone_id)
        zone = context.zone
        self._originals[zone_id] = zone

        draft.edit_territory_id = zone_id
        draft.name = zone.name
        draft.description = zone.description or ""
        draft.location = zone.location
        if len(context.polygon) >= 3:
            await draft.edit_existing(
                context.polygon,
                residents=context.residents,
                detected_buildings=context.detected_buildings,
            )
        return zone

    # -- saving --------------------------------------------------------------

    def diff(self, draft: TerritoryDraft, original: AgentZone) -> ChangeSet:
        if draft.pending is None:
            raise ValueError("Draft has no pending territory to compare")
        return ChangeSet(
            boundary=not polygons_equal(
                draft.pending.polygon, original.polygon, self._config.tolerance
            ),
            metadata=(
                draft.name.strip() != (original.name or "")
                or draft.description.strip() != (original.description or "")
            ),
            location=not draft.location.same_ids(original.location),
        )

    def check(self, draft: TerritoryDraft, original: AgentZone | None) -> SaveOutcome | None:
        """Pre-save guard. Returns a failed outcome, or None when saving may go ahead."""
        if draft.pending is None:
            return SaveOutcome(
                success=False,
                title="Nothing to save",
                message="Draw and validate a territory first.",
            )
        if draft.step is not WorkflowStep.SAVING:
            return SaveOutcome(
                success=False,
                title="Finish the shape",
                message="Complete and validate the drawing before saving.",
            )
        if not draft.name.strip():
            return SaveOutcome(
                success=False,
                title="Missing name",
                message="Please enter a territory name.",
            )
        location_changed = (
            original is None or not draft.location.same_ids(original.location)
        )
        if location_changed and not draft.location.is_complete:
            return SaveOutcome(
                success=False,
                title="Select location",
                message="Choose an area, municipality, and community before saving.",
            )
        return None

    async def save(
        self, draft: TerritoryDraft, original: AgentZone | None = None
    ) -> SaveOutcome:
        """Create or update the territory held by ``draft``.

        In edit mode ``original`` defaults to the zone loaded by
        :meth:`open_for_edit`.

        Raises:
            ValueError: In edit mode when no original zone is known.
        """
        zone_id = draft.edit_territory_id
        if zone_id is not None:
            original = original or self._originals.get(zone_id)
            if original is None:
                raise ValueError(f"No original zone loaded for {zone_id!r}")

        if draft.is_busy:
            return SaveOutcome(
                success=False,
                title="Please wait",
                message="Another operation on this territory is still running.",
            )
        refusal = self.check(draft, original)
        if refusal is not None:
            return refusal

        pending = draft.pending
        if pending is None:
            raise ValueError("Draft has no pending territory")
        changes = self.diff(draft, original) if original is not None else ChangeSet()
        boundary = pending.polygon
        if original is not None and not changes.boundary:
            boundary = original.polygon

        builder = (
            ZonePayloadBuilder(draft.name, draft.description, boundary, draft.location)
            .with_buildings(pending.detected_buildings)
        )
        hint = changes.hint if zone_id is not None else None
        builder.with_hint(hint)
        payload = builder.build()

        with draft.save_in_flight():
            try:
                if zone_id is not None:
                    saved = await asyncio.wait_for(
                        self._repository.update_zone(zone_id, payload),
                        timeout=self._config.save_timeout_seconds,
                    )
                else:
                    saved = await asyncio.wait_for(
                        self._repository.create_zone(payload),
                        timeout=self._config.save_timeout_seconds,
                    )
            except Exception as exc:
                logger.error("Failed to save territory %r: %s", draft.name, exc)
                return SaveOutcome(
                    success=False,
                    title=(
                        "Failed to update territory"
                        if zone_id is not None
                        else "Failed to save territory"
                    ),
                    message=server_message(exc) or SAVE_FAILED,
                    hint=hint,
                )

        territory = territory_from_zone(
            saved,
            resident_ids=[r.id for r in pending.residents],
            fallback_id=zone_id,
            fallback_polygon=normalize(boundary),
        )
        if not saved.name:
            territory.name = draft.name.strip()
        if not saved.description:
            territory.description = draft.description.strip()
        self._territories.upsert(territory, actor=ACTOR)
        self._residents.add_many(pending.residents, actor=ACTOR)

        if zone_id is not None:
            self._originals[zone_id] = saved
            location = None
            if changes.location:
                location = _merge_names(saved.location, draft.location)
            draft.finish_update(territory.polygon, location=location)
            verb = "updated"
            title = "Territory Updated"
        else:
            draft.finish_create()
            verb = "assigned"
            title = "Territory Created"

        logger.info("Territory %r %s (%s)", territory.id, verb, hint or "full")
        return SaveOutcome(
            success=True,
            title=title,
            message=f'Zone "{territory.name}" has been {verb} successfully.',
            territory=territory,
            hint=hint,
        )


def _merge_names(saved: LocationSelection, local: LocationSelection) -> LocationSelection:
    """Server ids and names, falling back to locally known names."""

    def pick(server: LocationRef, mine: LocationRef) -> LocationRef:
        return LocationRef(id=server.id or mine.id, name=server.name or mine.name)

    return LocationSelection(
        area=pick(saved.area, local.area),
        municipality=pick(saved.municipality, local.municipality),
        community=pick(saved.community, local.community),
    )
