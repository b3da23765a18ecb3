"""Wiring for a territory capture session."""

from __future__ import annotations

import logging

from canvass.api.client import ZoneApiClient
from canvass.api.mock import MockZoneApi
from canvass.core.config import Settings
from canvass.detection.service import BuildingDetector, create_building_detector
from canvass.draft.machine import TerritoryDraft
from canvass.draft.reconciler import PersistenceReconciler, SaveOutcome
from canvass.zones.locations import LocationPicker
from canvass.zones.store import ResidentStore, TerritoryStore


class Workflow:
    """A draft, its reconciler and location picker sharing one set of stores."""

    def __init__(
        self,
        draft: TerritoryDraft,
        reconciler: PersistenceReconciler,
        locations: LocationPicker,
        residents: ResidentStore,
        territories: TerritoryStore,
    ) -> None:
        self.draft = draft
        self.reconciler = reconciler
        self.locations = locations
        self.residents = residents
        self.territories = territories

    async def open(self, zone_id: str) -> None:
        """Switch to edit mode for a persisted zone."""
        zone = await self.reconciler.open_for_edit(self.draft, zone_id)
        self.locations.selection = zone.location

    async def save(self) -> SaveOutcome:
        self.draft.location = self.locations.selection
        outcome = await self.reconciler.save(self.draft)
        self.locations.selection = self.draft.location
        return outcome


def create_workflow(
    settings: Settings | None = None,
    *,
    api: ZoneApiClient | MockZoneApi | None = None,
    detector: BuildingDetector | None = None,
    residents: ResidentStore | None = None,
    territories: TerritoryStore | None = None,
) -> Workflow:
    """Build a :class:`Workflow`.

    Args:
        settings: Application settings. Defaults to environment-derived settings.
        api: Zone backend. Defaults to :class:`ZoneApiClient` on ``settings.api``.
        detector: Building detector. Defaults to ``settings.detection.provider``.
        residents: Process-wide resident store to share, or a fresh one.
        territories: Process-wide territory store to share, or a fresh one.
    """
    settings = settings or Settings()
    logging.getLogger("canvass").setLevel(
        logging.DEBUG if settings.debug else settings.log_level.upper()
    )
    api = api if api is not None else ZoneApiClient(settings.api)
    detector = detector if detector is not None else create_building_detector(
        settings.detection
    )
    residents = residents if residents is not None else ResidentStore()
    territories = territories if territories is not None else TerritoryStore()

    draft = TerritoryDraft(
        residents=residents,
        overlap_checker=api,
        detector=detector,
        config=settings.draft,
    )
    reconciler = PersistenceReconciler(
        repository=api,
        residents=residents,
        territories=territories,
        config=settings.draft,
    )
    return Workflow(
        draft=draft,
        reconciler=reconciler,
        locations=LocationPicker(api),
        residents=residents,
        territories=territories,
    )
