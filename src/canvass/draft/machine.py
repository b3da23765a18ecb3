"""Territory draft state machine.

Turns a sequence of map taps into a validated :class:`PendingTerritory`.
The workflow has two steps: ``drawing`` (placing vertices) and ``saving``
(a reviewed territory is being named and persisted). Validation calls the
overlap checker and the building detector; only one validation or save may
be in flight, and every state-changing operation bumps a generation token
so that a response for an outdated drawing is dropped instead of applied.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterator, Sequence
from contextlib import contextmanager
from typing import TypeVar

from pydantic import BaseModel, Field

from canvass.api.base import OverlapChecker
from canvass.core.config import DraftConfig
from canvass.detection.models import DetectedBuilding, DetectionResult
from canvass.detection.service import BuildingDetector
from canvass.geo.models import Point
from canvass.geo.polygon import normalize, polygons_equal
from canvass.residents.membership import filter_in_polygon
from canvass.residents.models import Resident
from canvass.zones.models import LocationSelection, PendingTerritory, WorkflowStep
from canvass.zones.payloads import OverlapCheckResult
from canvass.zones.store import ResidentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTOR = "draft"

TOO_FEW_POINTS = "Add at least three points to define a territory."
VALIDATION_FAILED = "We could not validate this territory. Please try again."
OVERLAP_UNNAMED = "This territory overlaps with an existing zone."


def overlap_error(zone_names: Sequence[str]) -> str:
    if not zone_names:
        return OVERLAP_UNNAMED
    return (
        f"This territory overlaps with existing zone(s): {', '.join(zone_names)}. "
        "Adjust the drawing to continue."
    )


def duplicate_warning(count: int) -> str:
    return f"{count} buildings are already assigned to other territories."


class DraftState(BaseModel):
    """Read-only snapshot of a draft, for display and assertions."""

    step: WorkflowStep
    drawing: list[Point] = Field(default_factory=list)
    pending: PendingTerritory | None = None
    has_started: bool = False
    is_placing: bool = True
    is_validating: bool = False
    is_saving: bool = False
    generation: int = 0
    name: str = ""
    description: str = ""
    location: LocationSelection = Field(default_factory=LocationSelection)
    validation_errors: list[str] = Field(default_factory=list)
    validation_warnings: list[str] = Field(default_factory=list)


class TerritoryDraft:
    """Owns the current drawing, the pending territory and the workflow step.

    Collaborators and the resident store are injected so that each test (or
    each screen) can work against its own instances.
    """

    def __init__(
        self,
        residents: ResidentStore,
        overlap_checker: OverlapChecker,
        detector: BuildingDetector,
        config: DraftConfig | None = None,
        edit_territory_id: str | None = None,
    ) -> None:
        self._residents = residents
        self._overlap = overlap_checker
        self._detector = detector
        self._config = config or DraftConfig()
        self.edit_territory_id = edit_territory_id

        self._step = WorkflowStep.DRAWING
        self._drawing: list[Point] = []
        self._pending: PendingTerritory | None = None
        self._has_started = False
        self._placing = True
        self._validating = False
        self._saving = False
        self._generation = 0

        self.name = ""
        self.description = ""
        self.location = LocationSelection()
        self.validation_errors: list[str] = []
        self.validation_warnings: list[str] = []

    # -- read access ---------------------------------------------------------

    @property
    def is_edit_mode(self) -> bool:
        return self.edit_territory_id is not None

    @property
    def step(self) -> WorkflowStep:
        return self._step

    @property
    def drawing(self) -> list[Point]:
        return list(self._drawing)

    @property
    def pending(self) -> PendingTerritory | None:
        return self._pending

    @property
    def has_started(self) -> bool:
        return self._has_started

    @property
    def is_placing(self) -> bool:
        """Whether map taps currently add vertices."""
        return self._placing

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_validating(self) -> bool:
        return self._validating

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def is_busy(self) -> bool:
        return self._validating or self._saving

    def snapshot(self) -> DraftState:
        return DraftState(
            step=self._step,
            drawing=list(self._drawing),
            pending=self._pending,
            has_started=self._has_started,
            is_placing=self._placing,
            is_validating=self._validating,
            is_saving=self._saving,
            generation=self._generation,
            name=self.name,
            description=self.description,
            location=self.location,
            validation_errors=list(self.validation_errors),
            validation_warnings=list(self.validation_warnings),
        )

    def residents_in_drawing(self) -> list[Resident]:
        """Live preview of the residents covered by the current drawing."""
        if len(self._drawing) < 3:
            return []
        current = normalize(self._drawing, self._config.tolerance)
        if (
            self._pending is not None
            and self._pending.residents
            and polygons_equal(current, self._pending.polygon, self._config.tolerance)
        ):
            return list(self._pending.residents)
        return filter_in_polygon(current, self._residents.all())

    # -- drawing -------------------------------------------------------------

    def start_drawing(self) -> bool:
        """Enter drawing, re-opening the pending polygon if there is one."""
        if self.is_busy:
            return False
        self._bump()
        if self._pending is not None and self._pending.polygon:
            self._drawing = list(self._pending.polygon)
            self._has_started = False
        else:
            self._reset(keep_location=True)
        self._step = WorkflowStep.DRAWING
        self._placing = True
        self.validation_errors = []
        self.validation_warnings = []
        return True

    def stop_drawing(self) -> bool:
        """Pause vertex placement without discarding the drawing."""
        if self.is_busy:
            return False
        self._bump()
        self._placing = False
        self._has_started = False
        return True

    def add_vertex(self, point: Point) -> bool:
        if self._step is not WorkflowStep.DRAWING or not self._placing or self.is_busy:
            return False
        self._bump()
        self._drawing.append(point)
        self._has_started = True
        return True

    def undo_vertex(self) -> bool:
        if self.is_busy or not self._drawing:
            return False
        self._bump()
        self._drawing.pop()
        if not self._drawing:
            self._has_started = False
        return True

    def clear_drawing(self, confirm: bool = False) -> bool:
        """Discard the drawing, pending territory and form fields.

        Destructive, so it does nothing unless ``confirm`` is True. Any
        validation still in flight is abandoned.
        """
        if not confirm:
            return False
        if self._saving:
            return False
        self._bump()
        self._validating = False
        self._reset()
        return True

    # -- validation ----------------------------------------------------------

    async def complete_shape(self) -> bool:
        """Validate the current drawing. Returns True when it reaches saving."""
        if self.is_busy:
            logger.warning("complete_shape ignored: another operation is in flight")
            return False
        if len(self._drawing) < 3:
            self.validation_errors = [TOO_FEW_POINTS]
            return False
        return await self._validate(self._drawing)

    async def edit_existing(
        self,
        polygon: Sequence[Point],
        residents: Sequence[Resident] | None = None,
        detected_buildings: Sequence[DetectedBuilding] | None = None,
    ) -> bool:
        """Re-open a reviewed or persisted polygon.

        With ``residents``/``detected_buildings`` (properties already on
        record for a persisted territory) the pending territory is installed
        directly. Otherwise the polygon goes through validation, which
        reuses the pending result when the shape has not changed.
        """
        if self.is_busy:
            return False
        normalized = normalize(polygon, self._config.tolerance)
        if len(normalized) < 3:
            self.validation_errors = [TOO_FEW_POINTS]
            return False

        if residents or detected_buildings:
            self._bump()
            seeded = list(residents or [])
            self._residents.add_many(seeded, actor=ACTOR)
            self._drawing = list(normalized)
            self.validation_errors = []
            self.validation_warnings = []
            self._enter_saving(
                PendingTerritory(
                    polygon=normalized,
                    residents=seeded,
                    detected_buildings=list(detected_buildings or []),
                )
            )
            return True

        self._drawing = list(normalized)
        return await self._validate(normalized)

    async def _validate(self, polygon: Sequence[Point]) -> bool:
        self._bump()
        token = self._generation
        self._validating = True
        self.validation_errors = []
        self.validation_warnings = []
        tolerance = self._config.tolerance
        try:
            normalized = normalize(polygon, tolerance)

            if self._pending is not None and polygons_equal(
                normalized, self._pending.polygon, tolerance
            ):
                self._drawing = list(normalized)
                self._enter_saving(self._pending)
                return True

            overlap = await self._call(
                self._overlap.check_overlap(normalized, self.edit_territory_id)
            )
            if self._is_stale(token, "overlap check"):
                return False

            errors, warnings = self._interpret_overlap(overlap)
            if errors:
                self._pending = None
                self._step = WorkflowStep.DRAWING
                self._has_started = False
                self.validation_errors = errors
                self.validation_warnings = warnings
                return False

            detection = await self._call(self._detector.detect(normalized))
            if self._is_stale(token, "building detection"):
                return False

            pending = self._merge(normalized, detection, overlap.duplicate_buildings)
            for warning in detection.warnings:
                if warning not in warnings:
                    warnings.append(warning)
            self._drawing = list(normalized)
            self._enter_saving(pending)
            self.validation_warnings = warnings
            return True
        except Exception as exc:
            if self._is_stale(token, "failed validation"):
                return False
            logger.error("Territory validation failed: %s", exc)
            self.validation_errors = [VALIDATION_FAILED]
            self.validation_warnings = []
            self._pending = None
            self._step = WorkflowStep.DRAWING
            self._has_started = False
            return False
        finally:
            if token == self._generation:
                self._validating = False

    def _interpret_overlap(self, result: OverlapCheckResult) -> tuple[list[str], list[str]]:
        errors: list[str] = []
        warnings: list[str] = []
        if result.has_overlap:
            errors.append(overlap_error(result.zone_names))
        if result.duplicate_buildings:
            warnings.append(duplicate_warning(len(result.duplicate_buildings)))
        return errors, warnings

    def _merge(
        self,
        polygon: list[Point],
        detection: DetectionResult,
        duplicates: list[str],
    ) -> PendingTerritory:
        """Known residents inside the polygon plus newly detected ones.

        A detected building is skipped when its id is already a known
        resident, or when a known resident inside the polygon sits at the
        same coordinates (within tolerance).
        """
        tolerance = self._config.tolerance
        existing = filter_in_polygon(polygon, self._residents.all())
        taken_ids = {r.id for r in existing}
        fresh: list[Resident] = []
        for building in detection.buildings:
            if building.id in taken_ids or building.id in self._residents:
                continue
            if any(
                abs(r.latitude - building.latitude) < tolerance
                and abs(r.longitude - building.longitude) < tolerance
                for r in existing
            ):
                continue
            taken_ids.add(building.id)
            fresh.append(building.to_resident())
        return PendingTerritory(
            polygon=polygon,
            residents=existing + fresh,
            duplicate_addresses=list(duplicates),
            detected_buildings=list(detection.buildings),
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(
            awaitable, timeout=self._config.validation_timeout_seconds
        )

    def _is_stale(self, token: int, what: str) -> bool:
        if token != self._generation:
            logger.debug(
                "Discarding %s result for generation %d (current %d)",
                what, token, self._generation,
            )
            return True
        return False

    # -- saving --------------------------------------------------------------

    @contextmanager
    def save_in_flight(self) -> Iterator[int]:
        """Mark a save as outstanding; yields the generation at save start."""
        if self.is_busy:
            raise ValueError("Another validation or save is already in flight")
        self._saving = True
        try:
            yield self._generation
        finally:
            self._saving = False

    def finish_create(self) -> None:
        """After a successful create: back to an empty drawing."""
        self._bump()
        self._reset()

    def finish_update(
        self, polygon: Sequence[Point], location: LocationSelection | None = None
    ) -> None:
        """After a successful update: keep reviewing the server's boundary."""
        self._bump()
        canonical = normalize(polygon, self._config.tolerance)
        previous = self._pending
        self._pending = PendingTerritory(
            polygon=canonical,
            residents=list(previous.residents) if previous else [],
            duplicate_addresses=list(previous.duplicate_addresses) if previous else [],
            detected_buildings=list(previous.detected_buildings) if previous else [],
        )
        self._drawing = list(canonical)
        self._step = WorkflowStep.SAVING
        self._has_started = False
        self.validation_errors = []
        self.validation_warnings = []
        if location is not None:
            self.location = location

    # -- internal ------------------------------------------------------------

    def _bump(self) -> None:
        self._generation += 1

    def _enter_saving(self, pending: PendingTerritory) -> None:
        self._pending = pending
        self._step = WorkflowStep.SAVING
        self._has_started = False

    def _reset(self, keep_location: bool = False) -> None:
        self._drawing = []
        self._pending = None
        self._has_started = False
        self._placing = True
        self._step = WorkflowStep.DRAWING
        self.name = ""
        self.description = ""
        if not keep_location:
            self.location = LocationSelection()
        self.validation_errors = []
        self.validation_warnings = []
