"""Shared test fixtures and helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from canvass.core.config import DraftConfig
from canvass.detection.models import DetectedBuilding, DetectionResult
from canvass.draft.machine import TerritoryDraft
from canvass.geo.models import Point
from canvass.residents.models import Resident
from canvass.zones.payloads import OverlapCheckResult
from canvass.zones.store import ResidentStore, TerritoryStore


def pt(lat: float, lng: float) -> Point:
    return Point(latitude=lat, longitude=lng)


def square(lat: float = 0.0, lng: float = 0.0, size: float = 1.0) -> list[Point]:
    """Axis-aligned square, counter-clockwise from its south-west corner."""
    return [
        pt(lat, lng),
        pt(lat, lng + size),
        pt(lat + size, lng + size),
        pt(lat + size, lng),
    ]


UNIT_SQUARE = [pt(0, 0), pt(0, 1), pt(1, 1), pt(1, 0)]


def resident(resident_id: str, lat: float, lng: float, **extra) -> Resident:
    return Resident(
        id=resident_id,
        address=extra.pop("address", f"{resident_id} Test St"),
        latitude=lat,
        longitude=lng,
        **extra,
    )


def building(building_id: str, lat: float, lng: float, address: str = "") -> DetectedBuilding:
    return DetectedBuilding(
        id=building_id,
        latitude=lat,
        longitude=lng,
        address=address or f"Building {building_id}",
    )


@pytest.fixture
def residents():
    return ResidentStore()


@pytest.fixture
def territories():
    return TerritoryStore()


@pytest.fixture
def overlap_checker():
    """Overlap collaborator reporting no overlap by default."""
    checker = MagicMock()
    checker.check_overlap = AsyncMock(return_value=OverlapCheckResult())
    return checker


@pytest.fixture
def detector():
    """Detector returning a single building at the centre of the unit square."""
    det = MagicMock()
    det.detect = AsyncMock(
        return_value=DetectionResult(buildings=[building("b-1", 0.5, 0.5, "1 Centre St")])
    )
    return det


@pytest.fixture
def draft(residents, overlap_checker, detector):
    return TerritoryDraft(
        residents=residents,
        overlap_checker=overlap_checker,
        detector=detector,
        config=DraftConfig(),
    )


def draw(draft: TerritoryDraft, points: list[Point]) -> None:
    for point in points:
        assert draft.add_vertex(point)
