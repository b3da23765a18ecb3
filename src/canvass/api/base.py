"""Protocols for the external collaborators of the draft workflow."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from canvass.geo.models import Point
from canvass.zones.locations import LocationOption
from canvass.zones.payloads import AgentZone, OverlapCheckResult


@runtime_checkable
class OverlapChecker(Protocol):
    """Server-side intersection test against existing territories."""

    async def check_overlap(
        self, polygon: Sequence[Point], exclude_zone_id: str | None = None
    ) -> OverlapCheckResult: ...


@runtime_checkable
class ZoneRepository(Protocol):
    """Create/update/read access to persisted zones."""

    async def create_zone(self, payload: dict[str, Any]) -> AgentZone: ...

    async def update_zone(self, zone_id: str, payload: dict[str, Any]) -> AgentZone: ...

    async def fetch_zone(self, zone_id: str) -> AgentZone: ...

    async def list_zones(self) -> list[dict[str, Any]]: ...

    async def fetch_map_view(self, zone_id: str) -> list[dict[str, Any]]: ...


@runtime_checkable
class LocationDirectory(Protocol):
    """Area -> municipality -> community lookups."""

    async def list_areas(self) -> list[LocationOption]: ...

    async def list_municipalities(self, area_id: str) -> list[LocationOption]: ...

    async def list_communities(self, municipality_id: str) -> list[LocationOption]: ...
