"""In-memory stores for residents and territories.

One instance of each is shared by the draft workflow, the reconciler and the
loader of a process; tests build fresh ones per case. Every write names the
component making it so the change log shows who touched what.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from canvass.residents.models import Resident, ResidentStatus
from canvass.zones.models import Territory


class StoreChange(BaseModel):
    """One attributed write to a store."""

    actor: str
    action: str
    record_ids: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class _AttributedStore:
    def __init__(self) -> None:
        self._changes: list[StoreChange] = []

    @property
    def changes(self) -> list[StoreChange]:
        return list(self._changes)

    def _record(self, actor: str, action: str, record_ids: list[str]) -> None:
        self._changes.append(
            StoreChange(actor=actor, action=action, record_ids=record_ids)
        )


class ResidentStore(_AttributedStore):
    """Known residents keyed by id, in insertion order. Never deletes."""

    def __init__(self, residents: Iterable[Resident] = ()) -> None:
        super().__init__()
        self._residents: dict[str, Resident] = {}
        for resident in residents:
            self._residents.setdefault(resident.id, resident)

    def __len__(self) -> int:
        return len(self._residents)

    def __contains__(self, resident_id: object) -> bool:
        return resident_id in self._residents

    def all(self) -> list[Resident]:
        return list(self._residents.values())

    def get(self, resident_id: str) -> Resident | None:
        return self._residents.get(resident_id)

    def add_many(self, residents: Iterable[Resident], *, actor: str) -> list[Resident]:
        """Add residents whose id is not yet known. Returns the ones added."""
        added: list[Resident] = []
        for resident in residents:
            if resident.id in self._residents:
                continue
            self._residents[resident.id] = resident
            added.append(resident)
        if added:
            self._record(actor, "add_residents", [r.id for r in added])
        return added

    def update_status(
        self, resident_id: str, status: ResidentStatus, *, actor: str
    ) -> Resident:
        resident = self._residents.get(resident_id)
        if resident is None:
            raise KeyError(f"Resident {resident_id!r} not found")
        updated = resident.model_copy(
            update={"status": status, "last_visited": datetime.now(timezone.utc)}
        )
        self._residents[resident_id] = updated
        self._record(actor, "update_status", [resident_id])
        return updated


class TerritoryStore(_AttributedStore):
    """Known territories keyed by id. Never deletes."""

    def __init__(self) -> None:
        super().__init__()
        self._territories: dict[str, Territory] = {}

    def __len__(self) -> int:
        return len(self._territories)

    def all(self) -> list[Territory]:
        return list(self._territories.values())

    def get(self, territory_id: str) -> Territory | None:
        return self._territories.get(territory_id)

    def add(self, territory: Territory, *, actor: str) -> bool:
        """Insert a territory unless its id is already present."""
        if territory.id in self._territories:
            return False
        self._territories[territory.id] = territory
        self._record(actor, "add_territory", [territory.id])
        return True

    def update(self, territory: Territory, *, actor: str) -> Territory:
        if territory.id not in self._territories:
            raise KeyError(f"Territory {territory.id!r} not found")
        self._territories[territory.id] = territory
        self._record(actor, "update_territory", [territory.id])
        return territory

    def upsert(self, territory: Territory, *, actor: str) -> Territory:
        if territory.id in self._territories:
            return self.update(territory, actor=actor)
        self.add(territory, actor=actor)
        return territory
