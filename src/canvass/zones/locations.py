"""Cascading area -> municipality -> community selection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from canvass.zones.models import LocationRef, LocationSelection

if TYPE_CHECKING:
    from canvass.api.base import LocationDirectory

logger = logging.getLogger(__name__)


class LocationOption(BaseModel):
    """One selectable entry of the location hierarchy."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    name: str
    type: str = ""
    area_id: str | None = Field(default=None, alias="areaId")
    municipality_id: str | None = Field(default=None, alias="municipalityId")

    def ref(self) -> LocationRef:
        return LocationRef(id=self.id, name=self.name)


class LocationPicker:
    """Keeps a :class:`LocationSelection` consistent while options load.

    Choosing a new area clears the municipality and community; choosing a
    new municipality clears the community. Re-selecting the current value
    is a no-op.
    """

    def __init__(
        self,
        directory: LocationDirectory,
        selection: LocationSelection | None = None,
    ) -> None:
        self._directory = directory
        self.selection = selection or LocationSelection()
        self.areas: list[LocationOption] = []
        self.municipalities: list[LocationOption] = []
        self.communities: list[LocationOption] = []

    async def load_areas(self) -> list[LocationOption]:
        self.areas = await self._directory.list_areas()
        return self.areas

    async def select_area(self, area_id: str) -> LocationSelection:
        if self.selection.area.id == area_id:
            return self.selection
        option = _find(self.areas, area_id)
        self.selection = LocationSelection(
            area=LocationRef(id=area_id, name=option.name if option else "")
        )
        self.municipalities = []
        self.communities = []
        if area_id:
            self.municipalities = await self._directory.list_municipalities(area_id)
        return self.selection

    async def select_municipality(self, municipality_id: str) -> LocationSelection:
        if self.selection.municipality.id == municipality_id:
            return self.selection
        option = _find(self.municipalities, municipality_id)
        self.selection = self.selection.model_copy(
            update={
                "municipality": LocationRef(
                    id=municipality_id, name=option.name if option else ""
                ),
                "community": LocationRef(),
            }
        )
        self.communities = []
        if municipality_id:
            self.communities = await self._directory.list_communities(municipality_id)
        return self.selection

    def select_community(self, community_id: str) -> LocationSelection:
        option = _find(self.communities, community_id)
        if option is None:
            logger.warning("Community %r is not among the loaded options", community_id)
        self.selection = self.selection.model_copy(
            update={
                "community": LocationRef(
                    id=community_id, name=option.name if option else ""
                )
            }
        )
        return self.selection


def _find(options: list[LocationOption], option_id: str) -> LocationOption | None:
    for option in options:
        if option.id == option_id:
            return option
    return None
