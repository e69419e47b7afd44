"""Nominatim search response schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, RootModel


class NominatimBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class NominatimPlace(NominatimBaseModel):
    place_id: int | None = None
    lat: float
    lon: float
    display_name: str | None = None
    importance: float | None = None
    place_rank: int | None = None
    category: str | None = None
    type: str | None = None
    address_type: str | None = Field(default=None, alias="addresstype")

    @property
    def confidence(self) -> float:
        """Nominatim's ``importance`` clamped to ``[0, 1]``; missing means unknown."""

        if self.importance is None:
            return 0.5
        return max(0.0, min(1.0, self.importance))


class NominatimSearchResponse(RootModel[list[NominatimPlace]]):
    pass
