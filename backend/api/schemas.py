"""
Request and response bodies shared by the API routes.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from domain.models import Coordinate, GeocodeSuggestion, SelectedLocation


class CoordinateModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)

    @classmethod
    def from_domain(cls, coordinate: Optional[Coordinate]) -> Optional["CoordinateModel"]:
        if coordinate is None:
            return None
        return cls(lat=coordinate.lat, lng=coordinate.lng)


class SuggestionResponse(BaseModel):
    id: str
    lat: float
    lng: float
    label: str
    kind: str
    rank: float

    @classmethod
    def from_domain(cls, item: GeocodeSuggestion) -> "SuggestionResponse":
        return cls(id=item.id, lat=item.lat, lng=item.lng, label=item.label, kind=item.kind, rank=item.rank)


class SelectionResponse(BaseModel):
    lat: float
    lng: float
    address: str
    source: str

    @classmethod
    def from_domain(cls, selection: Optional[SelectedLocation]) -> Optional["SelectionResponse"]:
        if selection is None:
            return None
        return cls(
            lat=selection.coordinate.lat,
            lng=selection.coordinate.lng,
            address=selection.address,
            source=selection.source.value,
        )


class SearchResultsResponse(BaseModel):
    query: str
    results: List[SuggestionResponse]


class ReverseResponse(BaseModel):
    lat: float
    lng: float
    address: str
