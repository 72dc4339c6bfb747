"""
Core domain models for the booking location picker.
These are framework-agnostic and shared by the picker, the geocoding client
and the API layer.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


UNKNOWN_LOCATION = "Unknown location"


class SelectionSource(str, Enum):
    """How a selection was produced."""
    CLICK = "click"
    SUGGESTION = "suggestion"
    COORDINATE_ENTRY = "coordinate-entry"


class PickerPhase(str, Enum):
    """
    Phases of a picker instance.

    idle -> searching -> suggestions_shown (or back to idle)
    idle / suggestions_shown -> resolving -> resolved -> idle
    any -> unmounted (terminal)
    """
    IDLE = "idle"
    SEARCHING = "searching"
    SUGGESTIONS_SHOWN = "suggestions_shown"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    UNMOUNTED = "unmounted"


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point. Out-of-range values are rejected at construction."""
    lat: float
    lng: float

    def __post_init__(self) -> None:
        lat = float(self.lat)
        lng = float(self.lng)
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude out of range: {lat}")
        if not -180.0 <= lng <= 180.0:
            raise ValueError(f"longitude out of range: {lng}")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class GeocodeSuggestion:
    """One forward-search candidate, in the order the service ranked it."""
    id: str
    lat: float
    lng: float
    label: str
    kind: str = ""
    rank: float = 0.0

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)


@dataclass(frozen=True)
class SelectedLocation:
    """The caller-visible resolution of a click, pick or coordinate entry."""
    coordinate: Coordinate
    address: str
    source: SelectionSource


@dataclass
class PickerSessionState:
    """UI-local state owned by a single picker instance."""
    search_text: str = ""
    suggestions: List[GeocodeSuggestion] = field(default_factory=list)
    is_searching: bool = False
    current_marker: Optional[Coordinate] = None
    user_location_marker: Optional[Coordinate] = None

    def clear_suggestions(self) -> None:
        self.suggestions = []
