"""
In-memory picker sessions.

Each session pairs a mounted LocationPicker with the booking form field it
writes into. Sessions live for the lifetime of the process only.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional
import uuid

from services.location_picker import LocationPicker


@dataclass
class LocationField:
    """The embedding form's location value; written only by the picker callback."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    updates: int = 0
    updated_at: Optional[datetime] = None

    def set(self, lat: float, lng: float, address: str) -> None:
        self.lat = lat
        self.lng = lng
        self.address = address
        self.updates += 1
        self.updated_at = datetime.utcnow()


@dataclass
class PickerSession:
    id: str
    location_field: LocationField
    picker: Optional[LocationPicker] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


sessions_db: Dict[str, PickerSession] = {}


def new_session_id() -> str:
    return uuid.uuid4().hex


def close_all_sessions() -> None:
    for session in list(sessions_db.values()):
        if session.picker is not None:
            session.picker.unmount()
    sessions_db.clear()
