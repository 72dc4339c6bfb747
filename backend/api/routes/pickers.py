"""
Picker session API routes.

A front-end drives one LocationPicker per session: it forwards keystrokes,
suggestion picks and map clicks, and reads back the picker state together
with the booking form field the picker writes into.
"""
import asyncio
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel, Field

from api.schemas import CoordinateModel, SelectionResponse, SuggestionResponse
from api.sessions import LocationField, PickerSession, new_session_id, sessions_db
from domain.models import Coordinate
from services.geocoding import get_default_geocoder
from services.location_picker import GeolocationUnavailable, LocationPicker
from services.map_preview import render_picker_map

router = APIRouter()


class CreatePickerRequest(BaseModel):
    initial_position: Optional[CoordinateModel] = None
    # Position reported by the browser, if the user granted it.
    device_position: Optional[CoordinateModel] = None


class SearchRequest(BaseModel):
    query: str = Field("", max_length=200)


class SelectRequest(BaseModel):
    index: int = Field(..., ge=0)


class MapStateResponse(BaseModel):
    center: CoordinateModel
    zoom: int
    selection_marker: Optional[CoordinateModel] = None
    user_location_marker: Optional[CoordinateModel] = None


class LocationFieldResponse(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    updates: int
    updated_at: Optional[datetime] = None


class PickerStateResponse(BaseModel):
    id: str
    phase: str
    search_text: str
    suggestions: List[SuggestionResponse]
    is_searching: bool
    current_marker: Optional[CoordinateModel] = None
    user_location_marker: Optional[CoordinateModel] = None
    selection: Optional[SelectionResponse] = None
    map: MapStateResponse
    location_field: LocationFieldResponse


def session_to_response(session: PickerSession) -> PickerStateResponse:
    """Convert a picker session to its API response."""
    picker = session.picker
    if picker is None or picker.map is None:
        raise HTTPException(status_code=404, detail="Picker not found")
    state = picker.state
    view = picker.map
    return PickerStateResponse(
        id=session.id,
        phase=picker.phase.value,
        search_text=state.search_text,
        suggestions=[SuggestionResponse.from_domain(s) for s in state.suggestions],
        is_searching=state.is_searching,
        current_marker=CoordinateModel.from_domain(state.current_marker),
        user_location_marker=CoordinateModel.from_domain(state.user_location_marker),
        selection=SelectionResponse.from_domain(picker.selection),
        map=MapStateResponse(
            center=CoordinateModel.from_domain(view.center),
            zoom=view.zoom,
            selection_marker=CoordinateModel.from_domain(view.selection_marker),
            user_location_marker=CoordinateModel.from_domain(view.user_location_marker),
        ),
        location_field=LocationFieldResponse(
            lat=session.location_field.lat,
            lng=session.location_field.lng,
            address=session.location_field.address,
            updates=session.location_field.updates,
            updated_at=session.location_field.updated_at,
        ),
    )


def _device_locator(position: Optional[Coordinate]):
    def locate() -> Coordinate:
        if position is None:
            raise GeolocationUnavailable("client did not share a device position")
        return position

    return locate


def _get_session(picker_id: str) -> PickerSession:
    session = sessions_db.get(picker_id)
    if session is None or session.picker is None:
        raise HTTPException(status_code=404, detail="Picker not found")
    return session


@router.post("", response_model=PickerStateResponse, status_code=201)
async def create_picker(request: Optional[CreatePickerRequest] = None):
    """Create and mount a picker session."""
    request = request or CreatePickerRequest()
    location_field = LocationField()
    picker = LocationPicker(
        on_location_select=location_field.set,
        geocoder=get_default_geocoder(),
        geolocate=_device_locator(request.device_position.to_domain() if request.device_position else None),
        initial_position=request.initial_position.to_domain() if request.initial_position else None,
    )
    await picker.mount()
    await picker.settle()
    session = PickerSession(id=new_session_id(), location_field=location_field, picker=picker)
    sessions_db[session.id] = session
    return session_to_response(session)


@router.get("/{picker_id}", response_model=PickerStateResponse)
async def get_picker(picker_id: str):
    return session_to_response(_get_session(picker_id))


@router.post("/{picker_id}/search", response_model=PickerStateResponse)
async def search(picker_id: str, request: SearchRequest):
    """Feed the current search box text to the picker."""
    session = _get_session(picker_id)
    await session.picker.search(request.query)
    return session_to_response(session)


@router.post("/{picker_id}/select", response_model=PickerStateResponse)
async def select_suggestion(picker_id: str, request: SelectRequest):
    """Pick one of the currently visible suggestions by position."""
    session = _get_session(picker_id)
    suggestions = session.picker.state.suggestions
    if request.index >= len(suggestions):
        raise HTTPException(status_code=400, detail="Suggestion index out of range")
    session.picker.select_suggestion(suggestions[request.index])
    return session_to_response(session)


@router.post("/{picker_id}/click", response_model=PickerStateResponse)
async def click(picker_id: str, request: CoordinateModel):
    """Simulate a map click at the given coordinate."""
    session = _get_session(picker_id)
    await session.picker.handle_map_click(request.to_domain())
    return session_to_response(session)


@router.get("/{picker_id}/map.png")
async def map_preview(
    picker_id: str,
    width: int = Query(640, ge=64, le=2048),
    height: int = Query(400, ge=64, le=2048),
):
    session = _get_session(picker_id)
    png = await asyncio.to_thread(render_picker_map, session.picker.map, width, height)
    return Response(content=png, media_type="image/png")


@router.delete("/{picker_id}", status_code=204)
async def delete_picker(picker_id: str):
    """Unmount the picker and drop its session."""
    session = _get_session(picker_id)
    session.picker.unmount()
    sessions_db.pop(picker_id, None)
    return Response(status_code=204)
