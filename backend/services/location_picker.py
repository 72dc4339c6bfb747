"""
Location picker session: search box, suggestions, map clicks and geolocation.

One picker owns one MapView and one PickerSessionState and reports every
resolved selection through ``on_location_select(lat, lng, address)``.

Blocking work (geocoding over HTTP, the device geolocation provider) runs in
worker threads via ``asyncio.to_thread``; all state mutation happens on the
event loop. Searches are tagged with a sequence number and only the most
recently issued one may replace the visible suggestions.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Coroutine, List, Optional, Protocol, Set

from domain.models import (
    UNKNOWN_LOCATION,
    Coordinate,
    GeocodeSuggestion,
    PickerPhase,
    PickerSessionState,
    SelectedLocation,
    SelectionSource,
)
from services.coordinates import format_coordinate_address, parse_coordinate_entry
from services.geocoding import SEARCH_LIMIT, get_default_geocoder
from services.map_view import FOCUS_ZOOM, MapView
from settings import settings

logger = logging.getLogger(__name__)

LocationCallback = Callable[[float, float, str], None]
GeolocationProvider = Callable[[], Optional[Coordinate]]


class Geocoder(Protocol):
    def search(self, query: str, limit: int = SEARCH_LIMIT) -> List[GeocodeSuggestion]:
        ...

    def reverse(self, lat: float, lng: float) -> str:
        ...


class GeolocationUnavailable(Exception):
    """The device position could not be determined (denied, unsupported, timed out)."""


class PickerNotMounted(RuntimeError):
    pass


def default_initial_position() -> Coordinate:
    return Coordinate(settings.PICKER_DEFAULT_LAT, settings.PICKER_DEFAULT_LNG)


class LocationPicker:
    def __init__(
        self,
        on_location_select: LocationCallback,
        geocoder: Optional[Geocoder] = None,
        geolocate: Optional[GeolocationProvider] = None,
        initial_position: Optional[Coordinate] = None,
        search_debounce_seconds: Optional[float] = None,
    ):
        self.on_location_select = on_location_select
        self.geocoder = geocoder or get_default_geocoder()
        self.geolocate = geolocate
        self.initial_position = initial_position or default_initial_position()
        if search_debounce_seconds is None:
            search_debounce_seconds = settings.PICKER_SEARCH_DEBOUNCE_MS / 1000.0
        self.search_debounce_seconds = max(0.0, search_debounce_seconds)

        self.state = PickerSessionState()
        self.selection: Optional[SelectedLocation] = None
        self.phase = PickerPhase.IDLE
        self.map: Optional[MapView] = None

        self._mounted = False
        self._search_seq = 0
        self._pending_clicks = 0
        # Serializes reverse lookups so click callbacks fire in click order.
        self._click_lock: Optional[asyncio.Lock] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> MapView:
        """Create the map, wire the click handler and start the one-shot geolocation."""
        if self._mounted:
            return self.map  # type: ignore[return-value]
        self.map = MapView(center=self.initial_position)
        self.map.on("click", self._on_map_click)
        self._click_lock = asyncio.Lock()
        self._mounted = True
        self._refresh_phase()
        if self.geolocate is not None:
            self._spawn(self._locate_device())
        return self.map

    def unmount(self) -> None:
        """Tear down: unregister handlers, cancel background work, drop session state."""
        if not self._mounted:
            return
        self._mounted = False
        if self.map is not None:
            self.map.off("click")
        for task in list(self._tasks):
            task.cancel()
        self._search_seq += 1
        self.state = PickerSessionState()
        self._set_phase(PickerPhase.UNMOUNTED)

    async def settle(self) -> None:
        """Wait until background tasks (geolocation, map-fired clicks) have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def search(self, query: str) -> List[GeocodeSuggestion]:
        """Handle a change of the search box text.

        Returns the suggestions visible once this call is done; when a newer
        search superseded this one, those are the newer search's suggestions.
        """
        self._ensure_mounted()
        self.state.search_text = query
        seq = self._next_search_seq()

        if not query or not query.strip():
            self.state.clear_suggestions()
            self.state.is_searching = False
            self._refresh_phase()
            return []

        coordinate = parse_coordinate_entry(query)
        if coordinate is not None:
            self.state.clear_suggestions()
            self.state.is_searching = False
            self._ensure_mounted().set_view(coordinate, FOCUS_ZOOM)
            self._emit(
                SelectedLocation(
                    coordinate=coordinate,
                    address=format_coordinate_address(coordinate),
                    source=SelectionSource.COORDINATE_ENTRY,
                )
            )
            return []

        self.state.is_searching = True
        self._refresh_phase()

        if self.search_debounce_seconds > 0:
            await asyncio.sleep(self.search_debounce_seconds)
            if not self._is_latest_search(seq):
                logger.debug("search %r superseded during debounce", query)
                return list(self.state.suggestions)

        try:
            results = await asyncio.to_thread(self.geocoder.search, query.strip(), SEARCH_LIMIT)
        except Exception as exc:
            logger.warning("Error fetching suggestions for %r: %s", query, exc)
            results = []

        if not self._is_latest_search(seq):
            logger.debug("discarding stale suggestions for %r (seq=%d, latest=%d)", query, seq, self._search_seq)
            return list(self.state.suggestions)

        self.state.suggestions = list(results)
        self.state.is_searching = False
        self._refresh_phase()
        return list(self.state.suggestions)

    def select_suggestion(self, item: GeocodeSuggestion) -> SelectedLocation:
        view = self._ensure_mounted()
        self._next_search_seq()
        self._set_phase(PickerPhase.RESOLVING)
        coordinate = item.coordinate
        view.set_view(coordinate, FOCUS_ZOOM)
        self.state.clear_suggestions()
        self.state.is_searching = False
        self.state.search_text = item.label
        return self._emit(
            SelectedLocation(
                coordinate=coordinate,
                address=item.label,
                source=SelectionSource.SUGGESTION,
            )
        )

    async def handle_map_click(self, coordinate: Coordinate) -> Optional[SelectedLocation]:
        """Move the marker, reverse-geocode, and always report the click.

        Returns None only when the picker was unmounted before the address
        resolved; in that case no callback fires. Overlapping clicks resolve
        one at a time in click order, so the last click is reported last.
        """
        view = self._ensure_mounted()
        lock = self._click_lock or asyncio.Lock()
        self.state.current_marker = coordinate
        view.place_marker(coordinate)
        self._pending_clicks += 1
        self._refresh_phase()
        async with lock:
            try:
                try:
                    address = await asyncio.to_thread(self.geocoder.reverse, coordinate.lat, coordinate.lng)
                except Exception as exc:
                    logger.warning(
                        "Error fetching address for %s,%s: %s", coordinate.lat, coordinate.lng, exc
                    )
                    address = UNKNOWN_LOCATION
            finally:
                self._pending_clicks -= 1

            if not self._mounted:
                logger.debug("picker unmounted before click at %s resolved", coordinate)
                return None
            return self._emit(
                SelectedLocation(
                    coordinate=coordinate,
                    address=address or UNKNOWN_LOCATION,
                    source=SelectionSource.CLICK,
                )
            )

    def _on_map_click(self, coordinate: Coordinate) -> None:
        self._spawn(self.handle_map_click(coordinate))

    async def _locate_device(self) -> None:
        try:
            position = await asyncio.to_thread(self.geolocate)  # type: ignore[arg-type]
        except GeolocationUnavailable as exc:
            logger.info("Device location unavailable: %s", exc)
            return
        except Exception as exc:
            logger.warning("Error getting location: %s", exc)
            return
        if position is None:
            logger.info("Device location unavailable: provider returned nothing")
            return
        if not self._mounted or self.map is None:
            return
        self.state.user_location_marker = position
        self.map.place_user_location_marker(position)
        self.map.set_view(position, FOCUS_ZOOM)
        logger.debug("map recentered on device location %s", position)

    def _emit(self, location: SelectedLocation) -> SelectedLocation:
        self.selection = location
        self._set_phase(PickerPhase.RESOLVED)
        try:
            self.on_location_select(location.coordinate.lat, location.coordinate.lng, location.address)
        finally:
            self._refresh_phase()
        return location

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _next_search_seq(self) -> int:
        self._search_seq += 1
        return self._search_seq

    def _is_latest_search(self, seq: int) -> bool:
        return self._mounted and seq == self._search_seq

    def _ensure_mounted(self) -> MapView:
        if not self._mounted or self.map is None:
            raise PickerNotMounted("location picker is not mounted")
        return self.map

    def _refresh_phase(self) -> None:
        if not self._mounted:
            phase = PickerPhase.UNMOUNTED
        elif self._pending_clicks:
            phase = PickerPhase.RESOLVING
        elif self.state.is_searching:
            phase = PickerPhase.SEARCHING
        elif self.state.suggestions:
            phase = PickerPhase.SUGGESTIONS_SHOWN
        else:
            phase = PickerPhase.IDLE
        self._set_phase(phase)

    def _set_phase(self, phase: PickerPhase) -> None:
        if phase is not self.phase:
            logger.debug("picker phase %s -> %s", self.phase.value, phase.value)
            self.phase = phase
