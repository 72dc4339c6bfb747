import asyncio
import threading
from typing import Dict, List, Optional

import pytest

from domain.models import (
    Coordinate,
    GeocodeSuggestion,
    PickerPhase,
    SelectionSource,
)
from services.geocoding import GeocodingTransportError
from services.location_picker import (
    GeolocationUnavailable,
    LocationPicker,
    PickerNotMounted,
)
from services.map_view import DEFAULT_ZOOM, FOCUS_ZOOM


def _suggestion(i: int, label: str, rank: float) -> GeocodeSuggestion:
    return GeocodeSuggestion(
        id=str(i), lat=51.5 + i / 1000, lng=-0.12 - i / 1000, label=label, kind="square", rank=rank
    )


TRAFALGAR = [
    _suggestion(1, "Trafalgar Square, London", 0.92),
    _suggestion(2, "Trafalgar Square (bus stop), London", 0.71),
    _suggestion(3, "Trafalgar Square, Stratford-upon-Avon", 0.55),
    _suggestion(4, "Trafalgar Square Tube Entrance, London", 0.41),
    _suggestion(5, "Trafalgar Square Hotel, Sheffield", 0.2),
]


class FakeGeocoder:
    def __init__(self, results: Optional[Dict[str, List[GeocodeSuggestion]]] = None, address: str = "Whitehall, London"):
        self.results = results or {}
        self.address = address
        self.search_calls: List[str] = []
        self.reverse_calls: List[tuple] = []
        self.search_error: Optional[Exception] = None
        self.reverse_error: Optional[Exception] = None
        self.gates: Dict[str, threading.Event] = {}
        self.reverse_gate: Optional[threading.Event] = None

    def search(self, query, limit=5):
        self.search_calls.append(query)
        gate = self.gates.get(query)
        if gate is not None:
            assert gate.wait(5)
        if self.search_error is not None:
            raise self.search_error
        return list(self.results.get(query, []))

    def reverse(self, lat, lng):
        self.reverse_calls.append((lat, lng))
        if self.reverse_gate is not None:
            assert self.reverse_gate.wait(5)
        if self.reverse_error is not None:
            raise self.reverse_error
        return self.address


class Recorder:
    def __init__(self):
        self.calls: List[tuple] = []

    def __call__(self, lat, lng, address):
        self.calls.append((lat, lng, address))


def _picker(geocoder=None, **kwargs):
    recorder = Recorder()
    picker = LocationPicker(
        on_location_select=recorder,
        geocoder=geocoder or FakeGeocoder(),
        search_debounce_seconds=kwargs.pop("search_debounce_seconds", 0),
        **kwargs,
    )
    return picker, recorder


def test_mount_centers_on_default_position():
    async def scenario():
        picker, _ = _picker()
        view = await picker.mount()
        return picker, view

    picker, view = asyncio.run(scenario())
    assert view.center == Coordinate(51.505, -0.09)
    assert view.zoom == DEFAULT_ZOOM
    assert picker.phase is PickerPhase.IDLE
    assert view.handler_count("click") == 1


def test_coordinate_entry_emits_without_network():
    geocoder = FakeGeocoder()

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        result = await picker.search("51.5074,-0.1278")
        return picker, recorder, result

    picker, recorder, result = asyncio.run(scenario())
    assert recorder.calls == [(51.5074, -0.1278, "51.5074, -0.1278")]
    assert geocoder.search_calls == []
    assert result == []
    assert picker.selection.source is SelectionSource.COORDINATE_ENTRY
    assert picker.map.center == Coordinate(51.5074, -0.1278)
    assert picker.map.zoom == FOCUS_ZOOM
    assert picker.phase is PickerPhase.IDLE


@pytest.mark.parametrize("query", ["", "   ", "\t\n"])
def test_blank_query_clears_suggestions_without_network(query):
    geocoder = FakeGeocoder({"Trafalgar": TRAFALGAR})

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        await picker.search("Trafalgar")
        assert picker.state.suggestions
        await picker.search(query)
        return picker, recorder

    picker, recorder = asyncio.run(scenario())
    assert geocoder.search_calls == ["Trafalgar"]
    assert picker.state.suggestions == []
    assert picker.state.search_text == query
    assert picker.phase is PickerPhase.IDLE
    assert recorder.calls == []


def test_search_shows_suggestions_in_service_order():
    geocoder = FakeGeocoder({"Trafalgar Square": TRAFALGAR})

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        visible = await picker.search("Trafalgar Square")
        return picker, recorder, visible

    picker, recorder, visible = asyncio.run(scenario())
    assert [s.label for s in visible] == [s.label for s in TRAFALGAR]
    assert picker.state.suggestions == TRAFALGAR
    assert picker.state.is_searching is False
    assert picker.phase is PickerPhase.SUGGESTIONS_SHOWN
    # Typing never reports a selection.
    assert recorder.calls == []


def test_late_response_from_earlier_search_is_discarded():
    older = [_suggestion(9, "Trafalgar, Indiana", 0.3)]
    geocoder = FakeGeocoder({"Tra": older, "Trafalgar": TRAFALGAR})
    geocoder.gates["Tra"] = threading.Event()

    async def scenario():
        picker, _ = _picker(geocoder)
        await picker.mount()
        first = asyncio.create_task(picker.search("Tra"))
        await asyncio.sleep(0)
        await picker.search("Trafalgar")
        geocoder.gates["Tra"].set()
        first_visible = await first
        return picker, first_visible

    picker, first_visible = asyncio.run(scenario())
    assert geocoder.search_calls == ["Tra", "Trafalgar"]
    assert picker.state.suggestions == TRAFALGAR
    assert first_visible == TRAFALGAR
    assert picker.phase is PickerPhase.SUGGESTIONS_SHOWN


def test_late_search_response_does_not_reopen_suggestions_after_selection():
    geocoder = FakeGeocoder({"Tra": TRAFALGAR})
    geocoder.gates["Tra"] = threading.Event()

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        pending = asyncio.create_task(picker.search("Tra"))
        await asyncio.sleep(0)
        await picker.search("40.7,-74")
        geocoder.gates["Tra"].set()
        await pending
        return picker, recorder

    picker, recorder = asyncio.run(scenario())
    assert picker.state.suggestions == []
    assert picker.state.is_searching is False
    assert recorder.calls == [(40.7, -74.0, "40.7, -74")]


def test_search_failure_degrades_to_empty_suggestions():
    geocoder = FakeGeocoder()
    geocoder.search_error = GeocodingTransportError("offline")

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        visible = await picker.search("Heathrow")
        return picker, recorder, visible

    picker, recorder, visible = asyncio.run(scenario())
    assert visible == []
    assert picker.state.is_searching is False
    assert picker.phase is PickerPhase.IDLE
    assert recorder.calls == []


def test_malformed_coordinate_entry_falls_back_to_text_search():
    geocoder = FakeGeocoder()

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        await picker.search("95.0,10.0")
        return recorder

    recorder = asyncio.run(scenario())
    assert geocoder.search_calls == ["95.0,10.0"]
    assert recorder.calls == []


def test_select_suggestion_emits_once_and_clears():
    geocoder = FakeGeocoder({"Trafalgar Square": TRAFALGAR})

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        visible = await picker.search("Trafalgar Square")
        selection = picker.select_suggestion(visible[1])
        return picker, recorder, selection

    picker, recorder, selection = asyncio.run(scenario())
    item = TRAFALGAR[1]
    assert recorder.calls == [(item.lat, item.lng, item.label)]
    assert selection.source is SelectionSource.SUGGESTION
    assert picker.state.suggestions == []
    assert picker.state.search_text == item.label
    assert picker.map.center == Coordinate(item.lat, item.lng)
    assert picker.map.zoom == FOCUS_ZOOM
    assert picker.phase is PickerPhase.IDLE


def test_map_click_moves_marker_and_reports_address():
    geocoder = FakeGeocoder(address="Westminster Abbey, London")
    geocoder.reverse_gate = threading.Event()
    target = Coordinate(51.4994, -0.1273)

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        pending = asyncio.create_task(picker.handle_map_click(target))
        await asyncio.sleep(0)
        # Marker moves before the address resolves.
        assert picker.state.current_marker == target
        assert picker.map.selection_marker == target
        assert picker.phase is PickerPhase.RESOLVING
        geocoder.reverse_gate.set()
        selection = await pending
        return picker, recorder, selection

    picker, recorder, selection = asyncio.run(scenario())
    assert recorder.calls == [(51.4994, -0.1273, "Westminster Abbey, London")]
    assert selection.source is SelectionSource.CLICK
    assert picker.phase is PickerPhase.IDLE


@pytest.mark.parametrize(
    "error",
    [GeocodingTransportError("HTTP error! status: 500"), RuntimeError("unexpected")],
)
def test_map_click_failure_reports_unknown_location(error):
    geocoder = FakeGeocoder()
    geocoder.reverse_error = error
    target = Coordinate(48.8584, 2.2945)

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        await picker.handle_map_click(target)
        return recorder

    recorder = asyncio.run(scenario())
    assert recorder.calls == [(48.8584, 2.2945, "Unknown location")]


def test_every_click_fired_through_the_map_reports_once():
    geocoder = FakeGeocoder()
    clicks = [Coordinate(51.5, -0.1), Coordinate(51.6, -0.2), Coordinate(51.7, -0.3)]

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        for c in clicks:
            assert picker.map.click(c) == 1
        await picker.settle()
        return picker, recorder

    picker, recorder = asyncio.run(scenario())
    assert sorted((lat, lng) for lat, lng, _ in recorder.calls) == [c.as_tuple() for c in clicks]
    assert picker.state.current_marker == clicks[-1]


def test_geolocation_success_recenters_and_sets_user_marker():
    device = Coordinate(40.7128, -74.006)

    async def scenario():
        picker, recorder = _picker(geolocate=lambda: device)
        await picker.mount()
        await picker.settle()
        return picker, recorder

    picker, recorder = asyncio.run(scenario())
    assert picker.state.user_location_marker == device
    assert picker.map.user_location_marker == device
    assert picker.map.center == device
    assert picker.map.zoom == FOCUS_ZOOM
    assert picker.state.current_marker is None
    assert recorder.calls == []


@pytest.mark.parametrize("outcome", ["denied", "none", "crash"])
def test_geolocation_failure_is_silent(outcome):
    def locate():
        if outcome == "denied":
            raise GeolocationUnavailable("User denied Geolocation")
        if outcome == "crash":
            raise OSError("no location service")
        return None

    async def scenario():
        picker, recorder = _picker(geolocate=locate, initial_position=Coordinate(53.48, -2.24))
        await picker.mount()
        await picker.settle()
        return picker, recorder

    picker, recorder = asyncio.run(scenario())
    assert picker.state.user_location_marker is None
    assert picker.map.center == Coordinate(53.48, -2.24)
    assert recorder.calls == []


def test_no_callback_after_unmount():
    geocoder = FakeGeocoder()
    geocoder.reverse_gate = threading.Event()

    async def scenario():
        picker, recorder = _picker(geocoder)
        view = await picker.mount()
        pending = asyncio.create_task(picker.handle_map_click(Coordinate(1.0, 2.0)))
        await asyncio.sleep(0)
        picker.unmount()
        geocoder.reverse_gate.set()
        result = await pending
        return picker, view, recorder, result

    picker, view, recorder, result = asyncio.run(scenario())
    assert result is None
    assert recorder.calls == []
    assert picker.phase is PickerPhase.UNMOUNTED
    assert view.handler_count("click") == 0


def test_operations_after_unmount_raise():
    async def scenario():
        picker, _ = _picker()
        await picker.mount()
        picker.unmount()
        with pytest.raises(PickerNotMounted):
            await picker.search("anything")
        with pytest.raises(PickerNotMounted):
            picker.select_suggestion(TRAFALGAR[0])

    asyncio.run(scenario())


def test_debounce_sends_only_the_last_query():
    geocoder = FakeGeocoder({"Trafalgar": TRAFALGAR})

    async def scenario():
        picker, _ = _picker(geocoder, search_debounce_seconds=0.05)
        await picker.mount()
        await asyncio.gather(
            picker.search("T"),
            picker.search("Tra"),
            picker.search("Trafalgar"),
        )
        return picker

    picker = asyncio.run(scenario())
    assert geocoder.search_calls == ["Trafalgar"]
    assert picker.state.suggestions == TRAFALGAR


def test_overlapping_clicks_report_in_click_order():
    gates = {1.0: threading.Event(), 2.0: threading.Event()}

    class GatedGeocoder(FakeGeocoder):
        def reverse(self, lat, lng):
            self.reverse_calls.append((lat, lng))
            assert gates[lat].wait(5)
            return f"addr {lat}"

    geocoder = GatedGeocoder()
    first, second = Coordinate(1.0, 1.0), Coordinate(2.0, 2.0)

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        a = asyncio.create_task(picker.handle_map_click(first))
        await asyncio.sleep(0)
        b = asyncio.create_task(picker.handle_map_click(second))
        await asyncio.sleep(0)
        # The later click's lookup is ready first.
        gates[2.0].set()
        await asyncio.sleep(0.05)
        gates[1.0].set()
        await asyncio.gather(a, b)
        return picker, recorder

    picker, recorder = asyncio.run(scenario())
    assert recorder.calls == [(1.0, 1.0, "addr 1.0"), (2.0, 2.0, "addr 2.0")]
    assert picker.state.current_marker == second
    assert picker.map.selection_marker == second
    assert picker.selection.coordinate == second
    assert picker.selection.address == "addr 2.0"
    assert picker.phase is PickerPhase.IDLE


def test_tiny_coordinate_entry_uses_plain_decimals():
    async def scenario():
        picker, recorder = _picker()
        await picker.mount()
        await picker.search("0.00001,0.00005")
        return recorder

    recorder = asyncio.run(scenario())
    assert recorder.calls == [(0.00001, 0.00005, "0.00001, 0.00005")]


def test_padded_coordinate_text_goes_to_forward_search():
    geocoder = FakeGeocoder()

    async def scenario():
        picker, recorder = _picker(geocoder)
        await picker.mount()
        await picker.search("  51.5,-0.1  ")
        return recorder

    recorder = asyncio.run(scenario())
    assert geocoder.search_calls == ["51.5,-0.1"]
    assert recorder.calls == []
