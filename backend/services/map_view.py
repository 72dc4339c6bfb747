"""
Headless map model owned by one location picker.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from domain.models import Coordinate

logger = logging.getLogger(__name__)

DEFAULT_ZOOM = 13
FOCUS_ZOOM = 15

MapHandler = Callable[[Any], None]


@dataclass
class MapView:
    """Center, zoom, the two marker layers and registered event handlers."""
    center: Coordinate
    zoom: int = DEFAULT_ZOOM
    selection_marker: Optional[Coordinate] = None
    user_location_marker: Optional[Coordinate] = None
    _handlers: Dict[str, List[MapHandler]] = field(default_factory=dict, repr=False)

    def set_view(self, center: Coordinate, zoom: Optional[int] = None) -> None:
        self.center = center
        if zoom is not None:
            self.zoom = zoom

    def place_marker(self, coordinate: Coordinate) -> None:
        self.selection_marker = coordinate

    def place_user_location_marker(self, coordinate: Coordinate) -> None:
        self.user_location_marker = coordinate

    def on(self, event: str, handler: MapHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Optional[MapHandler] = None) -> None:
        """Unregister ``handler``, or every handler for ``event`` when omitted."""
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def fire(self, event: str, payload: Any) -> int:
        """Invoke handlers for ``event``; returns how many ran."""
        handlers = list(self._handlers.get(event, []))
        if not handlers:
            logger.debug("map event %s dropped: no handlers", event)
        for handler in handlers:
            handler(payload)
        return len(handlers)

    def click(self, coordinate: Coordinate) -> int:
        return self.fire("click", coordinate)
