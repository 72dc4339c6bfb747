"""Forward and reverse geocoding against OpenStreetMap Nominatim.

Responses are validated with pydantic at the boundary: malformed items are
skipped, wrong-shaped bodies raise ``GeocodingResponseError``, and transport
problems (network, timeout, non-2xx) raise ``GeocodingTransportError``. Callers
decide how to degrade.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, List, Optional, Union

import requests
from pydantic import BaseModel, ValidationError, field_validator

from domain.models import UNKNOWN_LOCATION, Coordinate, GeocodeSuggestion
from settings import settings

logger = logging.getLogger(__name__)

FALLBACK_UA = "Xequtive-Dashboard/1.0"
SEARCH_LIMIT = 5
REVERSE_ZOOM = 18


class GeocodingError(Exception):
    """Base class for geocoding failures."""


class GeocodingTransportError(GeocodingError):
    """Network error, timeout or non-2xx status."""


class GeocodingResponseError(GeocodingError):
    """The service answered with something we could not interpret."""


class NominatimSearchItem(BaseModel):
    place_id: Union[int, str]
    lat: float
    lon: float
    display_name: str
    type: str = ""
    importance: float = 0.0

    @field_validator("importance", mode="before")
    @classmethod
    def _default_importance(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> Any:
        return "" if value is None else value


class NominatimReverseResult(BaseModel):
    display_name: Optional[str] = None


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


class NominatimClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        accept_language: Optional[str] = None,
        referer: Optional[str] = None,
        timeout: Optional[float] = None,
        min_interval: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        base = base_url or settings.NOMINATIM_BASE_URL
        # Accept an endpoint URL as well as the service root.
        if base.endswith("/reverse") or base.endswith("/search"):
            base = base.rsplit("/", 1)[0]
        self.base_url = base.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.NOMINATIM_TIMEOUT_SECONDS
        self.min_interval = (
            min_interval if min_interval is not None else settings.NOMINATIM_MIN_INTERVAL
        )
        self.session = session or requests.Session()
        ua = user_agent or settings.NOMINATIM_USER_AGENT
        if not ua:
            logger.warning(
                "NOMINATIM_USER_AGENT not set in environment; using fallback UA %s", FALLBACK_UA
            )
            ua = FALLBACK_UA
        self.headers = {
            "User-Agent": ua,
            "Accept-Language": accept_language or settings.NOMINATIM_ACCEPT_LANGUAGE,
        }
        referer = referer or settings.NOMINATIM_REFERER
        if referer:
            self.headers["Referer"] = referer
        self._lock = threading.Lock()
        self._last_request_ts = 0.0
        logger.debug("Nominatim User-Agent: %s", _redact_email(ua))

    def _throttled_get(self, path: str, params: dict[str, Any]) -> Any:
        """GET ``path`` with a minimum interval between requests; return decoded JSON."""
        if self.min_interval > 0:
            with self._lock:
                delta = time.time() - self._last_request_ts
                if delta < self.min_interval:
                    time.sleep(self.min_interval - delta)
                self._last_request_ts = time.time()
        url = f"{self.base_url}/{path}"
        try:
            resp = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GeocodingTransportError(f"request to {url} failed: {exc}") from exc
        if not resp.ok:
            raise GeocodingTransportError(f"HTTP error! status: {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise GeocodingResponseError(f"invalid JSON from {url}: {exc}") from exc

    def search(self, query: str, limit: int = SEARCH_LIMIT) -> List[GeocodeSuggestion]:
        """Forward-geocode ``query`` into ranked suggestions.

        Order is the service's relevance order; nothing is re-sorted here.
        """
        params = {"format": "json", "q": query, "limit": str(limit)}
        data = self._throttled_get("search", params)
        if not isinstance(data, list):
            raise GeocodingResponseError(
                f"expected a list from search, got {type(data).__name__}"
            )

        results: List[GeocodeSuggestion] = []
        for raw in data:
            try:
                item = NominatimSearchItem.model_validate(raw)
                Coordinate(item.lat, item.lon)
            except (ValidationError, ValueError) as exc:
                logger.warning("Skipping malformed Nominatim search item for %r: %s", query, exc)
                continue
            results.append(
                GeocodeSuggestion(
                    id=str(item.place_id),
                    lat=item.lat,
                    lng=item.lon,
                    label=item.display_name,
                    kind=item.type,
                    rank=item.importance,
                )
            )
        logger.debug("Nominatim search q=%r got %d results", query, len(results))
        return results

    def reverse(self, lat: float, lng: float) -> str:
        """Reverse-geocode a coordinate to its display name.

        A successful response without ``display_name`` yields "Unknown location".
        """
        params = {
            "format": "json",
            "lat": str(lat),
            "lon": str(lng),
            "zoom": str(REVERSE_ZOOM),
            "addressdetails": "1",
        }
        data = self._throttled_get("reverse", params)
        if not isinstance(data, dict):
            raise GeocodingResponseError(
                f"expected an object from reverse, got {type(data).__name__}"
            )
        try:
            result = NominatimReverseResult.model_validate(data)
        except ValidationError as exc:
            raise GeocodingResponseError(f"malformed reverse result: {exc}") from exc
        return result.display_name or UNKNOWN_LOCATION


_default_client: Optional[NominatimClient] = None


def get_default_geocoder() -> NominatimClient:
    global _default_client
    if _default_client is None:
        _default_client = NominatimClient()
    return _default_client
