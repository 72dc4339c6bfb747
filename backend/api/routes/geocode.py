"""
Geocoding proxy routes used by the dashboard outside of a picker session.
"""
import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query

from api.schemas import ReverseResponse, SearchResultsResponse, SuggestionResponse
from domain.models import UNKNOWN_LOCATION
from services.geocoding import SEARCH_LIMIT, GeocodingError, get_default_geocoder

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/search", response_model=SearchResultsResponse)
async def search(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(SEARCH_LIMIT, ge=1, le=20),
):
    """Forward-geocode a free-text query."""
    geocoder = get_default_geocoder()
    try:
        results = await asyncio.to_thread(geocoder.search, q, limit)
    except GeocodingError as exc:
        logger.warning("geocode search failed for %r: %s", q, exc)
        raise HTTPException(status_code=502, detail="Geocoding service unavailable")
    return SearchResultsResponse(
        query=q,
        results=[SuggestionResponse.from_domain(item) for item in results],
    )


@router.get("/reverse", response_model=ReverseResponse)
async def reverse(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
):
    """Reverse-geocode a coordinate; failures resolve to "Unknown location"."""
    geocoder = get_default_geocoder()
    try:
        address = await asyncio.to_thread(geocoder.reverse, lat, lng)
    except GeocodingError as exc:
        logger.warning("reverse geocode failed for %s,%s: %s", lat, lng, exc)
        address = UNKNOWN_LOCATION
    return ReverseResponse(lat=lat, lng=lng, address=address)
