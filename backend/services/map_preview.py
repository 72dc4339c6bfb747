"""
Static PNG preview of a picker's map: tiles (or a plain grid), the selected
location pin and the current-location dot.
"""
from __future__ import annotations

import logging
import math
from io import BytesIO
from typing import Optional, Tuple

import requests
from PIL import Image, ImageDraw

from domain.models import Coordinate
from services.map_view import MapView
from settings import settings

logger = logging.getLogger(__name__)

TILE_SIZE = 256
MAX_TILE_ZOOM = 19

BACKGROUND_COLOR = (26, 27, 30)
GRID_COLOR = (44, 46, 52)
TILE_DARKEN_OVERLAY = (0, 0, 0, 110)
SELECTION_FILL = (239, 68, 68, 255)
SELECTION_OUTLINE = (255, 255, 255, 255)
USER_LOCATION_FILL = (79, 70, 229, 255)
USER_LOCATION_HALO = (79, 70, 229, 90)
USER_LOCATION_OUTLINE = (255, 255, 255, 255)

_TILE_SESSION = requests.Session()


def _latlon_to_world_px(lat: float, lon: float, zoom: int) -> Tuple[float, float]:
    """Convert lat/lon to Web Mercator world pixel coords at ``zoom``."""
    # Mercator is undefined at the poles.
    lat = max(-85.05112878, min(85.05112878, lat))
    lat_rad = math.radians(lat)
    n = 2.0 ** zoom
    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    return x * TILE_SIZE, y * TILE_SIZE


def project_to_canvas(
    point: Coordinate, center: Coordinate, zoom: int, size: Tuple[int, int]
) -> Tuple[float, float]:
    """Canvas position of ``point`` on a ``size`` image centered on ``center``."""
    width, height = size
    cx, cy = _latlon_to_world_px(center.lat, center.lng, zoom)
    px, py = _latlon_to_world_px(point.lat, point.lng, zoom)
    return width / 2.0 + (px - cx), height / 2.0 + (py - cy)


def _fetch_tile_http(z: int, x: int, y: int) -> Optional[Image.Image]:
    """Fetch a single tile. Returns a PIL Image or None on error."""
    url = settings.MAP_TILE_URL_TEMPLATE.format(z=z, x=x, y=y)
    headers = {"User-Agent": settings.NOMINATIM_USER_AGENT or "Xequtive-Dashboard/1.0 (tile-fetch)"}
    try:
        resp = _TILE_SESSION.get(url, headers=headers, timeout=settings.MAP_TILE_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Tile fetch failed for %s: %s", url, exc)
        return None
    try:
        return Image.open(BytesIO(resp.content)).convert("RGB")
    except Exception as exc:
        logger.warning("Tile decode failed for %s: %s", url, exc)
        return None


def _draw_grid_background(img: Image.Image, spacing: int = 64) -> None:
    draw = ImageDraw.Draw(img)
    for x in range(0, img.width, spacing):
        draw.line([(x, 0), (x, img.height)], fill=GRID_COLOR, width=1)
    for y in range(0, img.height, spacing):
        draw.line([(0, y), (img.width, y)], fill=GRID_COLOR, width=1)


def _draw_tile_background(img: Image.Image, center: Coordinate, zoom: int) -> bool:
    """
    Paste the tiles covering the canvas.
    Returns True if at least one tile was drawn.
    """
    if not settings.MAP_TILES_ENABLED or not settings.MAP_TILE_URL_TEMPLATE:
        return False
    zoom = max(0, min(MAX_TILE_ZOOM, zoom))
    cx, cy = _latlon_to_world_px(center.lat, center.lng, zoom)
    left = cx - img.width / 2.0
    top = cy - img.height / 2.0
    n = 2 ** zoom

    tx_min = int(math.floor(left / TILE_SIZE))
    tx_max = int(math.floor((left + img.width) / TILE_SIZE))
    ty_min = max(0, int(math.floor(top / TILE_SIZE)))
    ty_max = min(n - 1, int(math.floor((top + img.height) / TILE_SIZE)))

    any_tile = False
    for ty in range(ty_min, ty_max + 1):
        for tx in range(tx_min, tx_max + 1):
            tile = _fetch_tile_http(zoom, tx % n, ty)
            if tile is None:
                continue
            any_tile = True
            px = int(round(tx * TILE_SIZE - left))
            py = int(round(ty * TILE_SIZE - top))
            img.paste(tile, (px, py))
    return any_tile


def _apply_tile_overlay(bg: Image.Image) -> Image.Image:
    """Darken the tiles to match the dashboard's dark map style."""
    base = bg.convert("RGBA")
    overlay = Image.new("RGBA", base.size, TILE_DARKEN_OVERLAY)
    return Image.alpha_composite(base, overlay).convert("RGB")


def _draw_selection_pin(draw: ImageDraw.ImageDraw, center: Tuple[float, float], radius: int = 9) -> None:
    """Teardrop pin whose tip sits on the selected point."""
    x, y = center
    head_y = y - radius * 2.2
    draw.polygon(
        [(x - radius * 0.8, head_y + radius * 0.5), (x + radius * 0.8, head_y + radius * 0.5), (x, y)],
        fill=SELECTION_FILL,
    )
    draw.ellipse(
        (x - radius, head_y - radius, x + radius, head_y + radius),
        fill=SELECTION_FILL,
        outline=SELECTION_OUTLINE,
        width=2,
    )
    inner = radius * 0.35
    draw.ellipse((x - inner, head_y - inner, x + inner, head_y + inner), fill=SELECTION_OUTLINE)


def _draw_user_location(draw: ImageDraw.ImageDraw, center: Tuple[float, float], radius: int = 8) -> None:
    x, y = center
    halo = radius * 2
    draw.ellipse((x - halo, y - halo, x + halo, y + halo), fill=USER_LOCATION_HALO)
    draw.ellipse(
        (x - radius, y - radius, x + radius, y + radius),
        fill=USER_LOCATION_FILL,
        outline=USER_LOCATION_OUTLINE,
        width=3,
    )


def render_picker_map(view: MapView, width: int = 640, height: int = 400) -> bytes:
    """Render ``view`` to PNG bytes. Never fails because tiles are unavailable."""
    size = (width, height)
    img = Image.new("RGB", size, BACKGROUND_COLOR)
    if _draw_tile_background(img, view.center, view.zoom):
        img = _apply_tile_overlay(img)
    else:
        _draw_grid_background(img)

    overlay = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    if view.user_location_marker is not None:
        _draw_user_location(draw, project_to_canvas(view.user_location_marker, view.center, view.zoom, size))
    if view.selection_marker is not None:
        _draw_selection_pin(draw, project_to_canvas(view.selection_marker, view.center, view.zoom, size))
    img = Image.alpha_composite(img.convert("RGBA"), overlay).convert("RGB")

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
