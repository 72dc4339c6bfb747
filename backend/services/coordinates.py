"""
Parsing of typed "lat,lng" pairs in the picker search box.
"""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional

from domain.models import Coordinate

# Latitude 0-90, longitude 0-180, optional sign and decimals, optional space after the comma.
# No surrounding whitespace: padded text goes to the forward search.
_COORDINATE_ENTRY_RE = re.compile(
    r"^[-+]?(?P<lat>[1-8]?\d(?:\.\d+)?|90(?:\.0+)?),\s*"
    r"[-+]?(?P<lng>180(?:\.0+)?|(?:1[0-7]\d|[1-9]?\d)(?:\.\d+)?)$"
)


def format_number(value: float) -> str:
    """Shortest plain decimal form: no exponent, no trailing '.0' on whole numbers."""
    if value == 0:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))), "f")


def format_coordinate_address(coordinate: Coordinate) -> str:
    return f"{format_number(coordinate.lat)}, {format_number(coordinate.lng)}"


def parse_coordinate_entry(text: str) -> Optional[Coordinate]:
    """Return a Coordinate when ``text`` is a strict in-range "lat,lng" pair.

    Anything else, including out-of-range values or surrounding whitespace,
    returns None so the caller can fall back to a text search.
    """
    if not text or not _COORDINATE_ENTRY_RE.fullmatch(text):
        return None
    lat_text, lng_text = text.split(",", 1)
    try:
        return Coordinate(float(lat_text), float(lng_text.strip()))
    except ValueError:
        return None
