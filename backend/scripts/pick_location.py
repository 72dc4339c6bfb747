"""Drive a location picker from the command line.

Usage:
    python scripts/pick_location.py --query "Trafalgar Square" [--select 0]
    python scripts/pick_location.py --query "51.5074,-0.1278"
    python scripts/pick_location.py --click 51.5007,-0.1246 [--out map.png]

Useful for checking Nominatim connectivity and headers from a deploy host.
The picker's callback output is printed as "lat, lng -> address".
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.coordinates import parse_coordinate_entry  # noqa: E402
from services.location_picker import LocationPicker  # noqa: E402
from services.map_preview import render_picker_map  # noqa: E402

logger = logging.getLogger("pick_location")


def _print_selection(lat: float, lng: float, address: str) -> None:
    print(f"{lat}, {lng} -> {address}")


async def run(args: argparse.Namespace) -> int:
    picker = LocationPicker(on_location_select=_print_selection)
    await picker.mount()
    try:
        if args.query is not None:
            suggestions = await picker.search(args.query)
            for i, item in enumerate(suggestions):
                print(f"[{i}] {item.label} ({item.kind}, importance={item.rank:.3f})")
            if args.select is not None:
                if args.select >= len(suggestions):
                    logger.error("No suggestion at index %s", args.select)
                    return 1
                picker.select_suggestion(suggestions[args.select])
        if args.click is not None:
            coordinate = parse_coordinate_entry(args.click)
            if coordinate is None:
                logger.error("--click expects 'lat,lng', got %r", args.click)
                return 1
            await picker.handle_map_click(coordinate)
        if args.out:
            Path(args.out).write_bytes(render_picker_map(picker.map))
            logger.info("Wrote map preview to %s", args.out)
    finally:
        picker.unmount()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--query", help="search box text")
    parser.add_argument("--select", type=int, help="index of the suggestion to pick")
    parser.add_argument("--click", help="map click as 'lat,lng'")
    parser.add_argument("--out", help="write a PNG preview of the map here")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    if args.query is None and args.click is None:
        parser.error("one of --query or --click is required")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
