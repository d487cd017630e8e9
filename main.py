#!/usr/bin/env python3
"""
SafeHaven -- Disaster hazard assessment for any coordinate.
No API keys required. All data sources are free and public
(NASA POWER, USGS, NWS, NASA EONET).

Usage:
  python main.py --lat 34.05 --lon -118.25
  python main.py --lat 34.05 --lon -118.25 --json
  python main.py --lat 34.05 --lon -118.25 --no-cache
  python main.py --lat 34.05 --lon -118.25 --test-mode
  python main.py --lat 34.05 --lon -118.25 --no-color
"""

import argparse

from cache.store import FeedCache
from core.formatter import disable_color, print_terminal, to_json
from core.hazards import thresholds_for
from core.pipeline import assess_location


def _latitude(value: str) -> float:
    lat = float(value)
    if not -90 <= lat <= 90:
        raise argparse.ArgumentTypeError(f"latitude must be between -90 and 90, got {value}")
    return lat


def _longitude(value: str) -> float:
    lon = float(value)
    if not -180 <= lon <= 180:
        raise argparse.ArgumentTypeError(f"longitude must be between -180 and 180, got {value}")
    return lon


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="safehaven",
        description="Hazard assessment from public disaster feeds.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --lat 34.05 --lon -118.25
  python main.py --lat 19.43 --lon -155.29 --json > report.json
        """,
    )
    parser.add_argument("--lat", type=_latitude, required=True, help="Latitude in decimal degrees")
    parser.add_argument("--lon", type=_longitude, required=True, help="Longitude in decimal degrees")
    parser.add_argument("--json", action="store_true", help="Output structured JSON")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Use lenient event thresholds to confirm alerts fire",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color codes in terminal output",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Skip the local cache and force fresh feed lookups",
    )
    args = parser.parse_args()

    if args.no_color:
        disable_color()

    cache = None if args.no_cache else FeedCache()
    try:
        if not args.json:
            print("\nSafeHaven — Hazard Assessment")
            print("─" * 40)
            print("Querying NASA POWER, USGS, NWS and EONET...", end=" ", flush=True)
        report = assess_location(args.lat, args.lon, cache, thresholds_for(args.test_mode))
    finally:
        if cache is not None:
            cache.close()

    if args.json:
        print(to_json(report))
        return

    print("done.")
    print_terminal(report)
    if report.errors:
        print(f"  [!] {len(report.errors)} feed(s) could not be retrieved.\n")


if __name__ == "__main__":
    main()
