"""
core/pipeline.py -- Fetch-cache-classify pipeline for one location.

No print statements. Designed to be called by both the CLI (via main.py)
and the REST API (via api/routes/hazards.py).

A failing feed never fails the report: its FeedError is recorded under
report.errors[source] and the matching card falls back to neutral.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from cache.store import FeedCache, cache_key
from core.fetcher import FeedError, fetch_earthquakes, fetch_eonet, fetch_tsunami_alerts, fetch_weather
from core.hazards import (
    PRODUCTION_THRESHOLDS,
    Thresholds,
    derive_cyclone_status,
    derive_earthquake_status,
    derive_flood_status,
    derive_tsunami_status,
    evaluate_hazards,
    pick_most_recent_available,
    top_hazard,
)
from core.models import Coordinates, Earthquake, HazardReport, HazardStatus, WeatherDay


def _cached(cache: Optional[FeedCache], key: str, fetch: Callable[[], Any]) -> Any:
    if cache is not None:
        hit = cache.get(key)
        if hit is not None:
            return hit
    data = fetch()
    if cache is not None:
        cache.set(key, data)
    return data


def load_weather(lat: float, lon: float, cache: Optional[FeedCache] = None) -> list[WeatherDay]:
    rows = _cached(cache, cache_key("power", lat=lat, lon=lon), lambda: [asdict(d) for d in fetch_weather(lat, lon)])
    return [WeatherDay(**r) for r in rows]


def load_earthquakes(lat: float, lon: float, cache: Optional[FeedCache] = None) -> list[Earthquake]:
    rows = _cached(
        cache, cache_key("usgs", lat=lat, lon=lon), lambda: [asdict(q) for q in fetch_earthquakes(lat, lon)]
    )
    return [Earthquake(**r) for r in rows]


def load_tsunami_alerts(cache: Optional[FeedCache] = None) -> list[dict]:
    return _cached(cache, cache_key("nws", event="Tsunami"), fetch_tsunami_alerts)


def load_events(
    category: str = "", days: int = 14, bbox: str = "", cache: Optional[FeedCache] = None
) -> list[dict]:
    key = cache_key("eonet", category=category, days=days, bbox=bbox)
    return _cached(cache, key, lambda: fetch_eonet(category=category, days=days, bbox=bbox))


def _fmt(value: Optional[float], unit: str) -> str:
    if value is None:
        return "Data unavailable"
    if unit == "%":
        return f"{value:.0f} %"
    if unit == "mm":
        return f"{value:.1f} mm"
    return f"{value:.1f} °C"


def _weather_lines(days: list[WeatherDay]) -> list[tuple[str, str]]:
    latest = pick_most_recent_available(days)
    return [
        ("Rain (latest avail.)", _fmt(latest.rain if latest else None, "mm")),
        ("Humidity (latest avail.)", _fmt(latest.humidity if latest else None, "%")),
        ("Temp (latest avail.)", _fmt(latest.temperature if latest else None, "C")),
        ("Data date", latest.date if latest else "Data unavailable"),
    ]


def _build_statuses(
    weather: list[WeatherDay],
    quakes: list[Earthquake],
    tsunami: list[str],
    errors: dict[str, str],
) -> dict[str, HazardStatus]:
    weather_note = "Latest available day within last 5 days (NASA POWER)"

    flood = HazardStatus(derive_flood_status(weather), _weather_lines(weather), weather_note)
    cyclone = HazardStatus(derive_cyclone_status(weather), _weather_lines(weather), weather_note)

    strongest = max((q.magnitude or 0.0 for q in quakes), default=None)
    earthquake = HazardStatus(
        derive_earthquake_status(quakes),
        [
            ("Recent quakes (48h)", str(len(quakes))),
            ("Strongest mag", f"{strongest:.1f}" if strongest is not None else "None"),
        ],
        "USGS 48h within 500 km",
    )

    tsunami_status = HazardStatus(
        derive_tsunami_status(tsunami),
        [
            ("Active advisories", str(len(tsunami))),
            ("Most recent", tsunami[0] if tsunami else "None"),
        ],
        "NWS tsunami alerts",
    )

    for source, cards, label in (
        ("power", (flood, cyclone), "POWER status"),
        ("usgs", (earthquake,), "USGS status"),
        ("nws", (tsunami_status,), "NWS status"),
    ):
        if source in errors:
            for card in cards:
                card.lines.insert(0, (label, errors[source]))

    return {"flood": flood, "cyclone": cyclone, "earthquake": earthquake, "tsunami": tsunami_status}


def _headline(alert: dict) -> str:
    props = alert.get("properties")
    if not isinstance(props, dict):
        props = {}
    return str(props.get("headline") or props.get("event") or "Tsunami alert")


def assess_location(
    lat: float,
    lon: float,
    cache: Optional[FeedCache] = None,
    thresholds: Thresholds = PRODUCTION_THRESHOLDS,
) -> HazardReport:
    """Fetch every feed for (lat, lon) and classify the hazards there.

    Raises ValueError if the coordinates are out of range.
    """
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ValueError(f"Invalid coordinates: {lat}, {lon}")

    errors: dict[str, str] = {}

    def attempt(source: str, loader: Callable[[], Any]) -> Any:
        try:
            return loader()
        except FeedError as e:
            errors[source] = e.message
            return []

    weather = attempt("power", lambda: load_weather(lat, lon, cache))
    quakes = attempt("usgs", lambda: load_earthquakes(lat, lon, cache))
    alerts = attempt("nws", lambda: load_tsunami_alerts(cache))
    events = attempt("eonet", lambda: load_events(cache=cache))

    headlines = [_headline(a) for a in alerts]

    coords = Coordinates(latitude=lat, longitude=lon)
    statuses = _build_statuses(weather, quakes, headlines, errors)
    top_name, top_level = top_hazard({name: s.status for name, s in statuses.items()})

    return HazardReport(
        coords=coords,
        generated_at=datetime.now(timezone.utc).isoformat(),
        weather=weather,
        earthquakes=quakes,
        tsunami_alerts=headlines,
        statuses=statuses,
        events=evaluate_hazards(coords, events, thresholds),
        top_hazard=top_name,
        top_level=top_level,
        errors=errors,
    )
