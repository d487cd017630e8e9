"""
hazards.py -- Hazard classification rules.

Pure functions only: no HTTP, no SQLite, no logging. Everything here takes
already-fetched feed data and returns a severity in {neutral, warning,
critical}. Fetching lives in core/fetcher.py; orchestration in core/pipeline.py.

Two rule families:
  evaluate_hazards()   -- distance/containment rules over EONET GeoJSON events.
  derive_*_status()    -- threshold rules over POWER weather, USGS quakes and
                          NWS tsunami alerts (the dashboard cards).
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from .models import LEVEL_RANK, Coordinates, Earthquake, HazardAssessment, WeatherDay

EARTH_RADIUS_KM = 6371.0

_AREA_CATEGORIES = {"Severe Storms", "Floods", "Wildfires"}


@dataclass(frozen=True)
class Thresholds:
    """Distance thresholds in km, magnitude on the Richter scale."""

    eq_warn_dist: float
    eq_crit_dist: float
    eq_crit_mag: float
    haz_warn_dist: float
    haz_crit_dist: float
    volc_warn_dist: float
    test_mode: bool = False


PRODUCTION_THRESHOLDS = Thresholds(
    eq_warn_dist=100,
    eq_crit_dist=50,
    eq_crit_mag=5.5,
    haz_warn_dist=100,
    haz_crit_dist=25,
    volc_warn_dist=50,
)

# Lenient values used to prove the alert pipeline fires end to end.
TEST_THRESHOLDS = Thresholds(
    eq_warn_dist=300,
    eq_crit_dist=150,
    eq_crit_mag=4.5,
    haz_warn_dist=200,
    haz_crit_dist=80,
    volc_warn_dist=100,
    test_mode=True,
)


def thresholds_for(test_mode: bool) -> Thresholds:
    return TEST_THRESHOLDS if test_mode else PRODUCTION_THRESHOLDS


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat, dlon = lat2 - lat1, lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    h = min(1.0, max(0.0, h))  # rounding can push h just past 1
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def point_in_polygon(lat: float, lon: float, ring: Sequence[Sequence[float]]) -> bool:
    """Ray-casting containment test. ring holds GeoJSON [lon, lat] pairs."""
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > lat) != (yj > lat):
            # Horizontal edges never reach here, the epsilon only guards rounding.
            x_cross = (xj - xi) * (lat - yi) / ((yj - yi) or 1e-12) + xi
            if lon < x_cross:
                inside = not inside
        j = i
    return inside


def ring_centroid(ring: Sequence[Sequence[float]]) -> tuple[float, float]:
    """Vertex average of a [lon, lat] ring, returned as (lat, lon)."""
    lat = sum(p[1] for p in ring) / len(ring)
    lon = sum(p[0] for p in ring) / len(ring)
    return lat, lon


def _finite(*values: Any) -> bool:
    try:
        return all(isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v) for v in values)
    except OverflowError:  # ints too large for a float
        return False


def _vertex(point: Any) -> bool:
    return isinstance(point, (list, tuple)) and len(point) >= 2 and _finite(point[0], point[1])


def _clean_ring(ring: Any) -> list[Sequence[float]]:
    """Keep only [lon, lat, ...] vertices with finite numbers; anything else yields []."""
    if not isinstance(ring, (list, tuple)):
        return []
    return [p for p in ring if _vertex(p)]


# ---------------------------------------------------------------------------
# EONET event evaluation
# ---------------------------------------------------------------------------


def _normalize(feature: dict) -> tuple[str, str, str, float]:
    """Extract (category, title, updated, magnitude) from an EONET feature."""
    props = feature.get("properties")
    if not isinstance(props, dict):
        props = {}
    categories = props.get("categories")
    first = categories[0] if isinstance(categories, list) and categories else None
    category = (first.get("title") if isinstance(first, dict) else None) or props.get("category") or "Event"
    if not isinstance(category, str):
        category = "Event"
    title = props.get("title") or props.get("id") or "Event"
    dates = props.get("geometryDates")
    updated = dates[-1] if isinstance(dates, list) and dates else (props.get("date") or "")
    try:
        magnitude = float(props.get("magnitudeValue") or 0)
    except (OverflowError, TypeError, ValueError):
        magnitude = 0.0
    return category, title, updated, magnitude


def map_disaster_type(category: str) -> str:
    """Map an EONET category onto one of the four alert types."""
    c = (category or "").lower()
    if "earthquake" in c:
        return "earthquake"
    if "storm" in c or "volcano" in c:
        return "cyclone"
    return "flood"


def _area_level(distance: float, t: Thresholds) -> str:
    if distance <= t.haz_crit_dist:
        return "critical"
    if distance <= t.haz_warn_dist:
        return "warning"
    return "neutral"


def _point_level(category: str, distance: float, magnitude: float, t: Thresholds) -> str:
    if category == "Earthquakes":
        if magnitude >= t.eq_crit_mag and distance <= t.eq_crit_dist:
            return "critical"
        if distance <= t.eq_warn_dist:
            return "warning"
        return "neutral"
    if category == "Volcanoes":
        return "warning" if distance <= t.volc_warn_dist else "neutral"
    if category in _AREA_CATEGORIES:
        return _area_level(distance, t)
    return "neutral"


def _feature_level(coords: Coordinates, feature: dict, category: str, magnitude: float, t: Thresholds) -> str:
    geometry = feature.get("geometry")
    if not isinstance(geometry, dict):
        return "neutral"
    gtype = geometry.get("type")
    points = geometry.get("coordinates")
    if not isinstance(points, (list, tuple)) or not points:
        return "neutral"

    if gtype == "Point":
        if not _vertex(points):
            return "neutral"
        lon, lat = points[0], points[1]
        d = haversine_km(coords.latitude, coords.longitude, lat, lon)
        return _point_level(category, d, magnitude, t)

    if gtype == "Polygon":
        ring = _clean_ring(points[0])
        if not ring:
            return "neutral"
        if category in _AREA_CATEGORIES and point_in_polygon(coords.latitude, coords.longitude, ring):
            return "critical"
        lat, lon = ring_centroid(ring)
        if not _finite(lat, lon):
            return "neutral"
        d = haversine_km(coords.latitude, coords.longitude, lat, lon)
        if category in _AREA_CATEGORIES:
            return _area_level(d, t)
        if category == "Volcanoes":
            return "warning" if d <= t.volc_warn_dist else "neutral"

    return "neutral"


def evaluate_hazards(
    coords: Coordinates,
    features: Optional[Sequence[dict]],
    thresholds: Thresholds = PRODUCTION_THRESHOLDS,
) -> HazardAssessment:
    """Return the most severe hazard the location is exposed to.

    Each feature is classified independently; a later feature only replaces
    the current best when strictly more severe, so ties keep the first match.
    """
    features = features or []
    best = HazardAssessment()

    for feature in features:
        if not isinstance(feature, dict):
            continue
        category, title, updated, magnitude = _normalize(feature)
        level = _feature_level(coords, feature, category, magnitude, thresholds)
        if LEVEL_RANK[level] > LEVEL_RANK[best.level]:
            best = HazardAssessment(
                type=map_disaster_type(category),
                level=level,
                reason=f"{category}: {title}",
                updated_at=updated,
            )

    if thresholds.test_mode and best.level == "neutral" and features:
        best = HazardAssessment(
            type="flood",
            level="warning",
            reason="Test mode: first nearby event",
            updated_at=datetime.now(timezone.utc).isoformat(),
        )

    return best


# ---------------------------------------------------------------------------
# Dashboard card rules
# ---------------------------------------------------------------------------


def _latest_rain(days: Sequence[WeatherDay]) -> float:
    if not days:
        return 0.0
    return days[-1].rain or 0.0


def derive_flood_status(days: Sequence[WeatherDay]) -> str:
    rain = _latest_rain(days)
    if rain >= 80:
        return "critical"
    if rain >= 30:
        return "warning"
    return "neutral"


def derive_cyclone_status(days: Sequence[WeatherDay]) -> str:
    # Rain is a proxy until a wind/pressure feed is wired in.
    return "warning" if _latest_rain(days) >= 60 else "neutral"


def derive_earthquake_status(quakes: Sequence[Earthquake]) -> str:
    """Warning on any M5.0+ quake or a cluster of three or more M4.0+ quakes."""
    mags = [q.magnitude or 0.0 for q in quakes]
    strong = any(m >= 5.0 for m in mags)
    cluster = sum(1 for m in mags if m >= 4.0) >= 3
    return "warning" if strong or cluster else "neutral"


def derive_tsunami_status(alerts: Sequence[Any]) -> str:
    return "warning" if alerts else "neutral"


def top_hazard(levels: dict[str, str]) -> tuple[str, str]:
    """Return (name, level) of the most severe entry; insertion order breaks ties."""
    best_name, best_level = None, "neutral"
    for name, level in levels.items():
        if best_name is None or LEVEL_RANK[level] > LEVEL_RANK[best_level]:
            best_name, best_level = name, level
    return best_name or "", best_level


def pick_most_recent_available(
    days: Sequence[WeatherDay],
    fields: Sequence[str] = ("rain", "humidity", "temperature"),
) -> Optional[WeatherDay]:
    """Newest day with at least one of fields populated, else the newest day."""
    for day in reversed(days):
        if any(_finite(getattr(day, f, None)) for f in fields):
            return day
    return days[-1] if days else None
