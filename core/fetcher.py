"""
fetcher.py -- All external hazard feed fetching.
All sources are free and keyless: NASA POWER, USGS, NWS and NASA EONET.

Every fetcher raises FeedError on failure rather than returning an empty
result, so callers can tell "no events" apart from "feed unavailable". A
payload of the wrong shape is a failure too ("malformed response").
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import requests

from .models import Earthquake, WeatherDay

logger = logging.getLogger("safehaven.fetcher")

POWER_API = "https://power.larc.nasa.gov/api/temporal/daily/point"
USGS_API = "https://earthquake.usgs.gov/fdsnws/event/1/query"
NWS_ALERTS_API = "https://api.weather.gov/alerts/active"
EONET_GEOJSON = "https://eonet.gsfc.nasa.gov/api/v3/events/geojson"

# api.weather.gov rejects requests without an identifying User-Agent.
NWS_USER_AGENT = "SafeHaven/1.0 (https://safehaven.local; alerts@safehaven.local)"

# POWER marks missing daily values with this sentinel instead of null.
_POWER_FILL = -999.0

# Module-level session shared across all fetcher calls for connection pooling.
_session = requests.Session()
_session.max_redirects = 3


class FeedError(Exception):
    """A hazard feed could not be fetched or parsed."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


def _get_json(source: str, url: str, timeout: int = 15, **kwargs: Any) -> Any:
    try:
        resp = _session.get(url, timeout=timeout, **kwargs)
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as e:
        logger.warning("%s fetch failed: %s", source, e)
        raise FeedError(source, str(e)) from e
    except ValueError as e:
        logger.warning("%s returned invalid JSON: %s", source, e)
        raise FeedError(source, "invalid JSON response") from e


# What a payload of the wrong shape raises while being picked apart.
_PARSE_ERRORS = (AttributeError, LookupError, TypeError, ValueError)


def _malformed(source: str, exc: Exception) -> FeedError:
    logger.warning("%s returned a malformed response: %r", source, exc)
    return FeedError(source, "malformed response")


def _power_value(series: dict, day: str) -> Optional[float]:
    value = series.get(day)
    if value is None:
        return None
    value = float(value)
    return None if value <= _POWER_FILL else value


def fetch_weather(lat: float, lon: float, today: Optional[date] = None) -> list[WeatherDay]:
    """Fetch the last five complete days of POWER daily aggregates.

    The window ends yesterday because today's aggregate is still incomplete.
    Returns days in ascending date order.
    """
    today = today or datetime.now(timezone.utc).date()
    end = today - timedelta(days=1)
    start = end - timedelta(days=4)
    params = {
        "parameters": "T2M,RH2M,PRECTOTCORR",
        "community": "AG",
        "start": start.strftime("%Y%m%d"),
        "end": end.strftime("%Y%m%d"),
        "latitude": lat,
        "longitude": lon,
        "format": "JSON",
    }
    data = _get_json("POWER", POWER_API, params=params, timeout=20)
    try:
        return _parse_weather(data)
    except _PARSE_ERRORS as e:
        raise _malformed("POWER", e) from e


def _parse_weather(data: Any) -> list[WeatherDay]:
    parameter = (data.get("properties") or {}).get("parameter") or {}
    temps = parameter.get("T2M")
    if not temps:
        return []
    humidity = parameter.get("RH2M") or {}
    rain = parameter.get("PRECTOTCORR") or {}
    return [
        WeatherDay(
            date=day,
            temperature=_power_value(temps, day),
            humidity=_power_value(humidity, day),
            rain=_power_value(rain, day),
        )
        for day in sorted(temps)
    ]


def fetch_earthquakes(
    lat: float,
    lon: float,
    hours: int = 48,
    radius_km: int = 500,
    min_magnitude: float = 3.0,
) -> list[Earthquake]:
    """Fetch recent USGS earthquakes within radius_km of the point, newest first."""
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=hours)
    params = {
        "format": "geojson",
        "starttime": start.strftime("%Y-%m-%dT%H:%M:%S"),
        "endtime": end.strftime("%Y-%m-%dT%H:%M:%S"),
        "latitude": lat,
        "longitude": lon,
        "maxradiuskm": radius_km,
        "minmagnitude": min_magnitude,
        "orderby": "time",
        "limit": 50,
    }
    data = _get_json("USGS", USGS_API, params=params)
    try:
        return _parse_earthquakes(data)
    except _PARSE_ERRORS as e:
        raise _malformed("USGS", e) from e


def _magnitude(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _parse_earthquakes(data: Any) -> list[Earthquake]:
    quakes: list[Earthquake] = []
    for f in data.get("features") or []:
        props = f.get("properties") or {}
        coords = (f.get("geometry") or {}).get("coordinates") or []
        quakes.append(
            Earthquake(
                id=str(f.get("id", "")),
                magnitude=_magnitude(props.get("mag")),
                place=props.get("place") or "",
                time=props.get("time"),
                url=props.get("url") or "",
                longitude=coords[0] if len(coords) > 0 else None,
                latitude=coords[1] if len(coords) > 1 else None,
                depth=coords[2] if len(coords) > 2 else None,
            )
        )
    return quakes


def fetch_tsunami_alerts(user_agent: str = NWS_USER_AGENT) -> list[dict]:
    """Fetch active NWS tsunami alerts as raw GeoJSON features."""
    headers = {
        "User-Agent": user_agent,
        "Accept": "application/geo+json",
    }
    data = _get_json("NWS", NWS_ALERTS_API, params={"event": "Tsunami"}, headers=headers)
    return _features("NWS", data)


def fetch_eonet(
    category: str = "",
    status: str = "open",
    days: int = 14,
    limit: int = 200,
    bbox: str = "",
) -> list[dict]:
    """Fetch EONET natural events as raw GeoJSON features.

    bbox is "min_lon,max_lat,max_lon,min_lat" as EONET expects it.
    Empty arguments are left out of the query entirely.
    """
    params = {
        "category": category,
        "status": status,
        "days": days,
        "limit": limit,
        "bbox": bbox,
    }
    params = {k: v for k, v in params.items() if v}
    data = _get_json("EONET", EONET_GEOJSON, params=params, headers={"Accept": "application/json"})
    return _features("EONET", data)


def _features(source: str, data: Any) -> list[dict]:
    """The feature list of a GeoJSON FeatureCollection; entries that are not objects are dropped."""
    if not isinstance(data, dict):
        raise _malformed(source, TypeError(f"expected an object, got {type(data).__name__}"))
    features = data.get("features")
    if not isinstance(features, list):
        return []
    return [f for f in features if isinstance(f, dict)]
