"""Unit tests for core/fetcher.py.

The module-level requests.Session is patched, so every test runs offline.
Each fetcher is checked for query shape, response parsing and FeedError on
transport or JSON failure.
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.fetcher import (
    NWS_USER_AGENT,
    FeedError,
    fetch_earthquakes,
    fetch_eonet,
    fetch_tsunami_alerts,
    fetch_weather,
)


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def _session_returning(payload):
    session = MagicMock()
    session.get.return_value = _response(payload)
    return patch("core.fetcher._session", session)


# ---------------------------------------------------------------------------
# NASA POWER
# ---------------------------------------------------------------------------


_POWER_PAYLOAD = {
    "properties": {
        "parameter": {
            "T2M": {"20260105": 21.5, "20260104": 20.0},
            "RH2M": {"20260104": 55.0, "20260105": -999.0},
            "PRECTOTCORR": {"20260104": 0.2},
        }
    }
}


class TestFetchWeather:
    def test_window_ends_yesterday(self):
        with _session_returning(_POWER_PAYLOAD) as session:
            fetch_weather(10.0, 20.0, today=date(2026, 1, 6))
        params = session.get.call_args.kwargs["params"]
        assert (params["start"], params["end"]) == ("20260101", "20260105")
        assert params["parameters"] == "T2M,RH2M,PRECTOTCORR"

    def test_parses_days_ascending_and_drops_fill_values(self):
        with _session_returning(_POWER_PAYLOAD):
            days = fetch_weather(10.0, 20.0, today=date(2026, 1, 6))
        assert [d.date for d in days] == ["20260104", "20260105"]
        assert days[0].humidity == 55.0
        assert days[1].humidity is None  # -999 fill value
        assert days[1].rain is None  # absent
        assert days[1].temperature == 21.5

    def test_missing_parameters_is_empty(self):
        with _session_returning({"properties": {}}):
            assert fetch_weather(0, 0) == []


# ---------------------------------------------------------------------------
# USGS
# ---------------------------------------------------------------------------


class TestFetchEarthquakes:
    def test_parses_features(self):
        payload = {
            "features": [
                {
                    "id": "us7000abcd",
                    "properties": {"mag": 5.3, "place": "10 km N of Somewhere", "time": 1767225600000, "url": "u"},
                    "geometry": {"coordinates": [139.7, 35.6, 10.0]},
                }
            ]
        }
        with _session_returning(payload) as session:
            quakes = fetch_earthquakes(35.6, 139.7)
        params = session.get.call_args.kwargs["params"]
        assert params["maxradiuskm"] == 500
        assert params["minmagnitude"] == 3.0
        q = quakes[0]
        assert (q.id, q.magnitude, q.place) == ("us7000abcd", 5.3, "10 km N of Somewhere")
        assert (q.longitude, q.latitude, q.depth) == (139.7, 35.6, 10.0)

    def test_no_features(self):
        with _session_returning({"features": []}):
            assert fetch_earthquakes(0, 0) == []


# ---------------------------------------------------------------------------
# NWS
# ---------------------------------------------------------------------------


class TestFetchTsunamiAlerts:
    def test_sends_user_agent_and_event_filter(self):
        with _session_returning({"features": [{"properties": {"event": "Tsunami Warning"}}]}) as session:
            alerts = fetch_tsunami_alerts()
        kwargs = session.get.call_args.kwargs
        assert kwargs["headers"]["User-Agent"] == NWS_USER_AGENT
        assert kwargs["params"] == {"event": "Tsunami"}
        assert len(alerts) == 1

    def test_non_list_features_is_empty(self):
        with _session_returning({"features": None}):
            assert fetch_tsunami_alerts() == []


# ---------------------------------------------------------------------------
# EONET
# ---------------------------------------------------------------------------


class TestFetchEonet:
    def test_empty_params_omitted(self):
        with _session_returning({"features": []}) as session:
            fetch_eonet()
        assert session.get.call_args.kwargs["params"] == {"status": "open", "days": 14, "limit": 200}

    def test_category_and_bbox_passed(self):
        with _session_returning({"features": [{"type": "Feature"}]}) as session:
            features = fetch_eonet(category="wildfires", bbox="-10,10,10,-10")
        params = session.get.call_args.kwargs["params"]
        assert params["category"] == "wildfires"
        assert params["bbox"] == "-10,10,10,-10"
        assert features == [{"type": "Feature"}]


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailures:
    def test_http_error_raises_feed_error(self):
        session = MagicMock()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
        with patch("core.fetcher._session", session):
            with pytest.raises(FeedError) as exc_info:
                fetch_eonet()
        assert exc_info.value.source == "EONET"
        assert "503" in exc_info.value.message

    def test_timeout_raises_feed_error(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("read timed out")
        with patch("core.fetcher._session", session):
            with pytest.raises(FeedError, match="USGS"):
                fetch_earthquakes(0, 0)

    def test_invalid_json_raises_feed_error(self):
        session = MagicMock()
        session.get.return_value.json.side_effect = ValueError("Expecting value")
        with patch("core.fetcher._session", session):
            with pytest.raises(FeedError, match="invalid JSON"):
                fetch_tsunami_alerts()

    @pytest.mark.parametrize(
        "payload",
        [
            {"properties": {"parameter": {"T2M": {"20260101": "n/a"}}}},
            {"properties": {"parameter": {"T2M": ["20260101"]}}},
            {"properties": "none"},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_power_payload_raises_feed_error(self, payload):
        with _session_returning(payload):
            with pytest.raises(FeedError, match="malformed response") as exc_info:
                fetch_weather(0, 0)
        assert exc_info.value.source == "POWER"

    @pytest.mark.parametrize(
        "payload",
        [
            "features",
            {"features": ["us1"]},
            {"features": [{"properties": {"mag": "strong"}}]},
        ],
    )
    def test_malformed_usgs_payload_raises_feed_error(self, payload):
        with _session_returning(payload):
            with pytest.raises(FeedError, match="malformed response"):
                fetch_earthquakes(0, 0)

    def test_non_object_geojson_raises_feed_error(self):
        with _session_returning([1, 2, 3]):
            with pytest.raises(FeedError, match="malformed response"):
                fetch_eonet()

    def test_non_object_features_dropped(self):
        with _session_returning({"features": [{"type": "Feature"}, "junk", None]}):
            assert fetch_tsunami_alerts() == [{"type": "Feature"}]
