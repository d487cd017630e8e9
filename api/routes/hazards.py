"""
api/routes/hazards.py -- Public hazard assessment endpoints.

Routes:
  GET  /api/hazards/assessment?lat&lon           -- full report from every feed
  POST /api/hazards/evaluate                     -- classify caller-supplied EONET features
  GET  /api/hazards/events?lat&lon&category&days -- fetch EONET and classify

The feed routes are plain `def`: the fetchers use blocking requests calls, so
FastAPI runs them in its threadpool. Responses go through app.state.cache
(FeedCache), shared with the purge task in api/main.py.

A single failing feed never fails /assessment; it is reported in
report.errors. /events depends on EONET alone, so an EONET failure is a 502.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from api.models import EvaluateRequest, EventsResponse, HazardAssessmentResponse, HazardReportResponse
from core.config import get_settings
from core.fetcher import FeedError
from core.hazards import Thresholds, evaluate_hazards, thresholds_for
from core.models import Coordinates
from core.pipeline import assess_location, load_events

router = APIRouter()


def _thresholds(test_mode: bool = False) -> Thresholds:
    return thresholds_for(test_mode or get_settings().hazard_test_mode)


@router.get("/hazards/assessment", response_model=HazardReportResponse)
def assessment(
    request: Request,
    lat: float = Query(ge=-90, le=90),
    lon: float = Query(ge=-180, le=180),
) -> HazardReportResponse:
    """Weather, earthquake, tsunami and natural-event status for one coordinate."""
    report = assess_location(lat, lon, request.app.state.cache, _thresholds())
    return HazardReportResponse.from_report(report)


@router.post("/hazards/evaluate", response_model=HazardAssessmentResponse)
async def evaluate(body: EvaluateRequest) -> HazardAssessmentResponse:
    """Pure classification; no feeds are contacted."""
    result = evaluate_hazards(
        Coordinates(latitude=body.latitude, longitude=body.longitude),
        body.features,
        _thresholds(body.test_mode),
    )
    return HazardAssessmentResponse.from_assessment(result)


@router.get("/hazards/events", response_model=EventsResponse)
def events(
    request: Request,
    lat: float = Query(ge=-90, le=90),
    lon: float = Query(ge=-180, le=180),
    category: str = Query(default="", max_length=50, pattern=r"^[A-Za-z]*$"),
    days: int = Query(default=14, ge=1, le=365),
) -> EventsResponse:
    """Open EONET events of the last `days` days, plus their classification for (lat, lon)."""
    try:
        features = load_events(category=category, days=days, cache=request.app.state.cache)
    except FeedError as exc:
        raise HTTPException(
            status_code=502,
            detail={"code": "feed_unavailable", "message": "EONET is unavailable.", "detail": exc.message},
        ) from exc

    result = evaluate_hazards(Coordinates(latitude=lat, longitude=lon), features, _thresholds())
    return EventsResponse(
        count=len(features),
        assessment=HazardAssessmentResponse.from_assessment(result),
        features=features,
    )
