"""
api/routes/alerts.py -- Manual alert trigger.

  POST /api/trigger-alert  -- validate a coordinate and disaster type, return the alert copy

The response carries the location as at = {lat, lng} and the time as
triggered_at.

Validation lives in TriggerAlertRequest: latitude in [-90, 90], longitude in
[-180, 180], disaster one of earthquake | flood | cyclone | tsunami in any
casing. Failures are the standard 422 envelope.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.models import AlertContentModel, AlertLocation, TriggerAlertRequest, TriggerAlertResponse
from auth.dependencies import get_current_user
from auth.models import User
from core.models import ALERT_CONTENT

logger = logging.getLogger("safehaven.alerts")

router = APIRouter()


@router.post("/trigger-alert", response_model=TriggerAlertResponse)
async def trigger_alert(
    body: TriggerAlertRequest,
    current_user: User = Depends(get_current_user),
) -> TriggerAlertResponse:
    disaster = body.disaster.value
    logger.info(
        "Manual %s alert by user id=%s at %.4f, %.4f",
        disaster,
        current_user.id,
        body.latitude,
        body.longitude,
    )
    return TriggerAlertResponse(
        message=f"{disaster.capitalize()} alert triggered.",
        at=AlertLocation(lat=body.latitude, lng=body.longitude),
        triggered_at=datetime.now(timezone.utc).isoformat(),
        disaster=body.disaster,
        latitude=body.latitude,
        longitude=body.longitude,
        alert=AlertContentModel.from_content(ALERT_CONTENT[disaster]),
    )
