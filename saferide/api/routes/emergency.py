"""
Emergency endpoints
===================

POST /api/v1/emergency/sos -- raise an SOS (202 Accepted)

The response reports whether emergency dispatch was reached on the first
attempt; if not, the alert stays pending and the escalation worker keeps
re-sending it.
"""

from fastapi import APIRouter, Depends, Request

from saferide.api.dependencies import get_emergency_service
from saferide.api.middleware import limiter
from saferide.api.schemas import IncidentResponse, SosRequest
from saferide.services.emergency import EmergencyService

router = APIRouter(prefix="/emergency", tags=["emergency"])


@router.post(
    "/sos",
    status_code=202,
    response_model=IncidentResponse,
    summary="Raise an SOS",
    responses={202: {"description": "Alert recorded; dispatch may still be retrying."}},
)
@limiter.exempt
async def trigger_sos(
    request: Request,
    body: SosRequest,
    service: EmergencyService = Depends(get_emergency_service),
):
    incident = await service.trigger_sos(body.ride_id, body.to_location())
    return IncidentResponse.from_entity(incident)
