"""
Dispatch endpoints
==================

POST /api/v1/dispatch/claim -- claim an open ride for a driver

Exactly one of any number of concurrent claims on the same ride wins;
the rest get 409 with ``reason`` set and should re-list available rides.
"""

from fastapi import APIRouter, Depends, Request

from saferide.api.dependencies import get_dispatch_coordinator
from saferide.api.middleware import limiter
from saferide.api.schemas import ClaimRequest, ErrorResponse, RideResponse
from saferide.config import settings
from saferide.services.dispatch import DispatchCoordinator

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.post(
    "/claim",
    response_model=RideResponse,
    summary="Claim a requested ride",
    responses={409: {"model": ErrorResponse, "description": "Claim lost or ride not open."}},
)
@limiter.limit(settings.rate_limit)
async def claim_ride(
    request: Request,
    body: ClaimRequest,
    coordinator: DispatchCoordinator = Depends(get_dispatch_coordinator),
):
    ride = await coordinator.claim(body.ride_id, body.driver_id)
    return RideResponse.from_entity(ride)
