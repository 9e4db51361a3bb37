"""
Ride endpoints
==============

POST /api/v1/rides                       -- request a ride (201 Created)
GET  /api/v1/rides/available             -- unclaimed rides, oldest first
GET  /api/v1/rides/mine                  -- caller's rides, newest first
GET  /api/v1/rides/{ride_id}             -- look up one ride
POST /api/v1/rides/{ride_id}/start       -- accepted -> in_progress (driver)
POST /api/v1/rides/{ride_id}/complete    -- in_progress -> completed (driver)
POST /api/v1/rides/{ride_id}/cancel      -- cancel (rider or driver)
POST /api/v1/rides/{ride_id}/payment     -- record payment confirmation
POST /api/v1/rides/{ride_id}/locations   -- append a driver position
GET  /api/v1/rides/{ride_id}/locations   -- position trail, oldest first
"""

from fastapi import APIRouter, Depends, Request

from saferide.api.dependencies import get_dispatch_coordinator, get_ride_service
from saferide.api.middleware import limiter
from saferide.api.schemas import (
    LocationPingRequest,
    LocationPingResponse,
    PaymentUpdateRequest,
    RideCreateRequest,
    RideResponse,
)
from saferide.config import settings
from saferide.domain.entities import Location
from saferide.services.dispatch import DispatchCoordinator
from saferide.services.rides import RideRequest, RideService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    service: RideService = Depends(get_ride_service),
):
    ride = await service.create_ride(
        RideRequest(
            pickup_address=body.pickup_address,
            pickup=Location(body.pickup_latitude, body.pickup_longitude),
            destination_address=body.destination_address,
            destination=Location(body.destination_latitude, body.destination_longitude),
            ride_type=body.ride_type,
            scheduled_time=body.scheduled_time,
            notes=body.notes,
        )
    )
    return RideResponse.from_entity(ride)


@router.get(
    "/available",
    response_model=list[RideResponse],
    summary="List rides waiting for a driver",
)
@limiter.limit(settings.rate_limit)
async def list_available(
    request: Request,
    coordinator: DispatchCoordinator = Depends(get_dispatch_coordinator),
):
    return [RideResponse.from_entity(r) for r in await coordinator.list_available()]


@router.get(
    "/mine",
    response_model=list[RideResponse],
    summary="List rides the caller rides in or drives",
)
@limiter.limit(settings.rate_limit)
async def list_my_rides(
    request: Request,
    service: RideService = Depends(get_ride_service),
):
    return [RideResponse.from_entity(r) for r in await service.list_my_rides()]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get a ride",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.from_entity(await service.get_ride(ride_id))


@router.post(
    "/{ride_id}/start",
    response_model=RideResponse,
    summary="Start an accepted ride",
)
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: str,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.from_entity(await service.start_ride(ride_id))


@router.post(
    "/{ride_id}/complete",
    response_model=RideResponse,
    summary="Complete a ride in progress",
    description="Also adds the fare to the driver's earnings and ride count.",
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: str,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.from_entity(await service.complete_ride(ride_id))


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description="Allowed while the ride is requested or accepted.",
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: str,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.from_entity(await service.cancel_ride(ride_id))


@router.post(
    "/{ride_id}/payment",
    response_model=RideResponse,
    summary="Record the payment gateway's result",
)
@limiter.limit(settings.rate_limit)
async def record_payment(
    request: Request,
    ride_id: str,
    body: PaymentUpdateRequest,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.from_entity(await service.record_payment(ride_id, body.status))


@router.post(
    "/{ride_id}/locations",
    status_code=201,
    response_model=LocationPingResponse,
    summary="Report the driver's current position",
)
@limiter.limit(settings.rate_limit)
async def record_location(
    request: Request,
    ride_id: str,
    body: LocationPingRequest,
    service: RideService = Depends(get_ride_service),
):
    ping = await service.record_location(ride_id, body.to_location())
    return LocationPingResponse.from_entity(ping)


@router.get(
    "/{ride_id}/locations",
    response_model=list[LocationPingResponse],
    summary="Get the ride's position trail",
)
@limiter.limit(settings.rate_limit)
async def get_trail(
    request: Request,
    ride_id: str,
    service: RideService = Depends(get_ride_service),
):
    return [LocationPingResponse.from_entity(p) for p in await service.get_trail(ride_id)]
