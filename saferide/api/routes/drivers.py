"""
Driver endpoints
================

POST  /api/v1/drivers                 -- register the caller as a driver
GET   /api/v1/drivers/me              -- caller's driver profile
PATCH /api/v1/drivers/me/availability -- toggle availability flags
"""

from fastapi import APIRouter, Depends, Request

from saferide.api.dependencies import get_driver_service
from saferide.api.middleware import limiter
from saferide.api.schemas import (
    AvailabilityRequest,
    DriverProfileResponse,
    DriverRegisterRequest,
)
from saferide.config import settings
from saferide.services.drivers import DriverService

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post(
    "",
    status_code=201,
    response_model=DriverProfileResponse,
    summary="Register as a driver",
    description="Verification and background check start out pending.",
)
@limiter.limit(settings.rate_limit)
async def register_driver(
    request: Request,
    body: DriverRegisterRequest,
    service: DriverService = Depends(get_driver_service),
):
    profile = await service.register(**body.model_dump())
    return DriverProfileResponse.from_entity(profile)


@router.get("/me", response_model=DriverProfileResponse, summary="Get own driver profile")
@limiter.limit(settings.rate_limit)
async def get_profile(
    request: Request,
    service: DriverService = Depends(get_driver_service),
):
    return DriverProfileResponse.from_entity(await service.get_profile())


@router.patch(
    "/me/availability",
    response_model=DriverProfileResponse,
    summary="Update availability flags",
)
@limiter.limit(settings.rate_limit)
async def set_availability(
    request: Request,
    body: AvailabilityRequest,
    service: DriverService = Depends(get_driver_service),
):
    profile = await service.set_availability(**body.model_dump(exclude_unset=True))
    return DriverProfileResponse.from_entity(profile)
