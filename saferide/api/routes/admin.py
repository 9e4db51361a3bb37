"""
Admin / observability endpoints
===============================

GET /api/v1/admin/pending-alerts -- SOS alerts not yet delivered to dispatch
GET /api/v1/admin/health         -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from saferide.api.dependencies import get_emergency_service
from saferide.api.middleware import limiter
from saferide.api.schemas import AlertResponse, HealthResponse
from saferide.config import settings
from saferide.services.emergency import EmergencyService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/pending-alerts",
    response_model=list[AlertResponse],
    summary="List emergency alerts still waiting for dispatch",
)
@limiter.limit(settings.rate_limit)
async def get_pending_alerts(
    request: Request,
    service: EmergencyService = Depends(get_emergency_service),
):
    return [AlertResponse.model_validate(a) for a in await service.pending_alerts()]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
