"""
FastAPI application factory.

* Registers routes for rides, dispatch, emergencies, contacts, drivers
  and admin.
* Builds the notification bus (in-process or Redis) and starts / stops
  it together with the escalation worker via lifespan events.
* Maps the ``SafeRideError`` taxonomy to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from saferide.api.middleware import limiter
from saferide.api.routes import admin, contacts, dispatch, drivers, emergency, rides
from saferide.config import settings
from saferide.domain.errors import (
    AuthenticationError,
    ClaimConflict,
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    SafeRideError,
    ValidationError,
)
from saferide.infrastructure.database import dispose_engine
from saferide.infrastructure.pubsub import RedisNotificationBus
from saferide.infrastructure.redis_client import redis_client
from saferide.services.notifications import InMemoryNotificationBus, NotificationBus
from saferide.workers import escalation as _escalation

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
ERROR_STATUS: list[tuple[type[SafeRideError], int]] = [
    (AuthenticationError, 401),
    (ForbiddenError, 403),
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ExternalServiceError, 502),
    (PersistenceError, 400),
]


def status_for(exc: SafeRideError) -> int:
    for cls, status in ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


def build_notification_bus() -> NotificationBus:
    if settings.notification_backend == "redis":
        return RedisNotificationBus(
            redis_client(), prefix=settings.notification_channel_prefix
        )
    return InMemoryNotificationBus()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the bus and the escalation worker; on shutdown also close the DB pool."""
    await app.state.notification_bus.start()
    await _escalation.start_escalation_loop()
    yield
    await _escalation.stop_escalation_loop()
    await app.state.notification_bus.stop()
    await dispose_engine()


async def _saferide_error_handler(request: Request, exc: SafeRideError):
    status = status_for(exc)
    body: dict = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.fields:
        body["fields"] = exc.fields
    if isinstance(exc, ClaimConflict):
        body["reason"] = exc.reason
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    if status >= 500 or isinstance(exc, PersistenceError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=body, headers=headers)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [
        ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0])
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "fields": fields},
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(notification_bus: Optional[NotificationBus] = None) -> FastAPI:
    app = FastAPI(
        title="SafeRide API",
        description=(
            "Ride lifecycle and dispatch core: riders request volunteer or "
            "paid rides, drivers claim them first-come-first-served, and an "
            "SOS escalates a ride to emergency dispatch and the rider's "
            "contacts."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.notification_bus = notification_bus or build_notification_bus()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Error mapping
    app.add_exception_handler(SafeRideError, _saferide_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(dispatch.router, prefix="/api/v1")
    app.include_router(emergency.router, prefix="/api/v1")
    app.include_router(contacts.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
