"""FastAPI dependency injection helpers.

Services are built per request from the shared session factory, the
application's notification bus, and the caller's identity.  Tests
override ``get_session_factory`` and the collaborator getters.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saferide.api.auth import TokenIdentity, get_identity
from saferide.domain.ports import ContactNotifier, EmergencyDispatcher
from saferide.infrastructure.alerting import HttpEmergencyDispatcher, LoggingContactNotifier
from saferide.infrastructure.database import async_session_factory
from saferide.infrastructure.repositories import (
    SqlAlertRepository,
    SqlContactRepository,
    SqlDriverRepository,
    SqlRideRepository,
)
from saferide.services.contacts import EmergencyContactService
from saferide.services.dispatch import DispatchCoordinator
from saferide.services.drivers import DriverService
from saferide.services.emergency import EmergencyService
from saferide.services.notifications import NotificationBus
from saferide.services.rides import RideService


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


def get_notification_bus(request: Request) -> NotificationBus:
    return request.app.state.notification_bus


def get_emergency_dispatcher() -> EmergencyDispatcher:
    return HttpEmergencyDispatcher()


def get_contact_notifier() -> ContactNotifier:
    return LoggingContactNotifier()


def get_ride_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: NotificationBus = Depends(get_notification_bus),
    identity: TokenIdentity = Depends(get_identity),
) -> RideService:
    return RideService(
        SqlRideRepository(factory),
        bus,
        identity,
        drivers=SqlDriverRepository(factory),
    )


def get_dispatch_coordinator(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: NotificationBus = Depends(get_notification_bus),
    identity: TokenIdentity = Depends(get_identity),
) -> DispatchCoordinator:
    return DispatchCoordinator(
        SqlRideRepository(factory),
        bus,
        identity,
        drivers=SqlDriverRepository(factory),
    )


def get_emergency_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: NotificationBus = Depends(get_notification_bus),
    identity: TokenIdentity = Depends(get_identity),
    dispatcher: EmergencyDispatcher = Depends(get_emergency_dispatcher),
    notifier: ContactNotifier = Depends(get_contact_notifier),
) -> EmergencyService:
    return EmergencyService(
        rides=SqlRideRepository(factory),
        alerts=SqlAlertRepository(factory),
        contacts=SqlContactRepository(factory),
        bus=bus,
        dispatcher=dispatcher,
        notifier=notifier,
        identity=identity,
    )


def get_contact_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: TokenIdentity = Depends(get_identity),
) -> EmergencyContactService:
    return EmergencyContactService(SqlContactRepository(factory), identity)


def get_driver_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: TokenIdentity = Depends(get_identity),
) -> DriverService:
    return DriverService(SqlDriverRepository(factory), identity)
