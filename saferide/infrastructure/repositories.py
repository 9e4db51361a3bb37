"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives the ``async_sessionmaker`` and opens one session
(unit-of-work) per call, so every method is a single transaction: it
commits entirely or raises ``PersistenceError`` after rolling back.

Concurrency
-----------
``SqlRideRepository.claim``, ``compare_and_set`` and ``set_payment_status``
are single conditional ``UPDATE ... WHERE <column> = :expected``
statements.  The database re-evaluates the predicate under the row lock,
so of N concurrent claims exactly one matches a row; the others see
``rowcount == 0``.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import (
    DriverInfoModel,
    EmergencyAlertModel,
    EmergencyContactModel,
    RideLocationModel,
    RideModel,
)
from saferide.domain import ports
from saferide.domain.entities import (
    DriverProfile,
    EmergencyAlert,
    EmergencyContact,
    Location,
    LocationPing,
    Ride,
)
from saferide.domain.enums import AlertStatus, PaymentStatus, RideStatus
from saferide.domain.errors import PersistenceError

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; every timestamp we store is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.warning("Storage failure in %s: %s", type(self).__name__, exc)
            raise PersistenceError(str(exc)) from exc


# ── Rides ─────────────────────────────────────────────────────────────


def _ride_from_row(row: RideModel) -> Ride:
    return Ride(
        id=row.id,
        rider_id=row.rider_id,
        driver_id=row.driver_id,
        pickup_address=row.pickup_address,
        pickup=Location(row.pickup_latitude, row.pickup_longitude),
        destination_address=row.destination_address,
        destination=Location(row.destination_latitude, row.destination_longitude),
        ride_type=row.ride_type,
        status=row.status,
        scheduled_time=_aware(row.scheduled_time),
        fare_amount=row.fare_amount,
        payment_status=row.payment_status,
        notes=row.notes,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
    )


def _ride_row(ride: Ride) -> RideModel:
    return RideModel(
        id=ride.id,
        rider_id=ride.rider_id,
        driver_id=ride.driver_id,
        pickup_address=ride.pickup_address,
        pickup_latitude=ride.pickup.latitude,
        pickup_longitude=ride.pickup.longitude,
        destination_address=ride.destination_address,
        destination_latitude=ride.destination.latitude,
        destination_longitude=ride.destination.longitude,
        ride_type=ride.ride_type,
        status=ride.status,
        scheduled_time=ride.scheduled_time,
        fare_amount=ride.fare_amount,
        payment_status=ride.payment_status,
        notes=ride.notes,
        created_at=ride.created_at,
        updated_at=ride.updated_at,
        started_at=ride.started_at,
        completed_at=ride.completed_at,
    )


class SqlRideRepository(_SqlRepository, ports.RideRepository):
    async def add(self, ride: Ride) -> Ride:
        async with self._transaction() as session:
            session.add(_ride_row(ride))
        return ride

    async def get(self, ride_id: str) -> Optional[Ride]:
        async with self._transaction() as session:
            row = await session.get(RideModel, ride_id)
            return _ride_from_row(row) if row else None

    async def list_available(self) -> list[Ride]:
        async with self._transaction() as session:
            result = await session.execute(
                select(RideModel)
                .where(
                    RideModel.status == RideStatus.REQUESTED,
                    RideModel.driver_id.is_(None),
                )
                .order_by(RideModel.created_at, RideModel.id)
            )
            return [_ride_from_row(r) for r in result.scalars().all()]

    async def list_for_user(self, user_id: str) -> list[Ride]:
        async with self._transaction() as session:
            result = await session.execute(
                select(RideModel)
                .where(
                    or_(RideModel.rider_id == user_id, RideModel.driver_id == user_id)
                )
                .order_by(RideModel.created_at.desc())
            )
            return [_ride_from_row(r) for r in result.scalars().all()]

    async def claim(
        self, ride_id: str, driver_id: str, at: datetime
    ) -> Optional[Ride]:
        async with self._transaction() as session:
            result = await session.execute(
                update(RideModel)
                .where(
                    RideModel.id == ride_id,
                    RideModel.status == RideStatus.REQUESTED,
                    RideModel.driver_id.is_(None),
                )
                .values(
                    driver_id=driver_id,
                    status=RideStatus.ACCEPTED,
                    updated_at=at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            row = await session.get(RideModel, ride_id, populate_existing=True)
            return _ride_from_row(row)

    async def compare_and_set(
        self, ride: Ride, expected_status: RideStatus
    ) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                update(RideModel)
                .where(RideModel.id == ride.id, RideModel.status == expected_status)
                .values(
                    status=ride.status,
                    updated_at=ride.updated_at,
                    started_at=ride.started_at,
                    completed_at=ride.completed_at,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def set_payment_status(
        self,
        ride_id: str,
        status: PaymentStatus,
        expected: Optional[PaymentStatus],
        at: datetime,
    ) -> bool:
        current = (
            RideModel.payment_status.is_(None)
            if expected is None
            else RideModel.payment_status == expected
        )
        async with self._transaction() as session:
            result = await session.execute(
                update(RideModel)
                .where(RideModel.id == ride_id, current)
                .values(payment_status=status, updated_at=at)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def append_location(self, ping: LocationPing) -> LocationPing:
        ping_id = ping.id or str(uuid.uuid4())
        async with self._transaction() as session:
            session.add(
                RideLocationModel(
                    id=ping_id,
                    ride_id=ping.ride_id,
                    driver_latitude=ping.location.latitude,
                    driver_longitude=ping.location.longitude,
                    timestamp=ping.timestamp,
                )
            )
        return LocationPing(
            ride_id=ping.ride_id,
            location=ping.location,
            timestamp=ping.timestamp,
            id=ping_id,
        )

    async def list_locations(self, ride_id: str) -> list[LocationPing]:
        async with self._transaction() as session:
            result = await session.execute(
                select(RideLocationModel)
                .where(RideLocationModel.ride_id == ride_id)
                .order_by(RideLocationModel.timestamp, RideLocationModel.id)
            )
            return [
                LocationPing(
                    ride_id=r.ride_id,
                    location=Location(r.driver_latitude, r.driver_longitude),
                    timestamp=_aware(r.timestamp),
                    id=r.id,
                )
                for r in result.scalars().all()
            ]


# ── Drivers ───────────────────────────────────────────────────────────


_DRIVER_FIELDS = (
    "user_id", "vehicle_make", "vehicle_model", "vehicle_year",
    "vehicle_color", "license_plate", "verification_status",
    "background_check_status", "is_available", "availability_volunteer",
    "availability_weekday", "total_earnings", "total_rides", "rating",
)


def _driver_from_row(row: DriverInfoModel) -> DriverProfile:
    return DriverProfile(
        **{name: getattr(row, name) for name in _DRIVER_FIELDS},
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlDriverRepository(_SqlRepository, ports.DriverRepository):
    async def add(self, profile: DriverProfile) -> DriverProfile:
        async with self._transaction() as session:
            session.add(
                DriverInfoModel(
                    **{name: getattr(profile, name) for name in _DRIVER_FIELDS},
                    created_at=profile.created_at,
                    updated_at=profile.updated_at,
                )
            )
        return profile

    async def get(self, user_id: str) -> Optional[DriverProfile]:
        async with self._transaction() as session:
            row = await session.get(DriverInfoModel, user_id)
            return _driver_from_row(row) if row else None

    async def update_availability(
        self, user_id: str, changes: dict[str, bool], at: datetime
    ) -> Optional[DriverProfile]:
        async with self._transaction() as session:
            result = await session.execute(
                update(DriverInfoModel)
                .where(DriverInfoModel.user_id == user_id)
                .values(**changes, updated_at=at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            row = await session.get(DriverInfoModel, user_id, populate_existing=True)
            return _driver_from_row(row)

    async def record_completed_ride(
        self, user_id: str, earnings: Decimal, at: datetime
    ) -> None:
        async with self._transaction() as session:
            await session.execute(
                update(DriverInfoModel)
                .where(DriverInfoModel.user_id == user_id)
                .values(
                    total_rides=DriverInfoModel.total_rides + 1,
                    total_earnings=DriverInfoModel.total_earnings + earnings,
                    updated_at=at,
                )
                .execution_options(synchronize_session=False)
            )


# ── Emergency contacts ────────────────────────────────────────────────


def _contact_from_row(row: EmergencyContactModel) -> EmergencyContact:
    return EmergencyContact(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        phone=row.phone,
        relationship=row.relationship,
        priority=row.priority,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlContactRepository(_SqlRepository, ports.ContactRepository):
    async def add(self, contact: EmergencyContact) -> EmergencyContact:
        async with self._transaction() as session:
            session.add(
                EmergencyContactModel(
                    id=contact.id,
                    user_id=contact.user_id,
                    name=contact.name,
                    phone=contact.phone,
                    relationship=contact.relationship,
                    priority=contact.priority,
                    created_at=contact.created_at,
                    updated_at=contact.updated_at,
                )
            )
        return contact

    async def get(self, contact_id: str) -> Optional[EmergencyContact]:
        async with self._transaction() as session:
            row = await session.get(EmergencyContactModel, contact_id)
            return _contact_from_row(row) if row else None

    async def list_for_user(self, user_id: str) -> list[EmergencyContact]:
        async with self._transaction() as session:
            result = await session.execute(
                select(EmergencyContactModel)
                .where(EmergencyContactModel.user_id == user_id)
                .order_by(
                    EmergencyContactModel.priority,
                    EmergencyContactModel.created_at,
                )
            )
            return [_contact_from_row(r) for r in result.scalars().all()]

    async def update(self, contact: EmergencyContact) -> EmergencyContact:
        async with self._transaction() as session:
            await session.execute(
                update(EmergencyContactModel)
                .where(EmergencyContactModel.id == contact.id)
                .values(
                    name=contact.name,
                    phone=contact.phone,
                    relationship=contact.relationship,
                    priority=contact.priority,
                    updated_at=contact.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
        return contact

    async def delete(self, contact_id: str) -> None:
        async with self._transaction() as session:
            await session.execute(
                delete(EmergencyContactModel).where(
                    EmergencyContactModel.id == contact_id
                )
            )


# ── Emergency alerts ──────────────────────────────────────────────────


def _alert_from_row(row: EmergencyAlertModel) -> EmergencyAlert:
    location = None
    if row.latitude is not None and row.longitude is not None:
        location = Location(row.latitude, row.longitude)
    return EmergencyAlert(
        id=row.id,
        user_id=row.user_id,
        ride_id=row.ride_id,
        location=location,
        status=row.status,
        attempts=row.attempts,
        last_error=row.last_error,
        next_attempt_at=_aware(row.next_attempt_at),
        created_at=_aware(row.created_at),
        dispatched_at=_aware(row.dispatched_at),
    )


class SqlAlertRepository(_SqlRepository, ports.AlertRepository):
    async def add(self, alert: EmergencyAlert) -> EmergencyAlert:
        async with self._transaction() as session:
            session.add(
                EmergencyAlertModel(
                    id=alert.id,
                    user_id=alert.user_id,
                    ride_id=alert.ride_id,
                    latitude=alert.location.latitude if alert.location else None,
                    longitude=alert.location.longitude if alert.location else None,
                    status=alert.status,
                    attempts=alert.attempts,
                    last_error=alert.last_error,
                    next_attempt_at=alert.next_attempt_at,
                    created_at=alert.created_at,
                    dispatched_at=alert.dispatched_at,
                )
            )
        return alert

    async def save(self, alert: EmergencyAlert) -> EmergencyAlert:
        async with self._transaction() as session:
            await session.execute(
                update(EmergencyAlertModel)
                .where(EmergencyAlertModel.id == alert.id)
                .values(
                    status=alert.status,
                    attempts=alert.attempts,
                    last_error=alert.last_error,
                    next_attempt_at=alert.next_attempt_at,
                    dispatched_at=alert.dispatched_at,
                )
                .execution_options(synchronize_session=False)
            )
        return alert

    async def list_due(self, now: datetime, limit: int = 50) -> list[EmergencyAlert]:
        async with self._transaction() as session:
            result = await session.execute(
                select(EmergencyAlertModel)
                .where(
                    EmergencyAlertModel.status == AlertStatus.PENDING,
                    EmergencyAlertModel.next_attempt_at <= now,
                )
                .order_by(EmergencyAlertModel.next_attempt_at)
                .limit(limit)
            )
            return [_alert_from_row(r) for r in result.scalars().all()]

    async def list_pending(self) -> list[EmergencyAlert]:
        async with self._transaction() as session:
            result = await session.execute(
                select(EmergencyAlertModel)
                .where(EmergencyAlertModel.status == AlertStatus.PENDING)
                .order_by(EmergencyAlertModel.created_at)
            )
            return [_alert_from_row(r) for r in result.scalars().all()]
