"""
Ride lifecycle service.

Creation, look-ups, and every transition except the claim (see
``saferide.services.dispatch``) and the SOS escalation (see
``saferide.services.emergency``).

Each transition is validated on the entity first, so an illegal target
raises ``InvalidStateTransition`` before anything is written, and is
then persisted with a compare-and-set against the status it was
validated from.  If another caller moved the ride in between, the write
is refused with ``ConflictError`` and the caller must refresh.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from saferide.domain.entities import Location, LocationPing, Ride
from saferide.domain.enums import PaymentStatus, RideStatus, RideType
from saferide.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from saferide.domain.ports import DriverRepository, IdentityProvider, RideRepository
from saferide.domain.pricing import FareCalculator
from .notifications import NotificationBus, announce
from .support import Clock, RetryPolicy, require_user, utcnow

logger = logging.getLogger(__name__)


@dataclass
class RideRequest:
    pickup_address: str
    pickup: Location
    destination_address: str
    destination: Location
    ride_type: RideType
    scheduled_time: Optional[datetime] = None
    notes: Optional[str] = None

    def validate(self, now: datetime) -> None:
        missing = [
            name
            for name in ("pickup_address", "destination_address")
            if not (getattr(self, name) or "").strip()
        ]
        for name in ("pickup", "destination"):
            if getattr(self, name) is None:
                missing.append(name)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", missing
            )

        bad = [
            name
            for name in ("pickup", "destination")
            if not _valid_coordinates(getattr(self, name))
        ]
        if bad:
            raise ValidationError(f"Invalid coordinates: {', '.join(bad)}", bad)

        if self.scheduled_time is not None and self.scheduled_time <= now:
            raise ValidationError(
                "scheduled_time must be in the future", ["scheduled_time"]
            )


def _valid_coordinates(location: Location) -> bool:
    return -90 <= location.latitude <= 90 and -180 <= location.longitude <= 180


class RideService:
    def __init__(
        self,
        rides: RideRepository,
        bus: NotificationBus,
        identity: Optional[IdentityProvider],
        drivers: Optional[DriverRepository] = None,
        fares: Optional[FareCalculator] = None,
        clock: Clock = utcnow,
        retry: Optional[RetryPolicy] = None,
    ):
        self.rides = rides
        self.bus = bus
        self.identity = identity
        self.drivers = drivers
        self.fares = fares or FareCalculator()
        self.clock = clock
        self.retry = retry or RetryPolicy.from_settings()

    # ── Creation & look-ups ───────────────────────────────────────

    async def create_ride(self, request: RideRequest) -> Ride:
        rider_id = require_user(self.identity)
        now = self.clock()
        request.validate(now)
        ride_type = RideType(request.ride_type)

        ride = Ride(
            id=str(uuid.uuid4()),
            rider_id=rider_id,
            pickup_address=request.pickup_address.strip(),
            pickup=request.pickup,
            destination_address=request.destination_address.strip(),
            destination=request.destination,
            ride_type=ride_type,
            scheduled_time=request.scheduled_time,
            fare_amount=self.fares.calculate_fare(
                ride_type, request.pickup, request.destination
            ),
            payment_status=PaymentStatus.PENDING if ride_type.is_paid else None,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        await self.rides.add(ride)
        logger.info(
            "Ride %s requested by %s (%s, fare=%s)",
            ride.id, rider_id, ride_type.value, ride.fare_amount,
        )
        await announce(self.bus, ride, available_changed=True)
        return ride

    async def get_ride(self, ride_id: str) -> Ride:
        ride = await self.retry.run(
            lambda: self.rides.get(ride_id), f"get ride {ride_id}"
        )
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found")
        return ride

    async def list_my_rides(self) -> list[Ride]:
        user_id = require_user(self.identity)
        return await self.retry.run(
            lambda: self.rides.list_for_user(user_id), f"rides of {user_id}"
        )

    # ── Transitions ───────────────────────────────────────────────

    async def start_ride(self, ride_id: str) -> Ride:
        return await self._transition(ride_id, RideStatus.IN_PROGRESS, driver_only=True)

    async def complete_ride(self, ride_id: str) -> Ride:
        ride = await self._transition(ride_id, RideStatus.COMPLETED, driver_only=True)
        if self.drivers is not None and ride.driver_id:
            await self._credit_driver(ride)
        return ride

    async def _credit_driver(self, ride: Ride) -> None:
        """Bump the driver's totals; the completion itself is already committed."""
        earnings = ride.fare_amount or Decimal("0.00")
        try:
            await self.retry.run(
                lambda: self.drivers.record_completed_ride(
                    ride.driver_id, earnings, ride.completed_at
                ),
                f"credit driver {ride.driver_id}",
            )
        except PersistenceError:
            logger.critical(
                "Ride %s completed but driver %s was not credited %s",
                ride.id, ride.driver_id, earnings,
            )

    async def cancel_ride(self, ride_id: str) -> Ride:
        return await self._transition(ride_id, RideStatus.CANCELLED)

    async def _transition(
        self, ride_id: str, target: RideStatus, driver_only: bool = False
    ) -> Ride:
        user_id = require_user(self.identity)
        ride = await self.get_ride(ride_id)
        if not ride.involves(user_id):
            raise ForbiddenError(f"User {user_id} is not a party to ride {ride_id}")
        if driver_only and user_id != ride.driver_id:
            raise ForbiddenError(f"Only the assigned driver can move ride {ride_id}")

        expected = ride.status
        ride.transition_to(target, self.clock())
        await self._commit(ride, expected)
        logger.info(
            "Ride %s: %s -> %s by %s", ride_id, expected.value, target.value, user_id
        )
        await announce(
            self.bus, ride, available_changed=expected == RideStatus.REQUESTED
        )
        return ride

    async def _commit(self, ride: Ride, expected: RideStatus) -> None:
        stored = await self.retry.run(
            lambda: self.rides.compare_and_set(ride, expected),
            f"update ride {ride.id}",
        )
        if not stored:
            raise ConflictError(
                f"Ride {ride.id} changed since it was read; refresh and retry"
            )

    # ── Payment ───────────────────────────────────────────────────

    async def record_payment(self, ride_id: str, status: PaymentStatus) -> Ride:
        """Store the gateway's confirmation result for a paid ride."""
        user_id = require_user(self.identity)
        ride = await self.get_ride(ride_id)
        if user_id != ride.rider_id:
            raise ForbiddenError("Only the rider can record a payment")
        if not ride.ride_type.is_paid:
            raise ValidationError(
                "Volunteer rides carry no payment", ["payment_status"]
            )
        if ride.payment_status == PaymentStatus.PAID:
            raise ConflictError(f"Ride {ride_id} is already paid")

        expected = ride.payment_status
        ride.payment_status = PaymentStatus(status)
        ride.updated_at = self.clock()
        stored = await self.retry.run(
            lambda: self.rides.set_payment_status(
                ride_id, ride.payment_status, expected, ride.updated_at
            ),
            f"record payment of {ride_id}",
        )
        if not stored:
            raise ConflictError(
                f"Payment of ride {ride_id} changed since it was read; refresh and retry"
            )
        logger.info("Ride %s payment %s", ride_id, ride.payment_status.value)
        await announce(self.bus, ride)
        return ride

    # ── Location trail ────────────────────────────────────────────

    async def record_location(self, ride_id: str, location: Location) -> LocationPing:
        user_id = require_user(self.identity)
        ride = await self.get_ride(ride_id)
        if user_id != ride.driver_id:
            raise ForbiddenError("Only the assigned driver reports positions")
        if ride.status != RideStatus.IN_PROGRESS:
            raise ConflictError(
                f"Ride {ride_id} is {ride.status.value}; positions are recorded "
                "only while in progress"
            )
        if not _valid_coordinates(location):
            raise ValidationError("Invalid coordinates", ["latitude", "longitude"])
        return await self.rides.append_location(
            LocationPing(ride_id=ride_id, location=location, timestamp=self.clock())
        )

    async def get_trail(self, ride_id: str) -> list[LocationPing]:
        user_id = require_user(self.identity)
        ride = await self.get_ride(ride_id)
        if not ride.involves(user_id):
            raise ForbiddenError(f"User {user_id} is not a party to ride {ride_id}")
        return await self.retry.run(
            lambda: self.rides.list_locations(ride_id), f"trail of {ride_id}"
        )
