"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (REQUESTED -> ACCEPTED -> IN_PROGRESS -> COMPLETED | CANCELLED, with
  EMERGENCY reachable from every non-terminal status).
- ``Ride.claim_by`` is the in-memory mirror of the conditional write the
  store performs for a claim; it is what the in-memory repository runs
  under its lock.
- ``DriverProfile.can_dispatch`` encapsulates the eligibility rule used
  when dispatch requires verified drivers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .enums import (
    TERMINAL_STATUSES,
    AlertStatus,
    BackgroundCheckStatus,
    PaymentStatus,
    RideStatus,
    RideType,
    VerificationStatus,
    is_valid_transition,
)
from .errors import InvalidStateTransition


# ── Value Object ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: str
    rider_id: str
    pickup_address: str
    pickup: Location
    destination_address: str
    destination: Location
    ride_type: RideType
    created_at: datetime
    updated_at: datetime
    status: RideStatus = RideStatus.REQUESTED
    driver_id: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    fare_amount: Optional[Decimal] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_available(self) -> bool:
        return self.status == RideStatus.REQUESTED and self.driver_id is None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.rider_id, self.driver_id)

    def transition_to(self, new_status: RideStatus, at: datetime) -> None:
        """Move to *new_status* if the transition is legal, else raise.

        Entering IN_PROGRESS stamps ``started_at`` and entering COMPLETED
        stamps ``completed_at``; nothing else touches those fields.
        """
        if not is_valid_transition(self.status, new_status):
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        self.updated_at = at
        if new_status == RideStatus.IN_PROGRESS:
            self.started_at = at
        elif new_status == RideStatus.COMPLETED:
            self.completed_at = at

    def claim_by(self, driver_id: str, at: datetime) -> bool:
        """Assign *driver_id* iff the ride is still unclaimed."""
        if not self.is_available:
            return False
        self.driver_id = driver_id
        self.status = RideStatus.ACCEPTED
        self.updated_at = at
        return True

    def escalate(self, at: datetime) -> None:
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot escalate a ride that is already {self.status.value}"
            )
        self.transition_to(RideStatus.EMERGENCY, at)


@dataclass
class DriverProfile:
    user_id: str
    created_at: datetime
    updated_at: datetime
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_color: Optional[str] = None
    license_plate: Optional[str] = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    background_check_status: BackgroundCheckStatus = BackgroundCheckStatus.PENDING
    is_available: bool = False
    availability_volunteer: bool = False
    availability_weekday: bool = False
    total_earnings: Decimal = Decimal("0.00")
    total_rides: int = 0
    rating: Optional[float] = None

    @property
    def can_dispatch(self) -> bool:
        return (
            self.verification_status == VerificationStatus.VERIFIED
            and self.background_check_status == BackgroundCheckStatus.APPROVED
        )


@dataclass
class EmergencyContact:
    id: str
    user_id: str
    name: str
    phone: str
    relationship: str
    priority: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class LocationPing:
    ride_id: str
    location: Location
    timestamp: datetime
    id: Optional[str] = None


@dataclass
class EmergencyAlert:
    """A pending or delivered obligation to call emergency dispatch."""

    id: str
    user_id: str
    created_at: datetime
    next_attempt_at: datetime
    ride_id: Optional[str] = None
    location: Optional[Location] = None
    status: AlertStatus = AlertStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    dispatched_at: Optional[datetime] = None


@dataclass
class Incident:
    """What ``EmergencyService.trigger_sos`` reports back to the caller."""

    alert: EmergencyAlert
    ride: Optional[Ride] = None
    contacts_notified: list[EmergencyContact] = field(default_factory=list)
    trail: list[LocationPing] = field(default_factory=list)

    @property
    def dispatched(self) -> bool:
        return self.alert.status == AlertStatus.DISPATCHED
