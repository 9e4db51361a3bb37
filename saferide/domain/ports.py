"""
Interfaces the services depend on.

Storage implementations live in ``saferide.infrastructure.repositories``
(SQLAlchemy) and ``saferide.infrastructure.memory`` (in-process fakes).
Every storage method is one atomic unit: it either commits entirely or
raises ``PersistenceError`` having written nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from .entities import (
    DriverProfile,
    EmergencyAlert,
    EmergencyContact,
    Location,
    LocationPing,
    Ride,
)
from .enums import PaymentStatus, RideStatus


# ── Storage ───────────────────────────────────────────────────────────


class RideRepository(ABC):
    @abstractmethod
    async def add(self, ride: Ride) -> Ride: ...

    @abstractmethod
    async def get(self, ride_id: str) -> Optional[Ride]: ...

    @abstractmethod
    async def list_available(self) -> list[Ride]:
        """Unclaimed REQUESTED rides, oldest first."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[Ride]:
        """Rides where *user_id* is rider or driver, newest first."""

    @abstractmethod
    async def claim(
        self, ride_id: str, driver_id: str, at: datetime
    ) -> Optional[Ride]:
        """Conditionally assign *driver_id*.

        Succeeds only if, at commit time, the ride is REQUESTED with no
        driver.  Returns the updated ride, or ``None`` with nothing written.
        """

    @abstractmethod
    async def compare_and_set(
        self, ride: Ride, expected_status: RideStatus
    ) -> bool:
        """Persist *ride*'s status and lifecycle timestamps iff the stored
        status is still *expected_status*.  Payment status is not written."""

    @abstractmethod
    async def set_payment_status(
        self,
        ride_id: str,
        status: PaymentStatus,
        expected: Optional[PaymentStatus],
        at: datetime,
    ) -> bool:
        """Write *status* iff the stored payment status is still *expected*."""

    @abstractmethod
    async def append_location(self, ping: LocationPing) -> LocationPing: ...

    @abstractmethod
    async def list_locations(self, ride_id: str) -> list[LocationPing]:
        """Ping trail of a ride ordered by timestamp."""


class DriverRepository(ABC):
    @abstractmethod
    async def add(self, profile: DriverProfile) -> DriverProfile: ...

    @abstractmethod
    async def get(self, user_id: str) -> Optional[DriverProfile]: ...

    @abstractmethod
    async def update_availability(
        self, user_id: str, changes: dict[str, bool], at: datetime
    ) -> Optional[DriverProfile]: ...

    @abstractmethod
    async def record_completed_ride(
        self, user_id: str, earnings: Decimal, at: datetime
    ) -> None:
        """Atomically bump ``total_rides`` and ``total_earnings``."""


class ContactRepository(ABC):
    @abstractmethod
    async def add(self, contact: EmergencyContact) -> EmergencyContact: ...

    @abstractmethod
    async def get(self, contact_id: str) -> Optional[EmergencyContact]: ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[EmergencyContact]:
        """Contacts ordered by ascending priority."""

    @abstractmethod
    async def update(self, contact: EmergencyContact) -> EmergencyContact: ...

    @abstractmethod
    async def delete(self, contact_id: str) -> None: ...


class AlertRepository(ABC):
    @abstractmethod
    async def add(self, alert: EmergencyAlert) -> EmergencyAlert: ...

    @abstractmethod
    async def save(self, alert: EmergencyAlert) -> EmergencyAlert: ...

    @abstractmethod
    async def list_due(self, now: datetime, limit: int = 50) -> list[EmergencyAlert]:
        """PENDING alerts whose ``next_attempt_at`` has passed."""

    @abstractmethod
    async def list_pending(self) -> list[EmergencyAlert]: ...


# ── External collaborators ────────────────────────────────────────────


class IdentityProvider(ABC):
    @abstractmethod
    def current_user_id(self) -> Optional[str]: ...


class GeolocationProvider(ABC):
    @abstractmethod
    async def current_location(self) -> Optional[Location]: ...


class EmergencyDispatcher(ABC):
    """Third-party emergency dispatch (e.g. a monitoring centre API)."""

    @abstractmethod
    async def dispatch(self, alert: EmergencyAlert) -> dict[str, Any]:
        """Raise ``ExternalServiceError`` if the call did not go through."""


class ContactNotifier(ABC):
    @abstractmethod
    async def notify(
        self, contact: EmergencyContact, alert: EmergencyAlert
    ) -> None: ...
