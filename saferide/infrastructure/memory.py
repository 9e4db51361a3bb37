"""
In-process implementations of the storage ports.

Used by the unit tests and by ``seed.py --dry-run``.  Each store guards
its dict with a ``threading.Lock`` so the conditional writes keep the
same all-or-nothing contract as the SQL repositories; entities are
deep-copied on the way in and out so callers never alias stored state.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from saferide.domain import ports
from saferide.domain.entities import (
    DriverProfile,
    EmergencyAlert,
    EmergencyContact,
    LocationPing,
    Ride,
)
from saferide.domain.enums import AlertStatus, PaymentStatus, RideStatus


class InMemoryRideRepository(ports.RideRepository):
    def __init__(self):
        self._rides: dict[str, Ride] = {}
        self._pings: list[LocationPing] = []
        self._lock = threading.Lock()

    async def add(self, ride: Ride) -> Ride:
        with self._lock:
            self._rides[ride.id] = copy.deepcopy(ride)
        return ride

    async def get(self, ride_id: str) -> Optional[Ride]:
        with self._lock:
            return copy.deepcopy(self._rides.get(ride_id))

    async def list_available(self) -> list[Ride]:
        with self._lock:
            rides = [r for r in self._rides.values() if r.is_available]
            rides.sort(key=lambda r: (r.created_at, r.id))
            return copy.deepcopy(rides)

    async def list_for_user(self, user_id: str) -> list[Ride]:
        with self._lock:
            rides = [r for r in self._rides.values() if r.involves(user_id)]
            rides.sort(key=lambda r: r.created_at, reverse=True)
            return copy.deepcopy(rides)

    async def claim(
        self, ride_id: str, driver_id: str, at: datetime
    ) -> Optional[Ride]:
        with self._lock:
            stored = self._rides.get(ride_id)
            if stored is None or not stored.claim_by(driver_id, at):
                return None
            return copy.deepcopy(stored)

    async def compare_and_set(
        self, ride: Ride, expected_status: RideStatus
    ) -> bool:
        with self._lock:
            stored = self._rides.get(ride.id)
            if stored is None or stored.status != expected_status:
                return False
            stored.status = ride.status
            stored.updated_at = ride.updated_at
            stored.started_at = ride.started_at
            stored.completed_at = ride.completed_at
            return True

    async def set_payment_status(
        self,
        ride_id: str,
        status: PaymentStatus,
        expected: Optional[PaymentStatus],
        at: datetime,
    ) -> bool:
        with self._lock:
            stored = self._rides.get(ride_id)
            if stored is None or stored.payment_status != expected:
                return False
            stored.payment_status = status
            stored.updated_at = at
            return True

    async def append_location(self, ping: LocationPing) -> LocationPing:
        stored = LocationPing(
            ride_id=ping.ride_id,
            location=ping.location,
            timestamp=ping.timestamp,
            id=ping.id or str(uuid.uuid4()),
        )
        with self._lock:
            self._pings.append(stored)
        return stored

    async def list_locations(self, ride_id: str) -> list[LocationPing]:
        with self._lock:
            trail = [p for p in self._pings if p.ride_id == ride_id]
        return sorted(trail, key=lambda p: p.timestamp)


class InMemoryDriverRepository(ports.DriverRepository):
    def __init__(self):
        self._profiles: dict[str, DriverProfile] = {}
        self._lock = threading.Lock()

    async def add(self, profile: DriverProfile) -> DriverProfile:
        with self._lock:
            self._profiles[profile.user_id] = copy.deepcopy(profile)
        return profile

    async def get(self, user_id: str) -> Optional[DriverProfile]:
        with self._lock:
            return copy.deepcopy(self._profiles.get(user_id))

    async def update_availability(
        self, user_id: str, changes: dict[str, bool], at: datetime
    ) -> Optional[DriverProfile]:
        with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                return None
            for name, value in changes.items():
                setattr(profile, name, value)
            profile.updated_at = at
            return copy.deepcopy(profile)

    async def record_completed_ride(
        self, user_id: str, earnings: Decimal, at: datetime
    ) -> None:
        with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                return
            profile.total_rides += 1
            profile.total_earnings += earnings
            profile.updated_at = at


class InMemoryContactRepository(ports.ContactRepository):
    def __init__(self):
        self._contacts: dict[str, EmergencyContact] = {}
        self._lock = threading.Lock()

    async def add(self, contact: EmergencyContact) -> EmergencyContact:
        with self._lock:
            self._contacts[contact.id] = copy.deepcopy(contact)
        return contact

    async def get(self, contact_id: str) -> Optional[EmergencyContact]:
        with self._lock:
            return copy.deepcopy(self._contacts.get(contact_id))

    async def list_for_user(self, user_id: str) -> list[EmergencyContact]:
        with self._lock:
            contacts = [c for c in self._contacts.values() if c.user_id == user_id]
        contacts.sort(key=lambda c: c.priority)
        return copy.deepcopy(contacts)

    async def update(self, contact: EmergencyContact) -> EmergencyContact:
        with self._lock:
            self._contacts[contact.id] = copy.deepcopy(contact)
        return contact

    async def delete(self, contact_id: str) -> None:
        with self._lock:
            self._contacts.pop(contact_id, None)


class InMemoryAlertRepository(ports.AlertRepository):
    def __init__(self):
        self._alerts: dict[str, EmergencyAlert] = {}
        self._lock = threading.Lock()

    async def add(self, alert: EmergencyAlert) -> EmergencyAlert:
        with self._lock:
            self._alerts[alert.id] = copy.deepcopy(alert)
        return alert

    async def save(self, alert: EmergencyAlert) -> EmergencyAlert:
        with self._lock:
            self._alerts[alert.id] = copy.deepcopy(alert)
        return alert

    async def list_due(self, now: datetime, limit: int = 50) -> list[EmergencyAlert]:
        with self._lock:
            due = [
                a for a in self._alerts.values()
                if a.status == AlertStatus.PENDING and a.next_attempt_at <= now
            ]
        due.sort(key=lambda a: a.next_attempt_at)
        return copy.deepcopy(due[:limit])

    async def list_pending(self) -> list[EmergencyAlert]:
        with self._lock:
            pending = [
                a for a in self._alerts.values() if a.status == AlertStatus.PENDING
            ]
        pending.sort(key=lambda a: a.created_at)
        return copy.deepcopy(pending)
