"""
Emergency Escalation
====================

``trigger_sos`` runs, in order:

1. **Force-transition** the ride (if any) to EMERGENCY with a
   compare-and-set from whatever non-terminal status it is in; if the
   status moves underneath us the ride is re-read and escalated again.
2. **Record** an ``EmergencyAlert`` row *before* calling out, so a failed
   dispatch is always left behind as a pending retry.
3. **Dispatch** to the external emergency service.  Failure keeps the
   alert pending with a backoff-scheduled ``next_attempt_at``; the
   escalation worker (``saferide.workers.escalation``) keeps retrying it.
4. **Notify** the caller's emergency contacts by ascending priority.  One
   failed contact does not stop the rest.
5. **Report** the ride's location-ping trail for incident review.

Once the ride is escalated the alert is always recorded or, failing
that, dispatched: a broken geolocation provider or an unreadable trail
only leaves the location empty, and neither a dispatch failure nor an
unreadable contact list stops the remaining steps.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from saferide.config import settings
from saferide.domain.entities import (
    EmergencyAlert,
    EmergencyContact,
    Incident,
    Location,
    LocationPing,
    Ride,
)
from saferide.domain.enums import AlertStatus, RideStatus
from saferide.domain.errors import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
)
from saferide.domain.ports import (
    AlertRepository,
    ContactNotifier,
    ContactRepository,
    EmergencyDispatcher,
    GeolocationProvider,
    IdentityProvider,
    RideRepository,
)
from .notifications import NotificationBus, announce
from .support import Backoff, Clock, RetryPolicy, require_user, utcnow

logger = logging.getLogger(__name__)


async def attempt_dispatch(
    alert: EmergencyAlert,
    dispatcher: EmergencyDispatcher,
    alerts: Optional[AlertRepository],
    backoff: Backoff,
    now: datetime,
) -> bool:
    """One delivery attempt.  Updates and saves *alert* either way."""
    alert.attempts += 1
    try:
        await dispatcher.dispatch(alert)
    except ExternalServiceError as exc:
        alert.last_error = str(exc)
        alert.next_attempt_at = now + timedelta(seconds=backoff.delay_for(alert.attempts))
        log = (
            logger.error
            if alert.attempts >= settings.escalation_alarm_after_attempts
            else logger.warning
        )
        log(
            "Emergency dispatch failed for alert %s (attempt %d), next try at %s: %s",
            alert.id, alert.attempts, alert.next_attempt_at.isoformat(), exc,
        )
        if alerts is not None:
            await alerts.save(alert)
        return False

    alert.status = AlertStatus.DISPATCHED
    alert.dispatched_at = now
    alert.last_error = None
    if alerts is not None:
        await alerts.save(alert)
    logger.info("Emergency dispatch delivered for alert %s", alert.id)
    return True


class EmergencyService:
    def __init__(
        self,
        rides: RideRepository,
        alerts: AlertRepository,
        contacts: ContactRepository,
        bus: NotificationBus,
        dispatcher: EmergencyDispatcher,
        notifier: ContactNotifier,
        identity: Optional[IdentityProvider],
        geolocation: Optional[GeolocationProvider] = None,
        clock: Clock = utcnow,
        retry: Optional[RetryPolicy] = None,
        backoff: Optional[Backoff] = None,
        max_escalation_attempts: int = 5,
    ):
        self.rides = rides
        self.alerts = alerts
        self.contacts = contacts
        self.bus = bus
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.identity = identity
        self.geolocation = geolocation
        self.clock = clock
        self.retry = retry or RetryPolicy.from_settings()
        self.backoff = backoff or Backoff.from_settings()
        self.max_escalation_attempts = max_escalation_attempts

    async def trigger_sos(
        self,
        ride_id: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> Incident:
        user_id = require_user(self.identity)
        now = self.clock()

        ride, was_requested = None, False
        if ride_id:
            ride, previous = await self._escalate_ride(ride_id, user_id, now)
            was_requested = previous == RideStatus.REQUESTED

        trail = await self._load_trail(ride_id) if ride_id else []
        alert = EmergencyAlert(
            id=str(uuid.uuid4()),
            user_id=user_id,
            ride_id=ride_id,
            location=location or await self._resolve_location(trail),
            created_at=now,
            next_attempt_at=now,
        )
        logger.warning(
            "SOS raised by user=%s ride=%s alert=%s", user_id, ride_id, alert.id
        )
        stored = await self._record(alert)

        try:
            await attempt_dispatch(
                alert, self.dispatcher, self.alerts if stored else None, self.backoff, now
            )
        except PersistenceError:
            # The row is still pending and due, so the worker re-sends it.
            logger.error("Could not save outcome of alert %s", alert.id)
        notified = await self._notify_contacts(user_id, alert)

        if ride is not None:
            await announce(self.bus, ride, available_changed=was_requested)
        return Incident(alert=alert, ride=ride, contacts_notified=notified, trail=trail)

    async def pending_alerts(self) -> list[EmergencyAlert]:
        return await self.retry.run(self.alerts.list_pending, "list pending alerts")

    # ── Steps ─────────────────────────────────────────────────────

    async def _escalate_ride(
        self, ride_id: str, user_id: str, now: datetime
    ) -> tuple[Ride, RideStatus]:
        for _ in range(self.max_escalation_attempts):
            ride = await self.retry.run(
                lambda: self.rides.get(ride_id), f"get ride {ride_id}"
            )
            if ride is None:
                raise NotFoundError(f"Ride {ride_id} not found")
            if not ride.involves(user_id):
                raise ForbiddenError(f"User {user_id} is not a party to ride {ride_id}")

            previous = ride.status
            ride.escalate(now)
            stored = await self.retry.run(
                lambda: self.rides.compare_and_set(ride, previous),
                f"escalate ride {ride_id}",
            )
            if stored:
                logger.warning(
                    "Ride %s escalated to emergency from %s", ride_id, previous.value
                )
                return ride, previous
            logger.info("Ride %s moved while escalating; re-reading", ride_id)
        raise ConflictError(f"Ride {ride_id} kept changing; SOS not applied to it")

    async def _resolve_location(self, trail: list[LocationPing]) -> Optional[Location]:
        """Live position if the provider has one, else the last ping, else None."""
        if self.geolocation is not None:
            try:
                location = await self.geolocation.current_location()
            except Exception:
                logger.exception("Geolocation unavailable; falling back to the ride trail")
            else:
                if location is not None:
                    return location
        return trail[-1].location if trail else None

    async def _load_trail(self, ride_id: str) -> list[LocationPing]:
        try:
            return await self.retry.run(
                lambda: self.rides.list_locations(ride_id), f"trail of {ride_id}"
            )
        except PersistenceError:
            logger.error("Could not read the location trail of ride %s", ride_id)
            return []

    async def _record(self, alert: EmergencyAlert) -> bool:
        try:
            await self.retry.run(lambda: self.alerts.add(alert), f"record alert {alert.id}")
        except PersistenceError:
            logger.critical(
                "Could not record SOS alert %s for user %s; dispatching without "
                "a retry record", alert.id, alert.user_id,
            )
            return False
        return True

    async def _notify_contacts(
        self, user_id: str, alert: EmergencyAlert
    ) -> list[EmergencyContact]:
        try:
            contacts = await self.retry.run(
                lambda: self.contacts.list_for_user(user_id), f"contacts of {user_id}"
            )
        except PersistenceError:
            logger.critical(
                "Could not load emergency contacts of %s for alert %s", user_id, alert.id
            )
            return []
        notified: list[EmergencyContact] = []
        for contact in sorted(contacts, key=lambda c: c.priority):
            try:
                await self.notifier.notify(contact, alert)
            except Exception:
                logger.exception(
                    "Could not notify contact %s of alert %s", contact.id, alert.id
                )
                continue
            notified.append(contact)
        return notified
