"""
Dispatch Coordinator
====================

First-come-first-served claiming; no proximity matching or ranking.

``list_available``
    Unclaimed REQUESTED rides, oldest first.  Read-only and eventually
    consistent, so it is retried freely on storage failures.

``claim``
    Delegates to ``RideRepository.claim``, a single conditional write
    (``status = 'requested' AND driver_id IS NULL``).  There is no
    read-before-write here: reading first and writing second would let
    two drivers both observe an open ride.  A miss raises ``ClaimConflict``
    and leaves the record untouched; the caller should re-list.

    Retrying a claim after a storage failure is safe: if the earlier
    attempt actually committed, the retry misses and the post-miss read
    finds this same driver already assigned, which is reported as success.
"""

from __future__ import annotations

import logging
from typing import Optional

from saferide.config import settings
from saferide.domain.entities import Ride
from saferide.domain.enums import RideStatus
from saferide.domain.errors import ClaimConflict, ForbiddenError, ValidationError
from saferide.domain.ports import DriverRepository, IdentityProvider, RideRepository
from .notifications import NotificationBus, announce
from .support import Clock, RetryPolicy, require_user, utcnow

logger = logging.getLogger(__name__)


class DispatchCoordinator:
    def __init__(
        self,
        rides: RideRepository,
        bus: NotificationBus,
        identity: Optional[IdentityProvider] = None,
        drivers: Optional[DriverRepository] = None,
        clock: Clock = utcnow,
        retry: Optional[RetryPolicy] = None,
        require_verified_driver: Optional[bool] = None,
    ):
        self.rides = rides
        self.bus = bus
        self.identity = identity
        self.drivers = drivers
        self.clock = clock
        self.retry = retry or RetryPolicy.from_settings()
        if require_verified_driver is None:
            require_verified_driver = settings.dispatch_require_verified_driver
        self.require_verified_driver = require_verified_driver

    async def list_available(self) -> list[Ride]:
        return await self.retry.run(self.rides.list_available, "list available rides")

    async def claim(self, ride_id: str, driver_id: str) -> Ride:
        missing = [n for n, v in (("ride_id", ride_id), ("driver_id", driver_id)) if not v]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

        if self.identity is not None:
            caller = require_user(self.identity)
            if caller != driver_id:
                raise ForbiddenError("Drivers can only claim rides for themselves")

        if self.require_verified_driver:
            await self._check_eligible(driver_id)

        claimed = await self.retry.run(
            lambda: self.rides.claim(ride_id, driver_id, self.clock()),
            f"claim ride {ride_id}",
        )
        if claimed is None:
            return await self._resolve_miss(ride_id, driver_id)

        logger.info("Ride %s claimed by driver %s", ride_id, driver_id)
        await announce(self.bus, claimed, available_changed=True)
        return claimed

    async def _check_eligible(self, driver_id: str) -> None:
        profile = await self.drivers.get(driver_id) if self.drivers else None
        if profile is None or not profile.can_dispatch:
            raise ForbiddenError(
                f"Driver {driver_id} is not verified for dispatch"
            )

    async def _resolve_miss(self, ride_id: str, driver_id: str) -> Ride:
        """Explain a conditional-write miss.  Nothing here writes."""
        current = await self.retry.run(
            lambda: self.rides.get(ride_id), f"get ride {ride_id}"
        )
        if current is None:
            reason = ClaimConflict.NOT_FOUND
        elif current.driver_id == driver_id and current.status == RideStatus.ACCEPTED:
            logger.info("Ride %s already held by driver %s", ride_id, driver_id)
            return current
        elif current.driver_id is not None:
            reason = ClaimConflict.ALREADY_CLAIMED
        else:
            reason = ClaimConflict.NOT_REQUESTED

        status = current.status.value if current else "missing"
        logger.warning(
            "Claim lost: ride=%s driver=%s reason=%s status=%s",
            ride_id, driver_id, reason, status,
        )
        raise ClaimConflict(ride_id, reason)
