"""Provider profiles: opting into the driver role and availability toggles."""

from __future__ import annotations

import logging
from typing import Optional

from saferide.domain.entities import DriverProfile
from saferide.domain.errors import ConflictError, NotFoundError, ValidationError
from saferide.domain.ports import DriverRepository, IdentityProvider
from .support import Clock, require_user, utcnow

logger = logging.getLogger(__name__)

AVAILABILITY_FIELDS = ("is_available", "availability_volunteer", "availability_weekday")


class DriverService:
    def __init__(
        self,
        drivers: DriverRepository,
        identity: Optional[IdentityProvider],
        clock: Clock = utcnow,
    ):
        self.drivers = drivers
        self.identity = identity
        self.clock = clock

    async def register(
        self,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
        vehicle_year: Optional[int] = None,
        vehicle_color: Optional[str] = None,
        license_plate: Optional[str] = None,
    ) -> DriverProfile:
        user_id = require_user(self.identity)
        if await self.drivers.get(user_id) is not None:
            raise ConflictError(f"User {user_id} is already registered as a driver")

        now = self.clock()
        profile = DriverProfile(
            user_id=user_id,
            vehicle_make=vehicle_make,
            vehicle_model=vehicle_model,
            vehicle_year=vehicle_year,
            vehicle_color=vehicle_color,
            license_plate=license_plate,
            created_at=now,
            updated_at=now,
        )
        await self.drivers.add(profile)
        logger.info("User %s registered as a driver", user_id)
        return profile

    async def get_profile(self) -> DriverProfile:
        user_id = require_user(self.identity)
        profile = await self.drivers.get(user_id)
        if profile is None:
            raise NotFoundError(f"User {user_id} has no driver profile")
        return profile

    async def set_availability(self, **flags: Optional[bool]) -> DriverProfile:
        user_id = require_user(self.identity)
        unknown = sorted(set(flags) - set(AVAILABILITY_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}", unknown)
        changes = {k: bool(v) for k, v in flags.items() if v is not None}
        if not changes:
            raise ValidationError(
                "No availability flag given", list(AVAILABILITY_FIELDS)
            )

        profile = await self.drivers.update_availability(user_id, changes, self.clock())
        if profile is None:
            raise NotFoundError(f"User {user_id} has no driver profile")
        logger.info("Driver %s availability: %s", user_id, changes)
        return profile
