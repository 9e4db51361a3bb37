"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

or, without a database, to exercise the same flow in memory:
    python seed.py --dry-run

Creates (through the services, so every lifecycle rule applies):
  - 3 driver profiles with availability set
  - 2 emergency contacts per rider
  - 6 rides: two waiting for a driver, one accepted, one in progress
    with a short location trail, one completed, one cancelled
"""

import asyncio
import sys
from datetime import timedelta

from sqlalchemy import text

from saferide.api.auth import TokenIdentity
from saferide.domain.entities import Location
from saferide.domain.enums import PaymentStatus, RideType
from saferide.infrastructure.database import async_session_factory, engine
from saferide.infrastructure.memory import (
    InMemoryContactRepository,
    InMemoryDriverRepository,
    InMemoryRideRepository,
)
from saferide.infrastructure.repositories import (
    SqlContactRepository,
    SqlDriverRepository,
    SqlRideRepository,
)
from saferide.services.contacts import EmergencyContactService
from saferide.services.dispatch import DispatchCoordinator
from saferide.services.drivers import DriverService
from saferide.services.notifications import InMemoryNotificationBus
from saferide.services.rides import RideRequest, RideService
from saferide.services.support import utcnow

# Campus (approx) and nearby drop-offs
CAMPUS = ("Student Union, 101 College Ave", Location(33.7756, -84.3963))

DRIVERS = [
    {"user_id": "driver-ana", "vehicle_make": "Toyota", "vehicle_model": "Corolla",
     "vehicle_year": 2019, "vehicle_color": "Blue", "license_plate": "SRD1001",
     "availability": {"is_available": True, "availability_volunteer": True}},
    {"user_id": "driver-ben", "vehicle_make": "Honda", "vehicle_model": "Civic",
     "vehicle_year": 2021, "vehicle_color": "Grey", "license_plate": "SRD1002",
     "availability": {"is_available": True, "availability_weekday": True}},
    {"user_id": "driver-chloe", "vehicle_make": "Ford", "vehicle_model": "Escape",
     "vehicle_year": 2018, "vehicle_color": "White", "license_plate": "SRD1003",
     "availability": {"is_available": False, "availability_volunteer": True,
                      "availability_weekday": True}},
]

RIDERS = {
    "rider-dev": [
        ("Priya Dev", "+1-404-555-0101", "sister"),
        ("Omar Dev", "+1-404-555-0102", "father"),
    ],
    "rider-eli": [
        ("Sam Cole", "+1-404-555-0111", "roommate"),
        ("Jo Eli", "+1-404-555-0112", "mother"),
    ],
}

DESTINATIONS = {
    "midtown": ("Midtown Station, 41 10th St", Location(33.7810, -84.3860)),
    "airport": ("Airport Terminal South", Location(33.6407, -84.4277)),
    "westside": ("Westside Park, 1660 Johnson Rd", Location(33.7870, -84.4470)),
    "downtown": ("Downtown Library, 1 Margaret Mitchell Sq", Location(33.7580, -84.3880)),
}

# (rider, destination, ride type, driver, final step)
RIDES = [
    ("rider-dev", "midtown", RideType.VOLUNTEER, None, "requested"),
    ("rider-eli", "airport", RideType.WEEKDAY, None, "requested"),
    ("rider-dev", "westside", RideType.VOLUNTEER, "driver-ana", "accepted"),
    ("rider-eli", "downtown", RideType.WEEKDAY, "driver-ben", "in_progress"),
    ("rider-dev", "airport", RideType.DRIVE_BACK, "driver-ben", "completed"),
    ("rider-eli", "midtown", RideType.VOLUNTEER, None, "cancelled"),
]


def _repositories(dry_run: bool):
    if dry_run:
        return (
            InMemoryRideRepository(),
            InMemoryDriverRepository(),
            InMemoryContactRepository(),
        )
    return (
        SqlRideRepository(async_session_factory),
        SqlDriverRepository(async_session_factory),
        SqlContactRepository(async_session_factory),
    )


async def seed(dry_run: bool = False):
    if not dry_run:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT count(*) FROM rides"))
            if result.scalar() > 0:
                print("Database already seeded. Skipping.")
                return

    rides, drivers, contacts = _repositories(dry_run)
    bus = InMemoryNotificationBus()

    def ride_service(user_id):
        return RideService(rides, bus, TokenIdentity(user_id), drivers=drivers)

    # ── Drivers ───────────────────────────────────────────────────
    for d in DRIVERS:
        service = DriverService(drivers, TokenIdentity(d["user_id"]))
        await service.register(
            vehicle_make=d["vehicle_make"],
            vehicle_model=d["vehicle_model"],
            vehicle_year=d["vehicle_year"],
            vehicle_color=d["vehicle_color"],
            license_plate=d["license_plate"],
        )
        await service.set_availability(**d["availability"])
    print(f"  Created {len(DRIVERS)} driver profiles")

    # ── Emergency contacts ────────────────────────────────────────
    count = 0
    for rider_id, entries in RIDERS.items():
        service = EmergencyContactService(contacts, TokenIdentity(rider_id))
        for name, phone, relationship in entries:
            await service.add_contact(name, phone, relationship)
            count += 1
    print(f"  Created {count} emergency contacts")

    # ── Rides ─────────────────────────────────────────────────────
    for rider_id, dest_key, ride_type, driver_id, final in RIDES:
        destination_address, destination = DESTINATIONS[dest_key]
        scheduled = utcnow() + timedelta(hours=2) if final == "requested" else None
        ride = await ride_service(rider_id).create_ride(
            RideRequest(
                pickup_address=CAMPUS[0],
                pickup=CAMPUS[1],
                destination_address=destination_address,
                destination=destination,
                ride_type=ride_type,
                scheduled_time=scheduled,
            )
        )
        if final == "cancelled":
            await ride_service(rider_id).cancel_ride(ride.id)
            continue
        if driver_id is None:
            continue

        await DispatchCoordinator(rides, bus, TokenIdentity(driver_id)).claim(
            ride.id, driver_id
        )
        if final == "accepted":
            continue
        driving = ride_service(driver_id)
        await driving.start_ride(ride.id)
        for step in range(3):
            await driving.record_location(
                ride.id,
                Location(
                    CAMPUS[1].latitude + (destination.latitude - CAMPUS[1].latitude) * step / 3,
                    CAMPUS[1].longitude + (destination.longitude - CAMPUS[1].longitude) * step / 3,
                ),
            )
        if final == "completed":
            await driving.complete_ride(ride.id)
            await ride_service(rider_id).record_payment(ride.id, PaymentStatus.PAID)
    print(f"  Created {len(RIDES)} rides")

    available = await rides.list_available()
    print(f"\nSeed complete! {len(available)} rides waiting for a driver.")


async def main():
    dry_run = "--dry-run" in sys.argv[1:]
    print("Seeding (in memory)..." if dry_run else "Seeding database...")
    await seed(dry_run)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
