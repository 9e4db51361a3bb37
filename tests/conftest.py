"""
Shared test fixtures.

Service tests run against the in-process repositories.  Storage tests
use a file-backed SQLite database (via aiosqlite) per test, so
concurrent claims really go through separate connections and the
conditional UPDATE, without Docker / PostgreSQL / Redis.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from saferide.domain.entities import EmergencyAlert, EmergencyContact, Location
from saferide.domain.enums import RideType
from saferide.domain.errors import ExternalServiceError
from saferide.domain.ports import ContactNotifier, EmergencyDispatcher, IdentityProvider
from saferide.infrastructure.database import Base
from saferide.infrastructure import models  # noqa: F401  (registers tables)
from saferide.infrastructure.memory import (
    InMemoryAlertRepository,
    InMemoryContactRepository,
    InMemoryDriverRepository,
    InMemoryRideRepository,
)
from saferide.services.notifications import InMemoryNotificationBus
from saferide.services.rides import RideRequest
from saferide.services.support import RetryPolicy

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

CAMPUS = Location(33.7756, -84.3963)
MIDTOWN = Location(33.7810, -84.3860)


# ── Collaborator fakes ────────────────────────────────────────────────


class TickClock:
    """Deterministic clock: every call is one second after the last."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class StaticIdentity(IdentityProvider):
    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id


class FakeDispatcher(EmergencyDispatcher):
    """Fails the first *failures* calls, then succeeds."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[EmergencyAlert] = []

    async def dispatch(self, alert: EmergencyAlert) -> dict:
        self.calls.append(alert)
        if len(self.calls) <= self.failures:
            raise ExternalServiceError("emergency-dispatch", "HTTP 503: unavailable", 503)
        return {"incident": f"inc-{len(self.calls)}"}


class RecordingNotifier(ContactNotifier):
    def __init__(self, failing: tuple[str, ...] = ()):
        self.failing = set(failing)
        self.notified: list[EmergencyContact] = []

    async def notify(self, contact: EmergencyContact, alert: EmergencyAlert) -> None:
        if contact.name in self.failing:
            raise ConnectionError(f"SMS gateway rejected {contact.phone}")
        self.notified.append(contact)


def ride_request(
    ride_type: RideType = RideType.VOLUNTEER,
    pickup: Location = CAMPUS,
    destination: Location = MIDTOWN,
    **overrides,
) -> RideRequest:
    fields = dict(
        pickup_address="Student Union, 101 College Ave",
        pickup=pickup,
        destination_address="Midtown Station, 41 10th St",
        destination=destination,
        ride_type=ride_type,
    )
    fields.update(overrides)
    return RideRequest(**fields)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> TickClock:
    return TickClock()


@pytest.fixture
def no_retry() -> RetryPolicy:
    return RetryPolicy(attempts=1, base_delay=0)


@pytest.fixture
def bus() -> InMemoryNotificationBus:
    return InMemoryNotificationBus()


@pytest.fixture
def rides() -> InMemoryRideRepository:
    return InMemoryRideRepository()


@pytest.fixture
def drivers() -> InMemoryDriverRepository:
    return InMemoryDriverRepository()


@pytest.fixture
def contacts() -> InMemoryContactRepository:
    return InMemoryContactRepository()


@pytest.fixture
def alerts() -> InMemoryAlertRepository:
    return InMemoryAlertRepository()


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh SQLite file, yield a factory, then dispose."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'saferide.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
