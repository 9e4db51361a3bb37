"""
Concurrency safety tests.

Demonstrates:
1. The in-memory conditional writes are all-or-nothing under gather.
2. Driver totals are incremented atomically in SQL, not read-modify-write.
3. Distributed lock prevents simultaneous acquire.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from saferide.domain.entities import DriverProfile
from saferide.domain.enums import RideStatus
from saferide.infrastructure.locks import DistributedLock, LockNotAcquired
from saferide.infrastructure.repositories import SqlDriverRepository
from saferide.services.rides import RideService
from tests.conftest import START, StaticIdentity, ride_request


class TestCompareAndSet:
    """Competing transitions from the same expected status."""

    @pytest.mark.asyncio
    async def test_only_one_of_cancel_and_escalate_lands(self, rides, bus, clock):
        service = RideService(rides, bus, StaticIdentity("rider-1"), clock=clock)
        ride = await service.create_ride(ride_request())

        cancel = await rides.get(ride.id)
        cancel.transition_to(RideStatus.CANCELLED, clock())
        escalate = await rides.get(ride.id)
        escalate.escalate(clock())

        results = await asyncio.gather(
            rides.compare_and_set(cancel, RideStatus.REQUESTED),
            rides.compare_and_set(escalate, RideStatus.REQUESTED),
        )
        assert sorted(results) == [False, True]
        stored = await rides.get(ride.id)
        assert stored.status == (
            RideStatus.CANCELLED if results[0] else RideStatus.EMERGENCY
        )


class TestDriverTotals:
    @pytest.mark.asyncio
    async def test_parallel_completions_all_counted(self, session_factory, clock):
        drivers = SqlDriverRepository(session_factory)
        await drivers.add(
            DriverProfile(user_id="driver-1", created_at=START, updated_at=START)
        )

        for _ in range(5):
            await asyncio.gather(
                drivers.record_completed_ride("driver-1", Decimal("12.50"), clock()),
                drivers.record_completed_ride("driver-1", Decimal("7.25"), clock()),
            )

        profile = await drivers.get("driver-1")
        assert profile.total_rides == 10
        assert profile.total_earnings == Decimal("98.75")


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:test-key", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_reports_ownership(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is False

        mock_redis.eval.assert_called_once()
        assert mock_redis.eval.call_args.args[2:] == ("lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        entered = []
        with pytest.raises(LockNotAcquired, match="held by another process") as info:
            async with lock:
                entered.append(True)
        assert entered == []
        assert info.value.key == "lock:test-key"
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with DistributedLock(mock_redis, "test-key"):
            pass
        mock_redis.eval.assert_awaited_once()
