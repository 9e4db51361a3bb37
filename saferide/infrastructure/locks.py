"""
Redis lease guarding the emergency-alert retry queue.

Only one API process may drain the queue per cycle; two drainers would
send the same alert twice.  The claim path never uses this, it relies on
the database's conditional update instead.

The lease is a ``SET NX EX`` key holding a per-holder token.  Releasing
deletes the key only if it still holds our token (Lua check-and-delete),
so a holder whose lease ran out cannot remove its successor's.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    """Another process holds the lease."""

    def __init__(self, key: str):
        super().__init__(f"Lease {key} is held by another process")
        self.key = key


class DistributedLock:
    """``async with DistributedLock(redis, "escalation_worker"):`` runs the
    body only while this process holds the lease, else raises
    ``LockNotAcquired`` without entering it."""

    def __init__(self, client: aioredis.Redis, name: str, ttl_seconds: int = 30):
        self.redis = client
        self.key = f"lock:{name}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        return bool(await self.redis.set(self.key, self.token, nx=True, ex=self.ttl))

    async def release(self) -> bool:
        """True if we still held the lease; False if it expired under us."""
        return bool(await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token))

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockNotAcquired(self.key)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if not await self.release():
            logger.warning(
                "Lease %s expired after %ds before the holder finished; "
                "another process may have run concurrently",
                self.key, self.ttl,
            )
