"""
Redis pub/sub backend for the notification bus.

Every API process keeps its own local subscribers and one listener task
on ``PSUBSCRIBE <prefix>:*``.  ``publish`` goes through Redis, so a claim
committed by one process reaches subscribers held by every process,
including the publishing one.  Payloads are JSON produced by a pydantic
``TypeAdapter`` over the ``Notification`` dataclass.

If the connection drops the listener logs the error, backs off and
resubscribes.  Redis pub/sub does not buffer, so anything published
while it is down is not delivered; clients re-read the ride on reconnect.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

import pydantic
import redis.asyncio as aioredis

from saferide.services.notifications import Notification, NotificationBus
from saferide.services.support import Backoff

logger = logging.getLogger(__name__)

_NOTIFICATION = pydantic.TypeAdapter(Notification)


def encode(notification: Notification) -> bytes:
    return _NOTIFICATION.dump_json(notification)


def decode(payload: Union[str, bytes]) -> Notification:
    return _NOTIFICATION.validate_json(payload)


class RedisNotificationBus(NotificationBus):
    def __init__(
        self,
        client: aioredis.Redis,
        prefix: str = "saferide",
        backoff: Optional[Backoff] = None,
    ):
        super().__init__()
        self.redis = client
        self.prefix = prefix
        self.backoff = backoff or Backoff(base_seconds=1.0, max_seconds=30.0)
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None

    def channel_for(self, topic: str) -> str:
        return f"{self.prefix}:{topic}"

    async def publish(self, notification: Notification) -> None:
        await self.redis.publish(self.channel_for(notification.topic), encode(notification))

    async def start(self) -> None:
        await self._subscribe()
        self._task = asyncio.create_task(self._listen())
        logger.info("Redis notification listener started (prefix=%s)", self.prefix)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Redis notification listener ended with an error")
            self._task = None
        if self._pubsub is not None:
            try:
                await self._pubsub.punsubscribe()
            except Exception as exc:
                logger.warning("Could not unsubscribe from Redis cleanly: %s", exc)
            await self._discard_pubsub()
        logger.info("Redis notification listener stopped")

    async def _subscribe(self) -> None:
        self._pubsub = self.redis.pubsub()
        await self._pubsub.psubscribe(f"{self.prefix}:*")

    async def _discard_pubsub(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except Exception as exc:
            logger.debug("Ignoring error while closing Redis pubsub: %s", exc)

    async def _listen(self) -> None:
        """Deliver incoming messages until cancelled, resubscribing after
        connection errors with capped exponential backoff."""
        failures = 0
        while True:
            try:
                if self._pubsub is None:
                    await self._subscribe()
                    logger.info("Redis notification listener resubscribed")
                async for message in self._pubsub.listen():
                    failures = 0
                    if message.get("type") != "pmessage":
                        continue
                    await self.handle_message(message["data"])
                return
            except Exception:
                failures += 1
                delay = self.backoff.delay_for(failures)
                logger.exception(
                    "Redis notification listener failed (attempt %d), resubscribing in %.1fs",
                    failures, delay,
                )
                await self._discard_pubsub()
                await asyncio.sleep(delay)

    async def handle_message(self, payload: Union[str, bytes]) -> None:
        try:
            notification = decode(payload)
        except pydantic.ValidationError as exc:
            logger.warning("Dropping malformed notification: %s", exc)
            return
        await self._deliver(notification)
