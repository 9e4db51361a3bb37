"""
Notification Bus  (Publish / Subscribe)
=======================================

Two kinds of topic:

* ``ride:{id}``        -- payload is the committed ``Ride``
* ``rides:available``  -- payload-less signal: re-fetch the available list

Delivery is at-least-once and eventually consistent: a subscriber may
see a stale intermediate ride, and converges on its next fetch.  Services
publish only after the write has committed.

``subscribe`` returns a ``Subscription`` handle; ``unsubscribe`` removes
it immediately (a fan-out already in flight skips it too) and can be
called any number of times.
"""

from __future__ import annotations

import inspect
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from saferide.domain.entities import Ride

logger = logging.getLogger(__name__)

AVAILABLE_RIDES_TOPIC = "rides:available"


def ride_topic(ride_id: str) -> str:
    return f"ride:{ride_id}"


@dataclass(frozen=True)
class Notification:
    topic: str
    ride: Optional[Ride] = None


Callback = Callable[[Notification], Union[None, Awaitable[None]]]


class Subscription:
    def __init__(self, bus: "NotificationBus", topic: str, callback: Callback):
        self.id = uuid.uuid4().hex
        self.topic = topic
        self.callback = callback
        self._bus = bus
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._bus._remove(self)

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"Subscription(topic={self.topic!r}, {state})"


class NotificationBus(ABC):
    """Local subscriber registry; subclasses decide how publishes travel."""

    def __init__(self):
        self._subscribers: dict[str, dict[str, Subscription]] = defaultdict(dict)
        self._lock = threading.Lock()

    # ── Subscribers ───────────────────────────────────────────────

    def subscribe(self, topic: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, topic, callback)
        with self._lock:
            self._subscribers[topic][subscription.id] = subscription
        return subscription

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, {}))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            topic_subs = self._subscribers.get(subscription.topic)
            if topic_subs is not None:
                topic_subs.pop(subscription.id, None)
                if not topic_subs:
                    del self._subscribers[subscription.topic]

    async def _deliver(self, notification: Notification) -> None:
        with self._lock:
            targets = list(self._subscribers.get(notification.topic, {}).values())
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                result = subscription.callback(notification)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Subscriber %s on %s failed", subscription.id, notification.topic
                )

    # ── Publishing ────────────────────────────────────────────────

    @abstractmethod
    async def publish(self, notification: Notification) -> None: ...

    async def ride_changed(self, ride: Ride, *, available_changed: bool = False) -> None:
        """Publish a committed ride, plus the list signal if its
        membership in the available feed changed."""
        await self.publish(Notification(ride_topic(ride.id), ride))
        if available_changed:
            await self.publish(Notification(AVAILABLE_RIDES_TOPIC))

    # ── Lifecycle (no-ops for the in-process bus) ─────────────────

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class InMemoryNotificationBus(NotificationBus):
    """Single-process bus: publish delivers straight to local subscribers."""

    async def publish(self, notification: Notification) -> None:
        await self._deliver(notification)


async def announce(
    bus: NotificationBus, ride: Ride, *, available_changed: bool = False
) -> None:
    """Publish after a commit.  A failed publish is logged, not raised:
    the write stands and subscribers converge on their next fetch."""
    try:
        await bus.ride_changed(ride, available_changed=available_changed)
    except Exception:
        logger.exception("Could not publish update for ride %s", ride.id)
