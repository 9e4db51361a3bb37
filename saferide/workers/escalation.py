"""
Background Escalation Worker
============================

Runs every ``ESCALATION_INTERVAL_SECONDS`` (default 10 s) and re-sends
emergency alerts whose external dispatch has not gone through yet.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance drains the queue
  per cycle across multiple API processes.
* Each alert is saved after its attempt, so a crash mid-cycle at worst
  re-sends an alert; the dispatcher uses the alert id as idempotency key.

Algorithm per cycle
-------------------
1. Fetch PENDING alerts whose ``next_attempt_at`` has passed.
2. Attempt dispatch for each; success marks it DISPATCHED.
3. Failure pushes ``next_attempt_at`` out by exponential backoff
   (capped at ``ESCALATION_BACKOFF_MAX_SECONDS``).  Alerts are never
   given up on; past ``ESCALATION_ALARM_AFTER_ATTEMPTS`` failures each
   retry is logged at ERROR.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saferide.config import settings
from saferide.domain.errors import PersistenceError
from saferide.domain.ports import AlertRepository, EmergencyDispatcher
from saferide.infrastructure.alerting import HttpEmergencyDispatcher
from saferide.infrastructure.database import async_session_factory
from saferide.infrastructure.locks import DistributedLock, LockNotAcquired
from saferide.infrastructure.redis_client import get_redis
from saferide.infrastructure.repositories import SqlAlertRepository
from saferide.services.emergency import attempt_dispatch
from saferide.services.support import Backoff, utcnow

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_escalation_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Escalation worker started (interval=%ds)", settings.escalation_interval_seconds
    )


async def stop_escalation_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Escalation worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a retry cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_escalation_cycle()
        except Exception:
            logger.exception("Unhandled error in escalation cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.escalation_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_escalation_cycle(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    dispatcher: Optional[EmergencyDispatcher] = None,
    alerts: Optional[AlertRepository] = None,
    redis=None,
    backoff: Optional[Backoff] = None,
) -> int:
    """Execute one retry cycle.  Returns the number of alerts delivered."""
    redis = redis or await get_redis()
    lease = DistributedLock(
        redis, "escalation_worker", ttl_seconds=settings.escalation_lock_ttl_seconds
    )
    try:
        async with lease:
            return await _drain(
                alerts or SqlAlertRepository(session_factory or async_session_factory),
                dispatcher or HttpEmergencyDispatcher(),
                backoff or Backoff.from_settings(),
            )
    except LockNotAcquired:
        logger.debug("Escalation lease held by another worker; skipping cycle")
        return 0


async def _drain(
    alerts: AlertRepository, dispatcher: EmergencyDispatcher, backoff: Backoff
) -> int:
    delivered = 0
    due = await alerts.list_due(utcnow())
    for alert in due:
        try:
            if await attempt_dispatch(alert, dispatcher, alerts, backoff, utcnow()):
                delivered += 1
        except PersistenceError:
            logger.exception("Could not save retry state of alert %s", alert.id)
    if due:
        logger.info(
            "Escalation cycle: %d/%d pending alerts delivered", delivered, len(due)
        )
    return delivered
