"""Helpers shared by the services: clock, identity check, retries, backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from saferide.config import settings
from saferide.domain.errors import AuthenticationError, PersistenceError
from saferide.domain.ports import IdentityProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_user(identity: Optional[IdentityProvider]) -> str:
    user_id = identity.current_user_id() if identity else None
    if not user_id:
        raise AuthenticationError("Not authenticated")
    return user_id


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for storage calls that are safe to repeat."""

    attempts: int = 3
    base_delay: float = 0.05

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            attempts=settings.storage_retry_attempts,
            base_delay=settings.storage_retry_base_delay_seconds,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "storage call",
    ) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except PersistenceError as exc:
                if attempt >= self.attempts:
                    logger.error(
                        "%s failed after %d attempts: %s", description, attempt, exc
                    )
                    raise
                wait = self.base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description, attempt, self.attempts, wait, exc,
                )
                await asyncio.sleep(wait)
                attempt += 1


@dataclass(frozen=True)
class Backoff:
    """Delay before retry number ``attempts + 1`` of an external call."""

    base_seconds: float = 5.0
    max_seconds: float = 300.0

    @classmethod
    def from_settings(cls) -> "Backoff":
        return cls(
            base_seconds=settings.escalation_backoff_base_seconds,
            max_seconds=settings.escalation_backoff_max_seconds,
        )

    def delay_for(self, attempts: int) -> float:
        return min(self.max_seconds, self.base_seconds * 2 ** max(attempts - 1, 0))
