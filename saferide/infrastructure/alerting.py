"""
Adapters for the emergency collaborators.

``HttpEmergencyDispatcher`` posts an alarm to the configured dispatch
service with httpx.  Any transport error or non-2xx response becomes
``ExternalServiceError`` so the caller can schedule a retry; the alert
id doubles as the idempotency key, so a re-send after a lost response
does not open a second alarm.

``LoggingContactNotifier`` stands in for SMS/push delivery, which lives
outside this service.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from saferide.config import settings
from saferide.domain.entities import EmergencyAlert, EmergencyContact
from saferide.domain.errors import ExternalServiceError
from saferide.domain.ports import ContactNotifier, EmergencyDispatcher

logger = logging.getLogger(__name__)


def alarm_payload(alert: EmergencyAlert) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "alert_id": alert.id,
        "user_id": alert.user_id,
        "ride_id": alert.ride_id,
        "raised_at": alert.created_at.isoformat(),
    }
    if alert.location is not None:
        payload["location"] = {
            "lat": alert.location.latitude,
            "lng": alert.location.longitude,
        }
    return payload


class HttpEmergencyDispatcher(EmergencyDispatcher):
    SERVICE = "emergency-dispatch"

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.emergency_dispatch_url
        self.api_key = api_key if api_key is not None else settings.emergency_dispatch_api_key
        self.timeout = timeout_seconds or settings.emergency_dispatch_timeout_seconds
        self.transport = transport

    async def dispatch(self, alert: EmergencyAlert) -> dict[str, Any]:
        headers = {"Idempotency-Key": alert.id}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                resp = await client.post(self.url, json=alarm_payload(alert), headers=headers)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(self.SERVICE, f"request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ExternalServiceError(
                self.SERVICE,
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            return {}


class LoggingContactNotifier(ContactNotifier):
    async def notify(self, contact: EmergencyContact, alert: EmergencyAlert) -> None:
        where = (
            f"{alert.location.latitude:.5f},{alert.location.longitude:.5f}"
            if alert.location
            else "unknown location"
        )
        logger.warning(
            "Notify %s (%s, priority %d) at %s: user %s raised SOS at %s",
            contact.name, contact.relationship, contact.priority,
            contact.phone, alert.user_id, where,
        )
