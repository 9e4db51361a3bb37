"""
Error taxonomy shared by services, repositories and the HTTP layer.

The API maps each class to a status code in ``saferide.api.app``.
Validation and conflict errors are user-facing and never retried by the
services; persistence and external-service errors are logged and retried
where the operation is safe to repeat.
"""

from __future__ import annotations

from typing import Iterable, Optional


class SafeRideError(Exception):
    """Base class for every error raised on purpose by this package."""


class AuthenticationError(SafeRideError):
    """No resolved identity for an operation that requires one."""


class ForbiddenError(SafeRideError):
    """The caller is identified but is not a party to the resource."""


class ValidationError(SafeRideError):
    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields = list(fields)


class NotFoundError(SafeRideError):
    pass


class ConflictError(SafeRideError):
    """The stored state no longer matches what the caller expected."""


class InvalidStateTransition(ConflictError):
    """Raised when a ride status change violates the state machine."""


class ClaimConflict(ConflictError):
    """A claim lost the race, or the ride was never claimable."""

    ALREADY_CLAIMED = "already_claimed"
    NOT_REQUESTED = "not_requested"
    NOT_FOUND = "not_found"

    def __init__(self, ride_id: str, reason: str):
        super().__init__(f"Ride {ride_id} cannot be claimed ({reason})")
        self.ride_id = ride_id
        self.reason = reason


class ExternalServiceError(SafeRideError):
    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class PersistenceError(SafeRideError):
    """Storage-layer failure; the failed transaction was rolled back."""
