"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EMERGENCY = "emergency"


# State machine: maps current status -> set of valid next statuses.
# EMERGENCY is terminal until resolved by staff outside this service.
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {
        RideStatus.ACCEPTED,
        RideStatus.CANCELLED,
        RideStatus.EMERGENCY,
    },
    RideStatus.ACCEPTED: {
        RideStatus.IN_PROGRESS,
        RideStatus.CANCELLED,
        RideStatus.EMERGENCY,
    },
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.EMERGENCY},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
    RideStatus.EMERGENCY: set(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in RIDE_TRANSITIONS.items() if not targets
)

ACTIVE_STATUSES = frozenset(RIDE_TRANSITIONS) - TERMINAL_STATUSES


def is_valid_transition(current: RideStatus, target: RideStatus) -> bool:
    return target in RIDE_TRANSITIONS.get(current, set())


class RideType(str, enum.Enum):
    VOLUNTEER = "volunteer"
    WEEKDAY = "weekday"
    DRIVE_BACK = "drive_back"

    @property
    def is_paid(self) -> bool:
        return self is not RideType.VOLUNTEER


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class BackgroundCheckStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AlertStatus(str, enum.Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
