"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``rides``              -- ride requests and their lifecycle
* ``driver_info``        -- provider profile, availability and totals
* ``emergency_contacts`` -- per-user contacts, notified by priority
* ``ride_locations``     -- append-only driver position log
* ``emergency_alerts``   -- SOS dispatch obligations (retried until sent)

Indexes
-------
* **Composite** ``(status, driver_id, created_at)`` on ``rides`` backs the
  available-rides feed and the claim's conditional update.
* **B-Tree** on ``rider_id``, ``driver_id``, ``ride_locations.ride_id`` and
  ``emergency_alerts (status, next_attempt_at)`` for the remaining look-ups.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from .database import Base
from saferide.domain.enums import (
    AlertStatus,
    BackgroundCheckStatus,
    PaymentStatus,
    RideStatus,
    RideType,
    VerificationStatus,
)


def _enum(enum_cls, name: str) -> Enum:
    """Store enum *values* (``in_progress``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True)
    rider_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=True)

    pickup_address = Column(Text, nullable=False)
    pickup_latitude = Column(Float, nullable=False)
    pickup_longitude = Column(Float, nullable=False)
    destination_address = Column(Text, nullable=False)
    destination_latitude = Column(Float, nullable=False)
    destination_longitude = Column(Float, nullable=False)

    ride_type = Column(_enum(RideType, "ride_type"), nullable=False)
    status = Column(
        _enum(RideStatus, "ride_status"),
        default=RideStatus.REQUESTED,
        nullable=False,
    )
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    fare_amount = Column(Numeric(10, 2), nullable=True)
    payment_status = Column(_enum(PaymentStatus, "payment_status"), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_rides_available", "status", "driver_id", "created_at"),
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_driver", "driver_id"),
    )


class DriverInfoModel(Base):
    __tablename__ = "driver_info"

    user_id = Column(String(64), primary_key=True)
    vehicle_make = Column(String(64), nullable=True)
    vehicle_model = Column(String(64), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    vehicle_color = Column(String(32), nullable=True)
    license_plate = Column(String(16), nullable=True)
    verification_status = Column(
        _enum(VerificationStatus, "verification_status"),
        default=VerificationStatus.PENDING,
        nullable=False,
    )
    background_check_status = Column(
        _enum(BackgroundCheckStatus, "background_check_status"),
        default=BackgroundCheckStatus.PENDING,
        nullable=False,
    )
    is_available = Column(Boolean, default=False, nullable=False)
    availability_volunteer = Column(Boolean, default=False, nullable=False)
    availability_weekday = Column(Boolean, default=False, nullable=False)
    total_earnings = Column(Numeric(12, 2), default=0, nullable=False)
    total_rides = Column(Integer, default=0, nullable=False)
    rating = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class EmergencyContactModel(Base):
    __tablename__ = "emergency_contacts"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False)
    relationship = Column(String(64), nullable=False)
    priority = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_contacts_user_priority", "user_id", "priority"),
    )


class RideLocationModel(Base):
    __tablename__ = "ride_locations"

    id = Column(String(36), primary_key=True)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False)
    driver_latitude = Column(Float, nullable=False)
    driver_longitude = Column(Float, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_ride_locations_ride", "ride_id", "timestamp"),
    )


class EmergencyAlertModel(Base):
    __tablename__ = "emergency_alerts"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    status = Column(
        _enum(AlertStatus, "alert_status"),
        default=AlertStatus.PENDING,
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_alerts_due", "status", "next_attempt_at"),
    )
