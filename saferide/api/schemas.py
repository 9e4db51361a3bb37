"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from saferide.domain.entities import (
    DriverProfile,
    EmergencyContact,
    Incident,
    Location,
    LocationPing,
    Ride,
)
from saferide.domain.enums import (
    AlertStatus,
    BackgroundCheckStatus,
    PaymentStatus,
    RideStatus,
    RideType,
    VerificationStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    pickup_address: str = Field(..., min_length=1, max_length=500)
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)
    destination_address: str = Field(..., min_length=1, max_length=500)
    destination_latitude: float = Field(..., ge=-90, le=90)
    destination_longitude: float = Field(..., ge=-180, le=180)
    ride_type: RideType
    scheduled_time: Optional[datetime] = Field(
        None, description="Omit for an immediate request."
    )
    notes: Optional[str] = Field(None, max_length=1000)


class ClaimRequest(BaseModel):
    ride_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)


class PaymentUpdateRequest(BaseModel):
    status: PaymentStatus


class LocationPingRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_location(self) -> Location:
        return Location(self.latitude, self.longitude)


class SosRequest(BaseModel):
    ride_id: Optional[str] = Field(
        None, description="Omit to raise a general distress alert."
    )
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def _coordinates_together(self) -> "SosRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be sent together")
        return self

    def to_location(self) -> Optional[Location]:
        if self.latitude is None:
            return None
        return Location(self.latitude, self.longitude)


class ContactCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., min_length=3, max_length=32)
    relationship: str = Field(..., min_length=1, max_length=64)
    priority: Optional[int] = Field(None, ge=1)


class ContactUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    phone: Optional[str] = Field(None, min_length=3, max_length=32)
    relationship: Optional[str] = Field(None, min_length=1, max_length=64)
    priority: Optional[int] = Field(None, ge=1)


class DriverRegisterRequest(BaseModel):
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = Field(None, ge=1950, le=2100)
    vehicle_color: Optional[str] = None
    license_plate: Optional[str] = Field(None, max_length=16)


class AvailabilityRequest(BaseModel):
    is_available: Optional[bool] = None
    availability_volunteer: Optional[bool] = None
    availability_weekday: Optional[bool] = None


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: str
    rider_id: str
    driver_id: Optional[str] = None
    pickup_address: str
    pickup_latitude: float
    pickup_longitude: float
    destination_address: str
    destination_latitude: float
    destination_longitude: float
    ride_type: RideType
    status: RideStatus
    scheduled_time: Optional[datetime] = None
    fare_amount: Optional[float] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, ride: Ride) -> "RideResponse":
        return cls(
            id=ride.id,
            rider_id=ride.rider_id,
            driver_id=ride.driver_id,
            pickup_address=ride.pickup_address,
            pickup_latitude=ride.pickup.latitude,
            pickup_longitude=ride.pickup.longitude,
            destination_address=ride.destination_address,
            destination_latitude=ride.destination.latitude,
            destination_longitude=ride.destination.longitude,
            ride_type=ride.ride_type,
            status=ride.status,
            scheduled_time=ride.scheduled_time,
            fare_amount=float(ride.fare_amount) if ride.fare_amount is not None else None,
            payment_status=ride.payment_status,
            notes=ride.notes,
            created_at=ride.created_at,
            updated_at=ride.updated_at,
            started_at=ride.started_at,
            completed_at=ride.completed_at,
        )


class LocationPingResponse(BaseModel):
    ride_id: str
    latitude: float
    longitude: float
    timestamp: datetime

    @classmethod
    def from_entity(cls, ping: LocationPing) -> "LocationPingResponse":
        return cls(
            ride_id=ping.ride_id,
            latitude=ping.location.latitude,
            longitude=ping.location.longitude,
            timestamp=ping.timestamp,
        )


class ContactResponse(BaseModel):
    id: str
    name: str
    phone: str
    relationship: str
    priority: int

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, contact: EmergencyContact) -> "ContactResponse":
        return cls.model_validate(contact)


class DriverProfileResponse(BaseModel):
    user_id: str
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_color: Optional[str] = None
    license_plate: Optional[str] = None
    verification_status: VerificationStatus
    background_check_status: BackgroundCheckStatus
    is_available: bool
    availability_volunteer: bool
    availability_weekday: bool
    total_earnings: float
    total_rides: int
    rating: Optional[float] = None

    @classmethod
    def from_entity(cls, profile: DriverProfile) -> "DriverProfileResponse":
        fields = {name: getattr(profile, name) for name in cls.model_fields}
        fields["total_earnings"] = float(profile.total_earnings)
        return cls(**fields)


class AlertResponse(BaseModel):
    id: str
    user_id: str
    ride_id: Optional[str] = None
    status: AlertStatus
    attempts: int
    last_error: Optional[str] = None
    next_attempt_at: datetime
    created_at: datetime
    dispatched_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class IncidentResponse(BaseModel):
    alert: AlertResponse
    dispatched: bool
    ride: Optional[RideResponse] = None
    contacts_notified: list[ContactResponse] = []
    trail: list[LocationPingResponse] = []

    @classmethod
    def from_entity(cls, incident: Incident) -> "IncidentResponse":
        return cls(
            alert=AlertResponse.model_validate(incident.alert),
            dispatched=incident.dispatched,
            ride=RideResponse.from_entity(incident.ride) if incident.ride else None,
            contacts_notified=[
                ContactResponse.from_entity(c) for c in incident.contacts_notified
            ],
            trail=[LocationPingResponse.from_entity(p) for p in incident.trail],
        )


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
