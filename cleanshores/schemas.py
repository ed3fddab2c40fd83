from __future__ import annotations
from typing import Annotated, Any, Literal
from uuid import UUID
from datetime import date, datetime, time
from pydantic import BaseModel, Field, model_validator

Str255     = Annotated[str, Field(min_length=1, max_length=255)]
Title      = Annotated[str, Field(min_length=5, max_length=255)]
Latitude   = Annotated[float, Field(ge=-90, le=90)]
Longitude  = Annotated[float, Field(ge=-180, le=180)]
RadiusKm   = Annotated[float, Field(ge=0.1, le=10)]
NonNegKg   = Annotated[float, Field(ge=0)]

EventStatusLit = Literal["upcoming", "active", "completed", "cancelled"]

# ---- Principal (from the auth collaborator's JWT)
class Principal(BaseModel):
    user_id: UUID
    role: str

    @property
    def is_supervisor(self) -> bool:
        return self.role == "supervisor"

# ---- Events ----
class EventCreate(BaseModel):
    title: Title
    description: str | None = None
    event_date: date
    start_time: time
    end_time: time
    location_name: Str255
    latitude: Latitude
    longitude: Longitude
    geofence_radius_km: RadiusKm = 1.0

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

class EventUpdate(BaseModel):
    title: Title | None = None
    description: str | None = None
    event_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    location_name: Str255 | None = None
    latitude: Latitude | None = None
    longitude: Longitude | None = None
    geofence_radius_km: RadiusKm | None = None

    @model_validator(mode="after")
    def _check_coordinates(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be updated together")
        return self

class EventStatusUpdate(BaseModel):
    status: EventStatusLit

class CompletionDetails(BaseModel):
    wet_waste_collected_kg: NonNegKg
    dry_waste_collected_kg: NonNegKg
    other_waste_details: str | None = None
    event_summary: Annotated[str, Field(min_length=20, max_length=500)]

class EventRead(BaseModel):
    id: UUID
    title: str
    description: str | None
    event_date: date
    start_time: time
    end_time: time
    location_name: str
    latitude: float
    longitude: float
    geofence_radius_km: float
    status: EventStatusLit
    attendance_window_start: datetime
    attendance_window_end: datetime
    wet_waste_collected_kg: float
    dry_waste_collected_kg: float
    other_waste_details: str
    event_summary: str
    created_by: UUID

class EventWithTokenRead(EventRead):
    """Organiser view: includes the current scannable payload."""
    qr_payload: str | None = None
    attendance_token_expires_at: datetime | None = None

class TokenRead(BaseModel):
    qr_payload: str
    attendance_token: str
    attendance_token_expires_at: datetime

# ---- Enrollment ----
class EnrollmentRead(BaseModel):
    event_id: UUID
    user_id: UUID
    enrolled_at: datetime

# ---- Attendance ----
class ScanRequest(BaseModel):
    # raw scanner output; anything unusable is reported as MalformedPayload by the verifier
    qr_data: Any = None
    user_latitude: Latitude
    user_longitude: Longitude

class AttendanceRead(BaseModel):
    id: UUID
    event_id: UUID
    user_id: UUID
    attended_at: datetime
    scanned_latitude: float
    scanned_longitude: float
    is_within_geofence: bool
    distance_m: float
    token_used: str
    points_awarded: int
    verification_status: Literal["verified", "pending_review", "rejected"]

class ScanResult(BaseModel):
    attendance: AttendanceRead
    gamification_points: int

# ---- Points ----
class BalanceRead(BaseModel):
    user_id: UUID
    balance: int
    updated_at: datetime | None = None

class LedgerRead(BaseModel):
    id: UUID
    delta: int
    reason: str
    event_id: UUID | None = None
    details: str | None = None
    occurred_at: datetime
