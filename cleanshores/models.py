from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, declarative_base, relationship
from sqlalchemy.types import Boolean, Date, DateTime, Integer, Time

Base = declarative_base()

def utcnow() -> datetime:
    """The single clock used for schedules, windows, token expiry and check-ins."""
    return datetime.now(timezone.utc)

def as_utc(dt: datetime | None) -> datetime | None:
    # some backends (sqlite) hand back naive datetimes for timezone=True columns
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)

class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"

class Event(Base):
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    location_name: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    geofence_radius_km: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)

    status: Mapped[EventStatus] = mapped_column(SqlEnum(EventStatus), default=EventStatus.UPCOMING, nullable=False)

    attendance_token: Mapped[str | None] = mapped_column(String(64))
    attendance_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    attendance_window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attendance_window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    wet_waste_collected_kg: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    dry_waste_collected_kg: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    other_waste_details: Mapped[str] = mapped_column(Text, default="", nullable=False)
    event_summary: Mapped[str] = mapped_column(Text, default="", nullable=False)

    created_by: Mapped[uuid.UUID] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("geofence_radius_km >= 0.1 AND geofence_radius_km <= 10", name="ck_events_radius_range"),
        CheckConstraint("attendance_window_end > attendance_window_start", name="ck_events_window_range"),
        Index("ix_events_status", "status"),
        Index("ix_events_date", "event_date"),
        Index("ix_events_created_by", "created_by"),
    )

    enrollments: Mapped[list["Enrollment"]] = relationship(
        "Enrollment", back_populates="event", cascade="all, delete-orphan"
    )

class Enrollment(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_enrollment_event_user"),
        Index("ix_enrollments_user", "user_id"),
    )

    event: Mapped[Event] = relationship("Event", back_populates="enrollments")

class Attendance(Base):
    __tablename__ = "attendance"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("events.id", ondelete="RESTRICT"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    attended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    scanned_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    scanned_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    is_within_geofence: Mapped[bool] = mapped_column(Boolean, nullable=False)
    distance_m: Mapped[float] = mapped_column(Float, nullable=False)
    token_used: Mapped[str] = mapped_column(String(64), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        SqlEnum(VerificationStatus), default=VerificationStatus.VERIFIED, nullable=False
    )

    __table_args__ = (
        # the serialization point for concurrent scans of the same user/event
        UniqueConstraint("event_id", "user_id", name="uq_attendance_event_user"),
        Index("ix_attendance_user", "user_id"),
        Index("ix_attendance_status", "verification_status"),
    )

class UserPoints(Base):
    __tablename__ = "user_points"
    user_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_points_non_negative"),
    )

class PointsLedger(Base):
    __tablename__ = "points_ledger"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "attendance"
    event_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    details: Mapped[str | None] = mapped_column(Text)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint("delta > 0", name="ck_ledger_delta_positive"),
        Index("ix_ledger_user", "user_id"),
        Index("ix_ledger_reason", "reason"),
    )
