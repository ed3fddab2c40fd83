"""
Attendance verification.

A scan runs through an ordered list of gates; the first failing gate raises its
own domain error and nothing is written. Gates 1-8 only read. The commit step
writes the attendance row, the balance increment and the ledger row in one
transaction. Two scans racing past the "already marked" gate are serialized by
the ``uq_attendance_event_user`` constraint: the loser's insert fails, is rolled
back, and surfaces as ``AlreadyMarked``.
"""
from __future__ import annotations
import hmac
import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import (
    AlreadyMarked,
    DomainError,
    EventNotOpenForAttendance,
    Forbidden,
    InvalidOrExpiredToken,
    NotEnrolled,
    OutsideGeofence,
    OutsideWindow,
)
from ..core import geo
from ..core.geo import Point
from ..core.qr import parse_payload
from ..db import safe_rollback, storage_call
from ..models import Attendance, Event, VerificationStatus, as_utc, utcnow
from ..schemas import Principal
from . import points
from .enrollment import is_enrolled
from .events import OPEN_STATUSES, get_event

logger = logging.getLogger(__name__)
settings = get_settings()

def check_status(event: Event):
    if event.status not in OPEN_STATUSES:
        raise EventNotOpenForAttendance(
            f"Attendance cannot be marked for an event with status: {event.status.value}."
        )

def check_window(event: Event, now: datetime):
    start = as_utc(event.attendance_window_start)
    end = as_utc(event.attendance_window_end)
    if now < start or now > end:
        raise OutsideWindow()

def check_token(event: Event, presented: str, now: datetime):
    current = event.attendance_token or ""
    # constant-time compare; an empty current token never matches
    if not current or not hmac.compare_digest(current.encode(), presented.encode()):
        raise InvalidOrExpiredToken()
    expires_at = as_utc(event.attendance_token_expires_at)
    if expires_at is None or not now < expires_at:
        raise InvalidOrExpiredToken("QR code has expired. Please ask the organiser for a new one.")

def check_geofence(event: Event, user: Point) -> float:
    center = Point(event.latitude, event.longitude)
    distance = geo.distance_meters(user, center)
    if not geo.within_geofence(user, center, event.geofence_radius_km):
        raise OutsideGeofence(
            f"You are outside the attendance zone ({event.geofence_radius_km:g} km radius). "
            f"Current distance: {distance / 1000:.1f} km.",
            distance_m=round(distance, 1),
            radius_km=event.geofence_radius_km,
        )
    return distance

async def find_attendance(db: AsyncSession, event_id: uuid.UUID, user_id: uuid.UUID) -> Attendance | None:
    return (await storage_call(
        db.execute(select(Attendance).where(Attendance.event_id == event_id, Attendance.user_id == user_id)),
        what="attendance lookup",
    )).scalar_one_or_none()

async def commit_attendance(
    db: AsyncSession,
    *,
    event: Event,
    user_id: uuid.UUID,
    user: Point,
    distance: float,
    token: str,
    now: datetime,
) -> tuple[Attendance, int]:
    award = settings.attendance_points
    # rollback expires ORM state; keep the id for logging
    event_id = event.id
    record = Attendance(
        event_id=event_id,
        user_id=user_id,
        attended_at=now,
        scanned_latitude=user.lat,
        scanned_longitude=user.lng,
        is_within_geofence=True,
        distance_m=distance,
        token_used=token,
        points_awarded=award,
        verification_status=VerificationStatus.VERIFIED,
    )
    try:
        db.add(record)
        await storage_call(db.flush(), what="attendance insert")
        balance = await points.award(
            db, user_id=user_id, points=award, event_id=event_id, details=f"attendance:{event_id}"
        )
        await storage_call(db.commit(), what="attendance commit")
    except IntegrityError:
        await safe_rollback(db)
        logger.info("duplicate attendance for event=%s user=%s rejected by constraint", event_id, user_id)
        raise AlreadyMarked()
    except Exception:
        await safe_rollback(db)
        raise
    return record, balance

async def verify_attendance(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    scanned_payload: Any,
    user_lat: float,
    user_lng: float,
    now: datetime | None = None,
) -> tuple[Attendance, int]:
    """Run the gate pipeline for one scan. Returns the new record and the user's updated balance."""
    now = now or utcnow()
    user = Point(user_lat, user_lng)

    try:
        event_id, token = parse_payload(scanned_payload)
        event = await get_event(db, event_id)
        check_status(event)
        if not await is_enrolled(db, event.id, user_id):
            raise NotEnrolled()
        check_window(event, now)
        check_token(event, token, now)
        distance = check_geofence(event, user)
        if await find_attendance(db, event.id, user_id) is not None:
            raise AlreadyMarked()
    except DomainError as exc:
        logger.info("attendance rejected user=%s: %s", user_id, exc.kind)
        raise

    record, balance = await commit_attendance(
        db, event=event, user_id=user_id, user=user, distance=distance, token=token, now=now
    )
    logger.info("attendance verified event=%s user=%s distance=%.1fm balance=%s", record.event_id, user_id, distance, balance)
    return record, balance

async def list_event_attendance(db: AsyncSession, principal: Principal, event_id: uuid.UUID) -> list[Attendance]:
    event = await get_event(db, event_id)
    if event.created_by != principal.user_id and not principal.is_supervisor:
        raise Forbidden("You are not authorized to view attendance for this event.")
    rows = (await storage_call(db.execute(
        select(Attendance).where(Attendance.event_id == event.id).order_by(Attendance.attended_at.asc())
    ))).scalars().all()
    return list(rows)

async def list_attendance(
    db: AsyncSession,
    principal: Principal,
    *,
    user_id: uuid.UUID | None = None,
    event_id: uuid.UUID | None = None,
    verification_status: VerificationStatus | None = None,
) -> list[Attendance]:
    if not principal.is_supervisor:
        raise Forbidden("Only supervisors can view all attendance records.")
    stmt = select(Attendance)
    if user_id:
        stmt = stmt.where(Attendance.user_id == user_id)
    if event_id:
        stmt = stmt.where(Attendance.event_id == event_id)
    if verification_status:
        stmt = stmt.where(Attendance.verification_status == verification_status)
    rows = (await storage_call(db.execute(stmt.order_by(Attendance.attended_at.desc())))).scalars().all()
    return list(rows)

async def list_my_attendance(db: AsyncSession, principal: Principal) -> list[Attendance]:
    rows = (await storage_call(db.execute(
        select(Attendance).where(Attendance.user_id == principal.user_id).order_by(Attendance.attended_at.desc())
    ))).scalars().all()
    return list(rows)
