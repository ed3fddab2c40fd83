from __future__ import annotations
import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from nats.errors import Error as NatsError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.nats import publish_attendance
from ..core.redis import allow_request
from ..deps import get_db, get_principal
from ..models import Attendance, VerificationStatus, as_utc
from ..schemas import AttendanceRead, Principal, ScanRequest, ScanResult
from ..services import attendance as attendance_svc

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/attendance", tags=["attendance"])

def _read(r: Attendance) -> AttendanceRead:
    return AttendanceRead(
        id=r.id, event_id=r.event_id, user_id=r.user_id, attended_at=as_utc(r.attended_at),
        scanned_latitude=r.scanned_latitude, scanned_longitude=r.scanned_longitude,
        is_within_geofence=r.is_within_geofence, distance_m=r.distance_m, token_used=r.token_used,
        points_awarded=r.points_awarded, verification_status=r.verification_status.value,
    )

# --- volunteer scans the event QR with device coordinates
@router.post("/scan", response_model=ScanResult, status_code=201)
async def scan(
    payload: ScanRequest,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    ip = request.client.host if request.client else "unknown"
    if not await allow_request(ip, "attendance.scan"):
        raise HTTPException(status_code=429, detail="Too many requests")

    record, balance = await attendance_svc.verify_attendance(
        db,
        user_id=principal.user_id,
        scanned_payload=payload.qr_data,
        user_lat=payload.user_latitude,
        user_lng=payload.user_longitude,
    )

    # committed already; the bus is best-effort
    try:
        await publish_attendance({
            "event_id": str(record.event_id),
            "user_id": str(record.user_id),
            "points": record.points_awarded,
            "attended_at": as_utc(record.attended_at).isoformat(),
            "idempotency_key": f"{record.event_id}:{record.user_id}",
        })
    except (NatsError, OSError) as exc:
        logger.warning("attendance.recorded publish failed for %s: %s", record.id, exc)

    return ScanResult(attendance=_read(record), gamification_points=balance)

@router.get("/events/{event_id}", response_model=list[AttendanceRead])
async def event_attendance(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    rows = await attendance_svc.list_event_attendance(db, principal, event_id)
    return [_read(r) for r in rows]

@router.get("/users/me", response_model=list[AttendanceRead])
async def my_attendance(principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    rows = await attendance_svc.list_my_attendance(db, principal)
    return [_read(r) for r in rows]

@router.get("", response_model=list[AttendanceRead])
async def all_attendance(
    user_id: uuid.UUID | None = Query(default=None),
    event_id: uuid.UUID | None = Query(default=None),
    verification_status: VerificationStatus | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    rows = await attendance_svc.list_attendance(
        db, principal, user_id=user_id, event_id=event_id, verification_status=verification_status
    )
    return [_read(r) for r in rows]
