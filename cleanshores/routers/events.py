from __future__ import annotations

import uuid
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import Conflict, Forbidden
from ..core.qr import current_payload, render_qr_png
from ..deps import get_db, get_principal
from ..models import Enrollment, Event, EventStatus, as_utc
from ..schemas import (
    CompletionDetails, EnrollmentRead, EventCreate, EventRead, EventStatusUpdate, EventUpdate,
    EventWithTokenRead, Principal, TokenRead,
)
from ..services import enrollment as enrollment_svc
from ..services import events as events_svc

router = APIRouter(prefix="/events", tags=["events"])

def _read(e: Event) -> EventRead:
    return EventRead(
        id=e.id, title=e.title, description=e.description, event_date=e.event_date,
        start_time=e.start_time, end_time=e.end_time, location_name=e.location_name,
        latitude=e.latitude, longitude=e.longitude, geofence_radius_km=e.geofence_radius_km,
        status=e.status.value, attendance_window_start=as_utc(e.attendance_window_start),
        attendance_window_end=as_utc(e.attendance_window_end), wet_waste_collected_kg=e.wet_waste_collected_kg,
        dry_waste_collected_kg=e.dry_waste_collected_kg, other_waste_details=e.other_waste_details,
        event_summary=e.event_summary, created_by=e.created_by,
    )

def _read_with_token(e: Event) -> EventWithTokenRead:
    return EventWithTokenRead(
        **_read(e).model_dump(),
        qr_payload=current_payload(e),
        attendance_token_expires_at=as_utc(e.attendance_token_expires_at),
    )

def _enrollment_read(r: Enrollment) -> EnrollmentRead:
    return EnrollmentRead(event_id=r.event_id, user_id=r.user_id, enrolled_at=as_utc(r.enrolled_at))

@router.post("", response_model=EventWithTokenRead, status_code=201)
async def create_event(payload: EventCreate, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    e = await events_svc.create_event(db, principal, payload)
    return _read_with_token(e)

@router.get("", response_model=list[EventRead])
async def list_events(
    db: AsyncSession = Depends(get_db),
    status_filter: EventStatus | None = Query(default=None, alias="status"),
    created_by: uuid.UUID | None = Query(default=None),
):
    rows = await events_svc.list_events(db, status=status_filter, created_by=created_by)
    return [_read(e) for e in rows]

@router.get("/{event_id}", response_model=EventRead)
async def get_event(event_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return _read(await events_svc.get_event(db, event_id))

@router.patch("/{event_id}", response_model=EventWithTokenRead)
async def update_event(
    event_id: uuid.UUID, payload: EventUpdate,
    principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db),
):
    e = await events_svc.update_event(db, principal, event_id, payload)
    return _read_with_token(e)

@router.delete("/{event_id}", status_code=204)
async def delete_event(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    await events_svc.delete_event(db, principal, event_id)
    return Response(status_code=204)

@router.post("/{event_id}/status", response_model=EventRead)
async def change_status(
    event_id: uuid.UUID, payload: EventStatusUpdate,
    principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db),
):
    e = await events_svc.change_status(db, principal, event_id, EventStatus(payload.status))
    return _read(e)

@router.post("/{event_id}/completion", response_model=EventRead)
async def submit_completion(
    event_id: uuid.UUID, payload: CompletionDetails,
    principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db),
):
    e = await events_svc.submit_completion(db, principal, event_id, payload)
    return _read(e)

# --- organiser rotates the attendance token (old QR stops working immediately)
@router.post("/{event_id}/token/refresh", response_model=TokenRead)
async def refresh_token(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    issued = await events_svc.refresh_token(db, principal, event_id)
    return TokenRead(
        qr_payload=issued.payload, attendance_token=issued.token, attendance_token_expires_at=issued.expires_at
    )

# PNG of the current payload for the kiosk screen; does not rotate
@router.get("/{event_id}/qr.png")
async def qr_png(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    e = await events_svc.get_event(db, event_id)
    if e.created_by != principal.user_id and not principal.is_supervisor:
        raise Forbidden("You are not authorized to display the QR code of this event.")
    payload = current_payload(e)
    if payload is None:
        raise Conflict("This event has no attendance token yet.")
    return Response(content=render_qr_png(payload), media_type="image/png")

# --- enrollment roster
@router.post("/{event_id}/enroll", response_model=EnrollmentRead, status_code=201)
async def enroll(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    r = await enrollment_svc.enroll(db, principal, event_id)
    return _enrollment_read(r)

@router.delete("/{event_id}/enroll", status_code=204)
async def leave(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    await enrollment_svc.leave(db, principal, event_id)
    return Response(status_code=204)

@router.get("/{event_id}/enrollments", response_model=list[EnrollmentRead])
async def list_enrollments(event_id: uuid.UUID, principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    rows = await enrollment_svc.list_enrollments(db, principal, event_id)
    return [_enrollment_read(r) for r in rows]
