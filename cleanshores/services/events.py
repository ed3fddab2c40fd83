"""
Event lifecycle.

upcoming / active are open; completed / cancelled are terminal. Terminal events
accept no status changes and no structural edits. Editing the schedule or the
coordinates re-derives the attendance window and rotates the attendance token.
"""
from __future__ import annotations
import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import Conflict, EventNotFound, Forbidden, InvalidInput
from ..core.qr import IssuedToken, rotate_token
from ..db import storage_call
from ..models import Attendance, Event, EventStatus
from ..schemas import CompletionDetails, EventCreate, EventUpdate, Principal

logger = logging.getLogger(__name__)
settings = get_settings()

OPEN_STATUSES = frozenset({EventStatus.UPCOMING, EventStatus.ACTIVE})
TERMINAL_STATUSES = frozenset({EventStatus.COMPLETED, EventStatus.CANCELLED})
ORGANISER_ROLES = frozenset({"organiser", "supervisor"})

def attendance_window(event_date: date, start: time, end: time) -> tuple[datetime, datetime]:
    """Scheduled start minus the margin .. scheduled end plus the margin, in UTC."""
    tz = ZoneInfo(settings.event_timezone)
    margin = timedelta(minutes=settings.attendance_window_margin_minutes)
    starts_at = datetime.combine(event_date, start, tzinfo=tz)
    ends_at = datetime.combine(event_date, end, tzinfo=tz)
    return (starts_at - margin).astimezone(timezone.utc), (ends_at + margin).astimezone(timezone.utc)

def is_terminal(event: Event) -> bool:
    return event.status in TERMINAL_STATUSES

def _ensure_creator(event: Event, principal: Principal, action: str):
    if event.created_by != principal.user_id:
        raise Forbidden(f"You are not authorized to {action} this event.")

def _ensure_creator_or_supervisor(event: Event, principal: Principal, action: str):
    if event.created_by != principal.user_id and not principal.is_supervisor:
        raise Forbidden(f"You are not authorized to {action} this event.")

def _ensure_not_terminal(event: Event, action: str):
    if is_terminal(event):
        raise Conflict(f"Cannot {action} a {event.status.value} event.")

async def get_event(db: AsyncSession, event_id: uuid.UUID) -> Event:
    event = (await storage_call(
        db.execute(select(Event).where(Event.id == event_id)), what="event load"
    )).scalar_one_or_none()
    if event is None:
        raise EventNotFound()
    return event

async def list_events(
    db: AsyncSession, *, status: EventStatus | None = None, created_by: uuid.UUID | None = None
) -> list[Event]:
    stmt = select(Event)
    if status:
        stmt = stmt.where(Event.status == status)
    if created_by:
        stmt = stmt.where(Event.created_by == created_by)
    stmt = stmt.order_by(Event.event_date.asc(), Event.start_time.asc())
    return list((await storage_call(db.execute(stmt))).scalars().all())

async def create_event(db: AsyncSession, principal: Principal, data: EventCreate) -> Event:
    if principal.role not in ORGANISER_ROLES:
        raise Forbidden("Only organisers can create events.")
    window_start, window_end = attendance_window(data.event_date, data.start_time, data.end_time)
    event = Event(
        id=uuid.uuid4(),
        title=data.title,
        description=data.description,
        event_date=data.event_date,
        start_time=data.start_time,
        end_time=data.end_time,
        location_name=data.location_name,
        latitude=data.latitude,
        longitude=data.longitude,
        geofence_radius_km=data.geofence_radius_km,
        status=EventStatus.UPCOMING,
        attendance_window_start=window_start,
        attendance_window_end=window_end,
        created_by=principal.user_id,
    )
    rotate_token(event)
    db.add(event)
    await storage_call(db.commit(), what="event create")
    logger.info("event %s created by %s", event.id, principal.user_id)
    return event

async def update_event(db: AsyncSession, principal: Principal, event_id: uuid.UUID, changes: EventUpdate) -> Event:
    event = await get_event(db, event_id)
    _ensure_creator(event, principal, "update")
    _ensure_not_terminal(event, "update details of")

    new_date = changes.event_date or event.event_date
    new_start = changes.start_time or event.start_time
    new_end = changes.end_time or event.end_time
    if new_end <= new_start:
        raise InvalidInput("end_time must be after start_time")

    fields = changes.model_dump(exclude_unset=True)
    for name in ("title", "description", "location_name", "geofence_radius_km"):
        if fields.get(name) is not None:
            setattr(event, name, fields[name])

    moved = False
    if changes.latitude is not None and changes.longitude is not None:
        moved = (changes.latitude, changes.longitude) != (event.latitude, event.longitude)
        event.latitude = changes.latitude
        event.longitude = changes.longitude

    rescheduled = (new_date, new_start, new_end) != (event.event_date, event.start_time, event.end_time)
    if rescheduled:
        event.event_date, event.start_time, event.end_time = new_date, new_start, new_end
        event.attendance_window_start, event.attendance_window_end = attendance_window(new_date, new_start, new_end)

    if moved or rescheduled:
        rotate_token(event)
        logger.info("event %s rescheduled/moved; attendance token rotated", event.id)

    await storage_call(db.commit(), what="event update")
    return event

async def change_status(db: AsyncSession, principal: Principal, event_id: uuid.UUID, new_status: EventStatus) -> Event:
    event = await get_event(db, event_id)
    _ensure_creator_or_supervisor(event, principal, "change the status of")
    _ensure_not_terminal(event, "change the status of")
    event.status = new_status
    await storage_call(db.commit(), what="event status change")
    logger.info("event %s status -> %s", event.id, new_status.value)
    return event

async def refresh_token(db: AsyncSession, principal: Principal, event_id: uuid.UUID) -> IssuedToken:
    event = await get_event(db, event_id)
    _ensure_creator_or_supervisor(event, principal, "refresh the QR code of")
    if event.status not in OPEN_STATUSES:
        raise Conflict("QR code can only be refreshed for upcoming or active events.")
    issued = rotate_token(event)
    await storage_call(db.commit(), what="token refresh")
    logger.info("event %s attendance token refreshed", event.id)
    return issued

async def submit_completion(
    db: AsyncSession, principal: Principal, event_id: uuid.UUID, details: CompletionDetails
) -> Event:
    event = await get_event(db, event_id)
    _ensure_creator(event, principal, "submit details for")
    if event.status not in (EventStatus.ACTIVE, EventStatus.COMPLETED):
        raise Conflict("Event must be active or completed to submit details.")
    event.wet_waste_collected_kg = details.wet_waste_collected_kg
    event.dry_waste_collected_kg = details.dry_waste_collected_kg
    event.other_waste_details = details.other_waste_details or ""
    event.event_summary = details.event_summary
    event.status = EventStatus.COMPLETED
    await storage_call(db.commit(), what="completion details")
    return event

async def delete_event(db: AsyncSession, principal: Principal, event_id: uuid.UUID) -> None:
    event = await get_event(db, event_id)
    _ensure_creator_or_supervisor(event, principal, "delete")
    if event.status in (EventStatus.ACTIVE, EventStatus.COMPLETED):
        raise Conflict("Cannot delete an active or completed event. Please cancel it first if necessary.")
    has_attendance = (await storage_call(
        db.execute(select(Attendance.id).where(Attendance.event_id == event.id).limit(1))
    )).first()
    if has_attendance:
        raise Conflict("Cannot delete an event that already has verified attendance.")
    await storage_call(db.delete(event))
    await storage_call(db.commit(), what="event delete")
    logger.info("event %s deleted by %s", event_id, principal.user_id)
