from __future__ import annotations
import logging
import uuid
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import Conflict, Forbidden
from ..db import safe_rollback, storage_call
from ..models import Enrollment, Event, EventStatus
from ..schemas import Principal
from .events import OPEN_STATUSES, get_event

logger = logging.getLogger(__name__)

async def is_enrolled(db: AsyncSession, event_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    row = (await storage_call(
        db.execute(select(Enrollment.id).where(Enrollment.event_id == event_id, Enrollment.user_id == user_id)),
        what="enrollment lookup",
    )).first()
    return row is not None

async def enroll(db: AsyncSession, principal: Principal, event_id: uuid.UUID) -> Enrollment:
    event = await get_event(db, event_id)
    if event.status not in OPEN_STATUSES:
        raise Conflict("Cannot enroll in an event that is not upcoming or active.")
    if await is_enrolled(db, event.id, principal.user_id):
        raise Conflict("You are already enrolled in this event.")

    obj = Enrollment(event_id=event.id, user_id=principal.user_id)
    db.add(obj)
    try:
        await storage_call(db.commit(), what="enroll")
    except IntegrityError:
        await safe_rollback(db)
        raise Conflict("You are already enrolled in this event.")
    return obj

async def leave(db: AsyncSession, principal: Principal, event_id: uuid.UUID) -> None:
    event = await get_event(db, event_id)
    if event.status in (EventStatus.COMPLETED, EventStatus.CANCELLED):
        raise Conflict("Cannot leave an event that is already completed or cancelled.")
    res = await storage_call(db.execute(
        delete(Enrollment).where(Enrollment.event_id == event.id, Enrollment.user_id == principal.user_id)
    ))
    if res.rowcount == 0:
        await safe_rollback(db)
        raise Conflict("You are not currently enrolled in this event.")
    await storage_call(db.commit(), what="leave")

async def list_enrollments(db: AsyncSession, principal: Principal, event_id: uuid.UUID) -> list[Enrollment]:
    event: Event = await get_event(db, event_id)
    if event.created_by != principal.user_id and not principal.is_supervisor:
        raise Forbidden("You are not authorized to view enrolled users for this event.")
    rows = (await storage_call(db.execute(
        select(Enrollment).where(Enrollment.event_id == event.id).order_by(Enrollment.enrolled_at.asc())
    ))).scalars().all()
    return list(rows)
