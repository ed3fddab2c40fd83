from __future__ import annotations
import uuid
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import storage_call
from ..models import UserPoints, PointsLedger, utcnow

REASON_ATTENDANCE = "attendance"

async def _increment(db: AsyncSession, user_id: uuid.UUID, points: int) -> int | None:
    stmt = (
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(balance=UserPoints.balance + points, updated_at=utcnow())
        .returning(UserPoints.balance)
    )
    return (await storage_call(db.execute(stmt), what="points increment")).scalar_one_or_none()

async def award(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    points: int,
    event_id: uuid.UUID | None = None,
    reason: str = REASON_ATTENDANCE,
    details: str | None = None,
) -> int:
    """
    Credit ``points`` to the user's balance and append a ledger row.

    The balance only ever moves through ``balance = balance + :points`` in a single
    statement. The first award inserts the row inside a savepoint; if another
    transaction created it concurrently the insert loses and we increment instead.
    Does not commit: the caller owns the transaction.
    """
    if points <= 0:
        raise ValueError("points must be positive")

    balance = await _increment(db, user_id, points)
    if balance is None:
        savepoint = await storage_call(db.begin_nested(), what="points savepoint")
        try:
            db.add(UserPoints(user_id=user_id, balance=points))
            await storage_call(db.flush(), what="points row create")
        except IntegrityError:
            await storage_call(savepoint.rollback(), what="points savepoint rollback")
            balance = await _increment(db, user_id, points)
        else:
            await storage_call(savepoint.commit(), what="points savepoint release")
            balance = points

    db.add(PointsLedger(user_id=user_id, delta=points, reason=reason, event_id=event_id, details=details))
    return balance

async def get_balance(db: AsyncSession, user_id: uuid.UUID) -> UserPoints | None:
    return (await storage_call(
        db.execute(select(UserPoints).where(UserPoints.user_id == user_id))
    )).scalar_one_or_none()

async def list_ledger(db: AsyncSession, user_id: uuid.UUID) -> list[PointsLedger]:
    rows = (await storage_call(
        db.execute(select(PointsLedger).where(PointsLedger.user_id == user_id).order_by(PointsLedger.occurred_at.desc()))
    )).scalars().all()
    return list(rows)
