from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, get_principal
from ..models import as_utc
from ..schemas import BalanceRead, LedgerRead, Principal
from ..services.points import get_balance, list_ledger

router = APIRouter(prefix="/points", tags=["points"])

@router.get("/users/me/balance", response_model=BalanceRead)
async def my_balance(principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    up = await get_balance(db, principal.user_id)
    if not up:
        return BalanceRead(user_id=principal.user_id, balance=0)
    return BalanceRead(user_id=up.user_id, balance=up.balance, updated_at=as_utc(up.updated_at))

@router.get("/users/me/ledger", response_model=list[LedgerRead])
async def my_ledger(principal: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)):
    rows = await list_ledger(db, principal.user_id)
    return [LedgerRead(id=r.id, delta=r.delta, reason=r.reason, event_id=r.event_id, details=r.details, occurred_at=as_utc(r.occurred_at)) for r in rows]
