from __future__ import annotations
import asyncio
import logging
from typing import AsyncGenerator, Awaitable, TypeVar
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .core.config import get_settings
from .core.errors import StorageUnavailable
from .models import Base

logger = logging.getLogger(__name__)

settings = get_settings()
engine = create_async_engine(settings.database_url, echo=False, future=True)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

T = TypeVar("T")

async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session

async def storage_call(aw: Awaitable[T], *, what: str = "storage call") -> T:
    """
    Await a storage operation under the configured timeout.

    Timeouts and connection-level failures become ``StorageUnavailable`` (retriable).
    Constraint violations (``IntegrityError``) pass through untouched so callers can
    translate them into domain errors.
    """
    try:
        return await asyncio.wait_for(aw, timeout=get_settings().storage_timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("%s timed out after %ss", what, get_settings().storage_timeout_seconds)
        raise StorageUnavailable(f"Storage timed out during {what}, please retry.") from exc
    except (OperationalError, InterfaceError) as exc:
        logger.warning("%s failed: %s", what, exc)
        raise StorageUnavailable() from exc

async def safe_rollback(db: AsyncSession) -> None:
    """
    Roll back under the same timeout as any other storage call.

    Used on error paths only: a rollback that itself stalls or fails is logged and
    dropped so the caller can surface the error that got it here.
    """
    try:
        await storage_call(db.rollback(), what="rollback")
    except StorageUnavailable:
        logger.warning("rollback abandoned after storage failure")
