from __future__ import annotations

import os
import tempfile
import uuid
from datetime import date, datetime, time, timezone

_tmp_dir = tempfile.mkdtemp(prefix="cleanshores-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}")
os.environ.setdefault("AUTH_JWKS_URL", "http://auth.test/.well-known/jwks.json")
os.environ.setdefault("EVENT_TIMEZONE", "Asia/Kolkata")
os.environ["RL_ENABLED"] = "false"
os.environ["NATS_ENABLED"] = "false"

import pytest

from cleanshores.core.qr import rotate_token
from cleanshores.db import async_session_maker, engine
from cleanshores.models import Base, Enrollment, Event
from cleanshores.schemas import EventCreate, Principal
from cleanshores.services import events as events_svc

# 10:00-13:00 IST on 2030-06-01 -> attendance window 04:00Z .. 08:00Z
EVENT_DATE = date(2030, 6, 1)
NOW = datetime(2030, 6, 1, 5, 0, tzinfo=timezone.utc)
MUMBAI = (19.0760, 72.8777)


@pytest.fixture()
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
    await engine.dispose()


@pytest.fixture()
def organiser() -> Principal:
    return Principal(user_id=uuid.uuid4(), role="organiser")


@pytest.fixture()
def supervisor() -> Principal:
    return Principal(user_id=uuid.uuid4(), role="supervisor")


@pytest.fixture()
def volunteer() -> Principal:
    return Principal(user_id=uuid.uuid4(), role="volunteer")


def event_payload(**overrides) -> EventCreate:
    data = dict(
        title="Juhu Beach Cleanup",
        description="Morning cleanup drive along the northern stretch",
        event_date=EVENT_DATE,
        start_time=time(10, 0),
        end_time=time(13, 0),
        location_name="Juhu Beach, Mumbai",
        latitude=MUMBAI[0],
        longitude=MUMBAI[1],
        geofence_radius_km=1.0,
    )
    data.update(overrides)
    return EventCreate(**data)


async def make_event(db, organiser: Principal, *, now: datetime = NOW, **overrides) -> Event:
    """Create an event and issue its token at ``now`` so tests control expiry."""
    event = await events_svc.create_event(db, organiser, event_payload(**overrides))
    rotate_token(event, now=now)
    await db.commit()
    return event


async def enroll_user(db, event: Event, user_id: uuid.UUID) -> None:
    db.add(Enrollment(event_id=event.id, user_id=user_id))
    await db.commit()


@pytest.fixture()
async def open_event(db, organiser, volunteer) -> Event:
    event = await make_event(db, organiser)
    await enroll_user(db, event, volunteer.user_id)
    return event
