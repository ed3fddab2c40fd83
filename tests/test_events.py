from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone

import pytest

from cleanshores.core.errors import Conflict, EventNotFound, Forbidden, InvalidInput
from cleanshores.models import Attendance, EventStatus, as_utc
from cleanshores.schemas import CompletionDetails, EventUpdate
from cleanshores.services import events as events_svc

from .conftest import event_payload, make_event


def test_attendance_window_is_thirty_minutes_around_schedule():
    start, end = events_svc.attendance_window(date(2030, 6, 1), time(10, 0), time(13, 0))
    # IST is UTC+05:30
    assert start == datetime(2030, 6, 1, 4, 0, tzinfo=timezone.utc)
    assert end == datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc)


async def test_create_event_issues_token_and_window(db, organiser):
    event = await events_svc.create_event(db, organiser, event_payload())
    assert event.status == EventStatus.UPCOMING
    assert event.created_by == organiser.user_id
    assert event.attendance_token
    assert event.attendance_token_expires_at is not None
    assert as_utc(event.attendance_window_start) == datetime(2030, 6, 1, 4, 0, tzinfo=timezone.utc)


async def test_volunteer_cannot_create_event(db, volunteer):
    with pytest.raises(Forbidden):
        await events_svc.create_event(db, volunteer, event_payload())


async def test_get_missing_event(db):
    with pytest.raises(EventNotFound):
        await events_svc.get_event(db, uuid.uuid4())


async def test_title_edit_keeps_token(db, organiser):
    event = await make_event(db, organiser)
    token = event.attendance_token
    updated = await events_svc.update_event(db, organiser, event.id, EventUpdate(title="Versova Beach Cleanup"))
    assert updated.title == "Versova Beach Cleanup"
    assert updated.attendance_token == token


async def test_reschedule_rotates_token_and_recomputes_window(db, organiser):
    event = await make_event(db, organiser)
    token = event.attendance_token
    updated = await events_svc.update_event(db, organiser, event.id, EventUpdate(start_time=time(9, 0)))
    assert updated.attendance_token != token
    assert as_utc(updated.attendance_window_start) == datetime(2030, 6, 1, 3, 0, tzinfo=timezone.utc)
    assert as_utc(updated.attendance_window_end) == datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc)


async def test_moving_location_rotates_token(db, organiser):
    event = await make_event(db, organiser)
    token = event.attendance_token
    updated = await events_svc.update_event(db, organiser, event.id, EventUpdate(latitude=18.99, longitude=72.81))
    assert updated.attendance_token != token
    assert (updated.latitude, updated.longitude) == (18.99, 72.81)


async def test_same_coordinates_do_not_rotate(db, organiser):
    event = await make_event(db, organiser)
    token = event.attendance_token
    updated = await events_svc.update_event(
        db, organiser, event.id, EventUpdate(latitude=event.latitude, longitude=event.longitude)
    )
    assert updated.attendance_token == token


async def test_reschedule_rejects_end_before_start(db, organiser):
    event = await make_event(db, organiser)
    with pytest.raises(InvalidInput):
        await events_svc.update_event(db, organiser, event.id, EventUpdate(end_time=time(9, 0)))


async def test_only_creator_edits(db, organiser, supervisor):
    event = await make_event(db, organiser)
    with pytest.raises(Forbidden):
        await events_svc.update_event(db, supervisor, event.id, EventUpdate(title="Someone else's event"))


@pytest.mark.parametrize("terminal", [EventStatus.COMPLETED, EventStatus.CANCELLED])
async def test_terminal_events_reject_edits_and_status_changes(db, organiser, supervisor, terminal):
    event = await make_event(db, organiser)
    await events_svc.change_status(db, organiser, event.id, terminal)

    with pytest.raises(Conflict):
        await events_svc.update_event(db, organiser, event.id, EventUpdate(title="Too late to rename"))
    for target in EventStatus:
        with pytest.raises(Conflict):
            await events_svc.change_status(db, supervisor, event.id, target)
    with pytest.raises(Conflict):
        await events_svc.refresh_token(db, organiser, event.id)


async def test_open_transitions(db, organiser, supervisor):
    event = await make_event(db, organiser)
    event = await events_svc.change_status(db, organiser, event.id, EventStatus.ACTIVE)
    assert event.status == EventStatus.ACTIVE
    event = await events_svc.change_status(db, supervisor, event.id, EventStatus.UPCOMING)
    assert event.status == EventStatus.UPCOMING


async def test_volunteer_cannot_change_status(db, organiser, volunteer):
    event = await make_event(db, organiser)
    with pytest.raises(Forbidden):
        await events_svc.change_status(db, volunteer, event.id, EventStatus.CANCELLED)


async def test_refresh_token_invalidates_previous(db, organiser):
    event = await make_event(db, organiser)
    old = event.attendance_token
    issued = await events_svc.refresh_token(db, organiser, event.id)
    reloaded = await events_svc.get_event(db, event.id)
    assert issued.token != old
    assert reloaded.attendance_token == issued.token


async def test_submit_completion(db, organiser):
    event = await make_event(db, organiser)
    details = CompletionDetails(
        wet_waste_collected_kg=12.5,
        dry_waste_collected_kg=30,
        other_waste_details="fishing nets",
        event_summary="Forty volunteers cleared the northern stretch of the beach.",
    )
    with pytest.raises(Conflict):
        await events_svc.submit_completion(db, organiser, event.id, details)

    await events_svc.change_status(db, organiser, event.id, EventStatus.ACTIVE)
    done = await events_svc.submit_completion(db, organiser, event.id, details)
    assert done.status == EventStatus.COMPLETED
    assert done.dry_waste_collected_kg == 30
    assert done.other_waste_details == "fishing nets"


async def test_delete_rules(db, organiser, supervisor, volunteer):
    event = await make_event(db, organiser)
    with pytest.raises(Forbidden):
        await events_svc.delete_event(db, volunteer, event.id)

    await events_svc.change_status(db, organiser, event.id, EventStatus.ACTIVE)
    with pytest.raises(Conflict):
        await events_svc.delete_event(db, organiser, event.id)

    other = await make_event(db, organiser)
    await events_svc.delete_event(db, supervisor, other.id)
    with pytest.raises(EventNotFound):
        await events_svc.get_event(db, other.id)


async def test_cannot_delete_event_with_attendance(db, organiser, volunteer):
    event = await make_event(db, organiser)
    db.add(Attendance(
        event_id=event.id, user_id=volunteer.user_id, scanned_latitude=0, scanned_longitude=0,
        is_within_geofence=True, distance_m=0, token_used="x", points_awarded=10,
    ))
    await db.commit()
    with pytest.raises(Conflict):
        await events_svc.delete_event(db, organiser, event.id)


async def test_list_events_filters(db, organiser, supervisor):
    a = await make_event(db, organiser)
    await make_event(db, supervisor)
    await events_svc.change_status(db, organiser, a.id, EventStatus.ACTIVE)

    mine = await events_svc.list_events(db, created_by=organiser.user_id)
    assert [e.id for e in mine] == [a.id]
    active = await events_svc.list_events(db, status=EventStatus.ACTIVE)
    assert [e.id for e in active] == [a.id]
    assert len(await events_svc.list_events(db)) == 2
