from __future__ import annotations

import json
import uuid
from datetime import timedelta

import pytest

from cleanshores.core.errors import MalformedPayload
from cleanshores.core.qr import current_payload, issue_token, parse_payload, render_qr_png, rotate_token
from cleanshores.models import Event

from .conftest import NOW


def test_issue_token_payload_and_ttl():
    event_id = uuid.uuid4()
    issued = issue_token(event_id, now=NOW)
    assert issued.expires_at == NOW + timedelta(minutes=10)
    assert json.loads(issued.payload) == {"eventId": str(event_id), "token": issued.token}
    # 24 random bytes, url-safe base64
    assert len(issued.token) >= 32


def test_tokens_are_unique():
    event_id = uuid.uuid4()
    assert len({issue_token(event_id).token for _ in range(50)}) == 50


def test_rotate_overwrites_previous_token():
    event = Event(id=uuid.uuid4())
    first = rotate_token(event, now=NOW)
    second = rotate_token(event, now=NOW + timedelta(minutes=1))
    assert event.attendance_token == second.token != first.token
    assert event.attendance_token_expires_at == second.expires_at
    assert current_payload(event) == second.payload


def test_parse_round_trips_issued_payload():
    event_id = uuid.uuid4()
    issued = issue_token(event_id)
    assert parse_payload(issued.payload) == (event_id, issued.token)


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        "[]",
        '"just a string"',
        '{"eventId": "%s"}' % uuid.uuid4(),
        '{"token": "abc"}',
        '{"eventId": "not-a-uuid", "token": "abc"}',
        '{"eventId": "%s", "token": ""}' % uuid.uuid4(),
        '{"eventId": "%s", "token": 123}' % uuid.uuid4(),
        '{"eventId": "%s", "token": "abc", "extra": 1}' % uuid.uuid4(),
        '{"event_id": "%s", "token": "abc"}' % uuid.uuid4(),
    ],
)
def test_parse_rejects_malformed(raw):
    with pytest.raises(MalformedPayload):
        parse_payload(raw)


def test_render_qr_png():
    png = render_qr_png(issue_token(uuid.uuid4()).payload)
    assert png.startswith(b"\x89PNG")


@pytest.mark.parametrize("raw", [None, 42, b'{"eventId": "x", "token": "y"}', {"eventId": str(uuid.uuid4()), "token": "abc"}])
def test_parse_rejects_non_string_input(raw):
    with pytest.raises(MalformedPayload):
        parse_payload(raw)
