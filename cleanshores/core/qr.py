from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from io import BytesIO
import json
import secrets
import uuid
from typing import Any

import qrcode
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import get_settings
from .errors import MalformedPayload
from ..models import Event, utcnow

settings = get_settings()

TOKEN_BYTES = 24

@dataclass(frozen=True)
class IssuedToken:
    payload: str
    token: str
    expires_at: datetime

class ScanPayload(BaseModel):
    """Logical contract of the scannable payload: exactly ``eventId`` and ``token``."""
    model_config = ConfigDict(extra="forbid", strict=True)

    event_id: str = Field(alias="eventId", min_length=1)
    token: str = Field(min_length=1)

def encode_payload(event_id: uuid.UUID, token: str) -> str:
    return json.dumps({"eventId": str(event_id), "token": token}, separators=(",", ":"))

def issue_token(event_id: uuid.UUID, *, now: datetime | None = None) -> IssuedToken:
    now = now or utcnow()
    token = secrets.token_urlsafe(TOKEN_BYTES)
    expires_at = now + timedelta(minutes=settings.attendance_token_ttl_minutes)
    return IssuedToken(payload=encode_payload(event_id, token), token=token, expires_at=expires_at)

def rotate_token(event: Event, *, now: datetime | None = None) -> IssuedToken:
    """Overwrite the event's token; the previous one stops working immediately."""
    issued = issue_token(event.id, now=now)
    event.attendance_token = issued.token
    event.attendance_token_expires_at = issued.expires_at
    return issued

def current_payload(event: Event) -> str | None:
    if not event.attendance_token:
        return None
    return encode_payload(event.id, event.attendance_token)

def parse_payload(raw: Any) -> tuple[uuid.UUID, str]:
    if not isinstance(raw, str):
        raise MalformedPayload()
    try:
        data = ScanPayload.model_validate_json(raw)
        event_id = uuid.UUID(data.event_id)
    except (ValidationError, ValueError) as exc:
        raise MalformedPayload() from exc
    return event_id, data.token

def render_qr_png(payload: str) -> bytes:
    img = qrcode.make(payload)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
