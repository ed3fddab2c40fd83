"""
Domain error taxonomy.

Services raise these; ``cleanshores.main`` renders them as
``{"error": kind, "detail": message, "retriable": bool, ...extra}``.
Every attendance gate has its own kind so clients can show targeted guidance.
"""
from __future__ import annotations
from typing import Any, Dict


class DomainError(Exception):
    kind = "domain_error"
    status_code = 400
    retriable = False
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.kind, "detail": self.message, "retriable": self.retriable}
        body.update(self.extra)
        return body


# --- attendance gates (client-caused, not retriable without an outside state change)

class MalformedPayload(DomainError):
    kind = "MalformedPayload"
    status_code = 400
    default_message = "Invalid QR code data. Please scan a valid event QR code."


class EventNotFound(DomainError):
    kind = "EventNotFound"
    status_code = 404
    default_message = "Event not found."


class EventNotOpenForAttendance(DomainError):
    kind = "EventNotOpenForAttendance"
    status_code = 409
    default_message = "Attendance cannot be marked for this event."


class NotEnrolled(DomainError):
    kind = "NotEnrolled"
    status_code = 403
    default_message = "You must be enrolled in this event to mark attendance."


class OutsideWindow(DomainError):
    kind = "OutsideWindow"
    status_code = 403
    default_message = "Attendance can only be marked within the designated window for this event."


class InvalidOrExpiredToken(DomainError):
    kind = "InvalidOrExpiredToken"
    status_code = 403
    default_message = "Invalid or expired QR code token. Please scan the current code."


class OutsideGeofence(DomainError):
    kind = "OutsideGeofence"
    status_code = 403
    default_message = "You are outside the attendance zone."


class AlreadyMarked(DomainError):
    kind = "AlreadyMarked"
    status_code = 409
    default_message = "You have already marked attendance for this event."


# --- event management

class Forbidden(DomainError):
    kind = "Forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action."


class Conflict(DomainError):
    kind = "Conflict"
    status_code = 409
    default_message = "The event is not in a state that allows this action."


class InvalidInput(DomainError):
    kind = "InvalidInput"
    status_code = 422
    default_message = "Invalid input."


# --- infrastructure

class StorageUnavailable(DomainError):
    kind = "StorageUnavailable"
    status_code = 503
    retriable = True
    default_message = "Storage is temporarily unavailable, please retry."
