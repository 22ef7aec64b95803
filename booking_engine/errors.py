"""Typed failures raised by the booking engine.

Every error carries an HTTP status and a stable machine-readable code; the
exception handler in ``main.py`` renders them as
``{"error": code, "message": ..., "details": {...}}``.
"""

from typing import Any, Optional


class BookingEngineError(Exception):
    """Base class for all engine failures surfaced to callers"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(BookingEngineError):
    status_code = 422
    code = "VALIDATION_ERROR"


class InvalidScheduleError(ValidationError):
    code = "INVALID_SCHEDULE"


class InvalidIntervalError(BookingEngineError):
    """Malformed or out-of-hours candidate interval. Never retried by the engine."""

    status_code = 422
    code = "INVALID_INTERVAL"

    def __init__(self, reason: str, start=None, end=None):
        details: dict[str, Any] = {"reason": reason}
        if start is not None:
            details["start_time"] = start.isoformat()
        if end is not None:
            details["end_time"] = end.isoformat()
        super().__init__(f"Invalid time slot: {reason}", details)
        self.reason = reason


class ConflictError(BookingEngineError):
    """The atomic check found an active booking overlapping the candidate"""

    status_code = 409
    code = "BOOKING_CONFLICT"

    def __init__(self, conflicting_booking_id: Optional[int], start=None, end=None):
        details: dict[str, Any] = {"conflicting_booking_id": conflicting_booking_id}
        if start is not None:
            details["start_time"] = start.isoformat()
        if end is not None:
            details["end_time"] = end.isoformat()
        super().__init__("Booking time slot conflicts with existing booking", details)
        self.conflicting_booking_id = conflicting_booking_id


class TransientError(BookingEngineError):
    """Store or lock unavailable during the critical section; safe to retry"""

    status_code = 503
    code = "TRANSIENT_ERROR"

    def __init__(self, message: str = "Booking store temporarily unavailable", retry_after: int = 1):
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class NotFoundError(BookingEngineError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", resource_id: Any = None):
        message = (
            f"{resource} with id {resource_id} not found"
            if resource_id is not None
            else f"{resource} not found"
        )
        super().__init__(message, {"resource": resource, "id": resource_id})
        self.resource = resource
        self.resource_id = resource_id


class InvalidTransitionError(BookingEngineError):
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, booking_id: Any, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} booking {booking_id} in status {current_status}",
            {"booking_id": booking_id, "status": current_status, "action": action},
        )
        self.current_status = current_status
        self.action = action
