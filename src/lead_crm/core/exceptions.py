"""Domain errors.

Each error carries the HTTP status and the machine-readable code the API
answers with; `details` holds whatever the caller needs to act on it.
"""

from __future__ import annotations

from typing import Any


class LeadCrmError(Exception):
    """Base class for errors raised by Lead CRM services."""

    status_code: int = 500
    error_code: str = "LEAD_CRM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Response body; the wrapped cause stays in the logs."""
        body: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        if self.cause is None:
            return f"{self.error_code}: {self.message}"
        return f"{self.error_code}: {self.message} (caused by {self.cause!r})"


class DatabaseError(LeadCrmError):
    """Database unreachable or a commit failed."""

    status_code = 503
    error_code = "DATABASE_ERROR"


class RecordNotFoundError(LeadCrmError):
    status_code = 404
    error_code = "RECORD_NOT_FOUND"


class AppointmentNotFoundError(RecordNotFoundError):
    error_code = "APPOINTMENT_NOT_FOUND"


class OwnerNotFoundError(RecordNotFoundError):
    """No prospect or customer with that id."""

    error_code = "OWNER_NOT_FOUND"


class SlotNotFoundError(RecordNotFoundError):
    """No timeslot with that id, or none enabled within the horizon."""

    error_code = "SLOT_NOT_FOUND"


class CapacityExceededError(LeadCrmError):
    """Slot is full and the caller did not allow overbooking."""

    status_code = 409
    error_code = "CAPACITY_EXCEEDED"


class InvalidTransitionError(LeadCrmError):
    """Status change out of a terminal state."""

    status_code = 409
    error_code = "INVALID_TRANSITION"


class DateParseError(LeadCrmError):
    """Feed row date in none of the accepted formats."""

    status_code = 422
    error_code = "DATE_PARSE_ERROR"


class NotificationDeliveryError(LeadCrmError):
    """Rejection webhook answered with an error or was unreachable."""

    status_code = 502
    error_code = "NOTIFICATION_DELIVERY_ERROR"
