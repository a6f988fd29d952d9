"""Core building blocks for the Lead CRM."""

from lead_crm.core.clock import Clock, FixedClock
from lead_crm.core.exceptions import (
    AppointmentNotFoundError,
    CapacityExceededError,
    DatabaseError,
    DateParseError,
    InvalidTransitionError,
    LeadCrmError,
    NotificationDeliveryError,
    OwnerNotFoundError,
    RecordNotFoundError,
    SlotNotFoundError,
)
from lead_crm.core.phone import PhoneNormalizer, normalize_phone, phones_match

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    # Phone
    "PhoneNormalizer",
    "normalize_phone",
    "phones_match",
    # Exceptions
    "LeadCrmError",
    "DatabaseError",
    "RecordNotFoundError",
    "AppointmentNotFoundError",
    "OwnerNotFoundError",
    "SlotNotFoundError",
    "CapacityExceededError",
    "InvalidTransitionError",
    "DateParseError",
    "NotificationDeliveryError",
]
