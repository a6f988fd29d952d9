"""Business services for the Lead CRM.

- TimeslotCapacityManager: slot lookup and seat reservation
- TimeslotTransfer: atomic moves between slots
- AppointmentStore: create, resolve and cancel appointments
- FeedMatcher: attendance feed parsing and matching
- RejectionNotifier: rejection webhook
- ReconciliationEngine: realtime, end-of-day and sweep passes
"""

from lead_crm.services.appointment_store import AppointmentStore, StatusChange
from lead_crm.services.capacity import TimeslotCapacityManager
from lead_crm.services.feed import AttendanceRow, FeedMatcher, parse_reported_date
from lead_crm.services.notifications import NotificationResult, RejectionNotifier
from lead_crm.services.outcomes import Outcome, check_transition, outcome_for_code
from lead_crm.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationMode,
    ReconciliationResult,
    RowResult,
)
from lead_crm.services.transfer import MoveResult, TimeslotTransfer

__all__ = [
    "AppointmentStore",
    "StatusChange",
    "TimeslotCapacityManager",
    "TimeslotTransfer",
    "MoveResult",
    "AttendanceRow",
    "FeedMatcher",
    "parse_reported_date",
    "NotificationResult",
    "RejectionNotifier",
    "Outcome",
    "check_transition",
    "outcome_for_code",
    "ReconciliationEngine",
    "ReconciliationMode",
    "ReconciliationResult",
    "RowResult",
]
