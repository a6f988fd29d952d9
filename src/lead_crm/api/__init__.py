"""HTTP API routers."""

from lead_crm.api import appointments, health, reconciliation, timeslots

__all__ = ["appointments", "health", "reconciliation", "timeslots"]
