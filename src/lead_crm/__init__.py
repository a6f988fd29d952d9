"""Lead CRM: appointment reconciliation and timeslot allocation."""

__version__ = "0.1.0"
