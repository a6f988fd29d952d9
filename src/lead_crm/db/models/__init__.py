"""Database Models for the Lead CRM.

Scheduling Models:
- TimeslotModel: capacity-bounded calendar slots
- ProspectAppointmentTimeslotModel / CustomerAppointmentTimeslotModel:
  appointment-to-slot links

CRM Models:
- ProspectModel: leads
- CustomerModel: existing borrowers

Appointment Models:
- ProspectAppointmentModel / CustomerAppointmentModel
"""

from lead_crm.db.models.appointments import (
    TERMINAL_STATUSES,
    AppointmentKind,
    AppointmentModel,
    AppointmentStatus,
    CustomerAppointmentModel,
    KindModels,
    OwnerModel,
    OwnerStatus,
    ProspectAppointmentModel,
    models_for,
)
from lead_crm.db.models.crm import CustomerModel, ProspectModel
from lead_crm.db.models.scheduling import (
    CustomerAppointmentTimeslotModel,
    ProspectAppointmentTimeslotModel,
    TimeslotModel,
)

__all__ = [
    # Scheduling
    "TimeslotModel",
    "ProspectAppointmentTimeslotModel",
    "CustomerAppointmentTimeslotModel",
    # CRM
    "ProspectModel",
    "CustomerModel",
    # Appointments
    "ProspectAppointmentModel",
    "CustomerAppointmentModel",
    "AppointmentModel",
    "OwnerModel",
    "AppointmentKind",
    "AppointmentStatus",
    "OwnerStatus",
    "TERMINAL_STATUSES",
    "KindModels",
    "models_for",
]
