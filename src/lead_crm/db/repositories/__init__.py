"""Repository Pattern for the Lead CRM Database.

Provides data access abstraction over SQLAlchemy models:
- BaseRepository: Generic CRUD operations
- TimeslotRepository: Slot queries
- AppointmentRepository: Prospect/customer appointments and slot links
- OwnerRepository: Prospect/customer lookup by phone
"""

from lead_crm.db.repositories.appointments import AppointmentRepository
from lead_crm.db.repositories.base import BaseRepository
from lead_crm.db.repositories.owners import OwnerRepository
from lead_crm.db.repositories.timeslots import TimeslotRepository

__all__ = [
    "BaseRepository",
    "TimeslotRepository",
    "AppointmentRepository",
    "OwnerRepository",
]
