"""Appointment ORM Models.

Two parallel appointment tables share one column layout:
- ProspectAppointmentModel: appointments of prospects
- CustomerAppointmentModel: appointments of existing customers

`AppointmentKind` selects between them and `models_for()` returns the
appointment, owner and link models of a kind.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lead_crm.db.base import AuditMixin, Base, TimestampMixin, UUIDMixin, UUIDType
from lead_crm.db.models.crm import CustomerModel, ProspectModel
from lead_crm.db.models.scheduling import (
    CustomerAppointmentTimeslotModel,
    ProspectAppointmentTimeslotModel,
)


class AppointmentKind(str, Enum):
    """Which appointment aggregate a record belongs to."""

    PROSPECT = "prospect"
    CUSTOMER = "customer"


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""

    UPCOMING = "upcoming"
    DONE = "done"
    MISSED = "missed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.DONE, AppointmentStatus.MISSED, AppointmentStatus.CANCELLED}
)


class OwnerStatus(str, Enum):
    """Statuses of prospect/customer records."""

    NEW = "new"
    ASSIGNED = "assigned"
    NO_ANSWER = "no_answer"
    FOLLOW_UP = "follow_up"
    BOOKED = "booked"
    DONE = "done"
    MISSED_RS = "missed/RS"
    UNQUALIFIED = "unqualified"
    GIVE_UP = "give_up"
    BLACKLISTED = "blacklisted"


class AppointmentColumnsMixin:
    """Columns shared by both appointment tables."""

    status: Mapped[str] = mapped_column(
        String(20),
        default=AppointmentStatus.UPCOMING.value,
        nullable=False,
        index=True,
        comment="upcoming, done, missed, cancelled",
    )

    start_datetime: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="UTC, derived from the primary timeslot",
    )
    end_datetime: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    outcome_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    outcome_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary for API responses."""
        return {
            "id": str(self.id),
            "kind": self.kind.value,
            "owner_id": str(self.owner_id),
            "status": self.status,
            "start_datetime": self.start_datetime.isoformat(),
            "end_datetime": self.end_datetime.isoformat(),
            "notes": self.notes,
            "outcome_code": self.outcome_code,
            "outcome_notes": self.outcome_notes,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }


class ProspectAppointmentModel(
    Base, UUIDMixin, TimestampMixin, AuditMixin, AppointmentColumnsMixin
):
    """Appointment booked for a prospect."""

    __tablename__ = "prospect_appointments"

    kind = AppointmentKind.PROSPECT

    owner_id: Mapped[UUID] = mapped_column(
        "prospect_id",
        UUIDType(),
        ForeignKey("prospects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    __table_args__ = (Index("ix_prospect_appt_status_start", "status", "start_datetime"),)


class CustomerAppointmentModel(
    Base, UUIDMixin, TimestampMixin, AuditMixin, AppointmentColumnsMixin
):
    """Appointment booked for an existing customer."""

    __tablename__ = "customer_appointments"

    kind = AppointmentKind.CUSTOMER

    owner_id: Mapped[UUID] = mapped_column(
        "customer_id",
        UUIDType(),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    __table_args__ = (Index("ix_customer_appt_status_start", "status", "start_datetime"),)


AppointmentModel = ProspectAppointmentModel | CustomerAppointmentModel
OwnerModel = ProspectModel | CustomerModel


@dataclass(frozen=True)
class KindModels:
    """ORM classes backing one appointment kind."""

    appointment: type[ProspectAppointmentModel] | type[CustomerAppointmentModel]
    owner: type[ProspectModel] | type[CustomerModel]
    link: type[ProspectAppointmentTimeslotModel] | type[CustomerAppointmentTimeslotModel]


_KIND_MODELS = {
    AppointmentKind.PROSPECT: KindModels(
        appointment=ProspectAppointmentModel,
        owner=ProspectModel,
        link=ProspectAppointmentTimeslotModel,
    ),
    AppointmentKind.CUSTOMER: KindModels(
        appointment=CustomerAppointmentModel,
        owner=CustomerModel,
        link=CustomerAppointmentTimeslotModel,
    ),
}


def models_for(kind: AppointmentKind | str) -> KindModels:
    """Return the ORM classes for an appointment kind."""
    return _KIND_MODELS[AppointmentKind(kind)]
