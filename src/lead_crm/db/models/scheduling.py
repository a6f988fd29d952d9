"""Scheduling ORM Models.

Timeslots are capacity-bounded calendar intervals configured by the
calendar setup. Appointments reference them through per-kind link
tables carrying a primary flag.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column

from lead_crm.db.base import Base, TimestampMixin, UUIDMixin, UUIDType, utcnow


class TimeslotModel(Base, UUIDMixin, TimestampMixin):
    """Bookable timeslot.

    `date`, `start_time` and `end_time` are local wall-clock values.
    `occupied_count` may exceed `max_capacity` when a booking was made
    with overbooking allowed, but never drops below zero.
    """

    __tablename__ = "timeslots"

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    max_capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    occupied_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        CheckConstraint("occupied_count >= 0", name="ck_timeslot_occupied_non_negative"),
        Index("ix_timeslot_date_start", "date", "start_time"),
    )

    @property
    def is_full(self) -> bool:
        return self.occupied_count >= self.max_capacity

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary for API responses."""
        return {
            "id": str(self.id),
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "max_capacity": self.max_capacity,
            "occupied_count": self.occupied_count,
            "available": max(self.max_capacity - self.occupied_count, 0),
            "disabled": self.disabled,
        }


class ProspectAppointmentTimeslotModel(Base):
    """Link between a prospect appointment and a timeslot."""

    __tablename__ = "prospect_appointment_timeslots"

    appointment_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("prospect_appointments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    timeslot_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("timeslots.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class CustomerAppointmentTimeslotModel(Base):
    """Link between a customer appointment and a timeslot."""

    __tablename__ = "customer_appointment_timeslots"

    appointment_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("customer_appointments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    timeslot_id: Mapped[UUID] = mapped_column(
        UUIDType(),
        ForeignKey("timeslots.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
