"""Timeslot transfer transaction.

Moving an appointment between slots touches three rows that must agree:
the appointment's start/end, the old slot's occupancy and the new
slot's occupancy. Every step runs inside one SAVEPOINT so a failure
leaves none of them changed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.clock import Clock
from lead_crm.core.logging import get_logger
from lead_crm.db.models.appointments import AppointmentKind
from lead_crm.db.models.scheduling import TimeslotModel
from lead_crm.db.repositories.appointments import AppointmentRepository
from lead_crm.services.capacity import TimeslotCapacityManager

log = get_logger(__name__)


def slot_window(clock: Clock, slot: TimeslotModel) -> tuple[datetime, datetime]:
    """UTC start and end of a slot's local wall-clock interval."""
    start = clock.to_utc(slot.date, slot.start_time)
    end = clock.to_utc(slot.date, slot.end_time)
    if end <= start:
        end += timedelta(days=1)
    return start, end


@dataclass
class MoveResult:
    """Outcome of a slot move."""

    appointment_id: UUID
    old_slot_id: UUID | None
    new_slot_id: UUID
    start_datetime: datetime
    end_datetime: datetime
    moved: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "appointment_id": str(self.appointment_id),
            "old_slot_id": str(self.old_slot_id) if self.old_slot_id else None,
            "new_slot_id": str(self.new_slot_id),
            "start_datetime": self.start_datetime.isoformat(),
            "end_datetime": self.end_datetime.isoformat(),
            "moved": self.moved,
        }


class TimeslotTransfer:
    """Atomic slot changes for appointments."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        capacity: TimeslotCapacityManager | None = None,
    ):
        self.session = session
        self.clock = clock
        self.capacity = capacity or TimeslotCapacityManager(session)

    async def move_appointment(
        self,
        kind: AppointmentKind | str,
        appointment_id: UUID | str,
        new_slot_id: UUID | str,
        actor_id: str,
        *,
        allow_overbook: bool = True,
    ) -> MoveResult:
        """Move an appointment to another slot.

        Args:
            kind: Appointment kind
            appointment_id: Appointment to move
            new_slot_id: Destination slot
            actor_id: Recorded as updated_by
            allow_overbook: Book the destination even when full

        Returns:
            MoveResult; `moved` is False when the appointment already
            sits in the destination slot

        Raises:
            AppointmentNotFoundError: Unknown appointment
            SlotNotFoundError: Unknown destination slot
            CapacityExceededError: Destination full and overbooking not allowed
        """
        appointments = AppointmentRepository(self.session, kind)

        async with self.session.begin_nested():
            appointment = await appointments.get_or_raise(appointment_id, for_update=True)
            link = await appointments.primary_link(appointment.id)
            destination = await self.capacity.slots.get_or_raise(new_slot_id, for_update=True)

            if link is not None and link.timeslot_id == destination.id:
                return MoveResult(
                    appointment_id=appointment.id,
                    old_slot_id=destination.id,
                    new_slot_id=destination.id,
                    start_datetime=appointment.start_datetime,
                    end_datetime=appointment.end_datetime,
                    moved=False,
                )

            start, end = slot_window(self.clock, destination)
            appointment.start_datetime = start
            appointment.end_datetime = end
            appointment.updated_by = actor_id

            old_slot_id = None
            if link is not None:
                old_slot_id = link.timeslot_id
                await appointments.delete_link(link)
                await self.capacity.release(old_slot_id)

            await appointments.add_link(appointment.id, destination.id)
            await self.capacity.reserve(destination.id, allow_overbook=allow_overbook)

        log.info(
            "Appointment moved",
            kind=appointments.kind.value,
            appointment_id=str(appointment.id),
            old_slot_id=str(old_slot_id) if old_slot_id else None,
            new_slot_id=str(destination.id),
            actor_id=actor_id,
        )
        return MoveResult(
            appointment_id=appointment.id,
            old_slot_id=old_slot_id,
            new_slot_id=destination.id,
            start_datetime=start,
            end_datetime=end,
        )

    async def release(
        self,
        kind: AppointmentKind | str,
        appointment_id: UUID | str,
    ) -> UUID | None:
        """Drop an appointment's primary slot link and free its seat.

        Returns:
            The released slot id, or None when there was no link
        """
        appointments = AppointmentRepository(self.session, kind)

        async with self.session.begin_nested():
            link = await appointments.primary_link(appointment_id)
            if link is None:
                return None
            slot_id = link.timeslot_id
            await appointments.delete_link(link)
            await self.capacity.release(slot_id)

        log.info(
            "Appointment slot released",
            kind=appointments.kind.value,
            appointment_id=str(appointment_id),
            slot_id=str(slot_id),
        )
        return slot_id
