"""Appointment store for prospect and customer appointments.

The appointment status and its owner's mirrored status/outcome fields
are written only by set_status(), inside one SAVEPOINT, so the two
records never diverge.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.clock import Clock
from lead_crm.core.exceptions import InvalidTransitionError
from lead_crm.core.logging import get_logger
from lead_crm.db.models.appointments import AppointmentKind, AppointmentStatus
from lead_crm.db.repositories.appointments import AppointmentRepository
from lead_crm.db.repositories.owners import OwnerRepository
from lead_crm.services.capacity import TimeslotCapacityManager
from lead_crm.services.outcomes import (
    DEFAULT_OWNER_STATUS,
    Outcome,
    check_transition,
    manual_outcome,
)
from lead_crm.services.transfer import TimeslotTransfer, slot_window

log = get_logger(__name__)


@dataclass
class StatusChange:
    """What set_status() did to an appointment and its owner."""

    appointment_id: UUID
    owner_id: UUID
    old_status: str
    new_status: str
    old_owner_status: str
    new_owner_status: str
    old_code: str | None
    new_code: str | None
    changed: bool

    @property
    def transitioned(self) -> bool:
        return self.old_status != self.new_status

    @property
    def code_changed(self) -> bool:
        return self.old_code != self.new_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "appointment_id": str(self.appointment_id),
            "owner_id": str(self.owner_id),
            "old_status": self.old_status,
            "new_status": self.new_status,
            "old_owner_status": self.old_owner_status,
            "new_owner_status": self.new_owner_status,
            "outcome_code": self.new_code,
            "changed": self.changed,
        }


class AppointmentStore:
    """Create, resolve and cancel appointments of either kind."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        *,
        capacity: TimeslotCapacityManager | None = None,
        transfer: TimeslotTransfer | None = None,
    ):
        self.session = session
        self.clock = clock
        self.capacity = capacity or TimeslotCapacityManager(session)
        self.transfer = transfer or TimeslotTransfer(session, clock, self.capacity)

    def appointments(self, kind: AppointmentKind | str) -> AppointmentRepository:
        return AppointmentRepository(self.session, kind)

    def owners(self, kind: AppointmentKind | str) -> OwnerRepository:
        return OwnerRepository(self.session, kind)

    async def get(self, kind: AppointmentKind | str, appointment_id: UUID | str) -> Any:
        """Load an appointment or raise AppointmentNotFoundError."""
        return await self.appointments(kind).get_or_raise(appointment_id)

    async def create(
        self,
        kind: AppointmentKind | str,
        owner_id: UUID | str,
        slot_id: UUID | str,
        *,
        actor_id: str,
        notes: str | None = None,
        allow_overbook: bool = False,
    ) -> Any:
        """Book an upcoming appointment in a slot.

        Start and end are the slot's local wall-clock times converted to
        UTC now. The owner is marked booked.

        Raises:
            OwnerNotFoundError: Unknown owner
            SlotNotFoundError: Unknown slot
            CapacityExceededError: Slot full and overbooking not allowed
        """
        appointments = self.appointments(kind)
        owners = self.owners(kind)

        async with self.session.begin_nested():
            owner = await owners.get_or_raise(owner_id, for_update=True)
            slot = await self.capacity.reserve(slot_id, allow_overbook=allow_overbook)
            start, end = slot_window(self.clock, slot)

            appointment = await appointments.create(
                appointments.model(
                    owner_id=owner.id,
                    status=AppointmentStatus.UPCOMING.value,
                    start_datetime=start,
                    end_datetime=end,
                    notes=notes,
                    created_by=actor_id,
                    updated_by=actor_id,
                )
            )
            await appointments.add_link(appointment.id, slot.id)

            owner.status = DEFAULT_OWNER_STATUS[AppointmentStatus.UPCOMING].value
            owner.updated_by = actor_id
            await self.session.flush()

        log.info(
            "Appointment created",
            kind=appointments.kind.value,
            appointment_id=str(appointment.id),
            owner_id=str(owner.id),
            slot_id=str(slot.id),
            start=self.clock.format_local(start),
            actor_id=actor_id,
        )
        return appointment

    async def set_status(
        self,
        kind: AppointmentKind | str,
        appointment_id: UUID | str,
        outcome: Outcome,
        *,
        actor_id: str,
        note_prefix: str | None = None,
    ) -> StatusChange:
        """Apply an Outcome to an appointment and mirror it on the owner.

        A transition to cancelled also releases the appointment's slot seat.
        Re-applying the current state only refreshes outcome metadata
        and is a no-op when the outcome carries no code.

        Raises:
            AppointmentNotFoundError: Unknown appointment
            InvalidTransitionError: Appointment state does not allow the change
        """
        appointments = self.appointments(kind)
        owners = self.owners(kind)

        async with self.session.begin_nested():
            appointment = await appointments.get_or_raise(appointment_id, for_update=True)
            owner = await owners.get_or_raise(appointment.owner_id, for_update=True)

            transition = check_transition(appointment.status, outcome.status)

            change = StatusChange(
                appointment_id=appointment.id,
                owner_id=owner.id,
                old_status=appointment.status,
                new_status=appointment.status,
                old_owner_status=owner.status,
                new_owner_status=owner.status,
                old_code=appointment.outcome_code,
                new_code=appointment.outcome_code,
                changed=False,
            )
            if not transition and outcome.code is None:
                return change

            appointment_updates: dict[str, Any] = {"status": outcome.status.value}
            owner_updates: dict[str, Any] = {"status": outcome.owner_status.value}
            if outcome.code is not None:
                appointment_updates["outcome_code"] = outcome.code
                owner_updates["outcome_code"] = outcome.code
            if outcome.outcome_notes is not None:
                appointment_updates["outcome_notes"] = outcome.outcome_notes
                owner_updates["outcome_notes"] = outcome.outcome_notes

            dirty = any(
                getattr(appointment, field) != value
                for field, value in appointment_updates.items()
            ) or any(getattr(owner, field) != value for field, value in owner_updates.items())
            if not dirty:
                return change

            if outcome.history_note:
                entry = f"{note_prefix}: {outcome.history_note}" if note_prefix else outcome.history_note
                appointment_updates["notes"] = (
                    f"{appointment.notes} | {entry}" if appointment.notes else entry
                )

            appointment_updates["updated_by"] = actor_id
            owner_updates["updated_by"] = actor_id
            await appointments.update(appointment, appointment_updates)
            await owners.update(owner, owner_updates)
            if transition and outcome.status == AppointmentStatus.CANCELLED:
                await self.transfer.release(kind, appointment.id)

        change.new_status = appointment.status
        change.new_owner_status = owner.status
        change.new_code = appointment.outcome_code
        change.changed = True

        log.info(
            "Appointment status updated",
            kind=appointments.kind.value,
            appointment_id=str(appointment.id),
            owner_id=str(owner.id),
            old_status=change.old_status,
            new_status=change.new_status,
            owner_status=change.new_owner_status,
            outcome_code=change.new_code,
            actor_id=actor_id,
        )
        return change

    async def cancel(
        self,
        kind: AppointmentKind | str,
        appointment_id: UUID | str,
        *,
        actor_id: str,
        reason: str | None = None,
    ) -> StatusChange:
        """Cancel an upcoming appointment and free its slot seat.

        Raises:
            AppointmentNotFoundError: Unknown appointment
            InvalidTransitionError: Appointment is not upcoming
        """
        appointment = await self.get(kind, appointment_id)
        if appointment.status != AppointmentStatus.UPCOMING.value:
            raise InvalidTransitionError(
                f"Cannot cancel a {appointment.status} appointment",
                details={"current": appointment.status, "target": "cancelled"},
            )
        return await self.set_status(
            kind,
            appointment_id,
            manual_outcome(AppointmentStatus.CANCELLED, note=reason or "Cancelled"),
            actor_id=actor_id,
        )
