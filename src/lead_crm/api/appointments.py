"""Appointment management endpoints.

Agent-facing operations on prospect and customer appointments: booking
into a timeslot, moving between timeslots, manual status changes and
cancellation. Status changes follow the same transition rules as the
reconciliation engine.
"""
from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from lead_crm.db.models.appointments import AppointmentKind, AppointmentStatus, OwnerStatus
from lead_crm.dependencies import StoreDep
from lead_crm.services.outcomes import manual_outcome


router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class AppointmentCreate(BaseModel):
    """Book an appointment request."""

    kind: AppointmentKind
    owner_id: UUID
    slot_id: UUID
    actor_id: str = Field(..., min_length=1)
    notes: str | None = None
    allow_overbook: bool = False


class AppointmentMove(BaseModel):
    """Move an appointment to another timeslot."""

    slot_id: UUID
    actor_id: str = Field(..., min_length=1)
    allow_overbook: bool = True


class AppointmentStatusUpdate(BaseModel):
    """Manual status change."""

    status: AppointmentStatus
    actor_id: str = Field(..., min_length=1)
    owner_status: OwnerStatus | None = None
    outcome_code: str | None = None
    outcome_notes: str | None = None
    note: str | None = None


class AppointmentCancel(BaseModel):
    """Cancel an appointment."""

    actor_id: str = Field(..., min_length=1)
    reason: str | None = None


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/appointments", status_code=status.HTTP_201_CREATED)
async def create_appointment(request: AppointmentCreate, store: StoreDep) -> dict[str, Any]:
    """Book an appointment for a prospect or customer.

    Takes one seat in the timeslot; a full slot is rejected with 409
    unless `allow_overbook` is set.
    """
    appointment = await store.create(
        request.kind,
        request.owner_id,
        request.slot_id,
        actor_id=request.actor_id,
        notes=request.notes,
        allow_overbook=request.allow_overbook,
    )
    return appointment.to_dict()


@router.get("/appointments/{kind}/{appointment_id}")
async def get_appointment(
    kind: AppointmentKind, appointment_id: UUID, store: StoreDep
) -> dict[str, Any]:
    """Get appointment by ID."""
    appointment = await store.get(kind, appointment_id)
    return appointment.to_dict()


@router.post("/appointments/{kind}/{appointment_id}/move")
async def move_appointment(
    kind: AppointmentKind,
    appointment_id: UUID,
    request: AppointmentMove,
    store: StoreDep,
) -> dict[str, Any]:
    """Move an appointment to another timeslot."""
    result = await store.transfer.move_appointment(
        kind,
        appointment_id,
        request.slot_id,
        request.actor_id,
        allow_overbook=request.allow_overbook,
    )
    return result.to_dict()


@router.post("/appointments/{kind}/{appointment_id}/status")
async def update_status(
    kind: AppointmentKind,
    appointment_id: UUID,
    request: AppointmentStatusUpdate,
    store: StoreDep,
) -> dict[str, Any]:
    """Change an appointment's status and mirror it on the owner.

    Only upcoming appointments can change status; done, missed and
    cancelled are final (409).
    """
    outcome = manual_outcome(
        request.status,
        owner_status=request.owner_status,
        code=request.outcome_code,
        outcome_notes=request.outcome_notes,
        note=request.note,
    )
    change = await store.set_status(
        kind, appointment_id, outcome, actor_id=request.actor_id, note_prefix="Manual"
    )
    return change.to_dict()


@router.post("/appointments/{kind}/{appointment_id}/cancel")
async def cancel_appointment(
    kind: AppointmentKind,
    appointment_id: UUID,
    request: AppointmentCancel,
    store: StoreDep,
) -> dict[str, Any]:
    """Cancel an upcoming appointment and free its timeslot seat."""
    change = await store.cancel(
        kind, appointment_id, actor_id=request.actor_id, reason=request.reason
    )
    return change.to_dict()
