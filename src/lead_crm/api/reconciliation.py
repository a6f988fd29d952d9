"""Reconciliation endpoints.

The attendance feed integration posts its rows here; schedulers call the
missed sweep. All endpoints require the X-API-Key header when an API key
is configured.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import AliasChoices, BaseModel, Field

from lead_crm.dependencies import EngineDep, verify_api_key


router = APIRouter(dependencies=[Depends(verify_api_key)])


# ============================================================================
# Pydantic Schemas
# ============================================================================

class StatusUpdateRequest(BaseModel):
    """Feed batch submitted for reconciliation."""

    mode: Literal["realtime", "end_of_day"] = "realtime"
    threshold_hours: float | None = Field(default=None, gt=0)
    feed_rows: list[dict[str, Any]] | None = Field(
        default=None, validation_alias=AliasChoices("feed_rows", "rows")
    )
    actor_id: str | None = None
    day: date | None = None


class SweepRequest(BaseModel):
    """Parameters of a missed sweep."""

    threshold_hours: float | None = Field(default=None, gt=0)
    actor_id: str | None = None
    day: date | None = None


class MissedAppointment(BaseModel):
    """Missed appointment with its owner."""

    kind: str
    appointment_id: str
    owner_id: str
    owner_name: str | None = None
    phone_number: str | None = None
    owner_status: str | None = None
    appointment_time: str
    notes: str | None = None


class MissedListResponse(BaseModel):
    """Missed appointments of a day."""

    day: date
    total: int
    appointments: list[MissedAppointment]


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/appointments/status-update")
async def status_update(request: StatusUpdateRequest, engine: EngineDep) -> dict[str, Any]:
    """Reconcile appointment statuses from an attendance feed batch.

    Realtime mode creates, moves and resolves today's appointments and
    then applies the elapsed-time rule. End-of-day mode refines outcome
    fields of today's done appointments.
    """
    if not request.feed_rows:
        raise HTTPException(
            status_code=400,
            detail=f"feed_rows are required for {request.mode} processing",
        )

    result = await engine.run(
        request.feed_rows,
        mode=request.mode,
        threshold_hours=request.threshold_hours,
        actor_id=request.actor_id,
        day=request.day,
    )
    return result.to_dict()


@router.post("/appointments/missed/sweep")
async def sweep_missed(engine: EngineDep, request: SweepRequest | None = None) -> dict[str, Any]:
    """Mark today's overdue upcoming appointments missed."""
    request = request or SweepRequest()
    result = await engine.sweep_missed(
        threshold_hours=request.threshold_hours,
        actor_id=request.actor_id,
        day=request.day,
    )
    return result.to_dict()


@router.get("/appointments/missed")
async def list_missed(
    engine: EngineDep,
    day: date | None = Query(None, description="Local date (defaults to today)"),
) -> MissedListResponse:
    """List missed appointments of a day, earliest first."""
    target = day or engine.clock.today()
    items = await engine.list_missed(target)
    return MissedListResponse(
        day=target,
        total=len(items),
        appointments=[MissedAppointment(**item) for item in items],
    )
