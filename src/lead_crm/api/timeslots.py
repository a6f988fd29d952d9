"""Timeslot availability endpoints."""
from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Query

from lead_crm.core.exceptions import SlotNotFoundError
from lead_crm.dependencies import CapacityDep, ClockDep


router = APIRouter()


@router.get("/timeslots")
async def list_timeslots(
    capacity: CapacityDep,
    clock: ClockDep,
    day: date | None = Query(None, description="Local date (defaults to today)"),
) -> dict[str, Any]:
    """List the timeslots of a day ordered by start time."""
    target = day or clock.today()
    slots = await capacity.slots.list_for_day(target)
    return {
        "day": target.isoformat(),
        "total": len(slots),
        "timeslots": [slot.to_dict() for slot in slots],
    }


@router.get("/timeslots/available")
async def available_timeslot(
    capacity: CapacityDep,
    clock: ClockDep,
    day: date | None = Query(None, description="Local date (defaults to today)"),
) -> dict[str, Any]:
    """Earliest enabled timeslot of a day, regardless of occupancy."""
    target = day or clock.today()
    slot = await capacity.find_available(target)
    if slot is None:
        raise SlotNotFoundError(
            f"No enabled timeslot on {target.isoformat()}",
            details={"day": target.isoformat()},
        )
    return slot.to_dict()


@router.get("/timeslots/nearest")
async def nearest_timeslot(
    capacity: CapacityDep,
    clock: ClockDep,
    day: date | None = Query(None, description="Local date (defaults to today)"),
) -> dict[str, Any]:
    """First enabled timeslot on or after a day, within the search horizon."""
    target = day or clock.today()
    slot = await capacity.find_nearest(target)
    if slot is None:
        raise SlotNotFoundError(
            f"No enabled timeslot within {capacity.horizon_days} days of {target.isoformat()}",
            details={"day": target.isoformat(), "horizon_days": capacity.horizon_days},
        )
    return slot.to_dict()
