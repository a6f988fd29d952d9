"""Timeslot capacity management.

Slot lookup ignores occupancy; whether a full slot may be booked is the
caller's decision via `allow_overbook` on reserve().
"""
from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.exceptions import CapacityExceededError
from lead_crm.core.logging import get_logger
from lead_crm.db.models.scheduling import TimeslotModel
from lead_crm.db.repositories.timeslots import TimeslotRepository

log = get_logger(__name__)

DEFAULT_HORIZON_DAYS = 7


class TimeslotCapacityManager:
    """Finds slots and reserves/releases slot capacity.

    Together with TimeslotTransfer this is the only code that writes
    `TimeslotModel.occupied_count`.
    """

    def __init__(self, session: AsyncSession, *, horizon_days: int = DEFAULT_HORIZON_DAYS):
        self.slots = TimeslotRepository(session)
        self.horizon_days = horizon_days

    async def find_available(self, day: date) -> TimeslotModel | None:
        """Earliest enabled slot on `day`, regardless of occupancy."""
        return await self.slots.first_enabled_between(day, day)

    async def find_nearest(self, day: date) -> TimeslotModel | None:
        """Earliest enabled slot on `day` or within the following horizon days."""
        slot = await self.slots.first_enabled_between(
            day, day + timedelta(days=self.horizon_days)
        )
        if slot is None:
            log.warning(
                "No enabled timeslot in horizon",
                day=day.isoformat(),
                horizon_days=self.horizon_days,
            )
        return slot

    async def reserve(self, slot_id: UUID | str, *, allow_overbook: bool = False) -> TimeslotModel:
        """Take one seat in a slot.

        Args:
            slot_id: Slot to reserve
            allow_overbook: Book even when the slot is already full

        Returns:
            The locked, incremented slot

        Raises:
            SlotNotFoundError: Slot does not exist
            CapacityExceededError: Slot is full and overbooking not allowed
        """
        slot = await self.slots.get_or_raise(slot_id, for_update=True)

        if slot.is_full and not allow_overbook:
            raise CapacityExceededError(
                "Timeslot is fully booked",
                details={
                    "slot_id": str(slot.id),
                    "occupied_count": slot.occupied_count,
                    "max_capacity": slot.max_capacity,
                },
            )

        slot.occupied_count += 1
        await self.slots.session.flush()

        log.debug(
            "Timeslot reserved",
            slot_id=str(slot.id),
            occupied_count=slot.occupied_count,
            max_capacity=slot.max_capacity,
            overbooked=slot.occupied_count > slot.max_capacity,
        )
        return slot

    async def release(self, slot_id: UUID | str) -> TimeslotModel:
        """Give back one seat; the count never drops below zero."""
        slot = await self.slots.get_or_raise(slot_id, for_update=True)

        if slot.occupied_count <= 0:
            log.warning("Timeslot release at zero occupancy", slot_id=str(slot.id))
        slot.occupied_count = max(slot.occupied_count - 1, 0)
        await self.slots.session.flush()

        log.debug("Timeslot released", slot_id=str(slot.id), occupied_count=slot.occupied_count)
        return slot
