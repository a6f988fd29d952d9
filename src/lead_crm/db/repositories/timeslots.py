"""Timeslot Repository.

Read queries over configured timeslots. Occupancy is changed only by
the capacity manager and the transfer transaction, which lock rows
through `get(..., for_update=True)`.
"""
from __future__ import annotations

from datetime import date
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.exceptions import SlotNotFoundError
from lead_crm.db.models.scheduling import TimeslotModel
from lead_crm.db.repositories.base import BaseRepository


class TimeslotRepository(BaseRepository[TimeslotModel]):
    """Repository for timeslot queries."""

    not_found_error = SlotNotFoundError

    def __init__(self, session: AsyncSession):
        super().__init__(TimeslotModel, session)

    async def list_for_day(
        self,
        day: date,
        *,
        include_disabled: bool = True,
    ) -> Sequence[TimeslotModel]:
        """All slots of a local date ordered by start time."""
        stmt = select(self._model).where(self._model.date == day)
        if not include_disabled:
            stmt = stmt.where(self._model.disabled.is_(False))
        stmt = stmt.order_by(self._model.start_time)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def first_enabled_between(
        self,
        date_from: date,
        date_to: date,
    ) -> TimeslotModel | None:
        """Earliest enabled slot with date_from <= date <= date_to.

        Occupancy is not considered.
        """
        stmt = (
            select(self._model)
            .where(
                self._model.date >= date_from,
                self._model.date <= date_to,
                self._model.disabled.is_(False),
            )
            .order_by(self._model.date, self._model.start_time)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
