"""Appointment Repository.

One repository class serves both appointment tables; the kind passed
at construction selects the appointment and link models.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.exceptions import AppointmentNotFoundError
from lead_crm.db.models.appointments import (
    AppointmentKind,
    AppointmentStatus,
    models_for,
)
from lead_crm.db.repositories.base import BaseRepository, as_uuid


class AppointmentRepository(BaseRepository[Any]):
    """Repository for prospect or customer appointments.

    Usage:
        repo = AppointmentRepository(session, AppointmentKind.CUSTOMER)
        todays = await repo.for_owner_between(owner_id, start, end)
    """

    not_found_error = AppointmentNotFoundError

    def __init__(self, session: AsyncSession, kind: AppointmentKind | str):
        self.kind = AppointmentKind(kind)
        models = models_for(self.kind)
        super().__init__(models.appointment, session)
        self._link = models.link

    # ========================================================================
    # Appointment Queries
    # ========================================================================

    async def for_owner_between(
        self,
        owner_id: UUID,
        start_utc: datetime,
        end_utc: datetime,
        *,
        statuses: Sequence[str] | None = None,
    ) -> Sequence[Any]:
        """Appointments of an owner starting in [start_utc, end_utc)."""
        stmt = select(self._model).where(
            self._model.owner_id == owner_id,
            self._model.start_datetime >= start_utc,
            self._model.start_datetime < end_utc,
        )
        if statuses:
            stmt = stmt.where(self._model.status.in_(list(statuses)))
        stmt = stmt.order_by(self._model.start_datetime)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def upcoming_for_owner(self, owner_id: UUID) -> Sequence[Any]:
        """Upcoming appointments of an owner, earliest first."""
        stmt = (
            select(self._model)
            .where(
                self._model.owner_id == owner_id,
                self._model.status == AppointmentStatus.UPCOMING.value,
            )
            .order_by(self._model.start_datetime)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count_for_owner(self, owner_id: UUID) -> int:
        """Number of appointments an owner has in any state."""
        return await self.count(owner_id=owner_id)

    async def in_window(
        self,
        start_utc: datetime,
        end_utc: datetime,
        *,
        status: str | None = None,
    ) -> Sequence[Any]:
        """Appointments starting in [start_utc, end_utc), earliest first."""
        stmt = select(self._model).where(
            self._model.start_datetime >= start_utc,
            self._model.start_datetime < end_utc,
        )
        if status:
            stmt = stmt.where(self._model.status == status)
        stmt = stmt.order_by(self._model.start_datetime)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    # ========================================================================
    # Slot Links
    # ========================================================================

    async def primary_link(self, appointment_id: UUID | str) -> Any | None:
        """The appointment's primary slot link, locked for update."""
        stmt = (
            select(self._link)
            .where(
                self._link.appointment_id == as_uuid(appointment_id),
                self._link.is_primary.is_(True),
            )
            .with_for_update()
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def add_link(self, appointment_id: UUID, timeslot_id: UUID) -> Any:
        """Insert a primary slot link."""
        link = self._link(
            appointment_id=appointment_id,
            timeslot_id=timeslot_id,
            is_primary=True,
        )
        self._session.add(link)
        await self._session.flush()
        return link

    async def delete_link(self, link: Any) -> None:
        await self._session.delete(link)
        await self._session.flush()

    async def count_primary_links(self, timeslot_id: UUID) -> int:
        """Primary links of this kind pointing at a slot."""
        stmt = (
            select(func.count())
            .select_from(self._link)
            .where(
                self._link.timeslot_id == timeslot_id,
                self._link.is_primary.is_(True),
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar() or 0
