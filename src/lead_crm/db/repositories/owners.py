"""Owner Repository.

Prospect and customer lookup by phone number. Stored numbers carry
the country code while feed numbers usually do not, so lookups match
against every normalized variant of the reported number.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.exceptions import OwnerNotFoundError
from lead_crm.core.phone import PhoneNormalizer
from lead_crm.db.models.appointments import AppointmentKind, models_for
from lead_crm.db.repositories.base import BaseRepository


class OwnerRepository(BaseRepository[Any]):
    """Repository for prospects or customers."""

    not_found_error = OwnerNotFoundError

    def __init__(
        self,
        session: AsyncSession,
        kind: AppointmentKind | str,
        normalizer: PhoneNormalizer | None = None,
    ):
        self.kind = AppointmentKind(kind)
        super().__init__(models_for(self.kind).owner, session)
        self._normalizer = normalizer or PhoneNormalizer()

    def _phone_columns(self) -> list[Any]:
        columns = [self._model.phone_number]
        for name in ("phone_number_2", "phone_number_3"):
            if hasattr(self._model, name):
                columns.append(getattr(self._model, name))
        return columns

    async def find_by_phone(self, raw_phone: str | None) -> Any | None:
        """Find the oldest owner whose stored phone matches raw_phone.

        Args:
            raw_phone: Phone number in any accepted format

        Returns:
            Owner instance or None if nothing matches
        """
        variants = self._normalizer.normalize(raw_phone)
        if not variants:
            return None

        stmt = (
            select(self._model)
            .where(or_(*(column.in_(sorted(variants)) for column in self._phone_columns())))
            .order_by(self._model.created_at)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
