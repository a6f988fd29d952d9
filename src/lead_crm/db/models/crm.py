"""CRM ORM Models.

Owner records that appointments belong to:
- ProspectModel: leads that have not borrowed yet
- CustomerModel: existing borrowers returning for another loan

Both carry a `status` and outcome fields mirrored from their latest
appointment resolution.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lead_crm.db.base import AuditMixin, Base, TimestampMixin, UUIDMixin


class ProspectModel(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Prospect (lead) record."""

    __tablename__ = "prospects"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Country-code prefixed, e.g. +6591234567",
    )
    phone_number_2: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phone_number_3: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        default="new",
        nullable=False,
        index=True,
        comment="new, assigned, no_answer, follow_up, booked, done, missed/RS, "
        "unqualified, give_up, blacklisted",
    )
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    lead_type: Mapped[str] = mapped_column(
        String(20),
        default="new",
        nullable=False,
        comment="new or reloan",
    )

    amount: Mapped[float | None] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=True
    )
    employment_status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    loan_purpose: Mapped[str | None] = mapped_column(String(255), nullable=True)

    outcome_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    outcome_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_prospect_phone_2", "phone_number_2"),
        Index("ix_prospect_phone_3", "phone_number_3"),
    )

    @property
    def phone_numbers(self) -> list[str]:
        return [
            p for p in (self.phone_number, self.phone_number_2, self.phone_number_3) if p
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary for API responses."""
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "email": self.email,
            "status": self.status,
            "source": self.source,
            "lead_type": self.lead_type,
            "outcome_code": self.outcome_code,
            "outcome_notes": self.outcome_notes,
        }


class CustomerModel(Base, UUIDMixin, TimestampMixin, AuditMixin):
    """Existing customer (borrower) record."""

    __tablename__ = "customers"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        default="assigned",
        nullable=False,
        index=True,
    )

    outcome_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    outcome_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def phone_numbers(self) -> list[str]:
        return [self.phone_number] if self.phone_number else []

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary for API responses."""
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "email": self.email,
            "status": self.status,
            "outcome_code": self.outcome_code,
            "outcome_notes": self.outcome_notes,
        }
