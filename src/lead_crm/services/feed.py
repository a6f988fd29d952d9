"""Attendance feed parsing and matching.

Feed rows arrive from a spreadsheet export. Each row reports a phone
number (without country code), a date in DD/MM/YY or DD/MM/YYYY form,
an outcome code and an attendance marker (the underwriter column,
filled in once the person showed up).
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.config import ReconciliationSettings
from lead_crm.core.clock import Clock
from lead_crm.core.exceptions import DateParseError
from lead_crm.core.logging import get_logger
from lead_crm.core.phone import PhoneNormalizer
from lead_crm.db.models.appointments import AppointmentKind, AppointmentStatus
from lead_crm.db.repositories.appointments import AppointmentRepository
from lead_crm.db.repositories.owners import OwnerRepository

log = get_logger(__name__)

_DATE_SEPARATORS = re.compile(r"[/-]")


def _column(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


class AttendanceRow(BaseModel):
    """One feed row.

    Accepts canonical field names or the spreadsheet's `col_*` column
    names. Columns not listed here are kept in `raw_fields`.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    row_number: int | None = None
    reported_date: str | None = _column("reported_date", "col_Date")
    mobile_number: str | None = _column("mobile_number", "col_Mobile Number")
    outcome_code: str | None = _column("outcome_code", "col_Code")
    attendance_marker: str | None = _column("attendance_marker", "col_UW")
    full_name: str | None = _column("full_name", "col_Full Name")
    new_or_reloan: str | None = _column("new_or_reloan", "col_New or Reloan? ", "col_New or Reloan?")
    rs_type: str | None = _column("rs_type", "col_RS")
    rs_detail: str | None = _column("rs_detail", "col_RS -Detailed")
    email: str | None = _column("email", "col_Email Address")
    loan_amount: str | None = _column("loan_amount", "col_Loan Amount Applying?")
    employment_type: str | None = _column("employment_type", "col_Employment Type")
    loan_purpose: str | None = _column("loan_purpose", "col_What is the purpose of the Loan?")

    @field_validator(
        "reported_date",
        "mobile_number",
        "outcome_code",
        "attendance_marker",
        "full_name",
        "new_or_reloan",
        "rs_type",
        "rs_detail",
        "email",
        "loan_amount",
        "employment_type",
        "loan_purpose",
        mode="before",
    )
    @classmethod
    def _as_text(cls, value: Any) -> str | None:
        # Spreadsheet exports turn numeric cells into numbers
        if value is None:
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        return text or None

    @property
    def raw_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def code(self) -> str | None:
        return self.outcome_code.upper() if self.outcome_code else None

    @property
    def display_name(self) -> str:
        return self.full_name or ""

    def has_attendance(self, placeholders: Iterable[str] = ("n/a",)) -> bool:
        """True when the attendance marker holds a real value."""
        if not self.attendance_marker:
            return False
        return self.attendance_marker.lower() not in {p.lower() for p in placeholders}

    def is_reloan(self, marker: str = "Re Loan") -> bool:
        return bool(self.new_or_reloan and marker in self.new_or_reloan)

    def amount(self) -> float | None:
        """Loan amount as a number, ignoring currency symbols."""
        if not self.loan_amount:
            return None
        cleaned = re.sub(r"[^\d.]", "", self.loan_amount)
        try:
            return float(cleaned) if cleaned else None
        except ValueError:
            return None


def parse_reported_date(raw: str | None) -> date:
    """Parse a feed date.

    Accepts DD/MM/YY and DD/MM/YYYY with '/' or '-' separators and an
    optional trailing time ("05/03/24 14:31"). A four-digit first part
    is read as YYYY-MM-DD.

    Raises:
        DateParseError: value is empty or not a valid date
    """
    if raw is None or not str(raw).strip():
        raise DateParseError("Missing reported date", details={"value": raw})

    text = str(raw).strip()
    parts = _DATE_SEPARATORS.split(text)
    if len(parts) != 3:
        raise DateParseError(f"Unsupported date format: {text!r}", details={"value": text})

    first, month, last = (p.strip() for p in parts)
    last = last.split()[0] if last.split() else ""
    last = last.split("T")[0]

    if len(first) == 4:
        year, day = first, last
    else:
        day, year = first, last

    if len(year) == 2:
        year = f"20{year}"

    try:
        return date(int(year), int(month), int(day))
    except ValueError as e:
        raise DateParseError(
            f"Invalid date: {text!r}", details={"value": text}, cause=e
        ) from e


@dataclass
class ScopedRows:
    """Feed rows split by whether they fall on the pass's target day."""

    in_scope: list[tuple[int, AttendanceRow]] = field(default_factory=list)
    invalid: list[tuple[int, AttendanceRow, DateParseError]] = field(default_factory=list)
    out_of_scope: int = 0


@dataclass
class FeedMatch:
    """Resolution of one feed row against stored records."""

    row: AttendanceRow
    kind: AppointmentKind
    owner: Any | None = None
    appointment: Any | None = None

    @property
    def matched(self) -> bool:
        return self.appointment is not None


class FeedMatcher:
    """Matches feed rows to owners and appointments by phone number."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        normalizer: PhoneNormalizer,
        settings: ReconciliationSettings,
    ):
        self.session = session
        self.clock = clock
        self.normalizer = normalizer
        self.settings = settings

    def classify(self, row: AttendanceRow) -> AppointmentKind:
        """Reloan rows belong to existing customers, all others to prospects."""
        if row.is_reloan(self.settings.reloan_marker):
            return AppointmentKind.CUSTOMER
        return AppointmentKind.PROSPECT

    def has_attendance(self, row: AttendanceRow) -> bool:
        return row.has_attendance(self.settings.attendance_placeholders)

    def scope(self, rows: Sequence[AttendanceRow], day: date) -> ScopedRows:
        """Keep rows reported for `day`; collect unparseable ones."""
        scoped = ScopedRows()
        for index, row in enumerate(rows):
            try:
                reported = parse_reported_date(row.reported_date)
            except DateParseError as e:
                scoped.invalid.append((index, row, e))
                continue
            if reported == day:
                scoped.in_scope.append((index, row))
            else:
                scoped.out_of_scope += 1

        log.debug(
            "Feed rows scoped",
            day=day.isoformat(),
            in_scope=len(scoped.in_scope),
            out_of_scope=scoped.out_of_scope,
            invalid=len(scoped.invalid),
        )
        return scoped

    async def match(self, row: AttendanceRow, day: date) -> FeedMatch:
        """Find the row's owner and their open appointment on `day`.

        Upcoming appointments are preferred over already-resolved ones;
        cancelled appointments never match.
        """
        kind = self.classify(row)
        result = FeedMatch(row=row, kind=kind)

        owners = OwnerRepository(self.session, kind, self.normalizer)
        result.owner = await owners.find_by_phone(row.mobile_number)
        if result.owner is None:
            return result

        start, end = self.clock.day_bounds_utc(day)
        appointments = AppointmentRepository(self.session, kind)
        todays = [
            a
            for a in await appointments.for_owner_between(result.owner.id, start, end)
            if a.status != AppointmentStatus.CANCELLED.value
        ]
        todays.sort(key=lambda a: a.status != AppointmentStatus.UPCOMING.value)
        result.appointment = todays[0] if todays else None
        return result

    def row_for_owner(
        self,
        owner: Any,
        rows: Sequence[AttendanceRow],
    ) -> AttendanceRow | None:
        """First row whose phone matches any of the owner's numbers."""
        owner_forms: set[str] = set()
        for phone in owner.phone_numbers:
            owner_forms |= self.normalizer.normalize(phone)
        if not owner_forms:
            return None

        for row in rows:
            if owner_forms & self.normalizer.normalize(row.mobile_number):
                return row
        return None
