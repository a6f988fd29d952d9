"""Tests for attendance feed parsing and matching."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from lead_crm.core.exceptions import DateParseError
from lead_crm.services.feed import AttendanceRow, parse_reported_date

from factories import TODAY, feed_row


class TestParseReportedDate:
    """Tests for feed date parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("10/05/2024", date(2024, 5, 10)),
            ("10/05/24", date(2024, 5, 10)),
            ("5/3/24", date(2024, 3, 5)),
            ("10-05-2024", date(2024, 5, 10)),
            ("10/05/2024 14:31", date(2024, 5, 10)),
            ("2024-05-10", date(2024, 5, 10)),
            ("2024-05-10T08:00:00", date(2024, 5, 10)),
            (" 10/05/2024 ", date(2024, 5, 10)),
        ],
    )
    def test_accepted_formats(self, raw, expected):
        assert parse_reported_date(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "yesterday", "31/02/2024", "10/05", "aa/bb/cc"])
    def test_rejected_values(self, raw):
        with pytest.raises(DateParseError) as exc_info:
            parse_reported_date(raw)

        assert exc_info.value.status_code == 422


class TestAttendanceRow:
    """Tests for feed row validation."""

    def test_spreadsheet_column_names(self):
        row = AttendanceRow.model_validate(
            {
                "col_Date": "10/05/2024",
                "col_Mobile Number": 91234567.0,
                "col_Code": "p",
                "col_UW": "Jason",
                "col_Full Name": "Tan Wei Ming",
                "col_New or Reloan? ": "Re Loan",
                "col_RS": "Income",
                "col_RS -Detailed": "Payslip missing",
                "col_Branch": "Tampines",
            }
        )

        assert row.mobile_number == "91234567"
        assert row.code == "P"
        assert row.has_attendance()
        assert row.is_reloan()
        assert row.rs_type == "Income"
        assert row.rs_detail == "Payslip missing"
        assert row.raw_fields == {"col_Branch": "Tampines"}

    def test_canonical_field_names(self):
        row = AttendanceRow(
            reported_date="10/05/2024",
            mobile_number="91234567",
            outcome_code="R",
            attendance_marker="n/a",
        )

        assert row.code == "R"
        assert not row.has_attendance()
        assert not row.is_reloan()

    @pytest.mark.parametrize("marker", [None, "", "  ", "N/A", "n/a"])
    def test_placeholder_markers_are_not_attendance(self, marker):
        assert not AttendanceRow(attendance_marker=marker).has_attendance(["n/a"])

    def test_amount_strips_currency(self):
        assert AttendanceRow(loan_amount="$5,000").amount() == 5000.0
        assert AttendanceRow(loan_amount="ask agent").amount() is None
        assert AttendanceRow().amount() is None


class TestFeedMatcher:
    """Tests for matching rows to owners and appointments."""

    @pytest.fixture
    def matcher(self, db_session, clock, normalizer, settings):
        from lead_crm.services.feed import FeedMatcher

        return FeedMatcher(db_session, clock, normalizer, settings.reconciliation)

    def test_reloan_rows_are_customer_rows(self, matcher):
        from lead_crm.db.models.appointments import AppointmentKind

        reloan = AttendanceRow.model_validate(feed_row("91234567", **{"col_New or Reloan? ": "Re Loan"}))
        new = AttendanceRow.model_validate(feed_row("91234567", **{"col_New or Reloan? ": "New"}))

        assert matcher.classify(reloan) == AppointmentKind.CUSTOMER
        assert matcher.classify(new) == AppointmentKind.PROSPECT

    def test_scope_splits_rows(self, matcher):
        rows = [
            AttendanceRow.model_validate(feed_row("91234567")),
            AttendanceRow.model_validate(feed_row("91234568", reported="09/05/2024")),
            AttendanceRow.model_validate(feed_row("91234569", reported="not a date")),
        ]

        scoped = matcher.scope(rows, TODAY)

        assert [index for index, _ in scoped.in_scope] == [0]
        assert scoped.out_of_scope == 1
        assert len(scoped.invalid) == 1

    @pytest.mark.asyncio
    async def test_match_prefers_upcoming_appointment(
        self, matcher, store, make_slot, make_prospect, book
    ):
        from lead_crm.services.outcomes import ATTENDED

        prospect = await make_prospect(phone="+6591234567")
        done = await book("prospect", prospect, await make_slot(TODAY, "09:00", "10:00"))
        await store.set_status("prospect", done.id, ATTENDED, actor_id="a")
        upcoming = await book("prospect", prospect, await make_slot(TODAY, "14:00", "15:00"))

        match = await matcher.match(AttendanceRow.model_validate(feed_row("9123 4567")), TODAY)

        assert match.owner.id == prospect.id
        assert match.appointment.id == upcoming.id

    @pytest.mark.asyncio
    async def test_match_ignores_other_days_and_cancelled(
        self, matcher, store, make_slot, make_prospect, book
    ):
        prospect = await make_prospect(phone="+6591234567")
        await book("prospect", prospect, await make_slot(TODAY + timedelta(days=1)))
        cancelled = await book("prospect", prospect, await make_slot(TODAY, "16:00", "17:00"))
        await store.cancel("prospect", cancelled.id, actor_id="a")

        match = await matcher.match(AttendanceRow.model_validate(feed_row("91234567")), TODAY)

        assert match.owner.id == prospect.id
        assert not match.matched

    @pytest.mark.asyncio
    async def test_match_secondary_phone(self, matcher, make_prospect):
        prospect = await make_prospect(phone="+6580000000", phone_2="+6591234567")

        match = await matcher.match(AttendanceRow.model_validate(feed_row("91234567")), TODAY)

        assert match.owner.id == prospect.id

    @pytest.mark.asyncio
    async def test_match_unknown_phone(self, matcher):
        match = await matcher.match(AttendanceRow.model_validate(feed_row("99999999")), TODAY)

        assert match.owner is None
        assert match.appointment is None

    @pytest.mark.asyncio
    async def test_row_for_owner_uses_every_phone(self, matcher, make_prospect):
        prospect = await make_prospect(phone="+6580000000", phone_2="+6591234567")
        rows = [
            AttendanceRow.model_validate(feed_row("81111111")),
            AttendanceRow.model_validate(feed_row("91234567", code="P")),
        ]

        row = matcher.row_for_owner(prospect, rows)

        assert row is rows[1]
