"""Tests for moving appointments between timeslots."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from factories import TODAY


@pytest.fixture
def transfer(db_session, clock):
    from lead_crm.services.transfer import TimeslotTransfer

    return TimeslotTransfer(db_session, clock)


class TestMoveAppointment:
    """Tests for TimeslotTransfer.move_appointment."""

    @pytest.mark.asyncio
    async def test_move_updates_times_and_occupancy(
        self, db_session, clock, transfer, make_slot, make_prospect, book, prospect_appointments
    ):
        old_slot = await make_slot(TODAY, "10:00", "11:00", capacity=2)
        new_slot = await make_slot(TODAY + timedelta(days=1), "15:00", "16:00", capacity=2)
        appointment = await book("prospect", await make_prospect(), old_slot)

        result = await transfer.move_appointment(
            "prospect", appointment.id, new_slot.id, "agent-9"
        )

        assert result.moved
        assert result.old_slot_id == old_slot.id
        assert result.new_slot_id == new_slot.id
        assert old_slot.occupied_count == 0
        assert new_slot.occupied_count == 1

        link = await prospect_appointments.primary_link(appointment.id)
        assert link.timeslot_id == new_slot.id

        # 15:00 local (UTC+8) is 07:00 UTC
        assert clock.as_utc(appointment.start_datetime) == datetime(
            2024, 5, 11, 7, 0, tzinfo=timezone.utc
        )
        assert clock.as_utc(appointment.end_datetime) == datetime(
            2024, 5, 11, 8, 0, tzinfo=timezone.utc
        )
        assert appointment.updated_by == "agent-9"

    @pytest.mark.asyncio
    async def test_move_to_same_slot_is_noop(
        self, transfer, make_slot, make_prospect, book
    ):
        slot = await make_slot(capacity=2)
        appointment = await book("prospect", await make_prospect(), slot)

        result = await transfer.move_appointment("prospect", appointment.id, slot.id, "agent-9")

        assert not result.moved
        assert slot.occupied_count == 1

    @pytest.mark.asyncio
    async def test_failed_move_changes_nothing(
        self, db_session, clock, transfer, make_slot, make_prospect, book, prospect_appointments
    ):
        from lead_crm.core.exceptions import CapacityExceededError

        old_slot = await make_slot(TODAY, "10:00", "11:00")
        full_slot = await make_slot(TODAY, "12:00", "13:00", capacity=1, occupied=1)
        appointment = await book("prospect", await make_prospect(), old_slot)
        original_start = clock.as_utc(appointment.start_datetime)

        with pytest.raises(CapacityExceededError):
            await transfer.move_appointment(
                "prospect", appointment.id, full_slot.id, "agent-9", allow_overbook=False
            )

        for obj in (appointment, old_slot, full_slot):
            await db_session.refresh(obj)
        assert old_slot.occupied_count == 1
        assert full_slot.occupied_count == 1
        assert clock.as_utc(appointment.start_datetime) == original_start
        link = await prospect_appointments.primary_link(appointment.id)
        assert link.timeslot_id == old_slot.id

    @pytest.mark.asyncio
    async def test_move_overbooks_by_default(self, transfer, make_slot, make_customer, book):
        old_slot = await make_slot(TODAY, "10:00", "11:00")
        full_slot = await make_slot(TODAY, "12:00", "13:00", capacity=1, occupied=1)
        appointment = await book("customer", await make_customer(), old_slot)

        await transfer.move_appointment("customer", appointment.id, full_slot.id, "agent-9")

        assert full_slot.occupied_count == 2
        assert old_slot.occupied_count == 0

    @pytest.mark.asyncio
    async def test_move_unknown_slot(self, transfer, make_slot, make_prospect, book):
        from lead_crm.core.exceptions import SlotNotFoundError

        appointment = await book("prospect", await make_prospect(), await make_slot())

        with pytest.raises(SlotNotFoundError):
            await transfer.move_appointment("prospect", appointment.id, uuid4(), "agent-9")

    @pytest.mark.asyncio
    async def test_move_unknown_appointment(self, transfer, make_slot):
        from lead_crm.core.exceptions import AppointmentNotFoundError

        slot = await make_slot()

        with pytest.raises(AppointmentNotFoundError):
            await transfer.move_appointment("prospect", uuid4(), slot.id, "agent-9")


class TestRelease:
    """Tests for TimeslotTransfer.release."""

    @pytest.mark.asyncio
    async def test_release_frees_seat_and_drops_link(
        self, transfer, make_slot, make_prospect, book, prospect_appointments
    ):
        slot = await make_slot()
        appointment = await book("prospect", await make_prospect(), slot)

        released = await transfer.release("prospect", appointment.id)

        assert released == slot.id
        assert slot.occupied_count == 0
        assert await prospect_appointments.primary_link(appointment.id) is None

    @pytest.mark.asyncio
    async def test_release_without_link(self, transfer):
        assert await transfer.release("customer", uuid4()) is None


class TestOccupancyInvariant:
    """occupied_count always equals the primary links pointing at a slot."""

    @pytest.mark.asyncio
    async def test_counts_match_links_after_mixed_operations(
        self,
        store,
        transfer,
        make_slot,
        make_prospect,
        make_customer,
        book,
        prospect_appointments,
        customer_appointments,
    ):
        slot_a = await make_slot(TODAY, "10:00", "11:00", capacity=2)
        slot_b = await make_slot(TODAY, "11:00", "12:00", capacity=2)
        first = await book("prospect", await make_prospect("First"), slot_a)
        second = await book("prospect", await make_prospect("Second", phone="+6592220000"), slot_a)
        third = await book("customer", await make_customer(), slot_a)

        await transfer.move_appointment("prospect", first.id, slot_b.id, "agent-9")
        await transfer.move_appointment("customer", third.id, slot_b.id, "agent-9")
        await transfer.move_appointment("customer", third.id, slot_b.id, "agent-9")
        await store.cancel("prospect", second.id, actor_id="agent-9")

        for slot in (slot_a, slot_b):
            links = await prospect_appointments.count_primary_links(
                slot.id
            ) + await customer_appointments.count_primary_links(slot.id)
            assert slot.occupied_count == links

        assert slot_a.occupied_count == 0
        assert slot_b.occupied_count == 2
