"""Pytest configuration and fixtures for Lead CRM tests."""

from __future__ import annotations

import json
import os
import sys
from datetime import date, time
from pathlib import Path
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Set test environment
os.environ["LEADCRM_ENV"] = "test"
os.environ["LEADCRM_DATABASE__URL"] = "sqlite+aiosqlite:///:memory:"

from factories import NOW_LOCAL, TODAY, WEBHOOK_URL


@pytest.fixture
def clock():
    """Clock pinned to NOW_LOCAL."""
    from lead_crm.core.clock import FixedClock

    return FixedClock(NOW_LOCAL)


@pytest.fixture
def settings():
    """Settings with the rejection webhook enabled."""
    from lead_crm.config import NotificationSettings, Settings

    return Settings(
        environment="test",
        debug=True,
        notifications=NotificationSettings(rejection_webhook_url=WEBHOOK_URL),
    )


@pytest.fixture
def normalizer():
    from lead_crm.core.phone import PhoneNormalizer

    return PhoneNormalizer("65", 8)


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with in-memory SQLite.

    Creates a fresh database for each test function.
    """
    from lead_crm.db.session import create_test_engine

    engine = await create_test_engine()

    yield engine

    # Cleanup
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator:
    """Create test database session.

    Provides a session that rolls back after each test.
    """
    from lead_crm.db.session import get_test_session_factory

    async_session_factory = get_test_session_factory(db_engine)

    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def timeslot_repository(db_session):
    """Create TimeslotRepository instance for testing."""
    from lead_crm.db.repositories import TimeslotRepository

    return TimeslotRepository(db_session)


@pytest_asyncio.fixture
async def prospect_appointments(db_session):
    """AppointmentRepository for prospect appointments."""
    from lead_crm.db.repositories import AppointmentRepository

    return AppointmentRepository(db_session, "prospect")


@pytest_asyncio.fixture
async def customer_appointments(db_session):
    """AppointmentRepository for customer appointments."""
    from lead_crm.db.repositories import AppointmentRepository

    return AppointmentRepository(db_session, "customer")


# ============================================================================
# Factories
# ============================================================================

@pytest_asyncio.fixture
async def make_slot(db_session):
    """Create a timeslot: await make_slot(day, "10:00", "11:00", capacity=2)."""
    from lead_crm.db.models import TimeslotModel

    async def _make(
        day: date = TODAY,
        start: str = "10:00",
        end: str = "11:00",
        *,
        capacity: int = 1,
        occupied: int = 0,
        disabled: bool = False,
    ) -> TimeslotModel:
        slot = TimeslotModel(
            date=day,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            max_capacity=capacity,
            occupied_count=occupied,
            disabled=disabled,
        )
        db_session.add(slot)
        await db_session.flush()
        return slot

    return _make


@pytest_asyncio.fixture
async def make_prospect(db_session):
    """Create a prospect with a +65 phone number."""
    from lead_crm.db.models import ProspectModel

    async def _make(
        name: str = "Tan Wei Ming",
        phone: str = "+6591234567",
        *,
        status: str = "assigned",
        phone_2: str | None = None,
    ) -> ProspectModel:
        prospect = ProspectModel(
            full_name=name,
            phone_number=phone,
            phone_number_2=phone_2,
            status=status,
            source="SEO",
        )
        db_session.add(prospect)
        await db_session.flush()
        return prospect

    return _make


@pytest_asyncio.fixture
async def make_customer(db_session):
    """Create an existing customer."""
    from lead_crm.db.models import CustomerModel

    async def _make(
        name: str = "Lim Mei Ling",
        phone: str = "+6588887777",
        *,
        status: str = "assigned",
    ) -> CustomerModel:
        customer = CustomerModel(full_name=name, phone_number=phone, status=status)
        db_session.add(customer)
        await db_session.flush()
        return customer

    return _make


@pytest_asyncio.fixture
async def store(db_session, clock):
    """AppointmentStore bound to the test session and clock."""
    from lead_crm.services.appointment_store import AppointmentStore

    return AppointmentStore(db_session, clock)


@pytest_asyncio.fixture
async def book(store):
    """Book an appointment through the store: await book("prospect", owner, slot)."""

    async def _book(kind, owner, slot, *, allow_overbook: bool = True):
        return await store.create(
            kind, owner.id, slot.id, actor_id="agent-7", allow_overbook=allow_overbook
        )

    return _book


# ============================================================================
# Webhook Fixtures
# ============================================================================

@pytest.fixture
def webhook_calls() -> list[dict]:
    """JSON bodies received by the mocked rejection webhook."""
    return []


@pytest.fixture
def webhook_status() -> dict:
    """Mutable HTTP status the mocked webhook answers with."""
    return {"code": 200}


@pytest_asyncio.fixture
async def notifier(clock, normalizer, webhook_calls, webhook_status):
    """RejectionNotifier talking to an httpx.MockTransport."""
    from lead_crm.services.notifications import RejectionNotifier

    def handler(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(json.loads(request.content))
        return httpx.Response(webhook_status["code"], json={"ok": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = RejectionNotifier(WEBHOOK_URL, clock=clock, normalizer=normalizer, client=client)

    yield notifier

    await notifier.close()


@pytest_asyncio.fixture
async def engine(db_session, clock, settings, notifier, normalizer):
    """ReconciliationEngine wired to the test session, clock and mocked webhook."""
    from lead_crm.services.reconciliation import ReconciliationEngine

    return ReconciliationEngine(
        db_session, clock, settings, notifier=notifier, normalizer=normalizer
    )

