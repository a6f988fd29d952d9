"""Dependency Injection for the Lead CRM API.

Provides FastAPI dependency functions for settings, database sessions,
the business clock and the reconciliation services. Tests override
these through `app.dependency_overrides`.

Usage:
    from lead_crm.dependencies import EngineDep

    @router.post("/endpoint")
    async def handler(engine: EngineDep):
        ...
"""

from __future__ import annotations

import threading
from typing import Annotated, AsyncGenerator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.config import Settings, get_settings
from lead_crm.core.clock import Clock
from lead_crm.core.phone import PhoneNormalizer
from lead_crm.db.session import get_db as _get_db
from lead_crm.services.appointment_store import AppointmentStore
from lead_crm.services.capacity import TimeslotCapacityManager
from lead_crm.services.notifications import RejectionNotifier
from lead_crm.services.reconciliation import ReconciliationEngine


_notifier_lock = threading.Lock()
_notifier: RejectionNotifier | None = None


# =============================================================================
# Settings / Database
# =============================================================================


def get_app_settings() -> Settings:
    """Get application settings.

    Returns cached settings instance.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for request.

    Yields session that auto-commits on success, rolls back on error.
    """
    async for session in _get_db():
        yield session


DatabaseDep = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Clock / Phone
# =============================================================================


def get_clock(settings: SettingsDep) -> Clock:
    """Business clock in the configured local offset."""
    return Clock(settings.clock.utc_offset_hours, settings.clock.timezone_label)


ClockDep = Annotated[Clock, Depends(get_clock)]


def get_normalizer(settings: SettingsDep) -> PhoneNormalizer:
    return PhoneNormalizer(settings.phone.country_code, settings.phone.local_length)


NormalizerDep = Annotated[PhoneNormalizer, Depends(get_normalizer)]


# =============================================================================
# Security
# =============================================================================


async def verify_api_key(
    settings: SettingsDep,
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Reject callers whose X-API-Key does not match the configured key.

    An empty configured key accepts every caller.
    """
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


# =============================================================================
# Services
# =============================================================================


def get_notifier(settings: SettingsDep, clock: ClockDep) -> RejectionNotifier:
    """Shared rejection notifier (one HTTP client per process)."""
    global _notifier

    if _notifier is None:
        with _notifier_lock:
            if _notifier is None:
                _notifier = RejectionNotifier(
                    settings.notifications.rejection_webhook_url,
                    clock=clock,
                    normalizer=get_normalizer(settings),
                    timeout=settings.notifications.timeout_seconds,
                )
    return _notifier


async def close_notifier() -> None:
    """Close the shared notifier's HTTP client."""
    global _notifier

    if _notifier is not None:
        await _notifier.close()
        _notifier = None


NotifierDep = Annotated[RejectionNotifier, Depends(get_notifier)]


def get_reconciliation_engine(
    db: DatabaseDep,
    clock: ClockDep,
    settings: SettingsDep,
    notifier: NotifierDep,
    normalizer: NormalizerDep,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        db, clock, settings, notifier=notifier, normalizer=normalizer
    )


EngineDep = Annotated[ReconciliationEngine, Depends(get_reconciliation_engine)]


def get_appointment_store(db: DatabaseDep, clock: ClockDep) -> AppointmentStore:
    return AppointmentStore(db, clock)


StoreDep = Annotated[AppointmentStore, Depends(get_appointment_store)]


def get_capacity_manager(db: DatabaseDep, settings: SettingsDep) -> TimeslotCapacityManager:
    return TimeslotCapacityManager(
        db, horizon_days=settings.reconciliation.nearest_slot_horizon_days
    )


CapacityDep = Annotated[TimeslotCapacityManager, Depends(get_capacity_manager)]
