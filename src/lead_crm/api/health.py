"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm import __version__
from lead_crm.dependencies import ClockDep, DatabaseDep, SettingsDep


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    environment: str
    business_date: str
    checks: dict[str, Any]


@router.get("/health")
async def health_check(
    settings: SettingsDep, clock: ClockDep, db: DatabaseDep
) -> HealthResponse:
    """Perform health check.

    Components checked:
    - API: Always ok if reachable
    - Database: Connectivity test via SELECT 1
    - Rejection webhook: configured or not
    """
    checks: dict[str, Any] = {
        "api": "ok",
        "database": await _check_database(db),
        "rejection_webhook": (
            "configured" if settings.notifications.rejection_webhook_url else "not_configured"
        ),
    }

    status = "healthy" if checks["database"] == "ok" else "unhealthy"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.environment,
        business_date=clock.today().isoformat(),
        checks=checks,
    )


async def _check_database(session: AsyncSession) -> str:
    """Check database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        return f"error: {e}"
