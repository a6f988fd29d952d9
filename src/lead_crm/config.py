"""Application configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database configuration."""

    url: str = "sqlite+aiosqlite:///data/lead_crm.db"
    echo: bool = False


class ClockSettings(BaseModel):
    """Local business timezone.

    Timeslot wall-clock times are defined in this fixed offset and
    converted to UTC when an appointment is written.
    """

    utc_offset_hours: float = 8.0
    timezone_label: str = "SGT"


class PhoneSettings(BaseModel):
    """Phone number canonicalisation."""

    country_code: str = "65"
    local_length: int = 8


class ReconciliationSettings(BaseModel):
    """Attendance feed reconciliation defaults."""

    # Hours after slot start before an unresolved appointment is marked missed
    default_threshold_hours: float = 3.0

    # Days to scan forward when the target day has no enabled slot
    nearest_slot_horizon_days: int = 7

    # Actor recorded in created_by/updated_by when the caller supplies none
    default_actor_id: str = "system-update"

    # Substring of the new-or-reloan column that marks an existing customer
    reloan_marker: str = "Re Loan"

    # Attendance marker values that mean "nobody recorded attendance"
    attendance_placeholders: list[str] = Field(default_factory=lambda: ["n/a"])

    # Source recorded on prospects created from the feed
    new_prospect_source: str = "SEO"


class NotificationSettings(BaseModel):
    """Outbound rejection notification configuration."""

    rejection_webhook_url: str = ""
    timeout_seconds: float = 10.0


class Settings(BaseSettings):
    """Application settings.

    Loaded from:
    1. Environment variables (LEADCRM_*)
    2. configs/{environment}.yaml
    3. configs/default.yaml
    """

    model_config = SettingsConfigDict(
        env_prefix="LEADCRM_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Shared secret for feed/cron callers (empty = accept unauthenticated)
    api_key: str = ""

    # Subsystems
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    clock: ClockSettings = Field(default_factory=ClockSettings)
    phone: PhoneSettings = Field(default_factory=PhoneSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings object loaded from config files and environment.
    """
    import os
    from dynaconf import Dynaconf

    config_dir = Path("configs")
    env = os.getenv("LEADCRM_ENV", "development")

    settings_files = []
    if (config_dir / "default.yaml").exists():
        settings_files.append(str(config_dir / "default.yaml"))
    if (config_dir / f"{env}.yaml").exists():
        settings_files.append(str(config_dir / f"{env}.yaml"))

    dynaconf = Dynaconf(
        envvar_prefix="LEADCRM",
        settings_files=settings_files,
        load_dotenv=True,
        merge_enabled=True,
    )

    config_dict: dict[str, Any] = {}
    for key in dynaconf.keys():
        if not key.startswith("_"):
            config_dict[key.lower()] = dynaconf[key]

    config_dict["environment"] = env

    return Settings(**config_dict)


def validate_production_settings(settings: Settings) -> list[str]:
    """Validate settings for production readiness.

    Args:
        settings: Application settings to validate.

    Returns:
        List of validation error messages (empty if all valid).
    """
    errors: list[str] = []

    if settings.environment not in ("production", "staging", "prod"):
        return errors

    if not settings.api_key:
        errors.append("LEADCRM_API_KEY must be set in production")

    if not settings.notifications.rejection_webhook_url:
        errors.append(
            "LEADCRM_NOTIFICATIONS__REJECTION_WEBHOOK_URL must be set in production"
        )

    if "sqlite" in settings.database.url:
        errors.append("SQLite is not supported as the production database")

    return errors
