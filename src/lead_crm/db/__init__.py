"""Database module for the Lead CRM.

Provides:
- SQLAlchemy ORM models for timeslots, owners and appointments
- Async session management with dependency injection
- Repository pattern for data access
"""
from lead_crm.db.base import (
    AuditMixin,
    Base,
    TimestampMixin,
    UUIDMixin,
    UUIDType,
)
from lead_crm.db.session import (
    build_engine,
    close_db,
    create_test_engine,
    get_db,
    get_db_context,
    get_engine,
    get_session_factory,
    get_test_session_factory,
    init_db,
)

__all__ = [
    # Base and mixins
    "Base",
    "UUIDType",
    "UUIDMixin",
    "TimestampMixin",
    "AuditMixin",
    # Session management
    "build_engine",
    "get_engine",
    "get_session_factory",
    "get_db",
    "get_db_context",
    "init_db",
    "close_db",
    # Testing
    "create_test_engine",
    "get_test_session_factory",
]
