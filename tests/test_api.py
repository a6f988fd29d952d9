"""Tests for the HTTP API.

Services are replaced through `app.dependency_overrides`; no database
is touched.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from factories import TODAY, feed_row


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def api_settings(settings):
    return settings.model_copy(update={"api_key": "secret"})


@pytest.fixture
def engine_mock(clock):
    engine = MagicMock()
    engine.clock = clock
    summary = MagicMock()
    summary.to_dict.return_value = {"mode": "realtime", "summary": {"updated": 1}, "results": []}
    engine.run = AsyncMock(return_value=summary)
    engine.sweep_missed = AsyncMock(return_value=summary)
    engine.list_missed = AsyncMock(return_value=[])
    return engine


@pytest.fixture
def store_mock():
    store = MagicMock()
    store.create = AsyncMock()
    store.get = AsyncMock()
    store.set_status = AsyncMock()
    store.cancel = AsyncMock()
    store.transfer = MagicMock()
    store.transfer.move_appointment = AsyncMock()
    return store


@pytest.fixture
def capacity_mock():
    capacity = MagicMock()
    capacity.horizon_days = 7
    capacity.find_available = AsyncMock(return_value=None)
    capacity.find_nearest = AsyncMock(return_value=None)
    capacity.slots = MagicMock()
    capacity.slots.list_for_day = AsyncMock(return_value=[])
    return capacity


@pytest.fixture
def db_mock():
    session = MagicMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def client(api_settings, clock, engine_mock, store_mock, capacity_mock, db_mock):
    """Test client with every service dependency mocked."""
    from lead_crm import dependencies
    from lead_crm.main import create_app

    app = create_app()
    app.dependency_overrides[dependencies.get_app_settings] = lambda: api_settings
    app.dependency_overrides[dependencies.get_clock] = lambda: clock
    app.dependency_overrides[dependencies.get_db] = lambda: db_mock
    app.dependency_overrides[dependencies.get_reconciliation_engine] = lambda: engine_mock
    app.dependency_overrides[dependencies.get_appointment_store] = lambda: store_mock
    app.dependency_overrides[dependencies.get_capacity_manager] = lambda: capacity_mock

    # Without entering the context manager the lifespan (init_db) does not run
    return TestClient(app, raise_server_exceptions=False)


AUTH = {"X-API-Key": "secret"}


# ============================================================================
# Health
# ============================================================================


class TestHealth:
    """Tests for the health endpoint."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["business_date"] == TODAY.isoformat()
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["rejection_webhook"] == "configured"

    def test_database_down(self, client, db_mock):
        db_mock.execute.side_effect = ConnectionError("refused")

        data = client.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["checks"]["database"].startswith("error:")


# ============================================================================
# Reconciliation
# ============================================================================


class TestStatusUpdate:
    """Tests for POST /api/v1/appointments/status-update."""

    def test_requires_api_key(self, client, engine_mock):
        response = client.post(
            "/api/v1/appointments/status-update",
            json={"feed_rows": [feed_row("91234567", code="P")]},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"
        engine_mock.run.assert_not_called()

    def test_rows_required(self, client, engine_mock):
        response = client.post(
            "/api/v1/appointments/status-update",
            json={"mode": "end_of_day", "feed_rows": []},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert "end_of_day" in response.json()["message"]
        engine_mock.run.assert_not_called()

    def test_runs_engine(self, client, engine_mock):
        rows = [feed_row("91234567", code="P")]

        response = client.post(
            "/api/v1/appointments/status-update",
            json={"rows": rows, "threshold_hours": 2.5, "actor_id": "sheet-sync"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json()["summary"]["updated"] == 1
        engine_mock.run.assert_awaited_once_with(
            rows, mode="realtime", threshold_hours=2.5, actor_id="sheet-sync", day=None
        )

    def test_threshold_must_be_positive(self, client):
        response = client.post(
            "/api/v1/appointments/status-update",
            json={"feed_rows": [feed_row("91234567")], "threshold_hours": 0},
            headers=AUTH,
        )

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "threshold_hours"

    def test_unknown_mode_rejected(self, client):
        response = client.post(
            "/api/v1/appointments/status-update",
            json={"feed_rows": [feed_row("91234567")], "mode": "weekly"},
            headers=AUTH,
        )

        assert response.status_code == 422

    def test_database_error_is_503(self, client, engine_mock):
        from lead_crm.core.exceptions import DatabaseError

        engine_mock.run.side_effect = DatabaseError("Database unavailable during reconciliation")

        response = client.post(
            "/api/v1/appointments/status-update",
            json={"feed_rows": [feed_row("91234567")]},
            headers=AUTH,
        )

        assert response.status_code == 503
        assert response.json()["error"] == "DATABASE_ERROR"

    def test_database_error_hides_cause(self, client, engine_mock):
        from lead_crm.core.exceptions import DatabaseError

        engine_mock.run.side_effect = DatabaseError(
            "Could not commit reconciliation pass", cause=OSError("disk I/O error")
        )

        response = client.post(
            "/api/v1/appointments/status-update",
            json={"feed_rows": [feed_row("91234567")]},
            headers=AUTH,
        )

        assert response.status_code == 503
        assert response.json() == {
            "error": "DATABASE_ERROR",
            "message": "Could not commit reconciliation pass",
        }


class TestErrorResponses:
    """Error bodies outside the domain errors."""

    def test_unknown_path(self, client):
        response = client.get("/api/v1/nowhere")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_wrong_method(self, client):
        response = client.get("/api/v1/appointments/status-update", headers=AUTH)

        assert response.status_code == 405
        assert response.json()["error"] == "method_not_allowed"

    def test_unexpected_exception_is_500(self, client, engine_mock):
        engine_mock.run.side_effect = RuntimeError("boom")

        response = client.post(
            "/api/v1/appointments/status-update",
            json={"feed_rows": [feed_row("91234567")]},
            headers=AUTH,
        )

        assert response.status_code == 500
        assert response.json() == {"error": "internal_error", "message": "boom"}


class TestMissed:
    """Tests for the missed sweep and report."""

    def test_sweep_without_body(self, client, engine_mock):
        response = client.post("/api/v1/appointments/missed/sweep", headers=AUTH)

        assert response.status_code == 200
        engine_mock.sweep_missed.assert_awaited_once_with(
            threshold_hours=None, actor_id=None, day=None
        )

    def test_list_missed(self, client, engine_mock):
        engine_mock.list_missed.return_value = [
            {
                "kind": "prospect",
                "appointment_id": str(uuid4()),
                "owner_id": str(uuid4()),
                "owner_name": "Tan Wei Ming",
                "phone_number": "+6591234567",
                "owner_status": "missed/RS",
                "appointment_time": "2024-05-10 08:00",
                "notes": "Missed sweep: Missed - no outcome 3.8h after start (threshold 3h)",
            }
        ]

        response = client.get("/api/v1/appointments/missed", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["day"] == TODAY.isoformat()
        assert data["total"] == 1
        assert data["appointments"][0]["owner_status"] == "missed/RS"


# ============================================================================
# Appointments
# ============================================================================


class TestAppointments:
    """Tests for appointment management endpoints."""

    def test_create(self, client, store_mock):
        owner_id, slot_id = uuid4(), uuid4()
        appointment = MagicMock()
        appointment.to_dict.return_value = {"id": "a1", "status": "upcoming"}
        store_mock.create.return_value = appointment

        response = client.post(
            "/api/v1/appointments",
            json={
                "kind": "prospect",
                "owner_id": str(owner_id),
                "slot_id": str(slot_id),
                "actor_id": "agent-7",
            },
        )

        assert response.status_code == 201
        assert response.json()["status"] == "upcoming"
        store_mock.create.assert_awaited_once()
        assert store_mock.create.await_args.kwargs["allow_overbook"] is False

    def test_full_slot_is_409(self, client, store_mock):
        from lead_crm.core.exceptions import CapacityExceededError

        store_mock.create.side_effect = CapacityExceededError(
            "Timeslot is full", details={"max_capacity": 1, "occupied_count": 1}
        )

        response = client.post(
            "/api/v1/appointments",
            json={
                "kind": "customer",
                "owner_id": str(uuid4()),
                "slot_id": str(uuid4()),
                "actor_id": "agent-7",
            },
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "CAPACITY_EXCEEDED"
        assert body["details"]["max_capacity"] == 1

    def test_unknown_appointment_is_404(self, client, store_mock):
        from lead_crm.core.exceptions import AppointmentNotFoundError

        store_mock.get.side_effect = AppointmentNotFoundError("Appointment not found")

        response = client.get(f"/api/v1/appointments/prospect/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "APPOINTMENT_NOT_FOUND"

    def test_unknown_kind_is_422(self, client):
        response = client.get(f"/api/v1/appointments/vendor/{uuid4()}")

        assert response.status_code == 422

    def test_manual_status(self, client, store_mock):
        change = MagicMock()
        change.to_dict.return_value = {"new_status": "done", "changed": True}
        store_mock.set_status.return_value = change
        appointment_id = uuid4()

        response = client.post(
            f"/api/v1/appointments/prospect/{appointment_id}/status",
            json={"status": "done", "actor_id": "agent-7", "outcome_code": "P"},
        )

        assert response.status_code == 200
        args = store_mock.set_status.await_args
        outcome = args.args[2]
        assert outcome.status.value == "done"
        assert outcome.owner_status.value == "done"
        assert outcome.code == "P"
        assert args.kwargs["note_prefix"] == "Manual"

    def test_terminal_status_is_409(self, client, store_mock):
        from lead_crm.core.exceptions import InvalidTransitionError

        store_mock.set_status.side_effect = InvalidTransitionError(
            "Cannot change appointment from done to missed"
        )

        response = client.post(
            f"/api/v1/appointments/prospect/{uuid4()}/status",
            json={"status": "missed", "actor_id": "agent-7"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_move(self, client, store_mock):
        moved = MagicMock()
        moved.to_dict.return_value = {"moved": True}
        store_mock.transfer.move_appointment.return_value = moved
        appointment_id, slot_id = uuid4(), uuid4()

        response = client.post(
            f"/api/v1/appointments/customer/{appointment_id}/move",
            json={"slot_id": str(slot_id), "actor_id": "agent-7"},
        )

        assert response.status_code == 200
        store_mock.transfer.move_appointment.assert_awaited_once()
        call = store_mock.transfer.move_appointment.await_args
        assert call.args[1:] == (appointment_id, slot_id, "agent-7")
        assert call.kwargs["allow_overbook"] is True

    def test_cancel(self, client, store_mock):
        change = MagicMock()
        change.to_dict.return_value = {"new_status": "cancelled"}
        store_mock.cancel.return_value = change

        response = client.post(
            f"/api/v1/appointments/prospect/{uuid4()}/cancel",
            json={"actor_id": "agent-7", "reason": "Customer asked"},
        )

        assert response.status_code == 200
        assert store_mock.cancel.await_args.kwargs["reason"] == "Customer asked"

    def test_actor_required(self, client):
        response = client.post(
            f"/api/v1/appointments/prospect/{uuid4()}/cancel",
            json={"actor_id": ""},
        )

        assert response.status_code == 422


# ============================================================================
# Timeslots
# ============================================================================


class TestTimeslots:
    """Tests for timeslot endpoints."""

    def test_list_for_day(self, client, capacity_mock):
        slot = MagicMock()
        slot.to_dict.return_value = {"start_time": "10:00"}
        capacity_mock.slots.list_for_day.return_value = [slot]

        response = client.get("/api/v1/timeslots", params={"day": "2024-05-11"})

        assert response.status_code == 200
        assert response.json()["total"] == 1
        capacity_mock.slots.list_for_day.assert_awaited_once()

    def test_nearest_not_found(self, client):
        response = client.get("/api/v1/timeslots/nearest")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "SLOT_NOT_FOUND"
        assert body["details"]["horizon_days"] == 7

    def test_nearest_found(self, client, capacity_mock):
        slot = MagicMock()
        slot.to_dict.return_value = {"date": "2024-05-13", "start_time": "10:00"}
        capacity_mock.find_nearest.return_value = slot

        response = client.get("/api/v1/timeslots/nearest", params={"day": "2024-05-11"})

        assert response.status_code == 200
        assert response.json()["date"] == "2024-05-13"

    def test_available_not_found(self, client):
        response = client.get("/api/v1/timeslots/available")

        assert response.status_code == 404
