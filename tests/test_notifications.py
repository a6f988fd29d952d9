"""Tests for the rejection webhook notifier."""

from __future__ import annotations

import json
from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest

from lead_crm.db.models.appointments import AppointmentKind

from factories import WEBHOOK_URL


def _owner(name: str = "Tan Wei Ming", phone: str | None = "+6591234567"):
    return SimpleNamespace(id=uuid4(), full_name=name, phone_number=phone)


class TestPayload:
    """Tests for webhook payload shape."""

    def test_prospect_payload(self, notifier):
        owner = _owner()
        appointment_id = uuid4()

        payload = notifier.build_payload(AppointmentKind.PROSPECT, owner, appointment_id, "R")

        assert payload["phone_number"] == "91234567"
        assert payload["lead_id"] == str(owner.id)
        assert payload["lead_name"] == "Tan Wei Ming"
        assert payload["appointment_id"] == str(appointment_id)
        assert payload["appointment_type"] == "lead"
        assert payload["code"] == "R"
        assert payload["timestamp"].startswith("2024-05-10T03:45")

    def test_customer_payload(self, notifier):
        payload = notifier.build_payload(AppointmentKind.CUSTOMER, _owner(), uuid4(), "R")

        assert "borrower_id" in payload
        assert "borrower_name" in payload
        assert payload["appointment_type"] == "borrower"


class TestNotifyRejection:
    """Tests for delivery outcomes."""

    @pytest.mark.asyncio
    async def test_delivered(self, notifier, webhook_calls):
        result = await notifier.notify_rejection(AppointmentKind.PROSPECT, _owner(), uuid4())

        assert result.delivered
        assert result.status_code == 200
        assert len(webhook_calls) == 1
        assert webhook_calls[0]["code"] == "R"

    @pytest.mark.asyncio
    async def test_http_error_is_reported_not_raised(self, notifier, webhook_status):
        webhook_status["code"] = 500

        result = await notifier.notify_rejection(AppointmentKind.PROSPECT, _owner(), uuid4())

        assert result.status == "failed"
        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_timeout_is_reported_not_raised(self, clock):
        from lead_crm.services.notifications import RejectionNotifier

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with RejectionNotifier(
            WEBHOOK_URL,
            clock=clock,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ) as notifier:
            result = await notifier.notify_rejection(AppointmentKind.CUSTOMER, _owner(), uuid4())

        assert result.status == "failed"
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_send_raises_delivery_error(self, notifier, webhook_status):
        from lead_crm.core.exceptions import NotificationDeliveryError

        webhook_status["code"] = 404

        with pytest.raises(NotificationDeliveryError) as exc_info:
            await notifier.send({"code": "R"})

        assert exc_info.value.details["status_code"] == 404
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_missing_url_skips(self, clock, webhook_calls):
        from lead_crm.services.notifications import RejectionNotifier

        async with RejectionNotifier("", clock=clock) as notifier:
            result = await notifier.notify_rejection(AppointmentKind.PROSPECT, _owner(), uuid4())

        assert result.status == "skipped"
        assert webhook_calls == []

    @pytest.mark.asyncio
    async def test_owner_without_phone_skips(self, notifier, webhook_calls):
        result = await notifier.notify_rejection(
            AppointmentKind.PROSPECT, _owner(phone=None), uuid4()
        )

        assert result.status == "skipped"
        assert webhook_calls == []

    @pytest.mark.asyncio
    async def test_request_body_is_json(self, clock):
        from lead_crm.services.notifications import RejectionNotifier

        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with RejectionNotifier(
            WEBHOOK_URL,
            clock=clock,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ) as notifier:
            result = await notifier.notify_rejection(AppointmentKind.PROSPECT, _owner(), uuid4())

        assert result.delivered
        assert str(seen[0].url) == WEBHOOK_URL
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content)["appointment_type"] == "lead"
