"""Rejection webhook dispatcher.

When an appointment resolves with the R code during a realtime pass, an
external workflow is told about it over HTTP. Delivery is best-effort:
the pass is committed before any webhook is sent, and a webhook failure
never rolls back the status change.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from lead_crm.core.clock import Clock
from lead_crm.core.exceptions import NotificationDeliveryError
from lead_crm.core.logging import get_logger
from lead_crm.core.phone import PhoneNormalizer
from lead_crm.db.models.appointments import AppointmentKind

log = get_logger(__name__)

# Identifier field names the receiving workflow expects per kind
_PAYLOAD_KEYS = {
    AppointmentKind.PROSPECT: ("lead_id", "lead_name", "lead"),
    AppointmentKind.CUSTOMER: ("borrower_id", "borrower_name", "borrower"),
}


@dataclass
class NotificationResult:
    """Outcome of one notification attempt.

    status is one of: called, failed, skipped.
    """

    status: str
    status_code: int | None = None
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status == "called"


class RejectionNotifier:
    """Posts rejection events to the configured webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        clock: Clock,
        normalizer: PhoneNormalizer | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the notifier.

        Args:
            webhook_url: Endpoint to POST to (empty disables delivery)
            clock: Source of the event timestamp
            normalizer: Phone normalizer for the payload's local number
            timeout: HTTP request timeout in seconds
            client: Preconfigured HTTP client
        """
        self.webhook_url = webhook_url
        self.clock = clock
        self.normalizer = normalizer or PhoneNormalizer()
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def build_payload(
        self,
        kind: AppointmentKind,
        owner: Any,
        appointment_id: Any,
        code: str,
    ) -> dict[str, Any]:
        """Webhook body for a rejected appointment."""
        id_key, name_key, type_label = _PAYLOAD_KEYS[AppointmentKind(kind)]
        return {
            "phone_number": self.normalizer.local_part(owner.phone_number),
            id_key: str(owner.id),
            name_key: owner.full_name,
            "appointment_id": str(appointment_id),
            "code": code,
            "appointment_type": type_label,
            "timestamp": self.clock.now_utc().isoformat(),
        }

    async def send(self, payload: dict[str, Any]) -> int:
        """POST a payload.

        Returns:
            HTTP status code

        Raises:
            NotificationDeliveryError: Timeout, transport error or non-2xx
        """
        try:
            response = await self._client.post(self.webhook_url, json=payload)
        except httpx.TimeoutException as e:
            raise NotificationDeliveryError(
                "Rejection webhook timed out", details={"url": self.webhook_url}, cause=e
            ) from e
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(
                "Rejection webhook request failed", details={"url": self.webhook_url}, cause=e
            ) from e

        if not response.is_success:
            raise NotificationDeliveryError(
                f"Rejection webhook returned HTTP {response.status_code}",
                details={"url": self.webhook_url, "status_code": response.status_code},
            )
        return response.status_code

    async def notify_rejection(
        self,
        kind: AppointmentKind,
        owner: Any,
        appointment_id: Any,
        code: str = "R",
    ) -> NotificationResult:
        """Send a rejection event; failures are logged and returned, not raised."""
        if not self.enabled:
            log.warning(
                "Rejection webhook URL not configured",
                owner_id=str(owner.id),
                appointment_id=str(appointment_id),
            )
            return NotificationResult(status="skipped", error="webhook URL not configured")

        payload = self.build_payload(kind, owner, appointment_id, code)
        if not payload["phone_number"]:
            log.warning("No phone number for rejection webhook", owner_id=str(owner.id))
            return NotificationResult(status="skipped", error="owner has no phone number")

        try:
            status_code = await self.send(payload)
        except NotificationDeliveryError as e:
            log.error(
                "Rejection webhook failed",
                error=str(e),
                owner_id=str(owner.id),
                appointment_id=str(appointment_id),
            )
            return NotificationResult(
                status="failed",
                status_code=e.details.get("status_code"),
                error=e.message,
            )

        log.info(
            "Rejection webhook called",
            owner_id=str(owner.id),
            appointment_id=str(appointment_id),
            status_code=status_code,
        )
        return NotificationResult(status="called", status_code=status_code)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "RejectionNotifier":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
