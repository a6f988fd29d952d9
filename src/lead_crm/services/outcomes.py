"""Appointment state-transition table and outcome codes.

Every trigger (feed reconciliation, elapsed-time sweep, manual API call)
resolves to an `Outcome` from this module and applies it through
AppointmentStore.set_status, so the appointment and its owner record
are always updated by the same rules.

Outcome codes reported by the attendance feed:

    P    attended, loan completed          -> done, owner done
    PRS  approved but customer rejected    -> done, owner done
    RS   rejected by system                -> done, owner missed/RS
    R    rejected                          -> done, owner done, notify
"""
from __future__ import annotations

from dataclasses import dataclass

from lead_crm.core.exceptions import InvalidTransitionError
from lead_crm.db.models.appointments import (
    TERMINAL_STATUSES,
    AppointmentStatus,
    OwnerStatus,
)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.UPCOMING: frozenset(
        {AppointmentStatus.DONE, AppointmentStatus.MISSED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.DONE: frozenset(),
    AppointmentStatus.MISSED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Owner status mirrored on manual transitions
DEFAULT_OWNER_STATUS: dict[AppointmentStatus, OwnerStatus] = {
    AppointmentStatus.UPCOMING: OwnerStatus.BOOKED,
    AppointmentStatus.DONE: OwnerStatus.DONE,
    AppointmentStatus.MISSED: OwnerStatus.FOLLOW_UP,
    AppointmentStatus.CANCELLED: OwnerStatus.ASSIGNED,
}


@dataclass(frozen=True)
class Outcome:
    """Target state of an appointment and its owner.

    `code` and `outcome_notes` of None leave the stored values alone.
    """

    status: AppointmentStatus
    owner_status: OwnerStatus
    code: str | None = None
    outcome_notes: str | None = None
    history_note: str | None = None
    notify_rejection: bool = False


def check_transition(current: str, target: AppointmentStatus | str) -> bool:
    """Validate a status change.

    Returns:
        True for a real transition, False when `target` equals the
        current state (re-application, outcome metadata only)

    Raises:
        InvalidTransitionError: current state does not allow `target`
    """
    current_status = AppointmentStatus(current)
    target_status = AppointmentStatus(target)

    if current_status == target_status:
        return False
    if target_status in ALLOWED_TRANSITIONS[current_status]:
        return True

    raise InvalidTransitionError(
        f"Cannot change appointment from {current_status.value} to {target_status.value}",
        details={
            "current": current_status.value,
            "target": target_status.value,
            "terminal": current_status in TERMINAL_STATUSES,
        },
    )


def _join(*parts: str | None) -> str:
    return " - ".join(p for p in parts if p)


def outcome_for_code(
    code: str | None,
    *,
    rs_type: str | None = None,
    rs_detail: str | None = None,
) -> Outcome | None:
    """Map a feed outcome code to its Outcome.

    Args:
        code: Outcome code as reported (case and whitespace ignored)
        rs_type: Reason category for RS rows
        rs_detail: Free-text reason for RS rows

    Returns:
        Outcome, or None for blank/unknown codes (not yet resolved)
    """
    normalized = (code or "").strip().upper()

    if normalized == "P":
        return Outcome(
            status=AppointmentStatus.DONE,
            owner_status=OwnerStatus.DONE,
            code="P",
            outcome_notes="Done",
            history_note="P - Completed",
        )
    if normalized == "PRS":
        return Outcome(
            status=AppointmentStatus.DONE,
            owner_status=OwnerStatus.DONE,
            code="PRS",
            outcome_notes="Customer Rejected",
            history_note="PRS - Customer Rejected",
        )
    if normalized == "RS":
        reason = _join("Rejected by System", rs_type, rs_detail)
        return Outcome(
            status=AppointmentStatus.DONE,
            owner_status=OwnerStatus.MISSED_RS,
            code="RS",
            outcome_notes=reason,
            history_note=f"RS - {reason}",
        )
    if normalized == "R":
        return Outcome(
            status=AppointmentStatus.DONE,
            owner_status=OwnerStatus.DONE,
            code="R",
            outcome_notes="Rejected",
            history_note="R - Rejected",
            notify_rejection=True,
        )
    return None


ATTENDED = Outcome(
    status=AppointmentStatus.DONE,
    owner_status=OwnerStatus.DONE,
    history_note="Attended, awaiting outcome code",
)


def missed_after(hours_since_start: float, threshold_hours: float) -> Outcome:
    """Outcome of the elapsed-time rule.

    The owner gets missed/RS, the same value the RS code produces.
    """
    return Outcome(
        status=AppointmentStatus.MISSED,
        owner_status=OwnerStatus.MISSED_RS,
        history_note=(
            f"Missed - no outcome {hours_since_start:.1f}h after start "
            f"(threshold {threshold_hours:g}h)"
        ),
    )


def manual_outcome(
    status: AppointmentStatus | str,
    *,
    owner_status: OwnerStatus | str | None = None,
    code: str | None = None,
    outcome_notes: str | None = None,
    note: str | None = None,
) -> Outcome:
    """Outcome for an agent-initiated status change."""
    target = AppointmentStatus(status)
    return Outcome(
        status=target,
        owner_status=OwnerStatus(owner_status) if owner_status else DEFAULT_OWNER_STATUS[target],
        code=code,
        outcome_notes=outcome_notes,
        history_note=note,
    )
