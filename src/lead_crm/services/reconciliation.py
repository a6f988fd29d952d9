"""Appointment status reconciliation.

Merges three signals about the same appointment into one status:

1. An attendance-feed row with an outcome code (highest precedence)
2. The elapsed-time rule: still upcoming `threshold_hours` after start
3. The feed's attendance marker when no code has been recorded yet

Modes:
- realtime: today's feed rows create, move and resolve appointments,
  then the elapsed-time rule sweeps whatever is still upcoming today
- end_of_day: refines owner outcome fields of today's done appointments
  from the feed's codes; no elapsed-time rule
- sweep: elapsed-time rule only, no feed

Every row runs in its own SAVEPOINT. A failing row is rolled back and
reported; the pass continues. Rejection webhooks (realtime only) are
queued and sent once the pass has been committed.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.config import Settings
from lead_crm.core.clock import Clock
from lead_crm.core.exceptions import (
    DatabaseError,
    InvalidTransitionError,
    LeadCrmError,
    OwnerNotFoundError,
)
from lead_crm.core.logging import get_logger
from lead_crm.core.phone import PhoneNormalizer
from lead_crm.db.models.appointments import (
    AppointmentKind,
    AppointmentStatus,
    OwnerStatus,
)
from lead_crm.db.models.crm import ProspectModel
from lead_crm.db.repositories.appointments import AppointmentRepository
from lead_crm.db.repositories.owners import OwnerRepository
from lead_crm.services.appointment_store import AppointmentStore, StatusChange
from lead_crm.services.capacity import TimeslotCapacityManager
from lead_crm.services.feed import (
    AttendanceRow,
    FeedMatch,
    FeedMatcher,
    parse_reported_date,
)
from lead_crm.services.notifications import RejectionNotifier
from lead_crm.services.outcomes import (
    ATTENDED,
    Outcome,
    missed_after,
    outcome_for_code,
)

log = get_logger(__name__)


class ReconciliationMode(str, Enum):
    """How a reconciliation pass treats its input."""

    REALTIME = "realtime"
    END_OF_DAY = "end_of_day"
    SWEEP = "sweep"


_NOTE_PREFIX = {
    ReconciliationMode.REALTIME: "Real-time",
    ReconciliationMode.END_OF_DAY: "End-of-day",
    ReconciliationMode.SWEEP: "Missed sweep",
}

# Rows that never reached processing count as errors, not skips
_ERROR_ACTIONS = frozenset({"error", "skip_invalid_row"})


@dataclass
class RowResult:
    """Per-row (or per-appointment) outcome of a pass."""

    action: str
    kind: str | None = None
    row_number: int | None = None
    appointment_id: str | None = None
    owner_id: str | None = None
    owner_name: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    old_owner_status: str | None = None
    new_owner_status: str | None = None
    reason_text: str = ""
    appointment_time: str | None = None
    hours_since_start: float | None = None
    notification: str | None = None
    error: str | None = None

    @property
    def skipped(self) -> bool:
        return self.action.startswith("skip_")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciliationResult:
    """Summary of one pass."""

    mode: str
    day: date
    threshold_hours: float | None
    actor_id: str
    received: int = 0
    in_scope: int = 0
    out_of_scope: int = 0
    processed: int = 0
    updated: int = 0
    created_owners: int = 0
    created_appointments: int = 0
    moved: int = 0
    skipped: int = 0
    errors: int = 0
    notifications: int = 0
    rows: list[RowResult] = field(default_factory=list)

    def record(self, row: RowResult) -> RowResult:
        self.rows.append(row)
        if row.action in _ERROR_ACTIONS:
            self.errors += 1
        elif row.skipped:
            self.skipped += 1
        return row

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "day": self.day.isoformat(),
            "threshold_hours": self.threshold_hours,
            "actor_id": self.actor_id,
            "summary": {
                "received": self.received,
                "in_scope": self.in_scope,
                "out_of_scope": self.out_of_scope,
                "processed": self.processed,
                "updated": self.updated,
                "created_owners": self.created_owners,
                "created_appointments": self.created_appointments,
                "moved": self.moved,
                "skipped": self.skipped,
                "errors": self.errors,
                "notifications": self.notifications,
            },
            "results": [row.to_dict() for row in self.rows],
        }


@dataclass
class _PendingNotification:
    kind: AppointmentKind
    owner: Any
    appointment_id: Any
    code: str


@dataclass
class _PassState:
    """Bookkeeping that keeps one pass idempotent."""

    mode: ReconciliationMode
    day: date
    threshold_hours: float | None
    actor_id: str
    result: ReconciliationResult
    # (kind, appointment_id) already evaluated by a feed row
    seen: set[tuple[str, Any]] = field(default_factory=set)
    notified: set[tuple[str, Any]] = field(default_factory=set)
    # Webhooks held back until the pass commits
    outbox: list[tuple[RowResult, _PendingNotification]] = field(default_factory=list)

    @property
    def note_prefix(self) -> str:
        return _NOTE_PREFIX[self.mode]


class ReconciliationEngine:
    """Runs reconciliation passes.

    Usage:
        engine = ReconciliationEngine(session, clock, settings, notifier=notifier)
        result = await engine.run(rows, mode="realtime", threshold_hours=2.5)
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        settings: Settings,
        *,
        notifier: RejectionNotifier | None = None,
        normalizer: PhoneNormalizer | None = None,
    ):
        self.session = session
        self.clock = clock
        self.settings = settings
        self.config = settings.reconciliation
        self.notifier = notifier
        self.normalizer = normalizer or PhoneNormalizer(
            settings.phone.country_code, settings.phone.local_length
        )
        self.capacity = TimeslotCapacityManager(
            session, horizon_days=self.config.nearest_slot_horizon_days
        )
        self.store = AppointmentStore(session, clock, capacity=self.capacity)
        self.matcher = FeedMatcher(session, clock, self.normalizer, self.config)

    # ========================================================================
    # Entry points
    # ========================================================================

    async def run(
        self,
        rows: Sequence[AttendanceRow | dict[str, Any]],
        *,
        mode: ReconciliationMode | str,
        threshold_hours: float | None = None,
        actor_id: str | None = None,
        day: date | None = None,
    ) -> ReconciliationResult:
        """Reconcile a feed batch.

        Args:
            rows: Feed rows (models or raw dicts)
            mode: realtime or end_of_day
            threshold_hours: Elapsed-time rule threshold (realtime only)
            actor_id: Recorded as updated_by on every change
            day: Target local date (defaults to today)

        Returns:
            Pass summary with per-row results
        """
        mode = ReconciliationMode(mode)
        if mode == ReconciliationMode.SWEEP:
            return await self.sweep_missed(
                threshold_hours=threshold_hours, actor_id=actor_id, day=day
            )

        state = self._start(mode, day, threshold_hours, actor_id)
        state.result.received = len(rows)
        feed = self._parse_rows(rows, state)

        log.info(
            "Reconciliation pass started",
            mode=mode.value,
            day=state.day.isoformat(),
            rows=len(feed),
            threshold_hours=state.threshold_hours,
            actor_id=state.actor_id,
        )

        if mode == ReconciliationMode.REALTIME:
            await self._run_realtime(feed, state)
        else:
            await self._run_end_of_day(feed, state)

        await self._commit_and_notify(state)
        return self._finish(state)

    def _parse_rows(
        self, rows: Sequence[AttendanceRow | dict[str, Any]], state: _PassState
    ) -> list[AttendanceRow]:
        """Validate rows one by one; a malformed row is recorded and dropped."""
        feed: list[AttendanceRow] = []
        for index, raw in enumerate(rows):
            try:
                row = raw if isinstance(raw, AttendanceRow) else AttendanceRow.model_validate(raw)
            except ValidationError as e:
                first = e.errors()[0]
                location = ".".join(str(part) for part in first["loc"]) or "row"
                log.warning(
                    "Feed row rejected",
                    row_number=index + 1,
                    error=first["msg"],
                    field=location,
                )
                state.result.record(
                    RowResult(
                        action="skip_invalid_row",
                        row_number=index + 1,
                        reason_text="Row failed validation",
                        error=f"{location}: {first['msg']}",
                    )
                )
                continue
            if row.row_number is None:
                row = row.model_copy(update={"row_number": index + 1})
            feed.append(row)
        return feed

    async def sweep_missed(
        self,
        *,
        threshold_hours: float | None = None,
        actor_id: str | None = None,
        day: date | None = None,
    ) -> ReconciliationResult:
        """Apply the elapsed-time rule to every upcoming appointment of a day."""
        state = self._start(ReconciliationMode.SWEEP, day, threshold_hours, actor_id)
        log.info(
            "Missed sweep started",
            day=state.day.isoformat(),
            threshold_hours=state.threshold_hours,
        )
        await self._sweep_threshold(state)
        await self._commit_and_notify(state)
        return self._finish(state)

    async def list_missed(self, day: date | None = None) -> list[dict[str, Any]]:
        """Missed appointments of a local day with their owners, earliest first."""
        target = day or self.clock.today()
        start, end = self.clock.day_bounds_utc(target)

        report: list[dict[str, Any]] = []
        for kind in AppointmentKind:
            appointments = AppointmentRepository(self.session, kind)
            owners = OwnerRepository(self.session, kind, self.normalizer)
            for appointment in await appointments.in_window(
                start, end, status=AppointmentStatus.MISSED.value
            ):
                owner = await owners.get(appointment.owner_id)
                report.append(
                    {
                        "kind": kind.value,
                        "appointment_id": str(appointment.id),
                        "owner_id": str(appointment.owner_id),
                        "owner_name": owner.full_name if owner else None,
                        "phone_number": owner.phone_number if owner else None,
                        "owner_status": owner.status if owner else None,
                        "appointment_time": self.clock.format_local(appointment.start_datetime),
                        "notes": appointment.notes,
                        "_start": self.clock.as_utc(appointment.start_datetime),
                    }
                )

        report.sort(key=lambda item: item.pop("_start"))
        return report

    # ========================================================================
    # Realtime
    # ========================================================================

    async def _run_realtime(self, feed: list[AttendanceRow], state: _PassState) -> None:
        scoped = self.matcher.scope(feed, state.day)
        result = state.result
        result.in_scope = len(scoped.in_scope)
        result.out_of_scope = scoped.out_of_scope

        for index, row, error in scoped.invalid:
            log.warning(
                "Feed row skipped",
                row_number=self._row_number(row, index),
                error=str(error),
                error_type=type(error).__name__,
            )
            result.record(
                RowResult(
                    action="skip_invalid_date",
                    row_number=self._row_number(row, index),
                    owner_name=row.full_name,
                    reason_text="Reported date could not be parsed",
                    error=error.message,
                )
            )

        for index, row in scoped.in_scope:
            result.processed += 1
            await self._guarded(
                state,
                self._realtime_row(row, state),
                row_number=self._row_number(row, index),
                owner_name=row.full_name,
            )

        await self._sweep_threshold(state)

    async def _realtime_row(
        self, row: AttendanceRow, state: _PassState
    ) -> tuple[RowResult, _PendingNotification | None]:
        if not self.normalizer.digits(row.mobile_number):
            return RowResult(action="skip_no_phone", reason_text="Row has no phone number"), None

        match = await self.matcher.match(row, state.day)
        if match.appointment is not None:
            state.seen.add((match.kind.value, match.appointment.id))

        if match.kind == AppointmentKind.CUSTOMER:
            return await self._existing_customer_row(match, state)
        return await self._new_customer_row(match, state)

    async def _new_customer_row(
        self, match: FeedMatch, state: _PassState
    ) -> tuple[RowResult, _PendingNotification | None]:
        row = match.row
        kind = match.kind
        attended = self.matcher.has_attendance(row)
        code_outcome = self._code_outcome(row)

        if match.owner is None:
            if not attended:
                return (
                    RowResult(
                        action="skip_no_attendance",
                        kind=kind.value,
                        reason_text="Unknown phone and no attendance recorded",
                    ),
                    None,
                )
            owner = await self._create_prospect(row, state)
            appointment = await self._book(kind, owner, row, state)
            if appointment is None:
                return self._no_slot(kind, owner, state), None
            return await self._resolve(
                kind, owner, appointment, code_outcome or ATTENDED, state,
                action="created", reason="New prospect and appointment created from feed",
            )

        if match.appointment is None:
            upcoming = await AppointmentRepository(self.session, kind).upcoming_for_owner(
                match.owner.id
            )
            if upcoming:
                if not attended:
                    return (
                        self._base(
                            "skip_move_no_attendance", kind, match.owner, upcoming[0],
                            "Upcoming appointment on another day left untouched",
                        ),
                        None,
                    )
                slot = await self.capacity.find_nearest(state.day)
                if slot is None:
                    return self._no_slot(kind, match.owner, state), None
                await self.store.transfer.move_appointment(
                    kind, upcoming[0].id, slot.id, state.actor_id
                )
                state.result.moved += 1
                state.seen.add((kind.value, upcoming[0].id))
                return await self._resolve(
                    kind, match.owner, upcoming[0], code_outcome or ATTENDED, state,
                    action="moved", reason="Appointment moved to today",
                )

            if not attended:
                return (
                    self._base(
                        "skip_create_no_attendance", kind, match.owner, None,
                        "No appointment and no attendance recorded",
                    ),
                    None,
                )
            appointment = await self._book(kind, match.owner, row, state)
            if appointment is None:
                return self._no_slot(kind, match.owner, state), None
            return await self._resolve(
                kind, match.owner, appointment, code_outcome or ATTENDED, state,
                action="created", reason="Appointment created for existing prospect",
            )

        return await self._resolve_today(match, code_outcome, attended, state)

    async def _existing_customer_row(
        self, match: FeedMatch, state: _PassState
    ) -> tuple[RowResult, _PendingNotification | None]:
        kind = match.kind
        if match.owner is None:
            error = OwnerNotFoundError(
                "No customer matches the reported phone number",
                details={"phone": match.row.mobile_number},
            )
            return (
                RowResult(
                    action="skip_owner_not_found",
                    kind=kind.value,
                    reason_text="Reloan row without a matching customer",
                    error=error.message,
                ),
                None,
            )
        if match.appointment is None:
            return (
                self._base(
                    "skip_no_appointment_today", kind, match.owner, None,
                    "Customer has no appointment today",
                ),
                None,
            )

        return await self._resolve_today(
            match, self._code_outcome(match.row), self.matcher.has_attendance(match.row), state
        )

    async def _resolve_today(
        self,
        match: FeedMatch,
        code_outcome: Outcome | None,
        attended: bool,
        state: _PassState,
    ) -> tuple[RowResult, _PendingNotification | None]:
        """Resolve an appointment scheduled on the pass's day."""
        kind, owner, appointment = match.kind, match.owner, match.appointment

        if code_outcome is not None:
            return await self._resolve(
                kind, owner, appointment, code_outcome, state,
                action="updated", reason=f"Feed code {code_outcome.code}",
            )
        if attended:
            return await self._resolve(
                kind, owner, appointment, ATTENDED, state,
                action="updated", reason="Attendance recorded, no code yet",
            )

        missed = await self._apply_threshold(kind, owner, appointment, state)
        if missed is not None:
            return missed, None
        return (
            self._base(
                "no_change", kind, owner, appointment,
                "No code or attendance yet, within threshold",
            ),
            None,
        )

    # ========================================================================
    # End of day
    # ========================================================================

    async def _run_end_of_day(self, feed: list[AttendanceRow], state: _PassState) -> None:
        result = state.result
        result.in_scope = len(feed)

        # Rows reported for the target day are matched first
        todays, others = [], []
        for row in feed:
            try:
                (todays if parse_reported_date(row.reported_date) == state.day else others).append(row)
            except LeadCrmError:
                others.append(row)
        ordered = todays + others

        start, end = self.clock.day_bounds_utc(state.day)
        for kind in AppointmentKind:
            appointments = AppointmentRepository(self.session, kind)
            for appointment in await appointments.in_window(
                start, end, status=AppointmentStatus.DONE.value
            ):
                result.processed += 1
                await self._guarded(
                    state,
                    self._end_of_day_appointment(kind, appointment.id, ordered, state),
                    kind=kind,
                )

    async def _end_of_day_appointment(
        self,
        kind: AppointmentKind,
        appointment_id: Any,
        rows: list[AttendanceRow],
        state: _PassState,
    ) -> tuple[RowResult, _PendingNotification | None]:
        appointment = await AppointmentRepository(self.session, kind).get_or_raise(appointment_id)
        owner = await OwnerRepository(self.session, kind, self.normalizer).get_or_raise(
            appointment.owner_id
        )

        row = self.matcher.row_for_owner(owner, rows)
        if row is None:
            return self._base("no_change", kind, owner, appointment, "No feed row for owner"), None

        outcome = self._code_outcome(row)
        if outcome is None:
            return (
                self._base(
                    "no_change", kind, owner, appointment,
                    f"Feed row has no usable code ({row.outcome_code or 'blank'})",
                ),
                None,
            )

        return await self._resolve(
            kind, owner, appointment, outcome, state,
            action="updated", reason=f"End-of-day code {outcome.code}",
        )

    # ========================================================================
    # Elapsed-time rule
    # ========================================================================

    async def _sweep_threshold(self, state: _PassState) -> None:
        """Mark upcoming appointments of the day missed once past threshold."""
        start, end = self.clock.day_bounds_utc(state.day)
        for kind in AppointmentKind:
            appointments = AppointmentRepository(self.session, kind)
            candidates = [
                a.id
                for a in await appointments.in_window(
                    start, end, status=AppointmentStatus.UPCOMING.value
                )
                if (kind.value, a.id) not in state.seen
            ]
            if state.mode == ReconciliationMode.SWEEP:
                state.result.processed += len(candidates)
            for appointment_id in candidates:
                await self._guarded(
                    state,
                    self._sweep_one(kind, appointment_id, state),
                    kind=kind,
                    report_noop=False,
                )

    async def _sweep_one(
        self, kind: AppointmentKind, appointment_id: Any, state: _PassState
    ) -> tuple[RowResult | None, None]:
        appointment = await AppointmentRepository(self.session, kind).get_or_raise(appointment_id)
        owner = await OwnerRepository(self.session, kind, self.normalizer).get_or_raise(
            appointment.owner_id
        )
        return await self._apply_threshold(kind, owner, appointment, state), None

    async def _apply_threshold(
        self,
        kind: AppointmentKind,
        owner: Any,
        appointment: Any,
        state: _PassState,
    ) -> RowResult | None:
        """Mark an upcoming appointment missed if it is past threshold."""
        if state.threshold_hours is None or appointment.status != AppointmentStatus.UPCOMING.value:
            return None

        hours = self.clock.hours_since(appointment.start_datetime)
        if hours < state.threshold_hours:
            return None

        try:
            change = await self.store.set_status(
                kind,
                appointment.id,
                missed_after(hours, state.threshold_hours),
                actor_id=state.actor_id,
                note_prefix=state.note_prefix,
            )
        except InvalidTransitionError:
            return None

        if change.changed:
            state.result.updated += 1
        return self._from_change(
            "missed_threshold", kind, owner, appointment, change,
            f"No outcome {hours:.2f}h after start (threshold {state.threshold_hours:g}h)",
        )

    # ========================================================================
    # Helpers
    # ========================================================================

    def _start(
        self,
        mode: ReconciliationMode,
        day: date | None,
        threshold_hours: float | None,
        actor_id: str | None,
    ) -> _PassState:
        if mode == ReconciliationMode.END_OF_DAY:
            threshold = None
        elif threshold_hours is None:
            threshold = self.config.default_threshold_hours
        else:
            threshold = threshold_hours

        target = day or self.clock.today()
        actor = actor_id or self.config.default_actor_id
        return _PassState(
            mode=mode,
            day=target,
            threshold_hours=threshold,
            actor_id=actor,
            result=ReconciliationResult(
                mode=mode.value, day=target, threshold_hours=threshold, actor_id=actor
            ),
        )

    def _finish(self, state: _PassState) -> ReconciliationResult:
        result = state.result
        log.info(
            "Reconciliation pass finished",
            mode=result.mode,
            day=result.day.isoformat(),
            processed=result.processed,
            updated=result.updated,
            created_owners=result.created_owners,
            created_appointments=result.created_appointments,
            moved=result.moved,
            skipped=result.skipped,
            errors=result.errors,
            notifications=result.notifications,
        )
        return result

    async def _guarded(
        self,
        state: _PassState,
        work: Any,
        *,
        row_number: int | None = None,
        owner_name: str | None = None,
        kind: AppointmentKind | None = None,
        report_noop: bool = True,
    ) -> None:
        """Run one unit of work in a SAVEPOINT and record its result."""
        try:
            async with self.session.begin_nested():
                row_result, pending = await work
        except (OperationalError, InterfaceError) as e:
            raise DatabaseError("Database unavailable during reconciliation", cause=e) from e
        except Exception as e:
            message = e.message if isinstance(e, LeadCrmError) else str(e)
            log.warning(
                "Reconciliation unit failed",
                row_number=row_number,
                kind=kind.value if kind else None,
                error=message,
                error_type=type(e).__name__,
            )
            state.result.record(
                RowResult(
                    action="error",
                    kind=kind.value if kind else None,
                    row_number=row_number,
                    owner_name=owner_name,
                    reason_text="Rolled back",
                    error=message,
                )
            )
            return

        if row_result is None:
            return
        row_result.row_number = row_number
        if row_result.owner_name is None:
            row_result.owner_name = owner_name

        if pending is not None:
            row_result.notification = "queued"
            state.outbox.append((row_result, pending))

        if report_noop or row_result.action != "no_change":
            state.result.record(row_result)
        log.info(
            "Reconciliation unit processed",
            action=row_result.action,
            kind=row_result.kind,
            appointment_id=row_result.appointment_id,
            owner_id=row_result.owner_id,
            new_status=row_result.new_status,
        )

    async def _commit_and_notify(self, state: _PassState) -> None:
        """Commit the pass, then deliver the queued rejection webhooks."""
        try:
            await self.session.commit()
        except (OperationalError, InterfaceError) as e:
            raise DatabaseError("Could not commit reconciliation pass", cause=e) from e

        for row_result, pending in state.outbox:
            row_result.notification = await self._notify(pending, state)
        state.outbox.clear()

    async def _notify(self, pending: _PendingNotification, state: _PassState) -> str:
        key = (pending.kind.value, pending.appointment_id)
        if key in state.notified:
            return "duplicate"
        state.notified.add(key)

        if self.notifier is None:
            return "skipped"

        outcome = await self.notifier.notify_rejection(
            pending.kind, pending.owner, pending.appointment_id, pending.code
        )
        if outcome.delivered:
            state.result.notifications += 1
        return outcome.status

    async def _resolve(
        self,
        kind: AppointmentKind,
        owner: Any,
        appointment: Any,
        outcome: Outcome,
        state: _PassState,
        *,
        action: str,
        reason: str,
    ) -> tuple[RowResult, _PendingNotification | None]:
        """Apply an outcome through the store and describe what happened."""
        try:
            change = await self.store.set_status(
                kind,
                appointment.id,
                outcome,
                actor_id=state.actor_id,
                note_prefix=state.note_prefix,
            )
        except InvalidTransitionError as e:
            row = self._base(
                "skip_terminal", kind, owner, appointment,
                f"Appointment already {appointment.status}; {reason} not applied",
            )
            row.error = e.message
            return row, None

        if change.changed:
            state.result.updated += 1
        elif action == "updated":
            action = "no_change"

        pending = None
        if (
            state.mode == ReconciliationMode.REALTIME
            and outcome.notify_rejection
            and change.changed
            and change.code_changed
        ):
            pending = _PendingNotification(kind, owner, appointment.id, outcome.code or "R")
        return self._from_change(action, kind, owner, appointment, change, reason), pending

    async def _create_prospect(self, row: AttendanceRow, state: _PassState) -> ProspectModel:
        owners = OwnerRepository(self.session, AppointmentKind.PROSPECT, self.normalizer)
        prospect = await owners.create(
            ProspectModel(
                full_name=row.full_name or "Unknown",
                phone_number=self.normalizer.canonical(row.mobile_number),
                email=row.email,
                status=OwnerStatus.NEW.value,
                source=self.config.new_prospect_source,
                lead_type="reloan" if row.is_reloan(self.config.reloan_marker) else "new",
                amount=row.amount(),
                employment_status=row.employment_type,
                loan_purpose=row.loan_purpose,
                created_by=state.actor_id,
                updated_by=state.actor_id,
            )
        )
        state.result.created_owners += 1
        log.info("Prospect created from feed", owner_id=str(prospect.id), actor_id=state.actor_id)
        return prospect

    async def _book(
        self,
        kind: AppointmentKind,
        owner: Any,
        row: AttendanceRow,
        state: _PassState,
    ) -> Any | None:
        """Create an appointment in the nearest enabled slot, overbooking if needed."""
        slot = await self.capacity.find_nearest(state.day)
        if slot is None:
            return None
        appointment = await self.store.create(
            kind,
            owner.id,
            slot.id,
            actor_id=state.actor_id,
            notes=f"Auto-created from attendance feed - {row.display_name} ({state.day.isoformat()})",
            allow_overbook=True,
        )
        state.result.created_appointments += 1
        state.seen.add((kind.value, appointment.id))
        return appointment

    def _code_outcome(self, row: AttendanceRow) -> Outcome | None:
        return outcome_for_code(row.code, rs_type=row.rs_type, rs_detail=row.rs_detail)

    def _no_slot(self, kind: AppointmentKind, owner: Any, state: _PassState) -> RowResult:
        return self._base(
            "skip_no_slot", kind, owner, None,
            f"No enabled timeslot within {self.config.nearest_slot_horizon_days} days "
            f"of {state.day.isoformat()}",
        )

    def _base(
        self,
        action: str,
        kind: AppointmentKind,
        owner: Any | None,
        appointment: Any | None,
        reason: str,
    ) -> RowResult:
        row = RowResult(action=action, kind=kind.value, reason_text=reason)
        if owner is not None:
            row.owner_id = str(owner.id)
            row.owner_name = owner.full_name
            row.old_owner_status = row.new_owner_status = owner.status
        if appointment is not None:
            row.appointment_id = str(appointment.id)
            row.old_status = row.new_status = appointment.status
            row.appointment_time = self.clock.format_local(appointment.start_datetime)
            row.hours_since_start = round(self.clock.hours_since(appointment.start_datetime), 2)
        return row

    def _from_change(
        self,
        action: str,
        kind: AppointmentKind,
        owner: Any,
        appointment: Any,
        change: StatusChange,
        reason: str,
    ) -> RowResult:
        row = self._base(action, kind, owner, appointment, reason)
        row.old_status = change.old_status
        row.new_status = change.new_status
        row.old_owner_status = change.old_owner_status
        row.new_owner_status = change.new_owner_status
        return row

    @staticmethod
    def _row_number(row: AttendanceRow, index: int) -> int:
        return row.row_number if row.row_number is not None else index + 1
