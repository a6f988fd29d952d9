"""Business clock in a fixed local UTC offset.

All threshold comparisons and "today" calculations go through a Clock
instance so tests can pin the current time with FixedClock.

Usage:
    clock = Clock(utc_offset_hours=8)
    today = clock.today()
    start_utc = clock.to_utc(slot.date, slot.start_time)
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


class Clock:
    """Wall clock bound to a fixed local offset.

    Datetimes read back from SQLite come out naive; they are treated
    as UTC since every write stores UTC.
    """

    def __init__(self, utc_offset_hours: float = 8.0, label: str = "SGT"):
        self.offset = timedelta(hours=utc_offset_hours)
        self.tz = timezone(self.offset, label)

    def now_utc(self) -> datetime:
        """Current instant in UTC."""
        return datetime.now(timezone.utc)

    def now_local(self) -> datetime:
        """Current instant in the local offset."""
        return self.now_utc().astimezone(self.tz)

    def today(self) -> date:
        """Current local calendar date."""
        return self.now_local().date()

    def to_utc(self, day: date, wall_time: time) -> datetime:
        """Convert a local wall-clock date/time to an aware UTC datetime."""
        local = datetime.combine(day, wall_time.replace(tzinfo=None), tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def as_utc(self, moment: datetime) -> datetime:
        """Attach UTC to naive datetimes, convert aware ones."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc)

    def to_local(self, moment: datetime) -> datetime:
        """Convert a stored datetime to the local offset."""
        return self.as_utc(moment).astimezone(self.tz)

    def local_date(self, moment: datetime) -> date:
        """Local calendar date of a stored datetime."""
        return self.to_local(moment).date()

    def day_bounds_utc(self, day: date) -> tuple[datetime, datetime]:
        """UTC [start, end) covering one local calendar day."""
        start = self.to_utc(day, time.min)
        return start, start + timedelta(days=1)

    def hours_since(self, moment: datetime) -> float:
        """Hours elapsed from a stored datetime until now."""
        return (self.now_utc() - self.as_utc(moment)).total_seconds() / 3600

    def format_local(self, moment: datetime | None) -> str | None:
        """Render a stored datetime as local 'YYYY-MM-DD HH:MM'."""
        if moment is None:
            return None
        return self.to_local(moment).strftime("%Y-%m-%d %H:%M")


class FixedClock(Clock):
    """Clock whose current instant is set explicitly."""

    def __init__(
        self,
        now: datetime,
        utc_offset_hours: float = 8.0,
        label: str = "SGT",
    ):
        super().__init__(utc_offset_hours, label)
        self._now = self._coerce(now)

    def _coerce(self, moment: datetime) -> datetime:
        # Naive values are local wall-clock time
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        return moment.astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = self._coerce(now)

    def advance(self, *, hours: float = 0, minutes: float = 0) -> None:
        self._now += timedelta(hours=hours, minutes=minutes)
