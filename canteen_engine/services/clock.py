"""Injected clock and weekday resolution used by scheduling decisions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from canteen_engine.core.config import settings

WEEKDAY_NAMES: list[str] = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class ScheduleClock:
    """Source of "now" in business-local wall-clock time.

    All datetimes handled by the engine are naive and expressed in the
    restaurant's local time. Aware datetimes coming from the outside are
    converted with :meth:`to_local` before any comparison.
    """

    def __init__(self, utc_offset_minutes: int | None = None) -> None:
        offset = settings.business_utc_offset_minutes if utc_offset_minutes is None else utc_offset_minutes
        self.tz = timezone(timedelta(minutes=offset))

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self.tz).replace(tzinfo=None)

    def to_local(self, value: datetime) -> datetime:
        """Return value as naive business-local time."""
        if value.tzinfo is None:
            return value
        return value.astimezone(self.tz).replace(tzinfo=None)


class FixedClock(ScheduleClock):
    """Clock frozen at a given instant; used by tests and replay tooling."""

    def __init__(self, current: datetime, utc_offset_minutes: int | None = None) -> None:
        super().__init__(utc_offset_minutes)
        self.current = self.to_local(current)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


def weekday_index(value: datetime) -> int:
    """Return weekday with Sunday as 0."""
    return value.isoweekday() % 7


def weekday_name(index: int) -> str:
    return WEEKDAY_NAMES[index]


def minutes_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def get_clock() -> ScheduleClock:
    """FastAPI dependency returning the process clock; overridden in tests."""
    return ScheduleClock()
