"""Opening-hours validation and booking window resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from canteen_engine.core.config import settings
from canteen_engine.models.restaurant import Restaurant, RestaurantOpeningHours
from canteen_engine.services.clock import minutes_of_day, weekday_index, weekday_name
from canteen_engine.services.errors import InvariantViolation, NotFound, ScheduleViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DaySchedule:
    """Opening flag and whole-hour window of one weekday."""

    open: bool
    start_hour: int | None = None
    end_hour: int | None = None

    @property
    def is_bookable(self) -> bool:
        return self.open and self.start_hour is not None and self.end_hour is not None


WeeklySchedule = dict[int, DaySchedule]

CLOSED_DAY = DaySchedule(open=False)


def ensure_valid_day(weekday: int, day: DaySchedule) -> None:
    """Reject open days without hours, hours outside 0-23 or an inverted window."""
    if weekday not in range(7):
        raise InvariantViolation(f"Weekday must be 0-6, got {weekday}")
    if not day.open:
        return
    if day.start_hour is None or day.end_hour is None:
        raise InvariantViolation(f"{weekday_name(weekday)} is open but start/end hour is missing")
    for hour in (day.start_hour, day.end_hour):
        if hour not in range(24):
            raise InvariantViolation(f"Hour must be 0-23, got {hour}")
    if day.start_hour > day.end_hour:
        raise InvariantViolation(f"{weekday_name(weekday)} opens after it closes")


def build_weekly_schedule(rows: list[RestaurantOpeningHours]) -> WeeklySchedule:
    """Build a full seven-day schedule; weekdays without a row are closed."""
    schedule: WeeklySchedule = {weekday: CLOSED_DAY for weekday in range(7)}
    for row in rows:
        schedule[row.weekday] = DaySchedule(open=row.is_open, start_hour=row.start_hour, end_hour=row.end_hour)
    return schedule


def get_restaurant(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.get(Restaurant, restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise NotFound(f"Restaurant {restaurant_id} not found")
    return restaurant


def load_schedule(db: Session, restaurant_id: int) -> WeeklySchedule:
    """Return the weekly schedule of an active restaurant."""
    restaurant = get_restaurant(db, restaurant_id)
    return build_weekly_schedule(list(restaurant.opening_hours))


def save_schedule(db: Session, restaurant_id: int, schedule: WeeklySchedule) -> WeeklySchedule:
    """Replace the opening hours of a restaurant after validating every day."""
    for weekday, day in schedule.items():
        ensure_valid_day(weekday, day)

    restaurant = get_restaurant(db, restaurant_id)
    rows: dict[int, RestaurantOpeningHours] = {row.weekday: row for row in restaurant.opening_hours}
    for weekday, day in schedule.items():
        row = rows.get(weekday)
        if row is None:
            row = RestaurantOpeningHours(restaurant_id=restaurant_id, weekday=weekday)
            restaurant.opening_hours.append(row)
        row.is_open = day.open
        row.start_hour = day.start_hour if day.open else None
        row.end_hour = day.end_hour if day.open else None

    db.commit()
    db.refresh(restaurant)
    logger.info("[SCHEDULE] Opening hours updated for restaurant_id=%s", restaurant_id)
    return build_weekly_schedule(list(restaurant.opening_hours))


def validate(schedule: WeeklySchedule, candidate: datetime) -> tuple[bool, str]:
    """Return whether the candidate falls inside its weekday's window.

    The window is inclusive of both the start and the end hour.
    """
    weekday = weekday_index(candidate)
    day = schedule.get(weekday, CLOSED_DAY)
    if not day.is_bookable:
        return False, f"closed on {weekday_name(weekday)}"

    minutes = minutes_of_day(candidate)
    if minutes < day.start_hour * 60 or minutes > day.end_hour * 60:
        return False, f"outside hours, open {day.start_hour}-{day.end_hour}"
    return True, ""


def minimum_bookable_date(schedule: WeeklySchedule, now: datetime) -> date:
    """Resolve the earliest date a customer may pick.

    Today when the restaurant is open now or opens later today; otherwise the
    next open weekday, falling back to tomorrow when no weekday is open.
    """
    today = schedule.get(weekday_index(now), CLOSED_DAY)
    if today.is_bookable and minutes_of_day(now) <= today.end_hour * 60:
        return now.date()

    for offset in range(1, 8):
        candidate = now + timedelta(days=offset)
        if schedule.get(weekday_index(candidate), CLOSED_DAY).is_bookable:
            return candidate.date()
    return now.date() + timedelta(days=1)


def maximum_bookable_date(now: datetime, horizon_days: int | None = None) -> date:
    days = settings.booking_horizon_days if horizon_days is None else horizon_days
    return now.date() + timedelta(days=days)


def check_collection_time(schedule: WeeklySchedule, candidate: datetime, now: datetime) -> None:
    """Raise ScheduleViolation unless the candidate is bookable right now."""
    if candidate < now:
        raise ScheduleViolation("collection time is in the past")
    max_date = maximum_bookable_date(now)
    if candidate.date() > max_date:
        raise ScheduleViolation(f"collection time is after {max_date.isoformat()}")
    ok, reason = validate(schedule, candidate)
    if not ok:
        raise ScheduleViolation(reason)
