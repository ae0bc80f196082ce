"""Restaurant settings endpoints: weekly opening hours and penalty policy."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from canteen_engine.api.v1.deps import http_error
from canteen_engine.core.security import get_current_user
from canteen_engine.db.session import get_db
from canteen_engine.models.user import User
from canteen_engine.schemas.restaurant import PenaltySettingsSchema
from canteen_engine.schemas.schedule import DayScheduleSchema, WeeklyScheduleSchema
from canteen_engine.services.access import ensure_restaurant_owner
from canteen_engine.services.errors import SettlementError
from canteen_engine.services.opening_hours import DaySchedule, WeeklySchedule, load_schedule, save_schedule
from canteen_engine.services.penalty import PenaltyPolicy, get_penalty_policy, save_penalty_policy

router: APIRouter = APIRouter()


def _serialize_schedule(schedule: WeeklySchedule) -> WeeklyScheduleSchema:
    return WeeklyScheduleSchema(
        days=[
            DayScheduleSchema(
                weekday=weekday,
                open=day.is_bookable,
                start_hour=day.start_hour if day.is_bookable else None,
                end_hour=day.end_hour if day.is_bookable else None,
            )
            for weekday, day in sorted(schedule.items())
        ]
    )


@router.get("/{restaurant_id}/opening-hours", response_model=WeeklyScheduleSchema)
def get_opening_hours(restaurant_id: int, db: Session = Depends(get_db)) -> WeeklyScheduleSchema:
    try:
        return _serialize_schedule(load_schedule(db, restaurant_id))
    except SettlementError as exc:
        raise http_error(exc) from exc


@router.put("/{restaurant_id}/opening-hours", response_model=WeeklyScheduleSchema)
def update_opening_hours(
    restaurant_id: int,
    payload: WeeklyScheduleSchema,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WeeklyScheduleSchema:
    """Replace the hours of the weekdays present in the payload."""
    schedule: WeeklySchedule = {
        day.weekday: DaySchedule(open=day.open, start_hour=day.start_hour, end_hour=day.end_hour)
        for day in payload.days
    }
    try:
        ensure_restaurant_owner(current_user, restaurant_id)
        return _serialize_schedule(save_schedule(db, restaurant_id, schedule))
    except SettlementError as exc:
        raise http_error(exc) from exc


@router.get("/{restaurant_id}/penalty-settings", response_model=PenaltySettingsSchema)
def get_penalty_settings(restaurant_id: int, db: Session = Depends(get_db)) -> PenaltySettingsSchema:
    return PenaltySettingsSchema.model_validate(get_penalty_policy(db, restaurant_id))


@router.put("/{restaurant_id}/penalty-settings", response_model=PenaltySettingsSchema)
def update_penalty_settings(
    restaurant_id: int,
    payload: PenaltySettingsSchema,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PenaltySettingsSchema:
    try:
        ensure_restaurant_owner(current_user, restaurant_id)
        policy = save_penalty_policy(db, restaurant_id, PenaltyPolicy(**payload.model_dump()))
    except SettlementError as exc:
        raise http_error(exc) from exc
    return PenaltySettingsSchema.model_validate(policy)
