"""Collection time validation endpoint."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from canteen_engine.api.v1.deps import http_error
from canteen_engine.db.session import get_db
from canteen_engine.schemas.schedule import CollectionTimeValidation
from canteen_engine.services.clock import ScheduleClock, get_clock
from canteen_engine.services.errors import ScheduleViolation, SettlementError
from canteen_engine.services.opening_hours import (
    check_collection_time,
    load_schedule,
    maximum_bookable_date,
    minimum_bookable_date,
)

router: APIRouter = APIRouter()


@router.get("/{restaurant_id}/validate", response_model=CollectionTimeValidation)
def validate_collection_time(
    restaurant_id: int,
    candidate: datetime = Query(...),
    db: Session = Depends(get_db),
    clock: ScheduleClock = Depends(get_clock),
) -> CollectionTimeValidation:
    """Check a pickup time and return the bookable date range for the picker."""
    now = clock.now()
    local_candidate = clock.to_local(candidate)
    try:
        schedule = load_schedule(db, restaurant_id)
    except SettlementError as exc:
        raise http_error(exc) from exc

    ok, reason = True, ""
    try:
        check_collection_time(schedule, local_candidate, now)
    except ScheduleViolation as exc:
        ok, reason = False, exc.message

    return CollectionTimeValidation(
        ok=ok,
        reason=reason,
        min_date=minimum_bookable_date(schedule, now),
        max_date=maximum_bookable_date(now),
        candidate=local_candidate,
    )
