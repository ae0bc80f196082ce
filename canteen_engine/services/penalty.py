"""Restaurant penalty settings helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from canteen_engine.core.config import settings
from canteen_engine.models.restaurant import PenaltySettings
from canteen_engine.services.errors import InvariantViolation
from canteen_engine.services.opening_hours import get_restaurant

logger = logging.getLogger(__name__)

MAX_THRESHOLD_HOURS = 48


@dataclass(frozen=True)
class PenaltyPolicy:
    enabled: bool
    penalty_rate: Decimal
    time_threshold_hours: int
    allow_negative_balance: bool


def default_policy() -> PenaltyPolicy:
    """Policy applied to restaurants that never saved their own settings."""
    return PenaltyPolicy(
        enabled=settings.default_penalty_enabled,
        penalty_rate=settings.default_penalty_rate,
        time_threshold_hours=settings.default_penalty_threshold_hours,
        allow_negative_balance=settings.default_allow_negative_balance,
    )


def _to_policy(row: PenaltySettings) -> PenaltyPolicy:
    return PenaltyPolicy(
        enabled=row.enabled,
        penalty_rate=Decimal(row.penalty_rate),
        time_threshold_hours=row.time_threshold_hours,
        allow_negative_balance=row.allow_negative_balance,
    )


def get_penalty_policy(db: Session, restaurant_id: int) -> PenaltyPolicy:
    row = db.scalar(select(PenaltySettings).where(PenaltySettings.restaurant_id == restaurant_id).limit(1))
    if row is None:
        return default_policy()
    return _to_policy(row)


def ensure_valid_policy(policy: PenaltyPolicy) -> None:
    if not Decimal("0") <= policy.penalty_rate <= Decimal("100"):
        raise InvariantViolation("Penalty rate must be between 0 and 100 percent")
    if not 0 <= policy.time_threshold_hours <= MAX_THRESHOLD_HOURS:
        raise InvariantViolation(f"Time threshold must be between 0 and {MAX_THRESHOLD_HOURS} hours")


def save_penalty_policy(db: Session, restaurant_id: int, policy: PenaltyPolicy) -> PenaltyPolicy:
    """Create or update the penalty settings row of a restaurant."""
    ensure_valid_policy(policy)
    get_restaurant(db, restaurant_id)

    row = db.scalar(select(PenaltySettings).where(PenaltySettings.restaurant_id == restaurant_id).limit(1))
    if row is None:
        row = PenaltySettings(restaurant_id=restaurant_id)
        db.add(row)
    row.enabled = policy.enabled
    row.penalty_rate = policy.penalty_rate
    row.time_threshold_hours = policy.time_threshold_hours
    row.allow_negative_balance = policy.allow_negative_balance
    db.commit()
    db.refresh(row)
    logger.info(
        "[PENALTY] Settings saved for restaurant_id=%s (enabled=%s, rate=%s, threshold=%sh, negative=%s)",
        restaurant_id,
        row.enabled,
        row.penalty_rate,
        row.time_threshold_hours,
        row.allow_negative_balance,
    )
    return _to_policy(row)
