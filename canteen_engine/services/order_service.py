"""Order lookups and status transitions."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from canteen_engine.models import Order, User
from canteen_engine.models.order import ORDER_STATUSES
from canteen_engine.services.access import ensure_restaurant_staff
from canteen_engine.services.errors import AlreadyTerminal, InvariantViolation, NotFound

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "PENDING": {"SUCCESS", "CANCELLED"},
    "SUCCESS": set(),
    "CANCELLED": set(),
}


def can_transition(current: str, new: str) -> bool:
    """Return whether order can move from current to new status."""
    return new in ALLOWED_TRANSITIONS.get(current, set())


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def transition_order(db: Session, order: Order, new_status: str, **values: object) -> None:
    """Apply a status change only if the stored status still allows it."""
    sources = [status for status in ALLOWED_TRANSITIONS if can_transition(status, new_status)]
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status.in_(sources))
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    db.refresh(order)
    if result.rowcount == 0:
        raise AlreadyTerminal("Order", order.status)


def confirm_collection(db: Session, order_id: int, *, actor: User, now: datetime) -> Order:
    """Mark a PENDING order as collected after staff scanned its pickup code."""
    order = get_order(db, order_id)
    ensure_restaurant_staff(actor, order.restaurant_id)
    transition_order(db, order, "SUCCESS", collected_at=now)
    db.commit()
    db.refresh(order)
    logger.info("[ORDER] order_id=%s collected (confirmed by user_id=%s)", order.id, actor.id)
    return order


def list_orders(
    db: Session,
    *,
    customer_id: int | None = None,
    restaurant_id: int | None = None,
    status: str | None = None,
) -> list[Order]:
    query = select(Order)
    if customer_id is not None:
        query = query.where(Order.customer_id == customer_id)
    if restaurant_id is not None:
        query = query.where(Order.restaurant_id == restaurant_id)
    if status:
        if status not in ORDER_STATUSES:
            raise InvariantViolation(f"Unknown order status: {status}")
        query = query.where(Order.status == status)
    return list(db.scalars(query.order_by(Order.collection_time.desc(), Order.id.desc())).all())
