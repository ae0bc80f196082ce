"""Penalty-adjusted refunds for cancelled orders."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.orm import Session

from canteen_engine.models import Order, User
from canteen_engine.services import ledger, loans
from canteen_engine.services.access import ensure_can_access_order
from canteen_engine.services.errors import AlreadyTerminal, PenaltyConfirmationRequired
from canteen_engine.services.order_service import get_order, transition_order
from canteen_engine.services.penalty import PenaltyPolicy, get_penalty_policy
from canteen_engine.services.pricing import HUNDRED, round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class CancellableOrder(Protocol):
    total: Decimal
    collection_time: datetime


@dataclass(frozen=True)
class CancellationQuote:
    refund_amount: Decimal
    penalty_amount: Decimal
    penalty_rate: Decimal
    hours_until_collection: float
    requires_penalty: bool


def hours_until_collection(order: CancellableOrder, now: datetime) -> float:
    return (order.collection_time - now).total_seconds() / 3600


def penalty_applies(order: CancellableOrder, policy: PenaltyPolicy, now: datetime) -> bool:
    """The threshold is inclusive: exactly threshold hours ahead still refunds in full."""
    if not policy.enabled:
        return False
    return hours_until_collection(order, now) < policy.time_threshold_hours


def refund_for_cancellation(order: CancellableOrder, policy: PenaltyPolicy, now: datetime) -> Decimal:
    total = round_money(order.total)
    if not penalty_applies(order, policy, now):
        return total
    refund = round_money(total * (1 - Decimal(policy.penalty_rate) / HUNDRED))
    return max(refund, ZERO)


def quote_cancellation(order: CancellableOrder, policy: PenaltyPolicy, now: datetime) -> CancellationQuote:
    refund = refund_for_cancellation(order, policy, now)
    requires_penalty = penalty_applies(order, policy, now)
    return CancellationQuote(
        refund_amount=refund,
        penalty_amount=round_money(order.total) - refund,
        penalty_rate=Decimal(policy.penalty_rate) if requires_penalty else ZERO,
        hours_until_collection=round(hours_until_collection(order, now), 2),
        requires_penalty=requires_penalty,
    )


def _quote_for_order(db: Session, order: Order, now: datetime) -> CancellationQuote:
    """Quote for a stored order; a loan already reversed is not refunded again."""
    quote = quote_cancellation(order, get_penalty_policy(db, order.restaurant_id), now)
    reversed_amount = loans.reversed_amount_for_order(db, order.id)
    if reversed_amount <= ZERO:
        return quote
    return replace(quote, refund_amount=max(quote.refund_amount - reversed_amount, ZERO))


def quote_order_cancellation(db: Session, order_id: int, *, actor: User, now: datetime) -> CancellationQuote:
    order = get_order(db, order_id)
    ensure_can_access_order(actor, order)
    if order.status != "PENDING":
        raise AlreadyTerminal("Order", order.status)
    return _quote_for_order(db, order, now)


def cancel_order(
    db: Session,
    order_id: int,
    *,
    actor: User,
    now: datetime,
    confirm_penalty: bool = False,
) -> tuple[Order, Decimal]:
    """Cancel a PENDING order and credit the refund to the customer's account.

    A late cancellation needs ``confirm_penalty``; without it the quote is
    raised as PenaltyConfirmationRequired and nothing changes. A second
    cancellation of the same order raises AlreadyTerminal and never refunds
    twice; the status change is a conditional update. An ACTIVE loan on the
    order is closed without a reversal credit, and a loan reversed earlier
    is deducted from the refund.
    """
    order = get_order(db, order_id)
    ensure_can_access_order(actor, order)
    if order.status != "PENDING":
        raise AlreadyTerminal("Order", order.status)

    quote = _quote_for_order(db, order, now)
    if quote.requires_penalty and not confirm_penalty:
        raise PenaltyConfirmationRequired(
            quote.refund_amount, quote.penalty_amount, quote.penalty_rate, quote.hours_until_collection
        )

    refund = quote.refund_amount
    transition_order(db, order, "CANCELLED", cancelled_at=now, refund_amount=refund)
    loans.close_for_cancelled_order(db, order.id, actor=actor, now=now)
    if refund > ZERO:
        account = ledger.ensure_credit_account(db, order.customer_id)
        ledger.credit(db, account, refund, now=now, reason="REFUND", order_id=order.id, actor_id=actor.id)
    db.commit()
    db.refresh(order)
    logger.info("[ORDER] order_id=%s cancelled; refund=%s of total=%s", order.id, refund, order.total)
    return order, refund
