"""Checkout orchestration: validate, price and settle one order."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from canteen_engine.models import CheckoutEscalation, Loan, Order, OrderItem, User
from canteen_engine.services import ledger, loans
from canteen_engine.services.access import ensure_restaurant_staff, ensure_role
from canteen_engine.services.cart import CartLine, build_cart, ensure_single_restaurant
from canteen_engine.services.errors import AlreadyTerminal, InvalidAmount, InvariantViolation, NotFound, ScheduleViolation
from canteen_engine.services.ledger import DebitResult
from canteen_engine.services.opening_hours import build_weekly_schedule, check_collection_time, get_restaurant
from canteen_engine.services.penalty import get_penalty_policy
from canteen_engine.services.pricing import price_lines, round_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsufficientBalanceEscalation:
    """Checkout handed back to the caller: an approver must grant a loan or the order is dropped."""

    escalation_id: int
    customer_id: int
    restaurant_id: int
    total: Decimal
    balance: Decimal
    shortfall: Decimal


def shortfall_for(total: Decimal, balance: Decimal) -> Decimal:
    """Part of the total not covered by a positive balance."""
    return round_money(total - max(Decimal(balance), Decimal("0")))


def _snapshot(lines: Iterable[CartLine], now: datetime) -> list[dict[str, str | int]]:
    lines = list(lines)
    names = {line.item_id: line.item.name for line in lines}
    return [
        {
            "menu_item_id": priced.item_id,
            "name": names[priced.item_id],
            "unit_price": str(priced.effective_price),
            "quantity": priced.quantity,
            "line_total": str(priced.line_total),
        }
        for priced in price_lines(lines, now)
    ]


def _create_order(
    db: Session,
    *,
    customer_id: int,
    restaurant_id: int,
    snapshot: list[dict[str, str | int]],
    total: Decimal,
    collection_time: datetime,
    idempotency_key: str | None,
    now: datetime,
) -> Order:
    order = Order(
        customer_id=customer_id,
        restaurant_id=restaurant_id,
        total=total,
        collection_time=collection_time,
        status="PENDING",
        created_at=now,
        idempotency_key=idempotency_key,
    )
    for line in snapshot:
        order.items.append(
            OrderItem(
                menu_item_id=line["menu_item_id"],
                name=line["name"],
                unit_price=Decimal(line["unit_price"]),
                qty=line["quantity"],
                price_snapshot=Decimal(line["line_total"]),
            )
        )
    db.add(order)
    db.flush()
    return order


def _to_escalation(row: CheckoutEscalation) -> InsufficientBalanceEscalation:
    return InsufficientBalanceEscalation(
        escalation_id=row.id,
        customer_id=row.customer_id,
        restaurant_id=row.restaurant_id,
        total=row.total,
        balance=row.balance_at_checkout,
        shortfall=row.shortfall,
    )


def _find_previous_attempt(
    db: Session, customer_id: int, idempotency_key: str
) -> Order | InsufficientBalanceEscalation | None:
    order = db.scalar(
        select(Order).where(Order.customer_id == customer_id, Order.idempotency_key == idempotency_key).limit(1)
    )
    if order is not None:
        return order
    escalation = db.scalar(
        select(CheckoutEscalation)
        .where(
            CheckoutEscalation.customer_id == customer_id,
            CheckoutEscalation.idempotency_key == idempotency_key,
            CheckoutEscalation.status == "OPEN",
        )
        .limit(1)
    )
    return _to_escalation(escalation) if escalation is not None else None


def place_order(
    db: Session,
    *,
    customer: User,
    items: Iterable[tuple[int, int]],
    collection_time: datetime,
    now: datetime,
    idempotency_key: str | None = None,
) -> Order | InsufficientBalanceEscalation:
    """Validate, price and settle a checkout.

    Steps short-circuit in order: single-restaurant cart, collection time,
    pricing, ledger debit. A debit the balance cannot cover is returned as an
    InsufficientBalanceEscalation rather than raised.
    """
    ensure_role(customer, {"CUSTOMER"})
    if idempotency_key:
        previous = _find_previous_attempt(db, customer.id, idempotency_key)
        if previous is not None:
            logger.info("[ORDER] Duplicate checkout key=%s for customer_id=%s", idempotency_key, customer.id)
            return previous

    cart = build_cart(db, items)
    restaurant = get_restaurant(db, cart.restaurant_id)
    ensure_single_restaurant(cart.lines, restaurant.id)

    check_collection_time(build_weekly_schedule(list(restaurant.opening_hours)), collection_time, now)

    snapshot = _snapshot(cart.lines, now)
    total = sum((Decimal(line["line_total"]) for line in snapshot), Decimal("0.00"))
    policy = get_penalty_policy(db, restaurant.id)
    account = ledger.ensure_credit_account(db, customer.id)

    order = _create_order(
        db,
        customer_id=customer.id,
        restaurant_id=restaurant.id,
        snapshot=snapshot,
        total=total,
        collection_time=collection_time,
        idempotency_key=idempotency_key,
        now=now,
    )
    result = ledger.debit(db, account, total, policy, now=now, order_id=order.id, actor_id=customer.id)
    if result is DebitResult.APPLIED:
        db.commit()
        db.refresh(order)
        logger.info("[ORDER] order_id=%s placed, total=%s, collection=%s", order.id, total, collection_time)
        return order

    db.delete(order)
    db.flush()
    if result is DebitResult.REJECTED:
        db.rollback()
        raise InvalidAmount(f"Order total must be positive, got {total}")

    escalation = CheckoutEscalation(
        customer_id=customer.id,
        restaurant_id=restaurant.id,
        lines=snapshot,
        total=total,
        balance_at_checkout=account.balance,
        shortfall=shortfall_for(total, account.balance),
        collection_time=collection_time,
        idempotency_key=idempotency_key,
        status="OPEN",
        created_at=now,
    )
    db.add(escalation)
    db.commit()
    db.refresh(escalation)
    logger.info(
        "[ORDER] Checkout escalated escalation_id=%s (total=%s, balance=%s)",
        escalation.id,
        total,
        escalation.balance_at_checkout,
    )
    return _to_escalation(escalation)


def get_escalation(db: Session, escalation_id: int) -> CheckoutEscalation:
    escalation = db.get(CheckoutEscalation, escalation_id)
    if escalation is None:
        raise NotFound(f"Checkout escalation {escalation_id} not found")
    return escalation


def _void_escalation(db: Session, escalation: CheckoutEscalation) -> None:
    """Close an escalation that can no longer be approved so a retry starts a fresh checkout."""
    db.execute(
        update(CheckoutEscalation)
        .where(CheckoutEscalation.id == escalation.id, CheckoutEscalation.status == "OPEN")
        .values(status="VOID")
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("[ORDER] escalation_id=%s voided", escalation.id)


def approve_loan(
    db: Session,
    escalation_id: int,
    *,
    approver: User,
    now: datetime,
    amount: Decimal | None = None,
) -> Loan:
    """Settle an escalated checkout with an explicit override and record the loan.

    The loan covers the shortfall by default; an explicit amount must lie
    between the shortfall and the order total. The collection time is checked
    again at approval; an escalation that can no longer be approved is voided.
    """
    escalation = get_escalation(db, escalation_id)
    ensure_restaurant_staff(approver, escalation.restaurant_id)
    if escalation.status != "OPEN":
        raise AlreadyTerminal("Checkout escalation", escalation.status)

    restaurant = get_restaurant(db, escalation.restaurant_id)
    try:
        check_collection_time(build_weekly_schedule(list(restaurant.opening_hours)), escalation.collection_time, now)
    except ScheduleViolation:
        _void_escalation(db, escalation)
        raise

    account = ledger.ensure_credit_account(db, escalation.customer_id)
    db.refresh(account)
    total = round_money(escalation.total)
    shortfall = shortfall_for(total, account.balance)
    if shortfall <= 0:
        _void_escalation(db, escalation)
        raise InvariantViolation("Balance now covers the order total; place the order again instead")
    loan_amount = shortfall if amount is None else round_money(amount)
    if not shortfall <= loan_amount <= total:
        raise InvalidAmount(f"Loan amount must be between {shortfall} and {total}, got {loan_amount}")

    claimed = db.execute(
        update(CheckoutEscalation)
        .where(CheckoutEscalation.id == escalation.id, CheckoutEscalation.status == "OPEN")
        .values(status="RESOLVED")
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        db.rollback()
        raise AlreadyTerminal("Checkout escalation", "RESOLVED")

    order = _create_order(
        db,
        customer_id=escalation.customer_id,
        restaurant_id=escalation.restaurant_id,
        snapshot=escalation.lines,
        total=total,
        collection_time=escalation.collection_time,
        idempotency_key=escalation.idempotency_key,
        now=now,
    )
    result = ledger.debit(
        db,
        account,
        total,
        get_penalty_policy(db, escalation.restaurant_id),
        now=now,
        loan_override=True,
        reason="LOAN_OVERRIDE",
        order_id=order.id,
        actor_id=approver.id,
    )
    if result is not DebitResult.APPLIED:
        db.rollback()
        raise InvalidAmount(f"Order total must be positive, got {total}")

    loan = loans.create_loan(
        db,
        customer_id=escalation.customer_id,
        restaurant_id=escalation.restaurant_id,
        order_id=order.id,
        amount=loan_amount,
        approver=approver,
        now=now,
    )
    escalation.order_id = order.id
    db.commit()
    db.refresh(loan)
    logger.info(
        "[ORDER] escalation_id=%s approved by user_id=%s: order_id=%s, loan_id=%s",
        escalation.id,
        approver.id,
        order.id,
        loan.id,
    )
    return loan
