"""Loan lifecycle: ACTIVE -> PAID | CANCELLED, plus the communication log."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from canteen_engine.core.config import settings
from canteen_engine.models import Loan, LoanNote, User
from canteen_engine.models.loan import LOAN_STATUSES
from canteen_engine.services import ledger
from canteen_engine.services.access import ensure_restaurant_staff
from canteen_engine.services.errors import AlreadyTerminal, InvariantViolation, NotFound, TooSoonToCancel
from canteen_engine.services.pricing import round_money

logger = logging.getLogger(__name__)

TERMINAL_STATUSES: set[str] = {"PAID", "CANCELLED"}


def get_loan(db: Session, loan_id: int) -> Loan:
    loan = db.get(Loan, loan_id)
    if loan is None:
        raise NotFound(f"Loan {loan_id} not found")
    return loan


def append_communication_log(
    db: Session,
    loan: Loan,
    *,
    channel: str,
    text: str,
    actor_id: int | None,
    now: datetime,
) -> LoanNote:
    """Append an attributed entry; entries are never edited or removed."""
    note = LoanNote(loan_id=loan.id, channel=channel, text=text, actor_id=actor_id, created_at=now)
    db.add(note)
    db.flush()
    return note


def create_loan(
    db: Session,
    *,
    customer_id: int,
    restaurant_id: int,
    order_id: int,
    amount: Decimal,
    approver: User,
    now: datetime,
) -> Loan:
    loan = Loan(
        customer_id=customer_id,
        restaurant_id=restaurant_id,
        order_id=order_id,
        loan_amount=amount,
        status="ACTIVE",
        created_at=now,
        approved_at=now,
        approver_id=approver.id,
    )
    db.add(loan)
    db.flush()
    append_communication_log(
        db,
        loan,
        channel="SYSTEM",
        text=f"Loan of {amount} approved by {approver.username} for order #{order_id}",
        actor_id=approver.id,
        now=now,
    )
    logger.info("[LOAN] Created loan_id=%s amount=%s for customer_id=%s", loan.id, amount, customer_id)
    return loan


def _transition(db: Session, loan: Loan, new_status: str, **values: object) -> None:
    """Move an ACTIVE loan to a terminal status; losers of a race see AlreadyTerminal."""
    result = db.execute(
        update(Loan)
        .where(Loan.id == loan.id, Loan.status == "ACTIVE")
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    db.refresh(loan)
    if result.rowcount == 0:
        raise AlreadyTerminal("Loan", loan.status)


def _mark_paid(db: Session, loan: Loan, *, payment_method: str, notes: str | None, actor: User, now: datetime) -> None:
    _transition(db, loan, "PAID", paid_at=now, payment_method=payment_method)
    text = f"[{payment_method}] {notes}" if notes else f"[{payment_method}] Paid"
    append_communication_log(db, loan, channel="PAYMENT", text=text, actor_id=actor.id, now=now)


def mark_paid(
    db: Session,
    loan: Loan,
    *,
    payment_method: str,
    notes: str | None,
    actor: User,
    now: datetime,
) -> Loan:
    """Record repayment; the ledger was already debited when the loan was created."""
    ensure_restaurant_staff(actor, loan.restaurant_id)
    _mark_paid(db, loan, payment_method=payment_method, notes=notes, actor=actor, now=now)
    db.commit()
    db.refresh(loan)
    logger.info("[LOAN] loan_id=%s marked PAID via %s", loan.id, payment_method)
    return loan


def minutes_until_cancellable(loan: Loan, now: datetime) -> int:
    lock = timedelta(minutes=settings.loan_cancel_lock_minutes)
    remaining = lock - (now - loan.created_at)
    if remaining <= timedelta(0):
        return 0
    return math.ceil(remaining.total_seconds() / 60)


def cancel_loan(db: Session, loan: Loan, *, notes: str | None, actor: User, now: datetime) -> Loan:
    """Cancel an ACTIVE loan older than the lock period and reverse its debit."""
    ensure_restaurant_staff(actor, loan.restaurant_id)
    if loan.status in TERMINAL_STATUSES:
        raise AlreadyTerminal("Loan", loan.status)
    remaining = minutes_until_cancellable(loan, now)
    if remaining > 0:
        raise TooSoonToCancel(remaining)

    _transition(db, loan, "CANCELLED", cancelled_at=now)
    account = ledger.ensure_credit_account(db, loan.customer_id)
    ledger.credit(
        db,
        account,
        loan.loan_amount,
        now=now,
        reason="LOAN_REVERSAL",
        order_id=loan.order_id,
        loan_id=loan.id,
        actor_id=actor.id,
    )
    append_communication_log(
        db,
        loan,
        channel="SYSTEM",
        text=notes or "Loan cancelled",
        actor_id=actor.id,
        now=now,
    )
    db.commit()
    db.refresh(loan)
    logger.info("[LOAN] loan_id=%s cancelled; %s credited back", loan.id, loan.loan_amount)
    return loan


def reversed_amount_for_order(db: Session, order_id: int) -> Decimal:
    """Loan amount already credited back for an order whose loan was cancelled."""
    amount = db.scalar(
        select(func.coalesce(func.sum(Loan.loan_amount), 0)).where(Loan.order_id == order_id, Loan.status == "CANCELLED")
    )
    return round_money(Decimal(str(amount)))


def close_for_cancelled_order(db: Session, order_id: int, *, actor: User, now: datetime) -> Loan | None:
    """Cancel the ACTIVE loan of an order being cancelled, without a reversal credit.

    The order refund already returns the loan-funded part of the total.
    """
    loan = db.scalar(select(Loan).where(Loan.order_id == order_id, Loan.status == "ACTIVE").limit(1))
    if loan is None:
        return None
    _transition(db, loan, "CANCELLED", cancelled_at=now)
    append_communication_log(
        db,
        loan,
        channel="SYSTEM",
        text=f"Order #{order_id} cancelled; loan closed by the order refund",
        actor_id=actor.id,
        now=now,
    )
    logger.info("[LOAN] loan_id=%s closed with cancelled order_id=%s", loan.id, order_id)
    return loan


def update_loan_status(
    db: Session,
    loan_id: int,
    status: str,
    *,
    notes: str | None,
    payment_method: str,
    actor: User,
    now: datetime,
) -> Loan:
    loan = get_loan(db, loan_id)
    if status == "PAID":
        return mark_paid(db, loan, payment_method=payment_method, notes=notes, actor=actor, now=now)
    if status == "CANCELLED":
        return cancel_loan(db, loan, notes=notes, actor=actor, now=now)
    raise InvariantViolation(f"Loan status can only be set to PAID or CANCELLED, got {status}")


def settle_loans(
    db: Session,
    loan_ids: list[int],
    *,
    payment_method: str,
    notes: str | None,
    actor: User,
    now: datetime,
) -> tuple[list[Loan], Decimal]:
    """Mark several ACTIVE loans of one customer as paid in a single transaction."""
    if not loan_ids:
        raise InvariantViolation("No loans selected for settlement")
    loans = [get_loan(db, loan_id) for loan_id in dict.fromkeys(loan_ids)]
    if len({loan.customer_id for loan in loans}) > 1:
        raise InvariantViolation("Loans of different customers cannot be settled together")

    try:
        for loan in loans:
            ensure_restaurant_staff(actor, loan.restaurant_id)
            _mark_paid(db, loan, payment_method=payment_method, notes=notes, actor=actor, now=now)
    except Exception:
        db.rollback()
        raise
    db.commit()

    total = sum((Decimal(loan.loan_amount) for loan in loans), Decimal("0.00"))
    logger.info("[LOAN] Settled %s loans totalling %s for customer_id=%s", len(loans), total, loans[0].customer_id)
    return loans, total


def list_loans(
    db: Session,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    restaurant_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Loan], int]:
    """Return one page of loans, newest first, and the total match count."""
    query = select(Loan)
    if status:
        if status not in LOAN_STATUSES:
            raise InvariantViolation(f"Unknown loan status: {status}")
        query = query.where(Loan.status == status)
    if customer_id is not None:
        query = query.where(Loan.customer_id == customer_id)
    if restaurant_id is not None:
        query = query.where(Loan.restaurant_id == restaurant_id)

    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    rows = db.scalars(query.order_by(Loan.created_at.desc(), Loan.id.desc()).offset((page - 1) * limit).limit(limit)).all()
    return list(rows), total


def loan_stats(db: Session, *, restaurant_id: int | None = None, customer_id: int | None = None) -> dict[str, dict[str, Decimal | int]]:
    """Count and amount per status, plus an overall "total" bucket."""
    query = select(Loan.status, func.count(Loan.id), func.coalesce(func.sum(Loan.loan_amount), 0)).group_by(Loan.status)
    if restaurant_id is not None:
        query = query.where(Loan.restaurant_id == restaurant_id)
    if customer_id is not None:
        query = query.where(Loan.customer_id == customer_id)

    stats: dict[str, dict[str, Decimal | int]] = {
        status.lower(): {"count": 0, "total_amount": Decimal("0.00")} for status in LOAN_STATUSES
    }
    overall_count = 0
    overall_amount = Decimal("0.00")
    for status, count, amount in db.execute(query).all():
        amount = round_money(Decimal(str(amount)))
        stats[status.lower()] = {"count": count, "total_amount": amount}
        overall_count += count
        overall_amount += amount
    stats["total"] = {"count": overall_count, "total_amount": overall_amount}
    return stats
