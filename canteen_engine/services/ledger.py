"""Customer credit ledger: balance debits, credits and top-ups.

Every balance mutation is issued as a single ``UPDATE`` against the stored
balance so the database serializes concurrent writers on the same account.
The automatic debit path is a conditional update (``balance >= amount``): when
two checkouts race on one account, at most the ones that still fit succeed and
the rest come back as ``INSUFFICIENT_REQUIRES_LOAN`` instead of overdrawing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from canteen_engine.models import CreditAccount, LedgerEntry, User
from canteen_engine.models.account import LEDGER_REASONS
from canteen_engine.services.access import ensure_can_top_up
from canteen_engine.services.errors import InvalidAmount, InvariantViolation, NotFound
from canteen_engine.services.penalty import PenaltyPolicy
from canteen_engine.services.pricing import round_money

logger = logging.getLogger(__name__)


class DebitResult(str, Enum):
    APPLIED = "Applied"
    INSUFFICIENT_REQUIRES_LOAN = "InsufficientRequiresLoan"
    REJECTED = "Rejected"


def _coerce_amount(amount: Decimal | int | str) -> Decimal | None:
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return round_money(value)


def _ensure_reason(reason: str) -> None:
    if reason not in LEDGER_REASONS:
        raise InvariantViolation(f"Unknown ledger reason: {reason}")


def get_account(db: Session, customer_id: int) -> CreditAccount:
    account = db.scalar(select(CreditAccount).where(CreditAccount.customer_id == customer_id).limit(1))
    if account is None:
        raise NotFound(f"Credit account for customer {customer_id} not found")
    return account


def ensure_credit_account(db: Session, customer_id: int) -> CreditAccount:
    """Return the customer's account, opening one with a zero balance when missing."""
    account = db.scalar(select(CreditAccount).where(CreditAccount.customer_id == customer_id).limit(1))
    if account is not None:
        return account

    if db.get(User, customer_id) is None:
        raise NotFound(f"Customer {customer_id} not found")
    account = CreditAccount(customer_id=customer_id, balance=Decimal("0.00"))
    db.add(account)
    db.flush()
    logger.info("[LEDGER] Opened credit account for customer_id=%s", customer_id)
    return account


def _record(
    db: Session,
    account: CreditAccount,
    *,
    direction: str,
    reason: str,
    amount: Decimal,
    now: datetime,
    order_id: int | None,
    loan_id: int | None,
    actor_id: int | None,
) -> LedgerEntry:
    db.refresh(account)
    entry = LedgerEntry(
        account_id=account.id,
        direction=direction,
        reason=reason,
        amount=amount,
        balance_after=account.balance,
        order_id=order_id,
        loan_id=loan_id,
        actor_id=actor_id,
        created_at=now,
    )
    db.add(entry)
    db.flush()
    return entry


def debit(
    db: Session,
    account: CreditAccount,
    amount: Decimal,
    policy: PenaltyPolicy,
    *,
    now: datetime,
    loan_override: bool = False,
    reason: str = "ORDER",
    order_id: int | None = None,
    loan_id: int | None = None,
    actor_id: int | None = None,
) -> DebitResult:
    """Subtract amount from the account according to the negative-balance policy.

    ``loan_override`` marks an explicit approval by an authorized approver; it
    is the only way to go negative when the policy forbids it.
    """
    _ensure_reason(reason)
    value = _coerce_amount(amount)
    if value is None:
        logger.warning("[LEDGER] Rejected debit of %r on account_id=%s", amount, account.id)
        return DebitResult.REJECTED

    stmt = update(CreditAccount).where(CreditAccount.id == account.id)
    if not (loan_override or policy.allow_negative_balance):
        stmt = stmt.where(CreditAccount.balance >= value)
    result = db.execute(
        stmt.values(balance=CreditAccount.balance - value).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.refresh(account)
        logger.info(
            "[LEDGER] Insufficient balance on account_id=%s (balance=%s, amount=%s)",
            account.id,
            account.balance,
            value,
        )
        return DebitResult.INSUFFICIENT_REQUIRES_LOAN

    _record(
        db,
        account,
        direction="DEBIT",
        reason=reason,
        amount=value,
        now=now,
        order_id=order_id,
        loan_id=loan_id,
        actor_id=actor_id,
    )
    logger.info("[LEDGER] Debited %s from account_id=%s (override=%s)", value, account.id, loan_override)
    return DebitResult.APPLIED


def credit(
    db: Session,
    account: CreditAccount,
    amount: Decimal,
    *,
    now: datetime,
    reason: str,
    order_id: int | None = None,
    loan_id: int | None = None,
    actor_id: int | None = None,
) -> LedgerEntry:
    """Add amount to the account; there is no upper bound on the balance."""
    _ensure_reason(reason)
    value = _coerce_amount(amount)
    if value is None:
        raise InvalidAmount(f"Credit amount must be a positive number, got {amount}")

    db.execute(
        update(CreditAccount)
        .where(CreditAccount.id == account.id)
        .values(balance=CreditAccount.balance + value)
        .execution_options(synchronize_session=False)
    )
    entry = _record(
        db,
        account,
        direction="CREDIT",
        reason=reason,
        amount=value,
        now=now,
        order_id=order_id,
        loan_id=loan_id,
        actor_id=actor_id,
    )
    logger.info("[LEDGER] Credited %s to account_id=%s (%s)", value, account.id, reason)
    return entry


def top_up(db: Session, *, customer_id: int, amount: Decimal, actor: User, now: datetime) -> LedgerEntry:
    """Credit a customer's account on behalf of staff with top-up access."""
    ensure_can_top_up(actor)
    account = ensure_credit_account(db, customer_id)
    entry = credit(db, account, amount, now=now, reason="TOPUP", actor_id=actor.id)
    db.commit()
    db.refresh(entry)
    return entry


def ledger_history(db: Session, customer_id: int, *, limit: int = 50, offset: int = 0) -> list[LedgerEntry]:
    account = get_account(db, customer_id)
    return list(
        db.scalars(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account.id)
            .order_by(LedgerEntry.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
    )
