"""Loan endpoints: approval, repayment, cancellation and reporting."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from canteen_engine.api.v1.deps import http_error
from canteen_engine.core.security import get_current_user
from canteen_engine.db.session import get_db
from canteen_engine.models.user import STAFF_ROLES, User
from canteen_engine.schemas.loan import (
    LoanApprove,
    LoanNoteCreate,
    LoanNoteRead,
    LoanPage,
    LoanRead,
    LoanSettle,
    LoanSettlementResult,
    LoanStats,
    LoanStatusUpdate,
)
from canteen_engine.services import ledger, loans
from canteen_engine.services.access import ensure_restaurant_staff, ensure_role
from canteen_engine.services.clock import ScheduleClock, get_clock
from canteen_engine.services.errors import NotFound, SettlementError
from canteen_engine.services.settlement import approve_loan

router: APIRouter = APIRouter()


def _scope(user: User) -> dict[str, int | None]:
    """Filters limiting a caller to the loans they may see."""
    if user.role == "ADMIN":
        return {"customer_id": None, "restaurant_id": None}
    if user.role in STAFF_ROLES:
        return {"customer_id": None, "restaurant_id": user.restaurant_id}
    return {"customer_id": user.id, "restaurant_id": None}


@router.post("/approve", response_model=LoanRead, status_code=201)
def approve(
    payload: LoanApprove,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> LoanRead:
    """Grant a loan for an escalated checkout and place its order."""
    try:
        loan = approve_loan(db, payload.escalation_id, approver=current_user, now=clock.now(), amount=payload.amount)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return LoanRead.model_validate(loan)


@router.get("", response_model=LoanPage)
def list_all(
    status: str | None = Query(default=None),
    customer_id: int | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LoanPage:
    scope = _scope(current_user)
    if scope["customer_id"] is not None:
        customer_id = scope["customer_id"]
    try:
        rows, total = loans.list_loans(
            db,
            status=status,
            customer_id=customer_id,
            restaurant_id=scope["restaurant_id"],
            page=page,
            limit=limit,
        )
    except SettlementError as exc:
        raise http_error(exc) from exc
    return LoanPage(loans=[LoanRead.model_validate(row) for row in rows], total=total, page=page, limit=limit)


@router.get("/stats", response_model=LoanStats)
def stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LoanStats:
    return LoanStats.model_validate(loans.loan_stats(db, **_scope(current_user)))


@router.post("/settle", response_model=LoanSettlementResult)
def settle(
    payload: LoanSettle,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> LoanSettlementResult:
    """Mark several loans of one customer as paid at once."""
    try:
        settled, total = loans.settle_loans(
            db,
            payload.loan_ids,
            payment_method=payload.payment_method,
            notes=payload.notes,
            actor=current_user,
            now=clock.now(),
        )
        account = ledger.ensure_credit_account(db, settled[0].customer_id)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return LoanSettlementResult(settled_loans=len(settled), total_amount=total, new_balance=account.balance)


@router.get("/{loan_id}", response_model=LoanRead)
def read_loan(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LoanRead:
    try:
        loan = loans.get_loan(db, loan_id)
        if current_user.role == "CUSTOMER":
            if loan.customer_id != current_user.id:
                raise NotFound(f"Loan {loan_id} not found")
        else:
            ensure_restaurant_staff(current_user, loan.restaurant_id)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return LoanRead.model_validate(loan)


@router.put("/{loan_id}/status", response_model=LoanRead)
def update_status(
    loan_id: int,
    payload: LoanStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> LoanRead:
    try:
        loan = loans.update_loan_status(
            db,
            loan_id,
            payload.status,
            notes=payload.notes,
            payment_method=payload.payment_method,
            actor=current_user,
            now=clock.now(),
        )
    except SettlementError as exc:
        raise http_error(exc) from exc
    return LoanRead.model_validate(loan)


@router.post("/{loan_id}/notes", response_model=LoanNoteRead, status_code=201)
def add_note(
    loan_id: int,
    payload: LoanNoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> LoanNoteRead:
    """Append an entry to the loan's communication log."""
    try:
        ensure_role(current_user, {"ADMIN", *STAFF_ROLES})
        loan = loans.get_loan(db, loan_id)
        ensure_restaurant_staff(current_user, loan.restaurant_id)
        note = loans.append_communication_log(
            db,
            loan,
            channel=payload.channel,
            text=payload.text,
            actor_id=current_user.id,
            now=clock.now(),
        )
    except SettlementError as exc:
        raise http_error(exc) from exc
    db.commit()
    db.refresh(note)
    return LoanNoteRead.model_validate(note)
