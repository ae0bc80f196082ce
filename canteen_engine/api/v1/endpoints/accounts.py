"""Credit account endpoints: balance, top-ups and ledger history."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from canteen_engine.api.v1.deps import http_error
from canteen_engine.core.security import get_current_user
from canteen_engine.db.session import get_db
from canteen_engine.models.user import STAFF_ROLES, User
from canteen_engine.schemas.account import BalanceRead, LedgerEntryRead, TopUpCreate
from canteen_engine.services import ledger
from canteen_engine.services.access import ensure_role
from canteen_engine.services.clock import ScheduleClock, get_clock
from canteen_engine.services.errors import SettlementError

router: APIRouter = APIRouter()


@router.get("/me", response_model=BalanceRead)
def my_balance(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> BalanceRead:
    try:
        account = ledger.ensure_credit_account(db, current_user.id)
    except SettlementError as exc:
        raise http_error(exc) from exc
    db.commit()
    return BalanceRead.model_validate(account)


@router.post("/{customer_id}/topups", response_model=LedgerEntryRead, status_code=201)
def top_up(
    customer_id: int,
    payload: TopUpCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> LedgerEntryRead:
    try:
        entry = ledger.top_up(db, customer_id=customer_id, amount=payload.amount, actor=current_user, now=clock.now())
    except SettlementError as exc:
        raise http_error(exc) from exc
    return LedgerEntryRead.model_validate(entry)


@router.get("/{customer_id}/ledger", response_model=list[LedgerEntryRead])
def ledger_history(
    customer_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[LedgerEntryRead]:
    """Newest entries first; customers only see their own account."""
    try:
        if current_user.id != customer_id:
            ensure_role(current_user, {"ADMIN", *STAFF_ROLES})
        entries = ledger.ledger_history(db, customer_id, limit=limit, offset=offset)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return [LedgerEntryRead.model_validate(entry) for entry in entries]
