"""Order endpoints: checkout, cancellation and collection."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from canteen_engine.api.v1.deps import http_error
from canteen_engine.core.security import get_current_user
from canteen_engine.db.session import get_db
from canteen_engine.models.order import Order
from canteen_engine.models.user import User
from canteen_engine.schemas.order import (
    CancellationQuoteRead,
    CancellationResult,
    EscalationRead,
    OrderCancel,
    OrderCreate,
    OrderRead,
)
from canteen_engine.services.access import ensure_can_access_order
from canteen_engine.services.cancellation import cancel_order, quote_order_cancellation
from canteen_engine.services.clock import ScheduleClock, get_clock
from canteen_engine.services.errors import SettlementError
from canteen_engine.services.order_service import confirm_collection, get_order, list_orders
from canteen_engine.services.settlement import place_order

router: APIRouter = APIRouter()


@router.post("", response_model=OrderRead | EscalationRead, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> OrderRead | EscalationRead:
    """Place an order; 202 with an escalation when the balance needs a loan."""
    try:
        result = place_order(
            db,
            customer=current_user,
            items=[(item.menu_item_id, item.quantity) for item in payload.items],
            collection_time=clock.to_local(payload.collection_time),
            now=clock.now(),
            idempotency_key=payload.idempotency_key,
        )
    except SettlementError as exc:
        raise http_error(exc) from exc

    if isinstance(result, Order):
        return OrderRead.model_validate(result)
    response.status_code = status.HTTP_202_ACCEPTED
    return EscalationRead.model_validate(result)


@router.get("/me", response_model=list[OrderRead])
def my_orders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[OrderRead]:
    return [OrderRead.model_validate(order) for order in list_orders(db, customer_id=current_user.id)]


@router.get("/{order_id}", response_model=OrderRead)
def read_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OrderRead:
    try:
        order = get_order(db, order_id)
        ensure_can_access_order(current_user, order)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return OrderRead.model_validate(order)


@router.get("/{order_id}/cancellation-quote", response_model=CancellationQuoteRead)
def cancellation_quote(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> CancellationQuoteRead:
    """Preview the refund a cancellation right now would produce."""
    try:
        quote = quote_order_cancellation(db, order_id, actor=current_user, now=clock.now())
    except SettlementError as exc:
        raise http_error(exc) from exc
    return CancellationQuoteRead.model_validate(quote)


@router.post("/{order_id}/cancel", response_model=CancellationResult)
def cancel(
    order_id: int,
    payload: OrderCancel | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> CancellationResult:
    """Cancel an order; a late cancellation answers 409 until the penalty is confirmed."""
    confirm_penalty = payload.confirm_penalty if payload is not None else False
    try:
        order, refund = cancel_order(
            db, order_id, actor=current_user, now=clock.now(), confirm_penalty=confirm_penalty
        )
    except SettlementError as exc:
        raise http_error(exc) from exc
    return CancellationResult(order_id=order.id, status=order.status, refund_amount=refund)


@router.post("/{order_id}/collect", response_model=OrderRead)
def collect(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: ScheduleClock = Depends(get_clock),
) -> OrderRead:
    try:
        order = confirm_collection(db, order_id, actor=current_user, now=clock.now())
    except SettlementError as exc:
        raise http_error(exc) from exc
    return OrderRead.model_validate(order)
