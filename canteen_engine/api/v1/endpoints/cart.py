"""Cart pricing endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from canteen_engine.api.v1.deps import http_error
from canteen_engine.db.session import get_db
from canteen_engine.schemas.cart import CartPayload, PricedCartResponse, PricedLineResponse
from canteen_engine.services.cart import build_cart
from canteen_engine.services.clock import ScheduleClock, get_clock
from canteen_engine.services.errors import SettlementError
from canteen_engine.services.pricing import cart_total, price_lines

router: APIRouter = APIRouter()


@router.post("/price", response_model=PricedCartResponse)
def price_cart(
    payload: CartPayload,
    db: Session = Depends(get_db),
    clock: ScheduleClock = Depends(get_clock),
) -> PricedCartResponse:
    """Return effective line prices and the total the checkout would debit."""
    try:
        cart = build_cart(db, ((item.menu_item_id, item.quantity) for item in payload.items))
    except SettlementError as exc:
        raise http_error(exc) from exc

    now = clock.now()
    lines = price_lines(cart.lines, now)
    return PricedCartResponse(
        restaurant_id=cart.restaurant_id,
        lines=[
            PricedLineResponse(
                menu_item_id=line.item_id,
                base_price=line.base_price,
                effective_price=line.effective_price,
                quantity=line.quantity,
                line_total=line.line_total,
            )
            for line in lines
        ],
        total=cart_total(cart.lines, now),
    )
