"""Order API schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from canteen_engine.schemas.cart import CartItemPayload


class OrderCreate(BaseModel):
    """Checkout request: cart lines of one restaurant and a pickup time."""

    items: list[CartItemPayload] = Field(min_length=1)
    collection_time: datetime
    idempotency_key: str | None = Field(default=None, max_length=64)


class OrderItemRead(BaseModel):
    menu_item_id: int | None
    name: str
    unit_price: Decimal
    qty: int
    price_snapshot: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    """Serialized order."""

    id: int
    customer_id: int
    restaurant_id: int
    total: Decimal
    collection_time: datetime
    status: str
    created_at: datetime
    refund_amount: Decimal | None = None
    cancelled_at: datetime | None = None
    collected_at: datetime | None = None
    items: list[OrderItemRead]

    model_config = ConfigDict(from_attributes=True)


class EscalationRead(BaseModel):
    """Checkout the balance could not cover; needs loan approval."""

    escalation_id: int
    customer_id: int
    restaurant_id: int
    total: Decimal
    balance: Decimal
    shortfall: Decimal
    message: str = "Insufficient balance; loan approval required"

    model_config = ConfigDict(from_attributes=True)


class CancellationQuoteRead(BaseModel):
    refund_amount: Decimal
    penalty_amount: Decimal
    penalty_rate: Decimal
    hours_until_collection: float
    requires_penalty: bool

    model_config = ConfigDict(from_attributes=True)


class OrderCancel(BaseModel):
    """Set ``confirm_penalty`` to accept a late-cancellation penalty."""

    confirm_penalty: bool = False


class CancellationResult(BaseModel):
    order_id: int
    status: str
    refund_amount: Decimal
