"""Cart pricing schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field


class CartItemPayload(BaseModel):
    """Single cart line payload."""

    menu_item_id: int
    quantity: int = Field(default=1, ge=1)


class CartPayload(BaseModel):
    items: list[CartItemPayload] = Field(min_length=1)


class PricedLineResponse(BaseModel):
    menu_item_id: int
    base_price: Decimal
    effective_price: Decimal
    quantity: int
    line_total: Decimal


class PricedCartResponse(BaseModel):
    restaurant_id: int
    lines: list[PricedLineResponse]
    total: Decimal
