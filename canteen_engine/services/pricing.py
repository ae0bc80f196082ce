"""Effective price and cart total computation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

MINOR_UNIT = Decimal("0.01")
HUNDRED = Decimal("100")


class PricedItem(Protocol):
    id: int
    base_price: Decimal
    discount_percentage: Decimal | None
    discount_valid_until: datetime | None


class PricedLine(Protocol):
    item: PricedItem
    quantity: int


@dataclass(frozen=True)
class LinePrice:
    item_id: int
    base_price: Decimal
    effective_price: Decimal
    quantity: int
    line_total: Decimal


def round_money(value: Decimal) -> Decimal:
    """Round to the currency minor unit using round-half-up."""
    return Decimal(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def discount_active(item: PricedItem, now: datetime) -> bool:
    """A discount stays active up to and including its valid_until instant.

    Percentages outside the open range 0-100 are ignored, so the effective
    price never exceeds the base price or drops to zero or below.
    """
    if item.discount_percentage is None or item.discount_valid_until is None:
        return False
    if not Decimal("0") < Decimal(item.discount_percentage) < HUNDRED:
        return False
    return now <= item.discount_valid_until


def effective_price(item: PricedItem, now: datetime) -> Decimal:
    base = round_money(item.base_price)
    if not discount_active(item, now):
        return base
    percentage = Decimal(item.discount_percentage)
    return round_money(base * (1 - percentage / HUNDRED))


def price_lines(lines: Iterable[PricedLine], now: datetime) -> list[LinePrice]:
    priced: list[LinePrice] = []
    for line in lines:
        unit = effective_price(line.item, now)
        priced.append(
            LinePrice(
                item_id=line.item.id,
                base_price=round_money(line.item.base_price),
                effective_price=unit,
                quantity=line.quantity,
                line_total=unit * line.quantity,
            )
        )
    return priced


def cart_total(lines: Iterable[PricedLine], now: datetime) -> Decimal:
    """Sum effective (never base) prices times quantities."""
    return sum((line.line_total for line in price_lines(lines, now)), Decimal("0.00"))
