"""Single-restaurant cart guard."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from canteen_engine.models.menu import MenuItem
from canteen_engine.services.errors import InvariantViolation, NotFound


@dataclass
class CartLine:
    item: MenuItem
    quantity: int

    @property
    def item_id(self) -> int:
        return self.item.id

    @property
    def restaurant_id(self) -> int:
        return self.item.restaurant_id

    @property
    def unit_price(self) -> Decimal:
        return self.item.base_price


class Cart:
    """Lines of exactly one restaurant.

    Adding a line from another restaurant is rejected unless the caller asks
    to replace the cart, which drops every existing line first.
    """

    def __init__(self) -> None:
        self.lines: list[CartLine] = []
        self.restaurant_id: int | None = None

    def add_line(self, line: CartLine, replace_cart: bool = False) -> None:
        if line.quantity < 1:
            raise InvariantViolation(f"Quantity must be >= 1 for item {line.item_id}")
        if self.lines and line.restaurant_id != self.restaurant_id:
            if not replace_cart:
                raise InvariantViolation(
                    f"Cart holds items from restaurant {self.restaurant_id}; "
                    f"item {line.item_id} belongs to restaurant {line.restaurant_id}"
                )
            self.clear()

        for existing in self.lines:
            if existing.item_id == line.item_id:
                existing.quantity += line.quantity
                return
        self.lines.append(line)
        self.restaurant_id = line.restaurant_id

    def remove_line(self, item_id: int) -> None:
        self.lines = [line for line in self.lines if line.item_id != item_id]
        if not self.lines:
            self.restaurant_id = None

    def clear(self) -> None:
        self.lines = []
        self.restaurant_id = None


def ensure_single_restaurant(lines: Iterable[CartLine], restaurant_id: int) -> None:
    offending = sorted({line.restaurant_id for line in lines if line.restaurant_id != restaurant_id})
    if offending:
        raise InvariantViolation(
            f"Cart mixes restaurant {restaurant_id} with restaurant(s) {', '.join(map(str, offending))}"
        )


def build_cart(db: Session, items: Iterable[tuple[int, int]]) -> Cart:
    """Resolve (menu_item_id, quantity) pairs into a single-restaurant cart."""
    cart = Cart()
    for menu_item_id, quantity in items:
        item = db.get(MenuItem, menu_item_id)
        if item is None or not item.is_active:
            raise NotFound(f"Menu item {menu_item_id} not available")
        cart.add_line(CartLine(item=item, quantity=quantity))
    if not cart.lines:
        raise InvariantViolation("Cart is empty")
    return cart
