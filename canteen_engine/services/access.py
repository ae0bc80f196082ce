"""Centralized access-level guards for staff-only and owner-only operations."""

from __future__ import annotations

from canteen_engine.models import Order, User
from canteen_engine.models.user import STAFF_ROLES
from canteen_engine.services.errors import NotFound, Unauthorized


def ensure_role(user: User, allowed_roles: set[str]) -> None:
    """Ensure user role is one of allowed roles."""
    if not user.is_active or user.role not in allowed_roles:
        raise Unauthorized("Not enough permissions")


def ensure_restaurant_staff(user: User, restaurant_id: int) -> None:
    """Allow admins and staff/owners attached to the restaurant."""
    ensure_role(user, {"ADMIN", *STAFF_ROLES})
    if user.role != "ADMIN" and user.restaurant_id != restaurant_id:
        raise Unauthorized("Not a member of this restaurant's staff")


def ensure_restaurant_owner(user: User, restaurant_id: int) -> None:
    ensure_role(user, {"ADMIN", "OWNER"})
    if user.role != "ADMIN" and user.restaurant_id != restaurant_id:
        raise Unauthorized("Not the owner of this restaurant")


def ensure_can_top_up(user: User) -> None:
    """Top-ups need owner/admin rights or staff with explicit top-up access."""
    ensure_role(user, {"ADMIN", *STAFF_ROLES})
    if user.role == "STAFF" and not user.topup_access:
        raise Unauthorized("Staff member has no top-up access")


def ensure_can_access_order(user: User, order: Order) -> None:
    """Apply IDOR-safe ownership/role checks; raise NotFound to avoid leaking."""
    if user.role == "ADMIN":
        return
    if user.role in STAFF_ROLES and user.restaurant_id == order.restaurant_id:
        return
    if user.role == "CUSTOMER" and order.customer_id == user.id:
        return
    raise NotFound(f"Order {order.id} not found")
