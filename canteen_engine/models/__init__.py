"""Application models package."""

from canteen_engine.models.account import CreditAccount, LedgerEntry
from canteen_engine.models.loan import Loan, LoanNote
from canteen_engine.models.menu import MenuItem
from canteen_engine.models.order import CheckoutEscalation, Order, OrderItem
from canteen_engine.models.restaurant import PenaltySettings, Restaurant, RestaurantOpeningHours
from canteen_engine.models.user import User

__all__ = [
    "User", "MenuItem", "Order", "OrderItem", "CheckoutEscalation", "CreditAccount", "LedgerEntry",
    "Loan", "LoanNote", "Restaurant", "RestaurantOpeningHours", "PenaltySettings",
]
