"""Schema exports."""

from canteen_engine.schemas.account import BalanceRead, LedgerEntryRead, TopUpCreate
from canteen_engine.schemas.cart import CartItemPayload, CartPayload, PricedCartResponse, PricedLineResponse
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
from canteen_engine.schemas.order import (
    CancellationQuoteRead,
    CancellationResult,
    EscalationRead,
    OrderCancel,
    OrderCreate,
    OrderItemRead,
    OrderRead,
)
from canteen_engine.schemas.restaurant import PenaltySettingsSchema
from canteen_engine.schemas.schedule import CollectionTimeValidation, DayScheduleSchema, WeeklyScheduleSchema

__all__ = [
    "BalanceRead",
    "LedgerEntryRead",
    "TopUpCreate",
    "CartItemPayload",
    "CartPayload",
    "PricedCartResponse",
    "PricedLineResponse",
    "LoanApprove",
    "LoanNoteCreate",
    "LoanNoteRead",
    "LoanPage",
    "LoanRead",
    "LoanSettle",
    "LoanSettlementResult",
    "LoanStats",
    "LoanStatusUpdate",
    "CancellationQuoteRead",
    "CancellationResult",
    "EscalationRead",
    "OrderCancel",
    "OrderCreate",
    "OrderItemRead",
    "OrderRead",
    "PenaltySettingsSchema",
    "CollectionTimeValidation",
    "DayScheduleSchema",
    "WeeklyScheduleSchema",
]
