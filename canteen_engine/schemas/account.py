"""Credit account schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class BalanceRead(BaseModel):
    customer_id: int
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class TopUpCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


class LedgerEntryRead(BaseModel):
    id: int
    direction: str
    reason: str
    amount: Decimal
    balance_after: Decimal
    order_id: int | None
    loan_id: int | None
    actor_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
