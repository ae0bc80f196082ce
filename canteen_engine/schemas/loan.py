"""Loan API schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class LoanApprove(BaseModel):
    escalation_id: int
    amount: Decimal | None = Field(default=None, gt=0)


class LoanStatusUpdate(BaseModel):
    status: Literal["PAID", "CANCELLED"]
    notes: str | None = None
    payment_method: str = Field(default="CASH", max_length=32)


class LoanSettle(BaseModel):
    loan_ids: list[int] = Field(min_length=1)
    payment_method: str = Field(default="CASH", max_length=32)
    notes: str | None = None


class LoanNoteCreate(BaseModel):
    channel: str = Field(default="NOTE", max_length=32)
    text: str = Field(min_length=1)


class LoanNoteRead(BaseModel):
    id: int
    channel: str
    text: str
    actor_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoanRead(BaseModel):
    """Serialized loan with its communication log."""

    id: int
    customer_id: int
    restaurant_id: int
    order_id: int
    loan_amount: Decimal
    status: str
    created_at: datetime
    approved_at: datetime
    approver_id: int
    payment_method: str | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    notes: list[LoanNoteRead] = []

    model_config = ConfigDict(from_attributes=True)


class LoanPage(BaseModel):
    loans: list[LoanRead]
    total: int
    page: int
    limit: int


class LoanStatsBucket(BaseModel):
    count: int
    total_amount: Decimal


class LoanStats(BaseModel):
    active: LoanStatsBucket
    paid: LoanStatsBucket
    cancelled: LoanStatsBucket
    total: LoanStatsBucket


class LoanSettlementResult(BaseModel):
    settled_loans: int
    total_amount: Decimal
    new_balance: Decimal
