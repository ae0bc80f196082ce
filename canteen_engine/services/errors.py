"""Domain error taxonomy for scheduling and settlement operations."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    SCHEDULE_VIOLATION = "ScheduleViolation"
    INVARIANT_VIOLATION = "InvariantViolation"
    TOO_SOON_TO_CANCEL = "TooSoonToCancel"
    ALREADY_TERMINAL = "AlreadyTerminal"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    INVALID_AMOUNT = "InvalidAmount"
    PENALTY_CONFIRMATION_REQUIRED = "PenaltyConfirmationRequired"


class SettlementError(Exception):
    """Base class for errors surfaced verbatim to the caller."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Extra fields the caller needs to render an actionable message."""
        return {}


class ScheduleViolation(SettlementError):
    """Raised when a collection time falls outside the restaurant schedule or booking window."""

    kind = ErrorKind.SCHEDULE_VIOLATION


class InvariantViolation(SettlementError):
    """Raised when a caller breaks a structural rule, e.g. a multi-restaurant cart."""

    kind = ErrorKind.INVARIANT_VIOLATION


class TooSoonToCancel(SettlementError):
    kind = ErrorKind.TOO_SOON_TO_CANCEL

    def __init__(self, remaining_minutes: int) -> None:
        super().__init__(f"{remaining_minutes} minutes remaining")
        self.remaining_minutes = remaining_minutes

    def details(self) -> dict[str, Any]:
        return {"remaining_minutes": self.remaining_minutes}


class AlreadyTerminal(SettlementError):
    kind = ErrorKind.ALREADY_TERMINAL

    def __init__(self, entity: str, current_status: str) -> None:
        super().__init__(f"{entity} is already {current_status}")
        self.entity = entity
        self.current_status = current_status

    def details(self) -> dict[str, Any]:
        return {"current_status": self.current_status}


class Unauthorized(SettlementError):
    kind = ErrorKind.UNAUTHORIZED


class NotFound(SettlementError):
    kind = ErrorKind.NOT_FOUND


class InvalidAmount(SettlementError):
    kind = ErrorKind.INVALID_AMOUNT


class PenaltyConfirmationRequired(SettlementError):
    """Raised when a late cancellation is attempted without accepting its penalty."""

    kind = ErrorKind.PENALTY_CONFIRMATION_REQUIRED

    def __init__(
        self,
        refund_amount: Decimal,
        penalty_amount: Decimal,
        penalty_rate: Decimal,
        hours_until_collection: float,
    ) -> None:
        super().__init__(f"Cancelling now costs a {penalty_rate}% penalty of {penalty_amount}")
        self.refund_amount = refund_amount
        self.penalty_amount = penalty_amount
        self.penalty_rate = penalty_rate
        self.hours_until_collection = hours_until_collection

    def details(self) -> dict[str, Any]:
        return {
            "requires_penalty": True,
            "refund_amount": str(self.refund_amount),
            "penalty_amount": str(self.penalty_amount),
            "penalty_rate": str(self.penalty_rate),
            "hours_until_collection": self.hours_until_collection,
        }
