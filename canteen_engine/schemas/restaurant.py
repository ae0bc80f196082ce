"""Restaurant settings schemas."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PenaltySettingsSchema(BaseModel):
    enabled: bool = False
    penalty_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    time_threshold_hours: int = Field(default=0, ge=0, le=48)
    allow_negative_balance: bool = False

    model_config = ConfigDict(from_attributes=True)
