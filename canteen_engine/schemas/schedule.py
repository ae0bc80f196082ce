"""Opening hours and collection-time schemas."""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator


class DayScheduleSchema(BaseModel):
    """Opening flag and whole-hour window of one weekday (0 is Sunday)."""

    weekday: int = Field(ge=0, le=6)
    open: bool
    start_hour: int | None = Field(default=None, ge=0, le=23)
    end_hour: int | None = Field(default=None, ge=0, le=23)

    @model_validator(mode="after")
    def check_window(self) -> "DayScheduleSchema":
        if not self.open:
            return self
        if self.start_hour is None or self.end_hour is None:
            raise ValueError("Open days need both start_hour and end_hour")
        if self.start_hour > self.end_hour:
            raise ValueError("start_hour must not be after end_hour")
        return self


class WeeklyScheduleSchema(BaseModel):
    days: list[DayScheduleSchema] = Field(min_length=1, max_length=7)


class CollectionTimeValidation(BaseModel):
    """Result of checking a candidate collection time."""

    ok: bool
    reason: str
    min_date: date
    max_date: date
    candidate: datetime
