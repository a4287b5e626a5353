"""Recurring availability schemas - Pydantic models for validation"""

from datetime import datetime, time
from typing import Optional

from pydantic import BaseModel, model_validator

from ...enums import DayOfWeek


class RecurringSlotBase(BaseModel):
    day_of_week: DayOfWeek
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class RecurringSlotCreate(RecurringSlotBase):
    """Schema for adding a weekly window (admins may name another provider)"""

    provider_id: Optional[int] = None


class RecurringSlotUpdate(RecurringSlotBase):
    """Schema for replacing a weekly window"""


class RecurringSlotResponse(BaseModel):
    id: int
    provider_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
