"""Slot domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ...enums import SlotStatus


class TimeWindowIn(BaseModel):
    """A (start, end) pair in the canonical local time zone"""

    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def validate_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class SlotCreate(TimeWindowIn):
    """Schema for a provider creating one slot (admins may name another provider)"""

    provider_id: Optional[int] = None


class SlotRangeCreate(SlotCreate):
    """Schema for generating back-to-back slots over a range"""

    duration_minutes: int = Field(..., gt=0, le=480)


class SlotStatusUpdate(BaseModel):
    status: SlotStatus


class SlotResponse(BaseModel):
    """Schema for slot response"""

    id: int
    provider_id: int
    start_time: datetime
    end_time: datetime
    status: SlotStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReclaimResponse(BaseModel):
    reclaimed: int
