"""Visit domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...enums import VisitCategory, VisitStatus
from ..slots.schemas import SlotResponse, TimeWindowIn


class VisitBookExisting(BaseModel):
    """Coordinator booking an AVAILABLE slot for a requester"""

    requester_id: int
    provider_id: int
    slot_id: int
    category: VisitCategory


class VisitBookFresh(TimeWindowIn):
    """Coordinator booking a caller-supplied window that becomes a new locked slot"""

    requester_id: int
    provider_id: int
    category: VisitCategory


class VisitStatusAdvance(BaseModel):
    status: VisitStatus

    @field_validator("status")
    @classmethod
    def validate_progress_marker(cls, v):
        if v not in (VisitStatus.IN_PROGRESS, VisitStatus.COMPLETED):
            raise ValueError("Status must be IN_PROGRESS or COMPLETED")
        return v


class VisitResponse(BaseModel):
    """Schema for visit response"""

    id: int
    requester_id: int
    provider_id: int
    slot_id: Optional[int] = None
    category: VisitCategory
    status: VisitStatus
    created_by_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    slot: Optional[SlotResponse] = None

    class Config:
        from_attributes = True


class FreshBookingResponse(BaseModel):
    visit: VisitResponse
    slot: SlotResponse
