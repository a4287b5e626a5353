"""Spontaneous request schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...enums import SchedulingStatus, VisitCategory


class SpontaneousRequestCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    notes: Optional[str] = Field(None, max_length=4000)
    preferred_datetime: Optional[datetime] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError("Reason is required")
        return v.strip()


class SpontaneousRequestUpdate(BaseModel):
    """Partial edit; only fields that are sent are changed"""

    reason: Optional[str] = Field(None, min_length=1, max_length=2000)
    notes: Optional[str] = Field(None, max_length=4000)
    preferred_datetime: Optional[datetime] = None


class SpontaneousRequestCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class SpontaneousRequestConfirm(BaseModel):
    """Coordinator confirmation; ``override_datetime`` replaces the requester's preference"""

    provider_id: int
    override_datetime: Optional[datetime] = None
    category: VisitCategory = VisitCategory.SPONTANEOUS


class SpontaneousRequestResponse(BaseModel):
    id: int
    requester_id: int
    reason: str
    notes: Optional[str] = None
    preferred_datetime: Optional[datetime] = None
    scheduling_status: SchedulingStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RequestCountResponse(BaseModel):
    status: Optional[SchedulingStatus] = None
    count: int
