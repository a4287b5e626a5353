"""Slot router - FastAPI endpoints for provider availability"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...audit import default_audit
from ...auth import get_current_user
from ...database import get_db
from ...enums import SlotStatus
from ...exceptions import PermissionDeniedError
from ...models import User
from ..scheduling.conflicts import TimeWindow
from .schemas import ReclaimResponse, SlotCreate, SlotRangeCreate, SlotResponse, SlotStatusUpdate
from .service import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["Slots"])


def get_slot_service(
    background_tasks: BackgroundTasks, db: Session = Depends(get_db)
) -> SlotService:
    """Dependency injection for SlotService"""
    return SlotService(db, audit=default_audit(db, background_tasks))


@router.get("/available", response_model=list[SlotResponse])
async def list_available_slots(
    provider_id: int = Query(...),
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    """Bookable future slots of a provider"""
    return service.list_available_slots(provider_id)


@router.get("", response_model=list[SlotResponse])
async def list_provider_slots(
    provider_id: int = Query(...),
    status: Optional[SlotStatus] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    return service.list_provider_slots(provider_id, status, start, end)


@router.get("/{slot_id}", response_model=SlotResponse)
async def get_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    return service.get_slot(slot_id)


@router.post("", response_model=SlotResponse, status_code=201)
async def create_slot(
    data: SlotCreate,
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    """Create an AVAILABLE slot; defaults to the caller's own calendar"""
    provider_id = data.provider_id or current_user.id
    return service.create_slot(
        provider_id, TimeWindow(data.start_time, data.end_time), current_user
    )


@router.post("/range", response_model=list[SlotResponse], status_code=201)
async def create_slots_in_range(
    data: SlotRangeCreate,
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    provider_id = data.provider_id or current_user.id
    return service.create_slots_in_range(
        provider_id,
        TimeWindow(data.start_time, data.end_time),
        data.duration_minutes,
        current_user,
    )


@router.patch("/{slot_id}/status", response_model=SlotResponse)
async def update_slot_status(
    slot_id: int,
    data: SlotStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    """Provider toggle between AVAILABLE and UNAVAILABLE"""
    return service.update_slot_status(slot_id, data.status, current_user)


@router.delete("/{slot_id}", status_code=204)
async def delete_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    service.delete_slot(slot_id, current_user)


@router.post("/reclaim", response_model=ReclaimResponse)
async def reclaim_expired_locks(
    current_user: User = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    """Run the expired-lock sweep on demand (admins only)"""
    if not current_user.role.can_override_any_visit:
        raise PermissionDeniedError("Only administrators can run the lock sweep")
    logger.info(f"Manual lock sweep requested by {current_user.email}")
    return ReclaimResponse(reclaimed=service.reclaim_expired_locks())
