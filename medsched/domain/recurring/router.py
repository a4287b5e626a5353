"""Recurring availability router"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...audit import default_audit
from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import RecurringSlotCreate, RecurringSlotResponse, RecurringSlotUpdate
from .service import RecurringSlotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recurring-slots", tags=["Recurring Slots"])


def get_recurring_service(
    background_tasks: BackgroundTasks, db: Session = Depends(get_db)
) -> RecurringSlotService:
    """Dependency injection for RecurringSlotService"""
    return RecurringSlotService(db, audit=default_audit(db, background_tasks))


@router.get("", response_model=list[RecurringSlotResponse])
async def list_recurring_slots(
    provider_id: int = Query(...),
    current_user: User = Depends(get_current_user),
    service: RecurringSlotService = Depends(get_recurring_service),
):
    """Weekly windows of a provider, ordered by day then start time"""
    return service.list_recurring_slots(provider_id)


@router.get("/{recurring_slot_id}", response_model=RecurringSlotResponse)
async def get_recurring_slot(
    recurring_slot_id: int,
    current_user: User = Depends(get_current_user),
    service: RecurringSlotService = Depends(get_recurring_service),
):
    return service.get_recurring_slot(recurring_slot_id)


@router.post("", response_model=RecurringSlotResponse, status_code=201)
async def create_recurring_slot(
    data: RecurringSlotCreate,
    current_user: User = Depends(get_current_user),
    service: RecurringSlotService = Depends(get_recurring_service),
):
    provider_id = data.provider_id or current_user.id
    return service.create_recurring_slot(
        provider_id, data.day_of_week, data.start_time, data.end_time, current_user
    )


@router.put("/{recurring_slot_id}", response_model=RecurringSlotResponse)
async def update_recurring_slot(
    recurring_slot_id: int,
    data: RecurringSlotUpdate,
    current_user: User = Depends(get_current_user),
    service: RecurringSlotService = Depends(get_recurring_service),
):
    return service.update_recurring_slot(
        recurring_slot_id, data.day_of_week, data.start_time, data.end_time, current_user
    )


@router.delete("/{recurring_slot_id}", status_code=204)
async def delete_recurring_slot(
    recurring_slot_id: int,
    current_user: User = Depends(get_current_user),
    service: RecurringSlotService = Depends(get_recurring_service),
):
    service.delete_recurring_slot(recurring_slot_id, current_user)
