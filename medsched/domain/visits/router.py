"""Visit router - FastAPI endpoints for booking and the visit lifecycle"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...audit import default_audit
from ...auth import get_current_user
from ...database import get_db
from ...enums import VisitStatus
from ...models import User
from ..scheduling.conflicts import TimeWindow
from ..slots.schemas import SlotResponse
from .schemas import (
    FreshBookingResponse,
    VisitBookExisting,
    VisitBookFresh,
    VisitResponse,
    VisitStatusAdvance,
)
from .service import VisitService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/visits", tags=["Visits"])


def get_visit_service(
    background_tasks: BackgroundTasks, db: Session = Depends(get_db)
) -> VisitService:
    """Dependency injection for VisitService"""
    return VisitService(db, audit=default_audit(db, background_tasks))


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", response_model=VisitResponse, status_code=201)
async def book_existing_slot(
    data: VisitBookExisting,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    """Book an AVAILABLE slot; the slot is locked until the provider confirms"""
    return service.book_existing_slot(
        data.requester_id, data.provider_id, data.slot_id, data.category, current_user
    )


@router.post("/fresh", response_model=FreshBookingResponse, status_code=201)
async def book_with_fresh_slot(
    data: VisitBookFresh,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    """Book a caller-supplied window; a new locked slot is created for it"""
    visit, slot = service.book_with_fresh_slot(
        data.requester_id,
        data.provider_id,
        TimeWindow(data.start_time, data.end_time),
        data.category,
        current_user,
    )
    return FreshBookingResponse(
        visit=VisitResponse.model_validate(visit),
        slot=SlotResponse.model_validate(slot),
    )


# ============================================================================
# QUERIES
# ============================================================================


@router.get("/provider/{provider_id}", response_model=list[VisitResponse])
async def list_provider_visits(
    provider_id: int,
    status: Optional[VisitStatus] = Query(None),
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    return service.list_provider_visits(provider_id, status)


@router.get("/provider/{provider_id}/day", response_model=list[VisitResponse])
async def list_provider_visits_on_date(
    provider_id: int,
    day: date = Query(...),
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    """Blocking visits of a provider on one day (coordinator conflict preview)"""
    return service.list_provider_visits_on_date(provider_id, day)


@router.get("/requester/{requester_id}", response_model=list[VisitResponse])
async def list_requester_visits(
    requester_id: int,
    status: Optional[VisitStatus] = Query(None),
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    return service.list_requester_visits(requester_id, status)


@router.get("/{visit_id}", response_model=VisitResponse)
async def get_visit(
    visit_id: int,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    return service.get_visit(visit_id, current_user)


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{visit_id}/confirm", response_model=VisitResponse)
async def confirm_visit(
    visit_id: int,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    return service.confirm_visit(visit_id, current_user)


@router.post("/{visit_id}/reject", response_model=VisitResponse)
async def reject_visit(
    visit_id: int,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    return service.reject_visit(visit_id, current_user)


@router.post("/{visit_id}/cancel", response_model=VisitResponse)
async def cancel_visit(
    visit_id: int,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    return service.cancel_visit(visit_id, current_user)


@router.patch("/{visit_id}/status", response_model=VisitResponse)
async def advance_visit_status(
    visit_id: int,
    data: VisitStatusAdvance,
    current_user: User = Depends(get_current_user),
    service: VisitService = Depends(get_visit_service),
):
    """Provider progress markers (IN_PROGRESS, COMPLETED)"""
    return service.advance_status(visit_id, current_user, data.status)
