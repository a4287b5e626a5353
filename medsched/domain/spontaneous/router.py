"""Spontaneous request router"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...audit import default_audit
from ...auth import get_current_user
from ...database import get_db
from ...enums import SchedulingStatus
from ...models import User
from ..visits.schemas import VisitResponse
from .schemas import (
    RequestCountResponse,
    SpontaneousRequestCancel,
    SpontaneousRequestConfirm,
    SpontaneousRequestCreate,
    SpontaneousRequestResponse,
    SpontaneousRequestUpdate,
)
from .service import SpontaneousRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spontaneous-requests", tags=["Spontaneous Requests"])


def get_spontaneous_service(
    background_tasks: BackgroundTasks, db: Session = Depends(get_db)
) -> SpontaneousRequestService:
    """Dependency injection for SpontaneousRequestService"""
    return SpontaneousRequestService(db, audit=default_audit(db, background_tasks))


# ============================================================================
# REQUESTER
# ============================================================================


@router.post("", response_model=SpontaneousRequestResponse, status_code=201)
async def submit_request(
    data: SpontaneousRequestCreate,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return service.submit(current_user, data.reason, data.notes, data.preferred_datetime)


@router.get("/mine", response_model=list[SpontaneousRequestResponse])
async def list_my_requests(
    status: Optional[SchedulingStatus] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return service.list_mine(current_user, status, start, end)


@router.get("/mine/count", response_model=RequestCountResponse)
async def count_my_requests(
    status: Optional[SchedulingStatus] = Query(None),
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return RequestCountResponse(status=status, count=service.count_mine(current_user, status))


@router.get("", response_model=list[SpontaneousRequestResponse])
async def list_all_requests(
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    """Every request, newest first (coordinators)"""
    return service.list_all(current_user)


@router.get("/{request_id}", response_model=SpontaneousRequestResponse)
async def get_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return service.get_request(request_id, current_user)


@router.patch("/{request_id}", response_model=SpontaneousRequestResponse)
async def update_request(
    request_id: int,
    data: SpontaneousRequestUpdate,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return service.update(
        request_id, current_user, data.reason, data.notes, data.preferred_datetime
    )


@router.post("/{request_id}/cancel", response_model=SpontaneousRequestResponse)
async def cancel_request(
    request_id: int,
    data: Optional[SpontaneousRequestCancel] = None,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    """Requester withdraws their own pending request"""
    return service.cancel(request_id, current_user, data.reason if data else None)


# ============================================================================
# COORDINATOR
# ============================================================================


@router.post("/{request_id}/coordinator-cancel", response_model=SpontaneousRequestResponse)
async def cancel_request_as_coordinator(
    request_id: int,
    data: Optional[SpontaneousRequestCancel] = None,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return service.cancel_as_coordinator(request_id, current_user, data.reason if data else None)


@router.post("/{request_id}/reject", response_model=SpontaneousRequestResponse)
async def reject_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    return service.reject(request_id, current_user)


@router.post("/{request_id}/reschedule", response_model=SpontaneousRequestResponse)
async def flag_for_rescheduling(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    """Administrator correction: send the request back for confirmation"""
    return service.flag_for_rescheduling(request_id, current_user)


@router.post("/{request_id}/confirm", response_model=VisitResponse)
async def confirm_request(
    request_id: int,
    data: SpontaneousRequestConfirm,
    current_user: User = Depends(get_current_user),
    service: SpontaneousRequestService = Depends(get_spontaneous_service),
):
    """Match the request against the provider's weekly availability and book it"""
    return service.confirm(
        request_id,
        data.provider_id,
        current_user,
        data.override_datetime,
        data.category,
    )
