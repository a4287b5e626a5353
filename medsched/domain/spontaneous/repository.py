"""Spontaneous request repository - Database operations (never commits)"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...enums import SchedulingStatus
from ...models import SpontaneousRequest


class SpontaneousRequestRepository:
    """Repository for spontaneous request database operations"""

    @staticmethod
    def get_request(
        db: Session, request_id: int, for_update: bool = False
    ) -> Optional[SpontaneousRequest]:
        query = db.query(SpontaneousRequest).filter(SpontaneousRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_requester_requests(
        db: Session,
        requester_id: int,
        status: Optional[SchedulingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[SpontaneousRequest]:
        """A requester's requests, filtered on status and preferred date-time"""
        query = db.query(SpontaneousRequest).filter(SpontaneousRequest.requester_id == requester_id)

        if status:
            query = query.filter(SpontaneousRequest.scheduling_status == status)
        if start:
            query = query.filter(SpontaneousRequest.preferred_datetime >= start)
        if end:
            query = query.filter(SpontaneousRequest.preferred_datetime <= end)

        if start or end:
            return query.order_by(SpontaneousRequest.preferred_datetime.desc()).all()
        return query.order_by(SpontaneousRequest.created_at.desc(), SpontaneousRequest.id.desc()).all()

    @staticmethod
    def count_requester_requests(
        db: Session, requester_id: int, status: Optional[SchedulingStatus] = None
    ) -> int:
        query = db.query(SpontaneousRequest).filter(SpontaneousRequest.requester_id == requester_id)
        if status:
            query = query.filter(SpontaneousRequest.scheduling_status == status)
        return query.count()

    @staticmethod
    def get_all_requests(db: Session) -> list[SpontaneousRequest]:
        return (
            db.query(SpontaneousRequest)
            .order_by(SpontaneousRequest.created_at.desc(), SpontaneousRequest.id.desc())
            .all()
        )

    @staticmethod
    def add_request(db: Session, request: SpontaneousRequest) -> SpontaneousRequest:
        db.add(request)
        db.flush()
        return request
