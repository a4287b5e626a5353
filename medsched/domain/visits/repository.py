"""Visit repository - Database operations for visits (never commits)"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...enums import BLOCKING_VISIT_STATUSES, VisitStatus
from ...models import Slot, Visit


class VisitRepository:
    """Repository for visit database operations"""

    @staticmethod
    def get_visit(db: Session, visit_id: int, for_update: bool = False) -> Optional[Visit]:
        query = db.query(Visit).filter(Visit.id == visit_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_active_visits_for_slot(db: Session, slot_id: int) -> list[Visit]:
        """Non-cancelled visits bound to a slot (at most one by the partial unique index)"""
        return (
            db.query(Visit)
            .filter(Visit.slot_id == slot_id, Visit.status != VisitStatus.CANCELLED)
            .all()
        )

    @staticmethod
    def count_visits_for_slot(db: Session, slot_id: int) -> int:
        return db.query(Visit).filter(Visit.slot_id == slot_id).count()

    @staticmethod
    def _blocking_overlaps(db: Session, party_column, party_id: int, start: datetime, end: datetime):
        return (
            db.query(Visit)
            .join(Slot, Visit.slot_id == Slot.id)
            .options(joinedload(Visit.slot))
            .filter(
                party_column == party_id,
                Visit.status.in_(list(BLOCKING_VISIT_STATUSES)),
                Slot.start_time < end,
                Slot.end_time > start,
            )
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def get_blocking_visits_for_requester(
        db: Session, requester_id: int, start: datetime, end: datetime
    ) -> list[Visit]:
        """Requester's live visits whose slot overlaps [start, end)"""
        return VisitRepository._blocking_overlaps(db, Visit.requester_id, requester_id, start, end)

    @staticmethod
    def get_blocking_visits_for_provider(
        db: Session, provider_id: int, start: datetime, end: datetime
    ) -> list[Visit]:
        """Provider's live visits whose slot overlaps [start, end)"""
        return VisitRepository._blocking_overlaps(db, Visit.provider_id, provider_id, start, end)

    @staticmethod
    def list_provider_visits(
        db: Session, provider_id: int, status: Optional[VisitStatus] = None
    ) -> list[Visit]:
        query = db.query(Visit).filter(Visit.provider_id == provider_id)
        if status:
            query = query.filter(Visit.status == status)
        return query.order_by(Visit.created_at.desc(), Visit.id.desc()).all()

    @staticmethod
    def list_requester_visits(
        db: Session, requester_id: int, status: Optional[VisitStatus] = None
    ) -> list[Visit]:
        query = db.query(Visit).filter(Visit.requester_id == requester_id)
        if status:
            query = query.filter(Visit.status == status)
        return query.order_by(Visit.created_at.desc(), Visit.id.desc()).all()

    @staticmethod
    def list_provider_visits_between(
        db: Session, provider_id: int, start: datetime, end: datetime
    ) -> list[Visit]:
        """Provider's visits whose slot starts within [start, end), in time order"""
        return (
            db.query(Visit)
            .join(Slot, Visit.slot_id == Slot.id)
            .filter(
                Visit.provider_id == provider_id,
                Slot.start_time >= start,
                Slot.start_time < end,
            )
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def add_visit(db: Session, visit: Visit) -> Visit:
        db.add(visit)
        db.flush()
        return visit

    @staticmethod
    def compare_and_set_status(
        db: Session, visit: Visit, expected: VisitStatus, target: VisitStatus, now: datetime
    ) -> bool:
        """Status change that only applies if nobody moved the visit since it was read"""
        updated = (
            db.query(Visit)
            .filter(Visit.id == visit.id, Visit.status == expected)
            .update({Visit.status: target, Visit.updated_at: now}, synchronize_session=False)
        )
        db.refresh(visit)
        return updated == 1
