"""Slot repository - Database operations for slots (never commits)"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...enums import COMMITTED_SLOT_STATUSES, SlotStatus
from ...models import Slot, User


class SlotRepository:
    """Repository for slot database operations"""

    @staticmethod
    def get_slot(db: Session, slot_id: int, for_update: bool = False) -> Optional[Slot]:
        """Get a slot by ID, optionally taking a row lock"""
        query = db.query(Slot).filter(Slot.id == slot_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def lock_provider(db: Session, provider_id: int) -> None:
        """Serialize writers to one provider's slot set for the rest of the transaction"""
        db.query(User.id).filter(User.id == provider_id).with_for_update().first()

    @staticmethod
    def get_provider_slots(
        db: Session,
        provider_id: int,
        status: Optional[SlotStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Slot]:
        """Get a provider's slots, optionally filtered by status and date range"""
        query = db.query(Slot).filter(Slot.provider_id == provider_id)

        if status:
            query = query.filter(Slot.status == status)
        if start:
            query = query.filter(Slot.start_time >= start)
        if end:
            query = query.filter(Slot.start_time <= end)

        return query.order_by(Slot.start_time.asc()).all()

    @staticmethod
    def get_available_future_slots(db: Session, provider_id: int, now: datetime) -> list[Slot]:
        return (
            db.query(Slot)
            .filter(
                Slot.provider_id == provider_id,
                Slot.status == SlotStatus.AVAILABLE,
                Slot.start_time > now,
            )
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def get_overlapping_slots(
        db: Session,
        provider_id: int,
        start: datetime,
        end: datetime,
        statuses: Iterable[SlotStatus] = COMMITTED_SLOT_STATUSES,
        exclude_slot_id: Optional[int] = None,
    ) -> list[Slot]:
        """Candidate conflicts: same half-open overlap predicate as the conflict detector"""
        query = db.query(Slot).filter(
            Slot.provider_id == provider_id,
            Slot.status.in_(list(statuses)),
            Slot.start_time < end,
            Slot.end_time > start,
        )
        if exclude_slot_id is not None:
            query = query.filter(Slot.id != exclude_slot_id)
        return query.order_by(Slot.start_time.asc()).all()

    @staticmethod
    def get_stale_locked_slots(db: Session, cutoff: datetime) -> list[Slot]:
        """Locked slots whose appointment start is before the cutoff"""
        return (
            db.query(Slot)
            .filter(Slot.status == SlotStatus.TEMPORARILY_LOCKED, Slot.start_time < cutoff)
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def add_slot(db: Session, slot: Slot) -> Slot:
        db.add(slot)
        db.flush()
        return slot

    @staticmethod
    def compare_and_set_status(
        db: Session, slot: Slot, expected: SlotStatus, target: SlotStatus, now: datetime
    ) -> bool:
        """
        Move a slot from ``expected`` to ``target`` only if it is still ``expected``
        in the store. Returns False when another writer got there first.
        """
        updated = (
            db.query(Slot)
            .filter(Slot.id == slot.id, Slot.status == expected)
            .update({Slot.status: target, Slot.updated_at: now}, synchronize_session=False)
        )
        db.refresh(slot)
        return updated == 1

    @staticmethod
    def delete_slot(db: Session, slot: Slot) -> None:
        db.delete(slot)
        db.flush()
