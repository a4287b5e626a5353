"""Recurring slot repository - Database operations for weekly availability (never commits)"""

from datetime import time
from typing import Optional

from sqlalchemy.orm import Session

from ...enums import DayOfWeek
from ...models import RecurringSlot

DAY_ORDER = {day: index for index, day in enumerate(DayOfWeek)}


class RecurringSlotRepository:
    """Repository for recurring slot database operations"""

    @staticmethod
    def get_recurring_slot(
        db: Session, recurring_slot_id: int, for_update: bool = False
    ) -> Optional[RecurringSlot]:
        query = db.query(RecurringSlot).filter(RecurringSlot.id == recurring_slot_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_provider_recurring_slots(db: Session, provider_id: int) -> list[RecurringSlot]:
        """All windows of a provider, Monday first, then by start time"""
        slots = db.query(RecurringSlot).filter(RecurringSlot.provider_id == provider_id).all()
        # day_of_week is stored by name, so order by weekday in Python
        return sorted(slots, key=lambda r: (DAY_ORDER[r.day_of_week], r.start_time))

    @staticmethod
    def get_day_recurring_slots(db: Session, provider_id: int, day: DayOfWeek) -> list[RecurringSlot]:
        return (
            db.query(RecurringSlot)
            .filter(RecurringSlot.provider_id == provider_id, RecurringSlot.day_of_week == day)
            .order_by(RecurringSlot.start_time.asc())
            .all()
        )

    @staticmethod
    def get_overlapping(
        db: Session,
        provider_id: int,
        day: DayOfWeek,
        start: time,
        end: time,
        exclude_id: Optional[int] = None,
    ) -> list[RecurringSlot]:
        """Same-day windows intersecting [start, end)"""
        query = db.query(RecurringSlot).filter(
            RecurringSlot.provider_id == provider_id,
            RecurringSlot.day_of_week == day,
            RecurringSlot.start_time < end,
            RecurringSlot.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(RecurringSlot.id != exclude_id)
        return query.order_by(RecurringSlot.start_time.asc()).all()

    @staticmethod
    def add_recurring_slot(db: Session, recurring_slot: RecurringSlot) -> RecurringSlot:
        db.add(recurring_slot)
        db.flush()
        return recurring_slot

    @staticmethod
    def delete_recurring_slot(db: Session, recurring_slot: RecurringSlot) -> None:
        db.delete(recurring_slot)
        db.flush()
