"""Recurring availability service - weekly windows a provider declares"""

import logging
from datetime import time
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import AuditTrail, default_audit
from ...database import unit_of_work
from ...directory import UserDirectory
from ...enums import AuditActionType, DayOfWeek
from ...exceptions import (
    ConflictError,
    ConflictKind,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ...models import RecurringSlot, User
from ...shared.clock import Clock, local_now
from ..slots.repository import SlotRepository
from .repository import RecurringSlotRepository

logger = logging.getLogger(__name__)


def describe_recurring(recurring_slot: RecurringSlot) -> str:
    return (
        f"{recurring_slot.day_of_week.value} "
        f"{recurring_slot.start_time:%H:%M}-{recurring_slot.end_time:%H:%M}"
    )


class RecurringSlotService:
    """Service layer for recurring availability"""

    def __init__(self, db: Session, clock: Clock = local_now, audit: Optional[AuditTrail] = None):
        self.db = db
        self.clock = clock
        self.audit = audit or default_audit(db)
        self.repo = RecurringSlotRepository()
        self.directory = UserDirectory(db)

    def list_recurring_slots(self, provider_id: int) -> list[RecurringSlot]:
        self.directory.require_provider(provider_id)
        return self.repo.get_provider_recurring_slots(self.db, provider_id)

    def get_recurring_slot(self, recurring_slot_id: int) -> RecurringSlot:
        recurring_slot = self.repo.get_recurring_slot(self.db, recurring_slot_id)
        if not recurring_slot:
            raise NotFoundError("RecurringSlot", recurring_slot_id)
        return recurring_slot

    def create_recurring_slot(
        self, provider_id: int, day: DayOfWeek, start: time, end: time, actor: User
    ) -> RecurringSlot:
        logger.info(f"📥 Adding recurring window {day.value} {start}-{end} for provider {provider_id}")
        self.directory.require_provider(provider_id)
        self._ensure_can_manage(provider_id, actor)
        self._validate_range(start, end)

        now = self.clock()
        with unit_of_work(self.db):
            SlotRepository.lock_provider(self.db, provider_id)
            self._ensure_no_overlap(provider_id, day, start, end)
            recurring_slot = self.repo.add_recurring_slot(
                self.db,
                RecurringSlot(
                    provider_id=provider_id,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    created_at=now,
                    updated_at=now,
                ),
            )

        logger.info(f"✅ Recurring slot created: ID={recurring_slot.id}")
        self._audit(
            actor,
            AuditActionType.RECURRING_SLOT_CREATED,
            f"Recurring slot {recurring_slot.id} created: {describe_recurring(recurring_slot)}",
        )
        return recurring_slot

    def update_recurring_slot(
        self, recurring_slot_id: int, day: DayOfWeek, start: time, end: time, actor: User
    ) -> RecurringSlot:
        """Replace a window; overlap is checked against the provider's other windows"""
        self._validate_range(start, end)

        with unit_of_work(self.db):
            recurring_slot = self._get_for_update(recurring_slot_id)
            self._ensure_can_manage(recurring_slot.provider_id, actor)
            SlotRepository.lock_provider(self.db, recurring_slot.provider_id)
            self._ensure_no_overlap(
                recurring_slot.provider_id, day, start, end, exclude_id=recurring_slot.id
            )
            recurring_slot.day_of_week = day
            recurring_slot.start_time = start
            recurring_slot.end_time = end
            recurring_slot.updated_at = self.clock()
            self.db.flush()

        logger.info(f"✅ Recurring slot updated: ID={recurring_slot_id}")
        self._audit(
            actor,
            AuditActionType.RECURRING_SLOT_UPDATED,
            f"Recurring slot {recurring_slot_id} updated: {describe_recurring(recurring_slot)}",
        )
        return recurring_slot

    def delete_recurring_slot(self, recurring_slot_id: int, actor: User) -> None:
        with unit_of_work(self.db):
            recurring_slot = self._get_for_update(recurring_slot_id)
            self._ensure_can_manage(recurring_slot.provider_id, actor)
            described = describe_recurring(recurring_slot)
            self.repo.delete_recurring_slot(self.db, recurring_slot)

        logger.info(f"✅ Recurring slot deleted: ID={recurring_slot_id}")
        self._audit(
            actor,
            AuditActionType.RECURRING_SLOT_DELETED,
            f"Recurring slot {recurring_slot_id} deleted: {described}",
        )

    def _ensure_no_overlap(
        self,
        provider_id: int,
        day: DayOfWeek,
        start: time,
        end: time,
        exclude_id: Optional[int] = None,
    ) -> None:
        overlapping = self.repo.get_overlapping(self.db, provider_id, day, start, end, exclude_id)
        if overlapping:
            described = [describe_recurring(r) for r in overlapping]
            logger.warning(f"⚠️ Recurring window overlap for provider {provider_id}: {described}")
            raise ConflictError(
                ConflictKind.EXISTING_SLOT,
                f"Recurring window {day.value} {start:%H:%M}-{end:%H:%M} overlaps "
                f"existing availability",
                described,
            )

    def _get_for_update(self, recurring_slot_id: int) -> RecurringSlot:
        recurring_slot = self.repo.get_recurring_slot(self.db, recurring_slot_id, for_update=True)
        if not recurring_slot:
            raise NotFoundError("RecurringSlot", recurring_slot_id)
        return recurring_slot

    @staticmethod
    def _validate_range(start: time, end: time) -> None:
        if start >= end:
            raise ValidationError("Start time must be before end time")

    @staticmethod
    def _ensure_can_manage(provider_id: int, actor: User) -> None:
        if actor.role.can_override_any_visit:
            return
        if actor.role.can_manage_own_slots and actor.id == provider_id:
            return
        raise PermissionDeniedError("Providers can only manage their own availability")

    def _audit(self, actor: User, action_type: AuditActionType, description: str) -> None:
        self.audit.record(actor.email, action_type, description, self.clock())
