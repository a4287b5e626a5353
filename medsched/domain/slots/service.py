"""
Slot service - Slot Lifecycle Manager

Owns every slot status change:

    AVAILABLE -> TEMPORARILY_LOCKED -> CONFIRMED
         ^              |                 |
         +--------------+-----------------+
    AVAILABLE <-> UNAVAILABLE (provider toggle)

Public methods are complete units of work. The ``validate_*``, ``lock_*`` and
``transition`` helpers join the caller's transaction and never commit, so the
visit service can combine them with its own writes.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...audit import SYSTEM_ACTOR, AuditTrail, default_audit
from ...config import CLOCK_SKEW_TOLERANCE_MINUTES, LOCK_GRACE_HOURS
from ...database import unit_of_work
from ...directory import UserDirectory
from ...enums import AuditActionType, SlotStatus, VisitStatus
from ...exceptions import (
    ConflictError,
    ConflictKind,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ...models import Slot, User
from ...shared.clock import Clock, local_now
from ..scheduling.conflicts import TimeWindow, describe_slot, find_conflicts, slot_window
from ..scheduling.lifecycle import (
    ensure_slot_transition,
    is_lock_stale,
    is_slot_expired,
    starts_in_future,
)
from ..visits.repository import VisitRepository
from .repository import SlotRepository

logger = logging.getLogger(__name__)


class SlotService:
    """Service layer for slot business logic"""

    def __init__(
        self,
        db: Session,
        clock: Clock = local_now,
        audit: Optional[AuditTrail] = None,
        lock_grace: timedelta = timedelta(hours=LOCK_GRACE_HOURS),
    ):
        self.db = db
        self.clock = clock
        self.audit = audit or default_audit(db)
        self.lock_grace = lock_grace
        self.skew_tolerance = timedelta(minutes=CLOCK_SKEW_TOLERANCE_MINUTES)
        self.repo = SlotRepository()
        self.directory = UserDirectory(db)

    # ==================== QUERIES ====================

    def list_available_slots(self, provider_id: int) -> list[Slot]:
        """AVAILABLE, unexpired future slots a coordinator can book"""
        self.directory.require_provider(provider_id)
        now = self.clock()
        slots = [
            s
            for s in self.repo.get_available_future_slots(self.db, provider_id, now)
            if not is_slot_expired(s, now)
        ]
        logger.info(f"Found {len(slots)} available slots for provider {provider_id}")
        return slots

    def get_slot(self, slot_id: int) -> Slot:
        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot", slot_id)
        return slot

    def list_provider_slots(self, provider_id: int, status=None, start=None, end=None) -> list[Slot]:
        self.directory.require_provider(provider_id)
        return self.repo.get_provider_slots(self.db, provider_id, status, start, end)

    # ==================== CREATION ====================

    def create_slot(self, provider_id: int, window: TimeWindow, actor: User) -> Slot:
        """Create one AVAILABLE slot for a provider"""
        logger.info(f"📥 User {actor.id} creating slot for provider {provider_id}: {window}")

        self.directory.require_provider(provider_id)
        self._ensure_can_manage(provider_id, actor)

        with unit_of_work(self.db):
            self.validate_new_window(provider_id, window)
            slot = self.repo.add_slot(
                self.db, self._build_slot(provider_id, window, SlotStatus.AVAILABLE)
            )

        logger.info(f"✅ Slot created: ID={slot.id}, provider={provider_id}")
        self._audit(actor, AuditActionType.SLOT_CREATED, f"Slot {slot.id} created: {window}")
        return slot

    def create_slots_in_range(
        self, provider_id: int, window: TimeWindow, duration_minutes: int, actor: User
    ) -> list[Slot]:
        """Fill a range with back-to-back AVAILABLE slots of ``duration_minutes``"""
        logger.info(
            f"Creating slots for provider {provider_id} over {window} "
            f"({duration_minutes} min intervals)"
        )
        if duration_minutes <= 0:
            raise ValidationError("Slot duration must be positive")

        self.directory.require_provider(provider_id)
        self._ensure_can_manage(provider_id, actor)

        step = timedelta(minutes=duration_minutes)
        with unit_of_work(self.db):
            self.validate_new_window(provider_id, window)
            slots = []
            current = window.start
            while current + step <= window.end:
                slots.append(
                    self.repo.add_slot(
                        self.db,
                        self._build_slot(
                            provider_id, TimeWindow(current, current + step), SlotStatus.AVAILABLE
                        ),
                    )
                )
                current += step

        logger.info(f"✅ Created {len(slots)} slots for provider {provider_id}")
        if slots:
            self._audit(
                actor,
                AuditActionType.SLOT_CREATED,
                f"{len(slots)} slots created for provider {provider_id} over {window}",
            )
        return slots

    # ==================== PROVIDER TOGGLES ====================

    def update_slot_status(self, slot_id: int, target: SlotStatus, actor: User) -> Slot:
        """AVAILABLE <-> UNAVAILABLE toggle on a provider's own slot"""
        logger.info(f"User {actor.id} updating slot {slot_id} status to {target.value}")

        with unit_of_work(self.db):
            slot = self._get_for_update(slot_id)
            self._ensure_can_manage(slot.provider_id, actor)

            if slot.status == SlotStatus.AVAILABLE and target == SlotStatus.AVAILABLE:
                return slot

            if {slot.status, target} != {SlotStatus.AVAILABLE, SlotStatus.UNAVAILABLE}:
                # Locked and confirmed slots are released through their visit, never toggled
                ensure_slot_transition(slot.status, target)
                raise InvalidStateError(
                    f"Slot {slot_id} is {slot.status.value}; only AVAILABLE and "
                    f"UNAVAILABLE slots can be toggled"
                )

            if target == SlotStatus.AVAILABLE:
                # Re-opening must not overlap slots created while this one was off
                self.ensure_no_slot_conflicts(
                    slot.provider_id,
                    TimeWindow(slot.start_time, slot.end_time),
                    exclude_slot_id=slot.id,
                )
            self.transition(slot, target)

        logger.info(f"✅ Slot status updated: ID={slot_id}, Status={slot.status.value}")
        self._audit(
            actor,
            AuditActionType.SLOT_STATUS_UPDATED,
            f"Slot {slot_id} marked {target.value}",
        )
        return slot

    def delete_slot(self, slot_id: int, actor: User) -> None:
        logger.info(f"User {actor.id} deleting slot {slot_id}")

        with unit_of_work(self.db):
            slot = self._get_for_update(slot_id)
            self._ensure_can_manage(slot.provider_id, actor)

            if slot.status in (SlotStatus.TEMPORARILY_LOCKED, SlotStatus.CONFIRMED):
                raise InvalidStateError(f"Cannot delete {slot.status.value.lower()} slot {slot_id}")
            if VisitRepository.count_visits_for_slot(self.db, slot.id):
                raise InvalidStateError(
                    f"Slot {slot_id} has visit history; mark it UNAVAILABLE instead"
                )

            self.repo.delete_slot(self.db, slot)

        logger.info(f"✅ Slot deleted: ID={slot_id}")
        self._audit(actor, AuditActionType.SLOT_DELETED, f"Slot {slot_id} deleted")

    # ==================== TRANSACTION HELPERS ====================

    def validate_window(self, window: TimeWindow) -> None:
        if not window.is_chronological():
            raise ValidationError("Start time must be before end time")
        if not starts_in_future(window.start, self.clock(), self.skew_tolerance):
            raise ValidationError("Start time must be in the future")

    def validate_new_window(self, provider_id: int, window: TimeWindow) -> None:
        """Chronology, future start and provider capacity checks for a new slot"""
        self.validate_window(window)
        self.repo.lock_provider(self.db, provider_id)
        self.ensure_no_slot_conflicts(provider_id, window)

    def ensure_no_slot_conflicts(
        self,
        provider_id: int,
        window: TimeWindow,
        exclude_slot_id: Optional[int] = None,
        error: Optional[Callable[[list[str]], ConflictError]] = None,
    ) -> None:
        candidates = self.repo.get_overlapping_slots(
            self.db, provider_id, window.start, window.end, exclude_slot_id=exclude_slot_id
        )
        conflicts = find_conflicts(window, candidates, slot_window)
        if not conflicts:
            return

        described = [describe_slot(s) for s in conflicts]
        logger.warning(f"⚠️ Provider {provider_id} slot conflict for {window}: {described}")
        if error is not None:
            raise error(described)
        raise ConflictError(
            ConflictKind.EXISTING_SLOT,
            f"Provider {provider_id} already has slots overlapping {window}",
            described,
        )

    def create_locked_slot(self, provider_id: int, window: TimeWindow) -> Slot:
        """New slot born TEMPORARILY_LOCKED; caller has validated the window"""
        slot = self.repo.add_slot(
            self.db, self._build_slot(provider_id, window, SlotStatus.TEMPORARILY_LOCKED)
        )
        logger.info(f"Slot created locked: ID={slot.id}, provider={provider_id}, {window}")
        return slot

    def load_bookable_slot(self, slot_id: int, provider_id: int) -> Slot:
        """Row-lock a slot and re-validate it is AVAILABLE, unexpired and the provider's"""
        slot = self._get_for_update(slot_id)
        if slot.provider_id != provider_id:
            raise ValidationError(f"Slot {slot_id} does not belong to provider {provider_id}")
        if slot.status != SlotStatus.AVAILABLE:
            raise InvalidStateError(
                f"Slot not available: {slot_id} is {slot.status.value}", code="SLOT_NOT_AVAILABLE"
            )
        if is_slot_expired(slot, self.clock()):
            raise ExpiredError(f"Slot has expired: {slot_id}")
        return slot

    def transition(self, slot: Slot, target: SlotStatus) -> Slot:
        """Table-checked compare-and-set status change; joins the caller's transaction"""
        ensure_slot_transition(slot.status, target)
        expected = slot.status
        if not self.repo.compare_and_set_status(self.db, slot, expected, target, self.clock()):
            raise InvalidStateError(
                f"Slot {slot.id} changed concurrently: expected {expected.value}, "
                f"found {slot.status.value}"
            )
        logger.info(f"Slot {slot.id}: {expected.value} -> {target.value}")
        return slot

    # ==================== MAINTENANCE ====================

    def reclaim_expired_locks(self) -> int:
        """
        Release TEMPORARILY_LOCKED slots whose appointment started more than the
        grace window ago, cancelling the pending visit in the same transaction.

        Each slot is its own unit of work; a failure on one slot is logged and
        the sweep carries on.

        Returns:
            int: number of slots returned to AVAILABLE
        """
        now = self.clock()
        cutoff = now - self.lock_grace
        slot_ids = [s.id for s in self.repo.get_stale_locked_slots(self.db, cutoff)]
        self.db.rollback()  # end the read transaction before per-slot work

        reclaimed = 0
        for slot_id in slot_ids:
            try:
                if self._reclaim_one(slot_id):
                    reclaimed += 1
            except Exception as e:
                logger.error(f"❌ Error reclaiming locked slot {slot_id}: {str(e)}")
                continue

        if reclaimed > 0:
            logger.info(f"reclaim_expired_locks: {reclaimed} expired locked slots released")
        return reclaimed

    def _reclaim_one(self, slot_id: int) -> bool:
        now = self.clock()
        with unit_of_work(self.db):
            slot = self.repo.get_slot(self.db, slot_id, for_update=True)
            # Re-check under the row lock: a concurrent confirm may have won
            if slot is None or not is_lock_stale(slot, now, self.lock_grace):
                return False

            visits = VisitRepository.get_active_visits_for_slot(self.db, slot.id)
            if any(v.status != VisitStatus.PENDING_PROVIDER_CONFIRMATION for v in visits):
                logger.warning(
                    f"⚠️ Locked slot {slot_id} is bound to a non-pending visit; not reclaimed"
                )
                return False

            for visit in visits:
                visit.status = VisitStatus.CANCELLED
                visit.updated_at = now
            self.db.flush()
            self.transition(slot, SlotStatus.AVAILABLE)

        cancelled = ", ".join(str(v.id) for v in visits) or "none"
        logger.info(f"Reclaimed locked slot {slot_id}; cancelled visits: {cancelled}")
        self.audit.record(
            SYSTEM_ACTOR,
            AuditActionType.SLOT_LOCK_RECLAIMED,
            f"Slot {slot_id} lock expired; cancelled visits: {cancelled}",
            now,
        )
        return True

    # ==================== INTERNALS ====================

    def _get_for_update(self, slot_id: int) -> Slot:
        slot = self.repo.get_slot(self.db, slot_id, for_update=True)
        if not slot:
            raise NotFoundError("Slot", slot_id)
        return slot

    def _build_slot(self, provider_id: int, window: TimeWindow, status: SlotStatus) -> Slot:
        now = self.clock()
        return Slot(
            provider_id=provider_id,
            start_time=window.start,
            end_time=window.end,
            status=status,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _ensure_can_manage(provider_id: int, actor: User) -> None:
        if actor.role.can_override_any_visit:
            return
        if actor.role.can_manage_own_slots and actor.id == provider_id:
            return
        raise PermissionDeniedError("Providers can only manage their own slots")

    def _audit(self, actor: User, action_type: AuditActionType, description: str) -> None:
        self.audit.record(actor.email, action_type, description, self.clock())
