"""
Visit service - Visit Lifecycle Manager

Every visit status change that touches a slot drives the paired slot
transition inside the same unit of work:

    PENDING_PROVIDER_CONFIRMATION -> SCHEDULED   slot LOCKED -> CONFIRMED
    PENDING_PROVIDER_CONFIRMATION -> CANCELLED   slot LOCKED -> AVAILABLE
    SCHEDULED -> CANCELLED                       slot CONFIRMED -> AVAILABLE
    SCHEDULED -> IN_PROGRESS -> COMPLETED        slot untouched
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...audit import AuditTrail, default_audit
from ...config import MAX_VISIT_MINUTES, MIN_VISIT_MINUTES
from ...database import unit_of_work
from ...directory import UserDirectory
from ...enums import BLOCKING_VISIT_STATUSES, AuditActionType, SlotStatus, VisitCategory, VisitStatus
from ...exceptions import (
    ConflictError,
    ConflictKind,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ...models import Slot, User, Visit
from ...shared.clock import Clock, local_now
from ..scheduling.conflicts import TimeWindow, describe_visit, find_conflicts, visit_window
from ..scheduling.lifecycle import PROGRESS_TARGETS, ensure_visit_transition, paired_slot_transition
from ..slots.repository import SlotRepository
from ..slots.service import SlotService
from .repository import VisitRepository

logger = logging.getLogger(__name__)


class VisitService:
    """Service layer for visit business logic"""

    def __init__(self, db: Session, clock: Clock = local_now, audit: Optional[AuditTrail] = None):
        self.db = db
        self.clock = clock
        self.audit = audit or default_audit(db)
        self.repo = VisitRepository()
        self.directory = UserDirectory(db)
        self.slots = SlotService(db, clock=clock, audit=self.audit)

    # ==================== BOOKING ====================

    def book_existing_slot(
        self,
        requester_id: int,
        provider_id: int,
        slot_id: int,
        category: VisitCategory,
        actor: User,
    ) -> Visit:
        """Lock an AVAILABLE slot and attach a pending visit to it, atomically"""
        logger.info(
            f"📥 {actor.email} booking slot {slot_id} for requester {requester_id} "
            f"with provider {provider_id}"
        )
        self._ensure_can_schedule(actor)
        self.directory.require_requester(requester_id)
        self.directory.require_provider(provider_id)

        with unit_of_work(self.db):
            slot = self.slots.load_bookable_slot(slot_id, provider_id)
            window = TimeWindow(slot.start_time, slot.end_time)
            self._ensure_no_visit_conflicts(requester_id, provider_id, window)
            self.slots.transition(slot, SlotStatus.TEMPORARILY_LOCKED)
            visit = self._create_pending_visit(requester_id, provider_id, slot, category, actor)

        logger.info(f"✅ Visit booked: ID={visit.id}, slot={slot.id} locked")
        self._audit(
            actor,
            AuditActionType.SCHEDULE_VISIT,
            f"Visit {visit.id} ({category.value}) booked on slot {slot.id}: {window}",
        )
        return visit

    def book_with_fresh_slot(
        self,
        requester_id: int,
        provider_id: int,
        window: TimeWindow,
        category: VisitCategory,
        actor: User,
    ) -> tuple[Visit, Slot]:
        """Create a new TEMPORARILY_LOCKED slot from ``window`` and a pending visit on it"""
        logger.info(
            f"📥 {actor.email} booking fresh window {window} for requester {requester_id} "
            f"with provider {provider_id}"
        )
        self._ensure_can_schedule(actor)
        self.directory.require_requester(requester_id)
        self.directory.require_provider(provider_id)

        with unit_of_work(self.db):
            visit, slot = self.book_fresh_in_transaction(
                requester_id, provider_id, window, category, actor
            )

        logger.info(f"✅ Visit booked on fresh slot: visit={visit.id}, slot={slot.id}")
        self._audit(
            actor,
            AuditActionType.SCHEDULE_VISIT,
            f"Visit {visit.id} ({category.value}) booked on new slot {slot.id}: {window}",
        )
        return visit, slot

    def book_fresh_in_transaction(
        self,
        requester_id: int,
        provider_id: int,
        window: TimeWindow,
        category: VisitCategory,
        actor: User,
        slot_conflict: Optional[Callable[[list[str]], ConflictError]] = None,
    ) -> tuple[Visit, Slot]:
        """
        Fresh-slot booking steps without the commit, for callers that own the
        unit of work (spontaneous request confirmation).

        Raises:
            ValidationError: inverted window, past start, duration out of bounds
            ConflictError: overlapping provider slot or blocking visit
        """
        self.slots.validate_window(window)
        minutes = window.duration_minutes
        if minutes < MIN_VISIT_MINUTES or minutes > MAX_VISIT_MINUTES:
            raise ValidationError(
                f"Visit duration must be between {MIN_VISIT_MINUTES} and "
                f"{MAX_VISIT_MINUTES} minutes (got {minutes})",
                details={"duration_minutes": minutes},
            )

        SlotRepository.lock_provider(self.db, provider_id)
        self.slots.ensure_no_slot_conflicts(provider_id, window, error=slot_conflict)
        self._ensure_no_visit_conflicts(requester_id, provider_id, window)

        slot = self.slots.create_locked_slot(provider_id, window)
        visit = self._create_pending_visit(requester_id, provider_id, slot, category, actor)
        return visit, slot

    # ==================== PROVIDER DECISIONS ====================

    def confirm_visit(self, visit_id: int, actor: User) -> Visit:
        """Provider accepts a pending visit: visit SCHEDULED, slot CONFIRMED"""
        visit = self._provider_transition(visit_id, actor, VisitStatus.SCHEDULED)
        self._audit(actor, AuditActionType.VALIDATE_VISIT, f"Visit {visit_id} confirmed")
        return visit

    def reject_visit(self, visit_id: int, actor: User) -> Visit:
        """Provider declines a pending visit: visit CANCELLED, slot back to AVAILABLE"""
        with unit_of_work(self.db):
            visit = self._get_for_update(visit_id)
            self._ensure_bound_provider(visit, actor)
            if visit.status != VisitStatus.PENDING_PROVIDER_CONFIRMATION:
                ensure_visit_transition(visit.status, VisitStatus.CANCELLED)
                raise InvalidStateError(
                    f"Only visits pending confirmation can be rejected; visit {visit_id} "
                    f"is {visit.status.value}"
                )
            self._transition(visit, VisitStatus.CANCELLED)

        logger.info(f"✅ Visit rejected: ID={visit_id}")
        self._audit(actor, AuditActionType.REFUSE_VISIT, f"Visit {visit_id} rejected")
        return visit

    def advance_status(self, visit_id: int, actor: User, target: VisitStatus) -> Visit:
        """Provider progress markers: SCHEDULED -> IN_PROGRESS -> COMPLETED"""
        if target not in PROGRESS_TARGETS:
            raise ValidationError(f"Visit status cannot be advanced to {target.value}")
        visit = self._provider_transition(visit_id, actor, target)
        self._audit(
            actor,
            AuditActionType.VISIT_STATUS_UPDATED,
            f"Visit {visit_id} marked {target.value}",
        )
        return visit

    # ==================== CANCELLATION ====================

    def cancel_visit(self, visit_id: int, actor: User) -> Visit:
        """
        Cancel a pending or scheduled visit and release its slot.

        Allowed for the bound provider, the requester, the coordinator who
        created the visit, and administrators.
        """
        logger.info(f"User {actor.id} cancelling visit {visit_id}")

        with unit_of_work(self.db):
            visit = self._get_for_update(visit_id)
            if not self._can_cancel(visit, actor):
                logger.warning(f"⚠️ User {actor.id} not allowed to cancel visit {visit_id}")
                raise PermissionDeniedError("You are not allowed to cancel this visit")
            self._transition(visit, VisitStatus.CANCELLED)

        logger.info(f"✅ Visit cancelled: ID={visit_id}")
        self._audit(actor, AuditActionType.CANCEL_VISIT, f"Visit {visit_id} cancelled")
        return visit

    # ==================== QUERIES ====================

    def get_visit(self, visit_id: int, actor: User) -> Visit:
        visit = self.repo.get_visit(self.db, visit_id)
        if not visit:
            raise NotFoundError("Visit", visit_id)
        if not (
            actor.role.can_override_any_visit
            or actor.id in (visit.requester_id, visit.provider_id, visit.created_by_id)
        ):
            raise PermissionDeniedError("You are not allowed to view this visit")
        return visit

    def list_provider_visits(self, provider_id: int, status: Optional[VisitStatus] = None) -> list[Visit]:
        self.directory.require_provider(provider_id)
        return self.repo.list_provider_visits(self.db, provider_id, status)

    def list_requester_visits(
        self, requester_id: int, status: Optional[VisitStatus] = None
    ) -> list[Visit]:
        self.directory.require_requester(requester_id)
        return self.repo.list_requester_visits(self.db, requester_id, status)

    def list_provider_visits_on_date(self, provider_id: int, day: date) -> list[Visit]:
        """Blocking visits of a provider on one calendar day, for conflict previews"""
        self.directory.require_provider(provider_id)
        start = datetime.combine(day, time.min)
        visits = self.repo.list_provider_visits_between(
            self.db, provider_id, start, start + timedelta(days=1)
        )
        return [v for v in visits if v.status in BLOCKING_VISIT_STATUSES]

    # ==================== INTERNALS ====================

    def _provider_transition(self, visit_id: int, actor: User, target: VisitStatus) -> Visit:
        logger.info(f"Provider {actor.id} moving visit {visit_id} to {target.value}")
        with unit_of_work(self.db):
            visit = self._get_for_update(visit_id)
            self._ensure_bound_provider(visit, actor)
            self._transition(visit, target)

        logger.info(f"✅ Visit {visit_id} is now {visit.status.value}")
        return visit

    def _transition(self, visit: Visit, target: VisitStatus) -> None:
        """Visit compare-and-set plus the paired slot transition; joins the open transaction"""
        current = visit.status
        ensure_visit_transition(current, target)

        paired = paired_slot_transition(current, target)
        if paired is not None and visit.slot_id is not None:
            expected_slot, target_slot = paired
            slot = SlotRepository.get_slot(self.db, visit.slot_id, for_update=True)
            if slot is None or slot.status != expected_slot:
                found = slot.status.value if slot is not None else "missing"
                raise InvalidStateError(
                    f"Slot of visit {visit.id} is {found}, expected {expected_slot.value}"
                )
            self.slots.transition(slot, target_slot)

        if not self.repo.compare_and_set_status(self.db, visit, current, target, self.clock()):
            raise InvalidStateError(
                f"Visit {visit.id} changed concurrently: expected {current.value}, "
                f"found {visit.status.value}"
            )
        logger.info(f"Visit {visit.id}: {current.value} -> {target.value}")

    def _ensure_no_visit_conflicts(self, requester_id: int, provider_id: int, window: TimeWindow) -> None:
        requester_visits = find_conflicts(
            window,
            self.repo.get_blocking_visits_for_requester(self.db, requester_id, window.start, window.end),
            visit_window,
        )
        if requester_visits:
            logger.warning(f"⚠️ Requester {requester_id} already booked during {window}")
            raise ConflictError(
                ConflictKind.REQUESTER_VISIT,
                f"Requester {requester_id} already has a visit overlapping {window}",
                [describe_visit(v) for v in requester_visits],
            )

        provider_visits = find_conflicts(
            window,
            self.repo.get_blocking_visits_for_provider(self.db, provider_id, window.start, window.end),
            visit_window,
        )
        if provider_visits:
            logger.warning(f"⚠️ Provider {provider_id} already booked during {window}")
            raise ConflictError(
                ConflictKind.PROVIDER_VISIT,
                f"Provider {provider_id} already has a visit overlapping {window}",
                [describe_visit(v) for v in provider_visits],
            )

    def _create_pending_visit(
        self,
        requester_id: int,
        provider_id: int,
        slot: Slot,
        category: VisitCategory,
        actor: User,
    ) -> Visit:
        now = self.clock()
        return self.repo.add_visit(
            self.db,
            Visit(
                requester_id=requester_id,
                provider_id=provider_id,
                slot_id=slot.id,
                category=category,
                status=VisitStatus.PENDING_PROVIDER_CONFIRMATION,
                created_by_id=actor.id,
                created_at=now,
                updated_at=now,
            ),
        )

    def _get_for_update(self, visit_id: int) -> Visit:
        visit = self.repo.get_visit(self.db, visit_id, for_update=True)
        if not visit:
            raise NotFoundError("Visit", visit_id)
        return visit

    @staticmethod
    def _ensure_can_schedule(actor: User) -> None:
        if not actor.role.can_schedule_visits:
            raise PermissionDeniedError("Only coordinators can schedule visits")

    @staticmethod
    def _ensure_bound_provider(visit: Visit, actor: User) -> None:
        if visit.provider_id != actor.id:
            logger.warning(f"⚠️ User {actor.id} is not the provider of visit {visit.id}")
            raise PermissionDeniedError("Only the visit's provider can perform this action")

    @staticmethod
    def _can_cancel(visit: Visit, actor: User) -> bool:
        if actor.role.can_override_any_visit:
            return True
        return actor.id in (visit.provider_id, visit.requester_id, visit.created_by_id)

    def _audit(self, actor: User, action_type: AuditActionType, description: str) -> None:
        self.audit.record(actor.email, action_type, description, self.clock())
