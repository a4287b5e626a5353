"""
Spontaneous request service - Spontaneous-Request Resolver

    PENDING -> SCHEDULED            coordinator confirm (matcher + fresh-slot booking)
    PENDING -> CANCELLED            requester cancel, coordinator cancel or reject
    NEEDS_RESCHEDULING -> SCHEDULED | CANCELLED
    PENDING | SCHEDULED -> NEEDS_RESCHEDULING   administrator correction

A request never owns a slot or visit; cancelling one touches nothing else.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import AuditTrail, default_audit
from ...config import CLOCK_SKEW_TOLERANCE_MINUTES
from ...database import unit_of_work
from ...directory import UserDirectory
from ...enums import AuditActionType, SchedulingStatus, VisitCategory
from ...exceptions import (
    InvalidStateError,
    InvalidTransition,
    NotFoundError,
    PermissionDeniedError,
    ProviderSlotConflict,
    ValidationError,
)
from ...models import SpontaneousRequest, User, Visit
from ...shared.clock import Clock, local_now
from ..scheduling.lifecycle import starts_in_future
from ..scheduling.matcher import RecurringAvailabilityMatcher
from ..visits.service import VisitService
from .repository import SpontaneousRequestRepository

logger = logging.getLogger(__name__)

CONFIRMABLE_STATUSES = (SchedulingStatus.PENDING, SchedulingStatus.NEEDS_RESCHEDULING)


def _with_reason(description: str, reason: Optional[str]) -> str:
    if reason and reason.strip():
        return f"{description} (reason: {reason.strip()})"
    return description


class SpontaneousRequestService:
    """Service layer for spontaneous requests"""

    def __init__(self, db: Session, clock: Clock = local_now, audit: Optional[AuditTrail] = None):
        self.db = db
        self.clock = clock
        self.audit = audit or default_audit(db)
        self.repo = SpontaneousRequestRepository()
        self.directory = UserDirectory(db)
        self.visits = VisitService(db, clock=clock, audit=self.audit)
        self.matcher = RecurringAvailabilityMatcher(db)
        self.skew_tolerance = timedelta(minutes=CLOCK_SKEW_TOLERANCE_MINUTES)

    # ==================== REQUESTER ====================

    def submit(
        self,
        actor: User,
        reason: str,
        notes: Optional[str] = None,
        preferred_datetime: Optional[datetime] = None,
    ) -> SpontaneousRequest:
        if not actor.role.can_request_visits:
            raise PermissionDeniedError("Only requesters can submit spontaneous requests")
        if not reason or not reason.strip():
            raise ValidationError("Reason is required")
        if preferred_datetime is not None:
            self._ensure_future(preferred_datetime)

        now = self.clock()
        with unit_of_work(self.db):
            request = self.repo.add_request(
                self.db,
                SpontaneousRequest(
                    requester_id=actor.id,
                    reason=reason.strip(),
                    notes=notes,
                    preferred_datetime=preferred_datetime,
                    scheduling_status=SchedulingStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                ),
            )

        logger.info(f"✅ Spontaneous request submitted: ID={request.id}, requester={actor.id}")
        self._audit(
            actor,
            AuditActionType.SUBMIT_SPONTANEOUS_REQUEST,
            f"Spontaneous request {request.id} submitted",
        )
        return request

    def list_mine(
        self,
        actor: User,
        status: Optional[SchedulingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[SpontaneousRequest]:
        return self.repo.get_requester_requests(self.db, actor.id, status, start, end)

    def count_mine(self, actor: User, status: Optional[SchedulingStatus] = None) -> int:
        return self.repo.count_requester_requests(self.db, actor.id, status)

    def get_request(self, request_id: int, actor: User) -> SpontaneousRequest:
        request = self.repo.get_request(self.db, request_id)
        if not request:
            raise NotFoundError("SpontaneousRequest", request_id)
        if request.requester_id != actor.id and not actor.role.can_schedule_visits:
            raise PermissionDeniedError("You are not allowed to view this request")
        return request

    def update(
        self,
        request_id: int,
        actor: User,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        preferred_datetime: Optional[datetime] = None,
    ) -> SpontaneousRequest:
        """Owner edit while PENDING; ``None`` leaves a field unchanged"""
        with unit_of_work(self.db):
            request = self._get_owned_for_update(request_id, actor)
            if request.scheduling_status != SchedulingStatus.PENDING:
                raise InvalidStateError(
                    f"Request {request_id} is {request.scheduling_status.value} and can no "
                    f"longer be edited"
                )
            if reason is not None:
                if not reason.strip():
                    raise ValidationError("Reason is required")
                request.reason = reason.strip()
            if notes is not None:
                request.notes = notes
            if preferred_datetime is not None:
                self._ensure_future(preferred_datetime)
                request.preferred_datetime = preferred_datetime
            request.updated_at = self.clock()
            self.db.flush()

        logger.info(f"✅ Spontaneous request updated: ID={request_id}")
        return request

    def cancel(self, request_id: int, actor: User, reason: Optional[str] = None) -> SpontaneousRequest:
        """Owner cancellation, only while PENDING"""
        with unit_of_work(self.db):
            request = self._get_owned_for_update(request_id, actor)
            if request.scheduling_status != SchedulingStatus.PENDING:
                raise InvalidStateError(
                    f"Request {request_id} is {request.scheduling_status.value} and can no "
                    f"longer be cancelled"
                )
            self._set_status(request, SchedulingStatus.CANCELLED)

        logger.info(f"✅ Spontaneous request cancelled by requester: ID={request_id}")
        self._audit(
            actor,
            AuditActionType.CANCEL_VISIT,
            _with_reason(f"Requester cancelled spontaneous request {request_id}", reason),
        )
        return request

    # ==================== COORDINATOR ====================

    def list_all(self, actor: User) -> list[SpontaneousRequest]:
        self._ensure_coordinator(actor)
        return self.repo.get_all_requests(self.db)

    def cancel_as_coordinator(
        self, request_id: int, actor: User, reason: Optional[str] = None
    ) -> SpontaneousRequest:
        """Cancel anything not yet scheduled; cancelling a cancelled request is a no-op"""
        self._ensure_coordinator(actor)

        with unit_of_work(self.db):
            request = self._get_for_update(request_id)
            already_cancelled = request.scheduling_status == SchedulingStatus.CANCELLED
            if request.scheduling_status == SchedulingStatus.SCHEDULED:
                raise InvalidStateError(f"Request {request_id} is already scheduled")
            if not already_cancelled:
                self._set_status(request, SchedulingStatus.CANCELLED)

        if already_cancelled:
            logger.info(f"Spontaneous request {request_id} was already cancelled")
            description = f"Coordinator re-cancelled already cancelled request {request_id}"
        else:
            logger.info(f"✅ Spontaneous request cancelled by coordinator: ID={request_id}")
            description = f"Coordinator cancelled spontaneous request {request_id}"
        self._audit(actor, AuditActionType.CANCEL_VISIT, _with_reason(description, reason))
        return request

    def reject(self, request_id: int, actor: User) -> SpontaneousRequest:
        self._ensure_coordinator(actor)

        with unit_of_work(self.db):
            request = self._get_for_update(request_id)
            if request.scheduling_status == SchedulingStatus.CANCELLED:
                raise InvalidStateError(
                    f"Request {request_id} is already cancelled", code="ALREADY_CANCELLED"
                )
            if request.scheduling_status not in CONFIRMABLE_STATUSES:
                raise InvalidTransition(
                    "spontaneous request", request.scheduling_status, SchedulingStatus.CANCELLED
                )
            self._set_status(request, SchedulingStatus.CANCELLED)

        logger.info(f"✅ Spontaneous request rejected: ID={request_id}")
        self._audit(
            actor, AuditActionType.REFUSE_VISIT, f"Spontaneous request {request_id} rejected"
        )
        return request

    def flag_for_rescheduling(self, request_id: int, actor: User) -> SpontaneousRequest:
        """Administrator correction sending a request back for confirmation"""
        if not actor.role.can_override_any_visit:
            raise PermissionDeniedError("Only administrators can flag requests for rescheduling")

        with unit_of_work(self.db):
            request = self._get_for_update(request_id)
            if request.scheduling_status not in (SchedulingStatus.PENDING, SchedulingStatus.SCHEDULED):
                raise InvalidTransition(
                    "spontaneous request",
                    request.scheduling_status,
                    SchedulingStatus.NEEDS_RESCHEDULING,
                )
            self._set_status(request, SchedulingStatus.NEEDS_RESCHEDULING)

        logger.info(f"Spontaneous request {request_id} flagged for rescheduling")
        self._audit(
            actor,
            AuditActionType.VISIT_STATUS_UPDATED,
            f"Spontaneous request {request_id} flagged for rescheduling",
        )
        return request

    def confirm(
        self,
        request_id: int,
        provider_id: int,
        actor: User,
        override_datetime: Optional[datetime] = None,
        category: VisitCategory = VisitCategory.SPONTANEOUS,
    ) -> Visit:
        """
        Turn a request into a concrete booking with the given provider.

        The target time (override, else the requester's preference) is matched
        against the provider's recurring availability; the derived slot, its
        pending visit and the request's SCHEDULED status commit together.

        Raises:
            ValidationError: no target time, or a target in the past
            NoAvailabilityWindow / SlotOutsideRecurringWindow: target not bookable
            ProviderSlotConflict: the derived slot overlaps a committed slot
        """
        logger.info(f"📥 {actor.email} confirming spontaneous request {request_id} with provider {provider_id}")
        self._ensure_coordinator(actor)

        with unit_of_work(self.db):
            request = self._get_for_update(request_id)
            if request.scheduling_status not in CONFIRMABLE_STATUSES:
                raise InvalidStateError(
                    f"Request {request_id} is {request.scheduling_status.value} and cannot be "
                    f"confirmed"
                )

            target = override_datetime or request.preferred_datetime
            if target is None:
                raise ValidationError(
                    "No date provided for the confirmation", code="DATE_REQUIRED"
                )
            self._ensure_future(target)

            self.directory.require_provider(provider_id)
            self.directory.require_active(request.requester_id)

            self.visits.slots.repo.lock_provider(self.db, provider_id)
            window = self.matcher.match(provider_id, target)
            visit, slot = self.visits.book_fresh_in_transaction(
                request.requester_id,
                provider_id,
                window,
                category,
                actor,
                slot_conflict=lambda described: ProviderSlotConflict(
                    f"Provider {provider_id} already has slots overlapping {window}", described
                ),
            )

            if override_datetime is not None:
                request.preferred_datetime = override_datetime
            self._set_status(request, SchedulingStatus.SCHEDULED)

        logger.info(
            f"✅ Spontaneous request {request_id} scheduled: visit={visit.id}, slot={slot.id} ({window})"
        )
        self._audit(
            actor,
            AuditActionType.SCHEDULE_VISIT,
            f"Spontaneous request {request_id} confirmed as visit {visit.id} on slot {slot.id}: {window}",
        )
        return visit

    # ==================== INTERNALS ====================

    def _ensure_future(self, moment: datetime) -> None:
        if not starts_in_future(moment, self.clock(), self.skew_tolerance):
            raise ValidationError(
                f"The date must be in the future: {moment:%Y-%m-%d %H:%M}", code="INVALID_DATE"
            )

    def _get_for_update(self, request_id: int) -> SpontaneousRequest:
        request = self.repo.get_request(self.db, request_id, for_update=True)
        if not request:
            raise NotFoundError("SpontaneousRequest", request_id)
        return request

    def _get_owned_for_update(self, request_id: int, actor: User) -> SpontaneousRequest:
        request = self._get_for_update(request_id)
        if request.requester_id != actor.id:
            logger.warning(f"⚠️ User {actor.id} tried to modify request {request_id}")
            raise PermissionDeniedError("You are not allowed to modify this request")
        return request

    def _set_status(self, request: SpontaneousRequest, status: SchedulingStatus) -> None:
        logger.info(f"Spontaneous request {request.id}: {request.scheduling_status.value} -> {status.value}")
        request.scheduling_status = status
        request.updated_at = self.clock()
        self.db.flush()

    @staticmethod
    def _ensure_coordinator(actor: User) -> None:
        if not actor.role.can_schedule_visits:
            raise PermissionDeniedError("Only coordinators can manage spontaneous requests")

    def _audit(self, actor: User, action_type: AuditActionType, description: str) -> None:
        self.audit.record(actor.email, action_type, description, self.clock())
