from datetime import time, timedelta

import pytest
from conftest import NOW, TUESDAY, at

from medsched.domain.scheduling.conflicts import TimeWindow
from medsched.enums import AuditActionType, DayOfWeek, SchedulingStatus, SlotStatus, VisitCategory, VisitStatus
from medsched.exceptions import (
    ConflictError,
    InvalidStateError,
    InvalidTransition,
    NoAvailabilityWindow,
    NotFoundError,
    PermissionDeniedError,
    ProviderSlotConflict,
    ValidationError,
)
from medsched.models import Slot, SpontaneousRequest, Visit


@pytest.fixture
def tuesday_availability(recurring_service, provider):
    recurring_service.create_recurring_slot(provider.id, DayOfWeek.TUESDAY, time(8), time(10), provider)
    recurring_service.create_recurring_slot(provider.id, DayOfWeek.TUESDAY, time(14), time(16), provider)


@pytest.fixture
def request_0830(spontaneous_service, requester):
    return spontaneous_service.submit(requester, "Back pain since last week", None, at(TUESDAY, 8, 30))


class TestSubmitAndRead:
    def test_submit(self, request_0830, requester, audit):
        assert request_0830.scheduling_status == SchedulingStatus.PENDING
        assert request_0830.requester_id == requester.id
        assert audit.events[-1].action_type == AuditActionType.SUBMIT_SPONTANEOUS_REQUEST

    def test_past_preference_is_rejected(self, spontaneous_service, requester, db):
        with pytest.raises(ValidationError) as exc_info:
            spontaneous_service.submit(requester, "Flu", preferred_datetime=NOW - timedelta(hours=1))
        assert exc_info.value.code == "INVALID_DATE"
        assert db.query(SpontaneousRequest).count() == 0

    def test_preference_within_clock_skew_is_accepted(self, spontaneous_service, requester):
        request = spontaneous_service.submit(requester, "Flu", preferred_datetime=NOW - timedelta(minutes=4))
        assert request.preferred_datetime == NOW - timedelta(minutes=4)

    def test_only_requesters_submit(self, spontaneous_service, coordinator):
        with pytest.raises(PermissionDeniedError):
            spontaneous_service.submit(coordinator, "Check-up")

    def test_blank_reason(self, spontaneous_service, requester):
        with pytest.raises(ValidationError):
            spontaneous_service.submit(requester, "   ")

    def test_list_and_count_mine(self, spontaneous_service, request_0830, requester, other_requester):
        second = spontaneous_service.submit(requester, "Follow-up", preferred_datetime=at(TUESDAY, 15))
        spontaneous_service.cancel(second.id, requester)
        spontaneous_service.submit(other_requester, "Not mine")

        assert len(spontaneous_service.list_mine(requester)) == 2
        pending = spontaneous_service.list_mine(requester, status=SchedulingStatus.PENDING)
        assert [r.id for r in pending] == [request_0830.id]
        morning = spontaneous_service.list_mine(requester, start=at(TUESDAY, 8), end=at(TUESDAY, 12))
        assert [r.id for r in morning] == [request_0830.id]
        assert spontaneous_service.count_mine(requester) == 2
        assert spontaneous_service.count_mine(requester, SchedulingStatus.CANCELLED) == 1

    def test_get_request_visibility(self, spontaneous_service, request_0830, requester, other_requester, coordinator):
        assert spontaneous_service.get_request(request_0830.id, requester).id == request_0830.id
        assert spontaneous_service.get_request(request_0830.id, coordinator).id == request_0830.id
        with pytest.raises(PermissionDeniedError):
            spontaneous_service.get_request(request_0830.id, other_requester)
        with pytest.raises(NotFoundError):
            spontaneous_service.get_request(999, coordinator)

    def test_list_all_is_for_coordinators(self, spontaneous_service, request_0830, requester, coordinator):
        assert [r.id for r in spontaneous_service.list_all(coordinator)] == [request_0830.id]
        with pytest.raises(PermissionDeniedError):
            spontaneous_service.list_all(requester)


class TestRequesterEdits:
    def test_update_while_pending(self, spontaneous_service, request_0830, requester):
        updated = spontaneous_service.update(request_0830.id, requester, notes="Worse in the morning")
        assert updated.notes == "Worse in the morning"
        assert updated.reason == "Back pain since last week"

    def test_update_rejects_past_preference(self, spontaneous_service, request_0830, requester, db):
        with pytest.raises(ValidationError) as exc_info:
            spontaneous_service.update(request_0830.id, requester, preferred_datetime=NOW - timedelta(days=1))
        assert exc_info.value.code == "INVALID_DATE"

        db.expire_all()
        assert spontaneous_service.get_request(request_0830.id, requester).preferred_datetime == at(TUESDAY, 8, 30)

    def test_only_owner_updates(self, spontaneous_service, request_0830, other_requester):
        with pytest.raises(PermissionDeniedError):
            spontaneous_service.update(request_0830.id, other_requester, reason="Hijacked")

    def test_cancel_then_no_more_edits(self, spontaneous_service, request_0830, requester):
        spontaneous_service.cancel(request_0830.id, requester, reason="Feeling better")

        with pytest.raises(InvalidStateError):
            spontaneous_service.update(request_0830.id, requester, notes="late edit")
        with pytest.raises(InvalidStateError):
            spontaneous_service.cancel(request_0830.id, requester)

    def test_cancel_reason_is_audited(self, spontaneous_service, request_0830, requester, audit):
        spontaneous_service.cancel(request_0830.id, requester, reason="Feeling better")
        assert audit.events[-1].action_type == AuditActionType.CANCEL_VISIT
        assert "reason: Feeling better" in audit.events[-1].description


class TestCoordinatorActions:
    def test_cancel_as_coordinator_is_idempotent(self, spontaneous_service, request_0830, coordinator, audit):
        first = spontaneous_service.cancel_as_coordinator(request_0830.id, coordinator)
        second = spontaneous_service.cancel_as_coordinator(request_0830.id, coordinator)

        assert first.scheduling_status == SchedulingStatus.CANCELLED
        assert second.scheduling_status == SchedulingStatus.CANCELLED
        assert "already cancelled" in audit.events[-1].description

    def test_reject_pending(self, spontaneous_service, request_0830, coordinator):
        assert spontaneous_service.reject(request_0830.id, coordinator).scheduling_status == SchedulingStatus.CANCELLED

    def test_reject_cancelled(self, spontaneous_service, request_0830, requester, coordinator):
        spontaneous_service.cancel(request_0830.id, requester)
        with pytest.raises(InvalidStateError) as exc_info:
            spontaneous_service.reject(request_0830.id, coordinator)
        assert exc_info.value.code == "ALREADY_CANCELLED"

    def test_requesters_cannot_reject(self, spontaneous_service, request_0830, requester):
        with pytest.raises(PermissionDeniedError):
            spontaneous_service.reject(request_0830.id, requester)

    def test_flag_for_rescheduling_is_admin_only(self, spontaneous_service, request_0830, coordinator, admin):
        with pytest.raises(PermissionDeniedError):
            spontaneous_service.flag_for_rescheduling(request_0830.id, coordinator)
        flagged = spontaneous_service.flag_for_rescheduling(request_0830.id, admin)
        assert flagged.scheduling_status == SchedulingStatus.NEEDS_RESCHEDULING


class TestConfirm:
    def test_scenario_tuesday_windows(
        self,
        spontaneous_service,
        recurring_service,
        tuesday_availability,
        request_0830,
        provider,
        other_requester,
        coordinator,
        db,
    ):
        with pytest.raises(ConflictError):
            recurring_service.create_recurring_slot(
                provider.id, DayOfWeek.TUESDAY, time(9), time(15), provider
            )

        visit = spontaneous_service.confirm(request_0830.id, provider.id, coordinator)

        assert visit.status == VisitStatus.PENDING_PROVIDER_CONFIRMATION
        assert visit.category == VisitCategory.SPONTANEOUS
        assert visit.slot.status == SlotStatus.TEMPORARILY_LOCKED
        assert TimeWindow(visit.slot.start_time, visit.slot.end_time) == TimeWindow(
            at(TUESDAY, 8, 30), at(TUESDAY, 9, 30)
        )
        assert spontaneous_service.get_request(request_0830.id, coordinator).scheduling_status == (
            SchedulingStatus.SCHEDULED
        )

        second = spontaneous_service.submit(other_requester, "Annual check", None, at(TUESDAY, 9))
        with pytest.raises(ProviderSlotConflict) as exc_info:
            spontaneous_service.confirm(second.id, provider.id, coordinator)
        assert "2030-01-08 08:30 - 09:30 (TEMPORARILY_LOCKED)" in exc_info.value.message
        assert spontaneous_service.get_request(second.id, coordinator).scheduling_status == SchedulingStatus.PENDING
        assert db.query(Slot).count() == 1

    def test_override_datetime_and_category(
        self, spontaneous_service, tuesday_availability, request_0830, provider, coordinator
    ):
        visit = spontaneous_service.confirm(
            request_0830.id,
            provider.id,
            coordinator,
            override_datetime=at(TUESDAY, 14, 15),
            category=VisitCategory.MEDICAL_FOLLOW_UP,
        )
        assert visit.category == VisitCategory.MEDICAL_FOLLOW_UP
        assert visit.slot.start_time == at(TUESDAY, 14, 15)
        assert spontaneous_service.get_request(request_0830.id, coordinator).preferred_datetime == at(TUESDAY, 14, 15)

    def test_outside_availability_changes_nothing(
        self, spontaneous_service, tuesday_availability, request_0830, provider, coordinator, db
    ):
        with pytest.raises(NoAvailabilityWindow):
            spontaneous_service.confirm(
                request_0830.id, provider.id, coordinator, override_datetime=at(TUESDAY, 11)
            )
        assert db.query(Slot).count() == 0
        assert db.query(Visit).count() == 0
        assert spontaneous_service.get_request(request_0830.id, coordinator).scheduling_status == SchedulingStatus.PENDING

    def test_missing_target_date(self, spontaneous_service, tuesday_availability, requester, provider, coordinator):
        request = spontaneous_service.submit(requester, "No preference")
        with pytest.raises(ValidationError) as exc_info:
            spontaneous_service.confirm(request.id, provider.id, coordinator)
        assert exc_info.value.code == "DATE_REQUIRED"

    def test_past_target_date(self, spontaneous_service, tuesday_availability, requester, provider, coordinator, clock):
        request = spontaneous_service.submit(requester, "Too late", None, NOW + timedelta(hours=1))
        clock.advance(hours=2)
        with pytest.raises(ValidationError) as exc_info:
            spontaneous_service.confirm(request.id, provider.id, coordinator)
        assert exc_info.value.code == "INVALID_DATE"

    def test_cancelled_request_cannot_be_confirmed(
        self, spontaneous_service, tuesday_availability, request_0830, requester, provider, coordinator
    ):
        spontaneous_service.cancel(request_0830.id, requester)
        with pytest.raises(InvalidStateError):
            spontaneous_service.confirm(request_0830.id, provider.id, coordinator)

    def test_rescheduling_flow(
        self, spontaneous_service, visit_service, tuesday_availability, request_0830, provider, coordinator, admin
    ):
        first = spontaneous_service.confirm(request_0830.id, provider.id, coordinator)
        visit_service.cancel_visit(first.id, coordinator)

        spontaneous_service.flag_for_rescheduling(request_0830.id, admin)
        visit = spontaneous_service.confirm(
            request_0830.id, provider.id, coordinator, override_datetime=at(TUESDAY, 15)
        )
        assert visit.slot.start_time == at(TUESDAY, 15)
        assert spontaneous_service.get_request(request_0830.id, coordinator).scheduling_status == (
            SchedulingStatus.SCHEDULED
        )

    def test_scheduled_request_cannot_be_rejected(
        self, spontaneous_service, tuesday_availability, request_0830, provider, coordinator
    ):
        spontaneous_service.confirm(request_0830.id, provider.id, coordinator)
        with pytest.raises(InvalidTransition):
            spontaneous_service.reject(request_0830.id, coordinator)
        with pytest.raises(InvalidStateError):
            spontaneous_service.cancel_as_coordinator(request_0830.id, coordinator)
