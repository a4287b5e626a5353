from datetime import timedelta

import pytest
from conftest import NOW, TUESDAY, at

from medsched.audit import SYSTEM_ACTOR
from medsched.domain.scheduling.conflicts import TimeWindow
from medsched.enums import AuditActionType, SlotStatus, VisitCategory, VisitStatus
from medsched.exceptions import (
    ConflictError,
    ConflictKind,
    InvalidStateError,
    InvalidTransition,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from medsched.models import Slot


def _window(start_hour, end_hour, day=TUESDAY):
    return TimeWindow(at(day, start_hour), at(day, end_hour))


class TestCreateSlot:
    def test_creates_available_slot_and_audits(self, slot_service, provider, audit):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)

        assert slot.id is not None
        assert slot.status == SlotStatus.AVAILABLE
        assert slot.start_time == at(TUESDAY, 9)
        assert [e.action_type for e in audit.events] == [AuditActionType.SLOT_CREATED]
        assert audit.events[0].actor == provider.email

    def test_rejects_inverted_window(self, slot_service, provider):
        with pytest.raises(ValidationError):
            slot_service.create_slot(provider.id, _window(10, 9), provider)

    def test_rejects_past_start_beyond_skew_tolerance(self, slot_service, provider):
        with pytest.raises(ValidationError):
            slot_service.create_slot(
                provider.id, TimeWindow(NOW - timedelta(minutes=30), NOW + timedelta(hours=1)), provider
            )

    def test_accepts_start_within_skew_tolerance(self, slot_service, provider):
        slot = slot_service.create_slot(
            provider.id, TimeWindow(NOW - timedelta(minutes=3), NOW + timedelta(hours=1)), provider
        )
        assert slot.status == SlotStatus.AVAILABLE

    def test_overlap_lists_conflicting_windows(self, slot_service, provider):
        slot_service.create_slot(provider.id, _window(9, 10), provider)

        with pytest.raises(ConflictError) as exc_info:
            slot_service.create_slot(provider.id, TimeWindow(at(TUESDAY, 9, 30), at(TUESDAY, 10, 30)), provider)

        assert exc_info.value.kind == ConflictKind.EXISTING_SLOT
        assert "2030-01-08 09:00 - 10:00 (AVAILABLE)" in exc_info.value.message
        assert exc_info.value.details["conflicts"] == ["2030-01-08 09:00 - 10:00 (AVAILABLE)"]

    def test_back_to_back_slots_are_allowed(self, slot_service, provider, db):
        slot_service.create_slot(provider.id, _window(9, 10), provider)
        slot_service.create_slot(provider.id, _window(10, 11), provider)
        assert db.query(Slot).count() == 2

    def test_unavailable_slot_does_not_block(self, slot_service, provider):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)
        slot_service.update_slot_status(slot.id, SlotStatus.UNAVAILABLE, provider)

        replacement = slot_service.create_slot(provider.id, _window(9, 10), provider)
        assert replacement.status == SlotStatus.AVAILABLE

    def test_other_providers_calendar_is_independent(self, slot_service, provider, other_provider):
        slot_service.create_slot(provider.id, _window(9, 10), provider)
        slot = slot_service.create_slot(other_provider.id, _window(9, 10), other_provider)
        assert slot.provider_id == other_provider.id

    def test_provider_cannot_create_for_someone_else(self, slot_service, provider, other_provider):
        with pytest.raises(PermissionDeniedError):
            slot_service.create_slot(other_provider.id, _window(9, 10), provider)

    def test_admin_can_create_for_a_provider(self, slot_service, provider, admin):
        slot = slot_service.create_slot(provider.id, _window(9, 10), admin)
        assert slot.provider_id == provider.id

    def test_unknown_provider(self, slot_service, admin):
        with pytest.raises(NotFoundError):
            slot_service.create_slot(9999, _window(9, 10), admin)


class TestCreateSlotsInRange:
    def test_fills_range_back_to_back(self, slot_service, provider):
        slots = slot_service.create_slots_in_range(provider.id, _window(9, 12), 60, provider)
        assert [(s.start_time.hour, s.end_time.hour) for s in slots] == [(9, 10), (10, 11), (11, 12)]

    def test_partial_trailing_interval_is_dropped(self, slot_service, provider):
        slots = slot_service.create_slots_in_range(provider.id, _window(9, 11), 45, provider)
        assert len(slots) == 2
        assert slots[-1].end_time == at(TUESDAY, 10, 30)

    def test_conflict_anywhere_creates_nothing(self, slot_service, provider, db):
        slot_service.create_slot(provider.id, _window(11, 12), provider)

        with pytest.raises(ConflictError):
            slot_service.create_slots_in_range(provider.id, _window(9, 12), 60, provider)
        assert db.query(Slot).count() == 1


class TestQueries:
    def test_available_slots_exclude_unbookable(self, slot_service, visit_service, provider, requester, coordinator):
        open_slot = slot_service.create_slot(provider.id, _window(9, 10), provider)
        off = slot_service.create_slot(provider.id, _window(10, 11), provider)
        slot_service.update_slot_status(off.id, SlotStatus.UNAVAILABLE, provider)
        visit_service.book_with_fresh_slot(
            requester.id, provider.id, _window(14, 15), VisitCategory.PERIODIC, coordinator
        )

        assert [s.id for s in slot_service.list_available_slots(provider.id)] == [open_slot.id]

    def test_list_provider_slots_filters_by_status(self, slot_service, provider):
        slot_service.create_slot(provider.id, _window(9, 10), provider)
        off = slot_service.create_slot(provider.id, _window(10, 11), provider)
        slot_service.update_slot_status(off.id, SlotStatus.UNAVAILABLE, provider)

        assert len(slot_service.list_provider_slots(provider.id)) == 2
        unavailable = slot_service.list_provider_slots(provider.id, status=SlotStatus.UNAVAILABLE)
        assert [s.id for s in unavailable] == [off.id]

    def test_get_slot_not_found(self, slot_service):
        with pytest.raises(NotFoundError):
            slot_service.get_slot(42)


class TestProviderToggle:
    def test_toggle_round_trip(self, slot_service, provider):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)

        assert slot_service.update_slot_status(slot.id, SlotStatus.UNAVAILABLE, provider).status == SlotStatus.UNAVAILABLE
        assert slot_service.update_slot_status(slot.id, SlotStatus.AVAILABLE, provider).status == SlotStatus.AVAILABLE

    def test_available_to_available_is_a_no_op(self, slot_service, provider, audit):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)
        slot_service.update_slot_status(slot.id, SlotStatus.AVAILABLE, provider)
        assert [e.action_type for e in audit.events] == [AuditActionType.SLOT_CREATED]

    def test_locked_slot_cannot_be_toggled(self, slot_service, visit_service, provider, requester, coordinator):
        _, slot = visit_service.book_with_fresh_slot(
            requester.id, provider.id, _window(9, 10), VisitCategory.PERIODIC, coordinator
        )
        with pytest.raises(InvalidTransition):
            slot_service.update_slot_status(slot.id, SlotStatus.UNAVAILABLE, provider)
        assert slot_service.get_slot(slot.id).status == SlotStatus.TEMPORARILY_LOCKED

    def test_reopening_checks_for_new_overlaps(self, slot_service, provider):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)
        slot_service.update_slot_status(slot.id, SlotStatus.UNAVAILABLE, provider)
        slot_service.create_slot(provider.id, TimeWindow(at(TUESDAY, 9, 30), at(TUESDAY, 10, 30)), provider)

        with pytest.raises(ConflictError):
            slot_service.update_slot_status(slot.id, SlotStatus.AVAILABLE, provider)
        assert slot_service.get_slot(slot.id).status == SlotStatus.UNAVAILABLE

    def test_only_owner_toggles(self, slot_service, provider, other_provider):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)
        with pytest.raises(PermissionDeniedError):
            slot_service.update_slot_status(slot.id, SlotStatus.UNAVAILABLE, other_provider)


class TestDeleteSlot:
    def test_deletes_available_slot(self, slot_service, provider, db):
        slot = slot_service.create_slot(provider.id, _window(9, 10), provider)
        slot_service.delete_slot(slot.id, provider)
        assert db.query(Slot).count() == 0

    def test_refuses_locked_slot(self, slot_service, visit_service, provider, requester, coordinator):
        _, slot = visit_service.book_with_fresh_slot(
            requester.id, provider.id, _window(9, 10), VisitCategory.PERIODIC, coordinator
        )
        with pytest.raises(InvalidStateError):
            slot_service.delete_slot(slot.id, provider)

    def test_refuses_slot_with_visit_history(self, slot_service, visit_service, provider, requester, coordinator):
        visit, slot = visit_service.book_with_fresh_slot(
            requester.id, provider.id, _window(9, 10), VisitCategory.PERIODIC, coordinator
        )
        visit_service.cancel_visit(visit.id, coordinator)

        with pytest.raises(InvalidStateError):
            slot_service.delete_slot(slot.id, provider)


class TestReclaimExpiredLocks:
    def test_reclaims_only_locks_past_the_grace_window(
        self, slot_service, visit_service, provider, requester, other_requester, coordinator, clock, audit
    ):
        stale_visit, stale_slot = visit_service.book_with_fresh_slot(
            requester.id, provider.id, TimeWindow(at(NOW, 9), at(NOW, 10)), VisitCategory.PERIODIC, coordinator
        )
        fresh_visit, fresh_slot = visit_service.book_with_fresh_slot(
            other_requester.id, provider.id, TimeWindow(at(NOW, 11), at(NOW, 12)), VisitCategory.PERIODIC, coordinator
        )
        # stale slot started 3 hours ago, fresh slot 1 hour ago
        clock.advance(hours=4)

        assert slot_service.reclaim_expired_locks() == 1

        assert slot_service.get_slot(stale_slot.id).status == SlotStatus.AVAILABLE
        assert visit_service.repo.get_visit(visit_service.db, stale_visit.id).status == VisitStatus.CANCELLED
        assert slot_service.get_slot(fresh_slot.id).status == SlotStatus.TEMPORARILY_LOCKED
        assert visit_service.repo.get_visit(visit_service.db, fresh_visit.id).status == (
            VisitStatus.PENDING_PROVIDER_CONFIRMATION
        )

        reclaimed = [e for e in audit.events if e.action_type == AuditActionType.SLOT_LOCK_RECLAIMED]
        assert len(reclaimed) == 1
        assert reclaimed[0].actor == SYSTEM_ACTOR

    def test_confirmed_slots_are_never_reclaimed(
        self, slot_service, visit_service, provider, requester, coordinator, clock
    ):
        visit, slot = visit_service.book_with_fresh_slot(
            requester.id, provider.id, TimeWindow(at(NOW, 9), at(NOW, 10)), VisitCategory.PERIODIC, coordinator
        )
        visit_service.confirm_visit(visit.id, provider)
        clock.advance(hours=6)

        assert slot_service.reclaim_expired_locks() == 0
        assert slot_service.get_slot(slot.id).status == SlotStatus.CONFIRMED

    def test_second_sweep_finds_nothing(self, slot_service, visit_service, provider, requester, coordinator, clock):
        visit_service.book_with_fresh_slot(
            requester.id, provider.id, TimeWindow(at(NOW, 9), at(NOW, 10)), VisitCategory.PERIODIC, coordinator
        )
        clock.advance(hours=4)

        assert slot_service.reclaim_expired_locks() == 1
        assert slot_service.reclaim_expired_locks() == 0
