"""
Slot and Visit state machines.

Transition tables plus pure predicates over slot/visit snapshots. Nothing here
reads the clock: callers pass ``now`` explicitly.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional, Tuple

from ...enums import SlotStatus, VisitStatus
from ...exceptions import InvalidTransition

SLOT_TRANSITIONS: Dict[SlotStatus, FrozenSet[SlotStatus]] = {
    SlotStatus.AVAILABLE: frozenset({SlotStatus.TEMPORARILY_LOCKED, SlotStatus.UNAVAILABLE}),
    SlotStatus.TEMPORARILY_LOCKED: frozenset({SlotStatus.CONFIRMED, SlotStatus.AVAILABLE}),
    SlotStatus.CONFIRMED: frozenset({SlotStatus.AVAILABLE}),
    SlotStatus.UNAVAILABLE: frozenset({SlotStatus.AVAILABLE}),
}

VISIT_TRANSITIONS: Dict[VisitStatus, FrozenSet[VisitStatus]] = {
    VisitStatus.PENDING_PROVIDER_CONFIRMATION: frozenset(
        {VisitStatus.SCHEDULED, VisitStatus.CANCELLED}
    ),
    VisitStatus.SCHEDULED: frozenset({VisitStatus.IN_PROGRESS, VisitStatus.CANCELLED}),
    VisitStatus.IN_PROGRESS: frozenset({VisitStatus.COMPLETED}),
    VisitStatus.COMPLETED: frozenset(),
    VisitStatus.CANCELLED: frozenset(),
}

# Visit transition -> the slot transition that must happen in the same unit of work
PAIRED_SLOT_TRANSITIONS: Dict[Tuple[VisitStatus, VisitStatus], Tuple[SlotStatus, SlotStatus]] = {
    (VisitStatus.PENDING_PROVIDER_CONFIRMATION, VisitStatus.SCHEDULED): (
        SlotStatus.TEMPORARILY_LOCKED,
        SlotStatus.CONFIRMED,
    ),
    (VisitStatus.PENDING_PROVIDER_CONFIRMATION, VisitStatus.CANCELLED): (
        SlotStatus.TEMPORARILY_LOCKED,
        SlotStatus.AVAILABLE,
    ),
    (VisitStatus.SCHEDULED, VisitStatus.CANCELLED): (
        SlotStatus.CONFIRMED,
        SlotStatus.AVAILABLE,
    ),
}

# Statuses a provider may drive through advanceVisitStatus
PROGRESS_TARGETS = frozenset({VisitStatus.IN_PROGRESS, VisitStatus.COMPLETED})


def can_transition_slot(current: SlotStatus, target: SlotStatus) -> bool:
    return target in SLOT_TRANSITIONS[current]


def ensure_slot_transition(current: SlotStatus, target: SlotStatus) -> None:
    if not can_transition_slot(current, target):
        raise InvalidTransition("slot", current, target)


def can_transition_visit(current: VisitStatus, target: VisitStatus) -> bool:
    return target in VISIT_TRANSITIONS[current]


def ensure_visit_transition(current: VisitStatus, target: VisitStatus) -> None:
    if not can_transition_visit(current, target):
        raise InvalidTransition("visit", current, target)


def paired_slot_transition(
    current: VisitStatus, target: VisitStatus
) -> Optional[Tuple[SlotStatus, SlotStatus]]:
    """Slot (expected, target) statuses driven by a visit transition; None if the slot is untouched"""
    return PAIRED_SLOT_TRANSITIONS.get((current, target))


def is_slot_expired(slot, now: datetime) -> bool:
    """A slot is expired once its window has ended"""
    return now > slot.end_time


def is_lock_stale(slot, now: datetime, grace: timedelta) -> bool:
    """Locked slot whose appointment started more than ``grace`` ago"""
    return slot.status == SlotStatus.TEMPORARILY_LOCKED and slot.start_time < now - grace


def is_bookable(slot, now: datetime) -> bool:
    return slot.status == SlotStatus.AVAILABLE and not is_slot_expired(slot, now)


def can_be_cancelled(visit) -> bool:
    return visit.status in (VisitStatus.PENDING_PROVIDER_CONFIRMATION, VisitStatus.SCHEDULED)


def starts_in_future(start: datetime, now: datetime, tolerance: timedelta) -> bool:
    """True when ``start`` is after ``now - tolerance``"""
    return start > now - tolerance
