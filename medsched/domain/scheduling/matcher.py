"""
Recurring Availability Matcher

Turns a target date-time into a concrete slot window by checking it against
the provider's weekly availability. Bookability is re-derived on every call
because recurring windows can change between submission and confirmation.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ...config import DERIVED_SLOT_MINUTES
from ...enums import DayOfWeek
from ...exceptions import NoAvailabilityWindow, ProviderSlotConflict, SlotOutsideRecurringWindow
from ...models import RecurringSlot
from ..recurring.repository import RecurringSlotRepository
from ..slots.repository import SlotRepository
from .conflicts import TimeWindow, describe_slot, find_conflicts, slot_window

logger = logging.getLogger(__name__)


def _describe_window(recurring_slot: RecurringSlot) -> str:
    return f"{recurring_slot.start_time:%H:%M}-{recurring_slot.end_time:%H:%M}"


def select_window(target: datetime, windows: Sequence[RecurringSlot]) -> Optional[RecurringSlot]:
    """First window (by start) whose range contains the target time of day, both ends inclusive"""
    time_of_day = target.time()
    for window in sorted(windows, key=lambda w: w.start_time):
        if window.start_time <= time_of_day <= window.end_time:
            return window
    return None


def derive_window(
    target: datetime,
    windows: Sequence[RecurringSlot],
    minutes: int = DERIVED_SLOT_MINUTES,
) -> TimeWindow:
    """
    Pure part of the match: pick the recurring window and build the candidate.

    Args:
        target: requested appointment start
        windows: the provider's recurring slots for the target's weekday
        minutes: length of the derived slot

    Raises:
        NoAvailabilityWindow: no window contains the target time
        SlotOutsideRecurringWindow: the derived slot runs past the window end
    """
    start = target.replace(second=0, microsecond=0)
    day = DayOfWeek.from_weekday(start.weekday())

    matched = select_window(start, windows)
    if matched is None:
        available = [_describe_window(w) for w in sorted(windows, key=lambda w: w.start_time)]
        raise NoAvailabilityWindow(
            f"No recurring availability on {day.value} at {start:%H:%M}. "
            f"Available windows: [{', '.join(available)}]",
            details={"day_of_week": day.value, "available_windows": available},
        )

    end = start + timedelta(minutes=minutes)
    if end.date() != start.date() or end.time() > matched.end_time:
        raise SlotOutsideRecurringWindow(
            f"A {minutes}-minute slot starting {start:%H:%M} ends at {end:%H:%M}, "
            f"outside the recurring window {day.value} {_describe_window(matched)}",
            details={
                "day_of_week": day.value,
                "window": _describe_window(matched),
                "slot_end": f"{end:%H:%M}",
            },
        )

    return TimeWindow(start, end)


class RecurringAvailabilityMatcher:
    """Resolves a target date-time to a validated, conflict-free slot window"""

    def __init__(self, db: Session, minutes: int = DERIVED_SLOT_MINUTES):
        self.db = db
        self.minutes = minutes

    def match(self, provider_id: int, target: datetime) -> TimeWindow:
        day = DayOfWeek.from_weekday(target.weekday())
        logger.info(f"🔍 Matching {target:%Y-%m-%d %H:%M} ({day.value}) for provider {provider_id}")

        windows = RecurringSlotRepository.get_day_recurring_slots(self.db, provider_id, day)
        window = derive_window(target, windows, self.minutes)

        existing = SlotRepository.get_overlapping_slots(
            self.db, provider_id, window.start, window.end
        )
        conflicts = find_conflicts(window, existing, slot_window)
        if conflicts:
            described = [describe_slot(s) for s in conflicts]
            logger.warning(f"⚠️ Derived slot {window} conflicts for provider {provider_id}: {described}")
            raise ProviderSlotConflict(
                f"Provider {provider_id} already has slots overlapping {window}", described
            )

        logger.info(f"✅ Matched slot {window} for provider {provider_id}")
        return window
