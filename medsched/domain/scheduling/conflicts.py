"""
Conflict Detection

Pure functions testing whether a candidate window overlaps committed windows.
Windows are half-open [start, end): back-to-back windows do not conflict.

Used for slot-vs-slot checks (provider capacity) and visit-vs-visit checks
(requester and provider double-booking).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    def is_chronological(self) -> bool:
        return self.start < self.end

    def overlaps(self, other: "TimeWindow") -> bool:
        return windows_overlap(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{self.start:%Y-%m-%d %H:%M} - {self.end:%H:%M}"


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """[a_start, a_end) and [b_start, b_end) conflict iff a_start < b_end and b_start < a_end"""
    return a_start < b_end and b_start < a_end


def find_conflicts(
    candidate: TimeWindow,
    existing: Iterable[T],
    window_of: Callable[[T], Tuple[datetime, datetime]],
    is_blocking: Optional[Callable[[T], bool]] = None,
) -> List[T]:
    """
    Return the items of ``existing`` whose window overlaps ``candidate``.

    Args:
        candidate: window being tested
        existing: committed items of one party (slots or visits)
        window_of: extracts (start, end) from an item
        is_blocking: optional status filter; items it rejects never conflict

    Returns:
        list of conflicting items, ordered by start time
    """
    conflicts = []
    for item in existing:
        if is_blocking is not None and not is_blocking(item):
            continue
        start, end = window_of(item)
        if windows_overlap(candidate.start, candidate.end, start, end):
            conflicts.append(item)
    conflicts.sort(key=lambda item: window_of(item)[0])
    return conflicts


def has_conflict(
    candidate: TimeWindow,
    existing: Iterable[T],
    window_of: Callable[[T], Tuple[datetime, datetime]],
    is_blocking: Optional[Callable[[T], bool]] = None,
) -> bool:
    return bool(find_conflicts(candidate, existing, window_of, is_blocking))


def slot_window(slot) -> Tuple[datetime, datetime]:
    return slot.start_time, slot.end_time


def visit_window(visit) -> Tuple[datetime, datetime]:
    return visit.slot.start_time, visit.slot.end_time


def describe_slot(slot) -> str:
    """Human-readable window of a slot, with its status, for conflict messages"""
    return f"{TimeWindow(slot.start_time, slot.end_time)} ({slot.status.value})"


def describe_visit(visit) -> str:
    return f"{TimeWindow(*visit_window(visit))} (visit {visit.id}, {visit.status.value})"
