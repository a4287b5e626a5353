"""Status, category and role enumerations shared by models, services and schemas"""

from enum import Enum


class SlotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    # Booked by a coordinator, waiting for the provider to confirm
    TEMPORARILY_LOCKED = "TEMPORARILY_LOCKED"
    CONFIRMED = "CONFIRMED"
    # Provider marked the time as not bookable (leave, other duties)
    UNAVAILABLE = "UNAVAILABLE"


# Slots in these statuses occupy the provider's time
COMMITTED_SLOT_STATUSES = (
    SlotStatus.AVAILABLE,
    SlotStatus.TEMPORARILY_LOCKED,
    SlotStatus.CONFIRMED,
)


class VisitStatus(str, Enum):
    PENDING_PROVIDER_CONFIRMATION = "PENDING_PROVIDER_CONFIRMATION"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Visits in these statuses block the requester and the provider from double-booking
BLOCKING_VISIT_STATUSES = (
    VisitStatus.PENDING_PROVIDER_CONFIRMATION,
    VisitStatus.SCHEDULED,
    VisitStatus.IN_PROGRESS,
)


class VisitCategory(str, Enum):
    # Employment life cycle visits
    HIRING = "HIRING"
    PERIODIC = "PERIODIC"
    RETURN_TO_WORK = "RETURN_TO_WORK"
    PRE_RETURN = "PRE_RETURN"
    JOB_CHANGE = "JOB_CHANGE"
    # Request-based visits
    SPONTANEOUS = "SPONTANEOUS"
    MEDICAL_FOLLOW_UP = "MEDICAL_FOLLOW_UP"
    EXCEPTIONAL_VISIT = "EXCEPTIONAL_VISIT"


class SchedulingStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    NEEDS_RESCHEDULING = "NEEDS_RESCHEDULING"
    CANCELLED = "CANCELLED"


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def from_weekday(cls, weekday: int) -> "DayOfWeek":
        """Map datetime.weekday() (Monday == 0) to a DayOfWeek"""
        return list(cls)[weekday]


class Role(str, Enum):
    ADMIN = "ADMIN"
    COORDINATOR = "COORDINATOR"
    PROVIDER = "PROVIDER"
    REQUESTER = "REQUESTER"

    @property
    def can_manage_own_slots(self) -> bool:
        return self in (Role.PROVIDER, Role.ADMIN)

    @property
    def can_override_any_visit(self) -> bool:
        return self is Role.ADMIN

    @property
    def can_schedule_visits(self) -> bool:
        return self in (Role.COORDINATOR, Role.ADMIN)

    @property
    def can_request_visits(self) -> bool:
        return self is Role.REQUESTER


class AuditActionType(str, Enum):
    SCHEDULE_VISIT = "SCHEDULE_VISIT"
    VALIDATE_VISIT = "VALIDATE_VISIT"
    REFUSE_VISIT = "REFUSE_VISIT"
    CANCEL_VISIT = "CANCEL_VISIT"
    VISIT_STATUS_UPDATED = "VISIT_STATUS_UPDATED"
    SLOT_CREATED = "SLOT_CREATED"
    SLOT_STATUS_UPDATED = "SLOT_STATUS_UPDATED"
    SLOT_DELETED = "SLOT_DELETED"
    SLOT_LOCK_RECLAIMED = "SLOT_LOCK_RECLAIMED"
    SUBMIT_SPONTANEOUS_REQUEST = "SUBMIT_SPONTANEOUS_REQUEST"
    RECURRING_SLOT_CREATED = "RECURRING_SLOT_CREATED"
    RECURRING_SLOT_UPDATED = "RECURRING_SLOT_UPDATED"
    RECURRING_SLOT_DELETED = "RECURRING_SLOT_DELETED"
