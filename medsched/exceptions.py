"""
Scheduling error taxonomy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API maps it to; services raise them and main.py renders them as JSON.
"""

from enum import Enum
from typing import Any, Optional, Sequence


class SchedulingError(Exception):
    """Base class for errors raised by the booking engine"""

    code = "SCHEDULING_ERROR"
    http_status = 400

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict] = None):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(SchedulingError):
    """Malformed or missing input: inverted window, duration out of bounds, past start"""

    code = "VALIDATION_ERROR"
    http_status = 400


class NoAvailabilityWindow(ValidationError):
    code = "NO_RECURRING_SLOT"


class SlotOutsideRecurringWindow(ValidationError):
    code = "SLOT_OUTSIDE_RECURRING_WINDOW"


class NotFoundError(SchedulingError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} not found: {resource_id}",
            details={"resource": resource, "id": resource_id},
        )


class ConflictKind(str, Enum):
    # Candidate window overlaps one of the provider's committed slots
    EXISTING_SLOT = "EXISTING_SLOT"
    PROVIDER_SLOT = "PROVIDER_SLOT"
    # Party already has a blocking visit overlapping the window
    PROVIDER_VISIT = "PROVIDER_VISIT"
    REQUESTER_VISIT = "REQUESTER_VISIT"


class ConflictError(SchedulingError):
    """Overlap against existing commitments; enumerates the windows in the way"""

    code = "CONFLICT"
    http_status = 409

    def __init__(self, kind: ConflictKind, summary: str, conflicts: Sequence[Any]):
        self.kind = kind
        self.conflicts = list(conflicts)
        listed = ", ".join(str(c) for c in self.conflicts)
        super().__init__(
            f"{summary}. Conflicting windows: [{listed}]",
            details={"kind": kind.value, "conflicts": [str(c) for c in self.conflicts]},
        )


class ProviderSlotConflict(ConflictError):
    code = "PROVIDER_SLOT_CONFLICT"

    def __init__(self, summary: str, conflicts: Sequence[Any]):
        super().__init__(ConflictKind.PROVIDER_SLOT, summary, conflicts)


class InvalidStateError(SchedulingError):
    """Operation not legal from the resource's current status"""

    code = "INVALID_STATE"
    http_status = 409


class InvalidTransition(InvalidStateError):
    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: Enum, target: Enum):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid {entity} status transition from {current.value} to {target.value}",
            details={"entity": entity, "from": current.value, "to": target.value},
        )


class PermissionDeniedError(InvalidStateError):
    """Actor lacks ownership of the resource or the capability for the action"""

    code = "FORBIDDEN"
    http_status = 403


class ExpiredError(SchedulingError):
    """Slot or lock is past its validity window"""

    code = "EXPIRED"
    http_status = 410
