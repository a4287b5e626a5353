"""
Audit trail.

Fire-and-forget records of who did what. Events are emitted only after the
business transaction has committed and are written through a separate session,
so a failing sink can never abort or roll back a booking. Inside a request the
write is queued on the response's background tasks.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session, sessionmaker

from .enums import AuditActionType
from .models import AuditLog
from .shared.clock import local_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"


@dataclass
class AuditEvent:
    actor: str
    action_type: AuditActionType
    description: str
    timestamp: datetime = field(default_factory=local_now)


class AuditTrail:
    """Audit sink backed by the audit_logs table"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        background_tasks: Optional[BackgroundTasks] = None,
    ):
        if session_factory is None:
            from .database import SessionLocal

            session_factory = SessionLocal
        self.session_factory = session_factory
        self.background_tasks = background_tasks

    def emit(self, event: AuditEvent) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(self.write, event)
        else:
            self.write(event)

    def write(self, event: AuditEvent) -> None:
        db = None
        try:
            db = self.session_factory()
            db.add(
                AuditLog(
                    actor=event.actor,
                    action_type=event.action_type,
                    description=event.description,
                    timestamp=event.timestamp,
                )
            )
            db.commit()
        except Exception as e:
            # Fallback: the audit record is lost but the operation stands
            logger.error(
                f"❌ Failed to write audit record: {event.action_type.value} - "
                f"{event.description}. Error: {e}"
            )
            if db is not None:
                db.rollback()
        finally:
            if db is not None:
                db.close()

    def record(
        self,
        actor: str,
        action_type: AuditActionType,
        description: str,
        timestamp: Optional[datetime] = None,
    ) -> None:
        event = AuditEvent(actor=actor, action_type=action_type, description=description)
        if timestamp is not None:
            event.timestamp = timestamp
        self.emit(event)


def default_audit(db: Session, background_tasks: Optional[BackgroundTasks] = None) -> AuditTrail:
    """Audit trail writing to the same database as ``db`` through its own sessions"""
    return AuditTrail(sessionmaker(bind=db.get_bind()), background_tasks)
