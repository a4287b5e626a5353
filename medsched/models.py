from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .enums import (
    AuditActionType,
    DayOfWeek,
    Role,
    SchedulingStatus,
    SlotStatus,
    VisitCategory,
    VisitStatus,
)


def status_column(enum_cls, **kwargs):
    """Enum stored as its name in a VARCHAR column (portable across SQLite and Postgres)"""
    return Column(Enum(enum_cls, native_enum=False, length=40), **kwargs)


class User(Base):
    """Directory entry maintained by the identity collaborator; read-only for scheduling"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = status_column(Role, nullable=False)
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    slots = relationship("Slot", back_populates="provider", foreign_keys="Slot.provider_id")
    recurring_slots = relationship("RecurringSlot", back_populates="provider")


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_slots_window"),
        Index("idx_slots_provider_status", "provider_id", "status"),
        Index("idx_slots_start_time", "start_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = status_column(SlotStatus, nullable=False, default=SlotStatus.AVAILABLE)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    provider = relationship("User", back_populates="slots", foreign_keys=[provider_id])
    visits = relationship("Visit", back_populates="slot")


class Visit(Base):
    __tablename__ = "visits"
    __table_args__ = (
        # At most one live visit per slot, enforced by the store as well as the services
        Index(
            "uq_visits_active_slot",
            "slot_id",
            unique=True,
            sqlite_where=text("status != 'CANCELLED'"),
            postgresql_where=text("status != 'CANCELLED'"),
        ),
        Index("idx_visits_requester_status", "requester_id", "status"),
        Index("idx_visits_provider_status", "provider_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=True)
    category = status_column(VisitCategory, nullable=False)
    status = status_column(
        VisitStatus, nullable=False, default=VisitStatus.PENDING_PROVIDER_CONFIRMATION
    )
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    slot = relationship("Slot", back_populates="visits")
    requester = relationship("User", foreign_keys=[requester_id])
    provider = relationship("User", foreign_keys=[provider_id])
    created_by = relationship("User", foreign_keys=[created_by_id])


class RecurringSlot(Base):
    """Weekly availability template: a day of week plus a time-of-day range"""

    __tablename__ = "recurring_slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_recurring_slots_window"),
        Index("idx_recurring_provider_day", "provider_id", "day_of_week"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day_of_week = status_column(DayOfWeek, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    provider = relationship("User", back_populates="recurring_slots")


class SpontaneousRequest(Base):
    """Unscheduled ask from a requester; detached from any slot or visit"""

    __tablename__ = "spontaneous_requests"

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    preferred_datetime = Column(DateTime, nullable=True)
    scheduling_status = status_column(
        SchedulingStatus, nullable=False, default=SchedulingStatus.PENDING, index=True
    )
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    requester = relationship("User")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor = Column(String(255), nullable=False)  # e.g. user email or SYSTEM
    action_type = status_column(AuditActionType, nullable=False)
    description = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False)
