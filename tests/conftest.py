from datetime import datetime, timedelta
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from medsched import models  # noqa: F401
from medsched.audit import AuditEvent, AuditTrail
from medsched.database import Base, build_engine, get_db
from medsched.domain.recurring.service import RecurringSlotService
from medsched.domain.slots.service import SlotService
from medsched.domain.spontaneous.service import SpontaneousRequestService
from medsched.domain.visits.service import VisitService
from medsched.enums import Role
from medsched.models import User

# Monday
NOW = datetime(2030, 1, 7, 8, 0)
TUESDAY = datetime(2030, 1, 8)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute)


class MemoryAuditTrail(AuditTrail):
    """Keeps events in memory instead of persisting them"""

    def __init__(self):
        self.events: List[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def audit():
    return MemoryAuditTrail()


def _make_user(db, role: Role, email: str, archived: bool = False) -> User:
    user = User(full_name=email.split("@")[0], email=email, role=role, archived=archived)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def provider(db):
    return _make_user(db, Role.PROVIDER, "dr.martin@clinic.test")


@pytest.fixture
def other_provider(db):
    return _make_user(db, Role.PROVIDER, "dr.durand@clinic.test")


@pytest.fixture
def requester(db):
    return _make_user(db, Role.REQUESTER, "alice@corp.test")


@pytest.fixture
def other_requester(db):
    return _make_user(db, Role.REQUESTER, "bob@corp.test")


@pytest.fixture
def coordinator(db):
    return _make_user(db, Role.COORDINATOR, "hr@corp.test")


@pytest.fixture
def admin(db):
    return _make_user(db, Role.ADMIN, "admin@corp.test")


@pytest.fixture
def archived_requester(db):
    return _make_user(db, Role.REQUESTER, "former@corp.test", archived=True)


@pytest.fixture
def slot_service(db, clock, audit):
    return SlotService(db, clock=clock, audit=audit)


@pytest.fixture
def visit_service(db, clock, audit):
    return VisitService(db, clock=clock, audit=audit)


@pytest.fixture
def recurring_service(db, clock, audit):
    return RecurringSlotService(db, clock=clock, audit=audit)


@pytest.fixture
def spontaneous_service(db, clock, audit):
    return SpontaneousRequestService(db, clock=clock, audit=audit)


@pytest.fixture
def client(session_factory):
    from medsched.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user: User) -> dict:
    return {"X-User-Id": str(user.id)}
