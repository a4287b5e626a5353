from datetime import datetime

import pytest
from conftest import auth

from medsched.enums import AuditActionType, SlotStatus
from medsched.models import AuditLog, Slot

# Far enough ahead to be in the future for the real clock
TUESDAY = "2030-01-08"


def _slot_body(start, end, **extra):
    return {"start_time": f"{TUESDAY}T{start}:00", "end_time": f"{TUESDAY}T{end}:00", **extra}


@pytest.fixture
def slot_id(client, provider):
    response = client.post("/slots", json=_slot_body("09:00", "10:00"), headers=auth(provider))
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_missing_identity_header(client):
    assert client.get("/slots/1").status_code == 401


def test_archived_user_is_forbidden(client, archived_requester):
    response = client.get("/spontaneous-requests/mine", headers=auth(archived_requester))
    assert response.status_code == 403


def test_create_slot_and_conflict_mapping(client, provider, slot_id):
    response = client.post("/slots", json=_slot_body("09:30", "10:30"), headers=auth(provider))

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "CONFLICT"
    assert body["details"]["kind"] == "EXISTING_SLOT"
    assert body["details"]["conflicts"] == ["2030-01-08 09:00 - 10:00 (AVAILABLE)"]
    assert "09:00 - 10:00" in body["message"]


def test_inverted_window_is_rejected_by_request_validation(client, provider):
    response = client.post("/slots", json=_slot_body("10:00", "09:00"), headers=auth(provider))
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert "Start time must be before end time" in body["message"]


def test_unknown_category_uses_the_error_envelope(client, provider, requester, coordinator):
    body = _slot_body(
        "10:00", "09:00", requester_id=requester.id, provider_id=provider.id, category="NOPE"
    )
    response = client.post("/visits/fresh", json=body, headers=auth(coordinator))

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_ERROR"
    assert ["body", "category"] in [e["loc"] for e in data["details"]["errors"]]


def test_available_slots(client, provider, coordinator, slot_id):
    response = client.get(f"/slots/available?provider_id={provider.id}", headers=auth(coordinator))
    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [slot_id]


def test_booking_and_confirmation_flow(client, db, provider, other_provider, requester, coordinator, slot_id):
    booking = {
        "requester_id": requester.id,
        "provider_id": provider.id,
        "slot_id": slot_id,
        "category": "PERIODIC",
    }
    response = client.post("/visits", json=booking, headers=auth(coordinator))
    assert response.status_code == 201
    visit = response.json()
    assert visit["status"] == "PENDING_PROVIDER_CONFIRMATION"
    assert visit["slot"]["status"] == "TEMPORARILY_LOCKED"

    again = client.post("/visits", json=booking, headers=auth(coordinator))
    assert again.status_code == 409
    assert again.json()["code"] == "SLOT_NOT_AVAILABLE"

    forbidden = client.post(f"/visits/{visit['id']}/confirm", headers=auth(other_provider))
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "FORBIDDEN"

    confirmed = client.post(f"/visits/{visit['id']}/confirm", headers=auth(provider))
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "SCHEDULED"
    assert confirmed.json()["slot"]["status"] == "CONFIRMED"

    replay = client.post(f"/visits/{visit['id']}/confirm", headers=auth(provider))
    assert replay.status_code == 409
    assert replay.json()["code"] == "INVALID_TRANSITION"

    actions = {a for (a,) in db.query(AuditLog.action_type).all()}
    assert {AuditActionType.SCHEDULE_VISIT, AuditActionType.VALIDATE_VISIT} <= actions


def test_fresh_booking_duration_out_of_bounds(client, provider, requester, coordinator):
    body = _slot_body(
        "09:00", "09:10", requester_id=requester.id, provider_id=provider.id, category="HIRING"
    )
    response = client.post("/visits/fresh", json=body, headers=auth(coordinator))
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_fresh_booking_returns_visit_and_slot(client, provider, requester, coordinator):
    body = _slot_body(
        "09:00", "09:45", requester_id=requester.id, provider_id=provider.id, category="HIRING"
    )
    response = client.post("/visits/fresh", json=body, headers=auth(coordinator))
    assert response.status_code == 201
    data = response.json()
    assert data["slot"]["status"] == "TEMPORARILY_LOCKED"
    assert data["visit"]["slot_id"] == data["slot"]["id"]


def test_expired_slot_maps_to_gone(client, db, provider, requester, coordinator):
    slot = Slot(
        provider_id=provider.id,
        start_time=datetime(2020, 3, 2, 9, 0),
        end_time=datetime(2020, 3, 2, 10, 0),
        status=SlotStatus.AVAILABLE,
    )
    db.add(slot)
    db.commit()

    response = client.post(
        "/visits",
        json={
            "requester_id": requester.id,
            "provider_id": provider.id,
            "slot_id": slot.id,
            "category": "PERIODIC",
        },
        headers=auth(coordinator),
    )
    assert response.status_code == 410
    assert response.json()["code"] == "EXPIRED"


def test_unknown_visit(client, coordinator):
    response = client.get("/visits/12345", headers=auth(coordinator))
    assert response.status_code == 404
    assert response.json()["details"] == {"resource": "Visit", "id": 12345}


def test_spontaneous_confirm_without_availability(client, provider, requester, coordinator):
    created = client.post(
        "/spontaneous-requests",
        json={"reason": "Headaches", "preferred_datetime": f"{TUESDAY}T10:00:00"},
        headers=auth(requester),
    )
    assert created.status_code == 201

    response = client.post(
        f"/spontaneous-requests/{created.json()['id']}/confirm",
        json={"provider_id": provider.id},
        headers=auth(coordinator),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "NO_RECURRING_SLOT"


def test_spontaneous_confirm_through_recurring_window(client, provider, requester, coordinator):
    client.post(
        "/recurring-slots",
        json={"day_of_week": "TUESDAY", "start_time": "08:00:00", "end_time": "10:00:00"},
        headers=auth(provider),
    )
    created = client.post(
        "/spontaneous-requests",
        json={"reason": "Headaches", "preferred_datetime": f"{TUESDAY}T08:30:00"},
        headers=auth(requester),
    ).json()

    response = client.post(
        f"/spontaneous-requests/{created['id']}/confirm",
        json={"provider_id": provider.id},
        headers=auth(coordinator),
    )
    assert response.status_code == 200
    assert response.json()["category"] == "SPONTANEOUS"
    assert response.json()["slot"]["start_time"] == f"{TUESDAY}T08:30:00"

    count = client.get("/spontaneous-requests/mine/count?status=SCHEDULED", headers=auth(requester))
    assert count.json() == {"status": "SCHEDULED", "count": 1}


def test_reclaim_endpoint_requires_admin(client, coordinator, admin):
    assert client.post("/slots/reclaim", headers=auth(coordinator)).status_code == 403

    response = client.post("/slots/reclaim", headers=auth(admin))
    assert response.status_code == 200
    assert response.json() == {"reclaimed": 0}
