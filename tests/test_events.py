from __future__ import annotations

from typing import Any, Dict

import pytest

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, basic_auth


@pytest.fixture()
def make_event(client, admin_headers):
    def _make(**fields: Any) -> Dict[str, Any]:
        payload = {"title": "Python Workshop", "event_date": "2026-11-01T18:00:00", "location": "B101"}
        payload.update(fields)
        response = client.post("/api/events", json=payload, headers=admin_headers)
        assert response.status_code == 200, response.text
        return response.json()

    return _make


def test_public_listing_shows_only_open_events(client, make_event):
    make_event(title="Open")
    make_event(title="Closed", is_open=False)

    titles = [event["title"] for event in client.get("/api/events").json()]
    assert titles == ["Open"]


def test_admin_listing_includes_registration_counts(client, db, admin_headers, make_event, make_member, sign_in):
    event = make_event()
    make_event(title="Closed", is_open=False)
    sign_in(make_member())
    client.post("/api/registrations", json={"event_id": event["id"]})

    assert client.get("/api/events", params={"mode": "admin"}).status_code == 401

    listing = client.get("/api/events", params={"mode": "admin"}, headers=admin_headers).json()
    counts = {item["title"]: item["registration_count"] for item in listing}
    assert counts == {"Python Workshop": 1, "Closed": 0}


def test_duplicate_registration_is_rejected_once(client, db, make_event, make_member, make_president, sign_in):
    make_president()
    event = make_event()
    member = make_member()
    sign_in(member)

    first = client.post("/api/registrations", json={"event_id": event["id"]})
    assert first.status_code == 200
    second = client.post("/api/registrations", json={"event_id": event["id"]})
    assert second.status_code == 409
    assert db["registration"].count_documents({"member_id": member["_id"]}) == 1
    assert db["notification"].count_documents({"type": "registration", "is_admin_notification": True}) == 1


def test_registration_rules(client, make_event, make_member, sign_in):
    assert client.post("/api/registrations", json={"event_id": "x"}).status_code == 401

    sign_in(make_member())
    closed = make_event(title="Closed", is_open=False)
    paid = make_event(title="Paid", is_paid=True, price=50)

    assert client.post("/api/registrations", json={"event_id": closed["id"]}).status_code == 400
    assert client.post("/api/registrations", json={"event_id": paid["id"]}).status_code == 400
    assert client.post(
        "/api/registrations", json={"event_id": "0123456789abcdef01234567"}
    ).status_code == 404

    with_proof = client.post(
        "/api/registrations",
        json={"event_id": paid["id"], "payment_proof_url": "https://files/receipt.pdf"},
    )
    assert with_proof.status_code == 200


def test_payment_status_and_registration_list(client, db, admin_headers, make_event, make_member, sign_in):
    event = make_event(is_paid=True)
    member = make_member(phone="555")
    sign_in(member)
    registration = client.post(
        "/api/registrations",
        json={"event_id": event["id"], "payment_proof_url": "https://files/receipt.pdf"},
    ).json()

    updated = client.patch(
        f"/api/registrations/{registration['id']}/status",
        json={"payment_status": "verified"},
        headers=admin_headers,
    )
    assert updated.json()["payment_status"] == "verified"

    invalid = client.patch(
        f"/api/registrations/{registration['id']}/status",
        json={"payment_status": "paid"},
        headers=admin_headers,
    )
    assert invalid.status_code == 400

    listing = client.get(f"/api/events/{event['id']}/registrations", headers=admin_headers).json()
    assert listing["event"]["id"] == event["id"]
    assert listing["registrations"][0]["member"]["student_no"] == member["student_no"]
    assert listing["registrations"][0]["member"]["phone"] == "555"


def test_checkin_creates_or_updates_attendance(client, db, make_event, make_member, sign_in):
    event = make_event()
    walk_in = make_member()
    sign_in(walk_in)

    response = client.post(f"/api/events/{event['id']}/checkin", json={"rating": 5, "feedback": "Great"})
    assert response.status_code == 200
    record = db["registration"].find_one({"member_id": walk_in["_id"]})
    assert record["attended_at"] is not None
    assert record["rating"] == 5

    again = client.post(f"/api/events/{event['id']}/checkin", json={})
    assert again.status_code == 400
    assert again.json()["error"] == "You have already checked in"

    registered = make_member()
    sign_in(registered)
    client.post("/api/registrations", json={"event_id": event["id"]})
    client.post(f"/api/events/{event['id']}/checkin", json={"rating": 3})
    assert db["registration"].count_documents({"member_id": registered["_id"]}) == 1


def test_checkin_rejects_bad_rating_and_ended_events(client, admin_headers, make_event, make_member, sign_in):
    event = make_event()
    sign_in(make_member())
    assert client.post(f"/api/events/{event['id']}/checkin", json={"rating": 6}).status_code == 400

    client.cookies.clear()
    ended = client.post(f"/api/events/{event['id']}/end", json={"actual_duration": 90}, headers=admin_headers)
    assert ended.json() == {"success": True}

    sign_in(make_member())
    response = client.post(f"/api/events/{event['id']}/checkin", json={})
    assert response.status_code == 400
    assert client.get(f"/api/events/{event['id']}").json()["is_open"] is False


def test_update_and_delete_event_cascade(client, db, admin_headers, make_event, make_member, sign_in):
    event = make_event()
    updated = client.put(f"/api/events/{event['id']}", json={"location": "Hall A"}, headers=admin_headers)
    assert updated.json()["location"] == "Hall A"
    assert updated.json()["title"] == "Python Workshop"

    sign_in(make_member())
    client.post("/api/registrations", json={"event_id": event["id"]})
    client.cookies.clear()

    deleted = client.delete(f"/api/events/{event['id']}", headers=admin_headers)
    assert deleted.json() == {"success": True, "registrations_removed": 1}
    assert client.get(f"/api/events/{event['id']}").status_code == 404
    actions = [entry["action"] for entry in db["audit_log"].find().sort("created_at", 1)]
    assert actions == ["CREATE_EVENT", "UPDATE_EVENT", "DELETE_EVENT"]


def test_event_writes_require_admin(client, make_member, sign_in):
    gate_only = {"Authorization": basic_auth(ADMIN_USERNAME, ADMIN_PASSWORD)}
    payload = {"title": "X", "event_date": "2026-11-01T18:00:00"}
    assert client.post("/api/events", json=payload, headers=gate_only).status_code == 401

    sign_in(make_member())
    assert client.post("/api/events", json=payload, headers=gate_only).status_code == 403
    assert client.get("/api/events/not-an-id").status_code == 400
