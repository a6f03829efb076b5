from __future__ import annotations

from datetime import datetime, timedelta

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, basic_auth
from database import utcnow
from routers.media_kit import live_stats, semester_start

GATE = {"Authorization": basic_auth(ADMIN_USERNAME, ADMIN_PASSWORD)}
SPONSOR = {"name": "Acme", "description": "Tooling partner", "logo": "https://cdn/acme.png"}


def test_sponsor_crud_and_ordering(client, db, admin_headers):
    second = client.post("/api/sponsors", json={**SPONSOR, "name": "Beta", "order": 2}, headers=admin_headers).json()
    first = client.post("/api/sponsors", json={**SPONSOR, "order": 1}, headers=admin_headers).json()
    client.post("/api/sponsors", json={**SPONSOR, "name": "Hidden", "is_active": False}, headers=admin_headers)

    assert [item["name"] for item in client.get("/api/sponsors").json()] == ["Hidden", "Acme", "Beta"]
    assert [item["name"] for item in client.get("/api/sponsors", params={"active": True}).json()] == ["Acme", "Beta"]

    too_long = client.post("/api/sponsors", json={**SPONSOR, "description": "x" * 501}, headers=admin_headers)
    assert too_long.status_code == 400

    updated = client.put(f"/api/sponsors/{second['id']}", json={"order": 0}, headers=admin_headers)
    assert updated.json()["order"] == 0
    assert client.get(f"/api/sponsors/{first['id']}").json()["name"] == "Acme"

    assert client.delete(f"/api/sponsors/{first['id']}", headers=admin_headers).json() == {"success": True}
    assert client.get(f"/api/sponsors/{first['id']}").status_code == 404
    assert db["audit_log"].count_documents({"target_type": "sponsor"}) == 5


def test_inventory_assign_and_return(client, db, admin_headers, make_member):
    holder = make_member(full_name="Ayşe Yılmaz")
    item = client.post(
        "/api/admin/inventory",
        json={"name": "Arduino Kit", "category": "electronics", "serial_number": "ARD-01"},
        headers=admin_headers,
    ).json()
    assert item["status"] == "available"

    missing_member = client.put("/api/admin/inventory", json={"id": item["id"], "action": "assign"}, headers=admin_headers)
    assert missing_member.status_code == 400

    assigned = client.put(
        "/api/admin/inventory",
        json={"id": item["id"], "action": "assign", "member_id": str(holder["_id"]), "due_date": "2026-12-01T00:00:00"},
        headers=admin_headers,
    ).json()
    assert assigned["status"] == "assigned"
    assert assigned["assigned_to"] == str(holder["_id"])
    assert assigned["assigned_to_name"] == "Ayşe Yılmaz"

    found = client.get("/api/admin/inventory", params={"q": "ayşe"}, headers=admin_headers).json()
    assert [entry["id"] for entry in found] == [item["id"]]

    returned = client.put("/api/admin/inventory", json={"id": item["id"], "action": "return"}, headers=admin_headers).json()
    assert returned["status"] == "available"
    assert returned["assigned_to"] is None
    assert returned["due_date"] is None

    edited = client.put(
        "/api/admin/inventory", json={"id": item["id"], "status": "maintenance", "notes": "Broken pin"}, headers=admin_headers
    ).json()
    assert edited["status"] == "maintenance"
    assert client.get("/api/admin/inventory", params={"status": "available"}, headers=admin_headers).json() == []

    actions = [entry["action"] for entry in db["audit_log"].find().sort("created_at", 1)]
    assert actions == ["CREATE_INVENTORY", "ASSIGN_INVENTORY", "RETURN_INVENTORY", "UPDATE_INVENTORY"]

    assert client.delete("/api/admin/inventory", params={"id": item["id"]}, headers=admin_headers).json() == {"success": True}
    assert client.delete("/api/admin/inventory", params={"id": item["id"]}, headers=admin_headers).status_code == 404


def test_access_rules_require_superadmin(client, db, admin_headers, make_member, make_president, sign_in):
    assert client.get("/api/admin/access", headers=admin_headers).status_code == 401

    helper = make_member()
    president = make_president()
    sign_in(president)

    granted = client.post(
        "/api/admin/access",
        json={"member_id": str(helper["_id"]), "allowed_keys": ["events", " events", "sponsors", ""]},
        headers=GATE,
    )
    assert granted.status_code == 200
    assert granted.json()["allowed_keys"] == ["events", "sponsors"]

    regranted = client.post(
        "/api/admin/access", json={"member_id": str(helper["_id"]), "allowed_keys": ["ALL"]}, headers=GATE
    )
    assert regranted.json()["id"] == granted.json()["id"]
    assert db["admin_access"].count_documents({}) == 1

    rules = client.get("/api/admin/access", headers=GATE).json()
    assert rules[0]["member"]["student_no"] == helper["student_no"]

    sign_in(helper)
    assert client.get("/api/admin/access", headers=GATE).status_code == 200

    sign_in(president)
    revoked = client.delete("/api/admin/access", params={"id": granted.json()["id"]}, headers=GATE)
    assert revoked.json() == {"success": True}

    sign_in(helper)
    assert client.get("/api/admin/access", headers=GATE).status_code == 403


def test_access_rule_grants_admin_routes(client, db, make_member, sign_in):
    helper = make_member()
    db["admin_access"].insert_one({"member_id": helper["_id"], "allowed_keys": ["sponsors"]})
    sign_in(helper)

    response = client.post("/api/sponsors", json=SPONSOR, headers=GATE)
    assert response.status_code == 200
    assert db["audit_log"].find_one()["admin_name"] == helper["full_name"]

    denied = client.post("/api/admin/members", json={}, headers=GATE)
    assert denied.status_code in (400, 403)


def test_semester_start():
    assert semester_start(datetime(2024, 10, 5)) == datetime(2024, 9, 1)
    assert semester_start(datetime(2024, 3, 5)) == datetime(2024, 2, 1)
    assert semester_start(datetime(2024, 1, 15)) == datetime(2023, 9, 1)


def test_live_stats_counts_this_semester(db, make_member):
    member = make_member()
    make_member(is_active=False)
    now = datetime(2024, 10, 15)
    current = db["event"].insert_one({"title": "Now", "event_date": datetime(2024, 9, 20)}).inserted_id
    db["event"].insert_one({"title": "Old", "event_date": datetime(2024, 5, 1)})
    db["registration"].insert_one({"event_id": current, "member_id": member["_id"]})
    db["team_member"].insert_many(
        [
            {"name": "Lead", "role": "president", "is_active": True, "order": 1},
            {"name": "Dev", "role": "member", "is_active": True, "order": 2},
        ]
    )

    stats = live_stats(db, now)
    assert stats["total_members"] == 2
    assert stats["active_members"] == 1
    assert stats["semester_events"] == 1
    assert stats["semester_participants"] == 1
    assert [person["name"] for person in stats["board_members"]] == ["Lead"]


def test_media_kit_token_lifecycle(client, db, admin_headers):
    created = client.post(
        "/api/media-kit",
        json={"sponsor_name": "Acme", "email": "pr@acme.com", "default_language": "en"},
        headers=admin_headers,
    ).json()
    assert len(created["token"]) == 48
    assert created["created_by"] == "System Admin"

    view = client.get(f"/api/media-kit/view/{created['token']}")
    assert view.status_code == 200
    assert view.json()["sponsor_name"] == "Acme"
    assert view.json()["default_language"] == "en"
    assert "total_members" in view.json()["stats"]
    assert client.get(f"/api/media-kit/{created['id']}", headers=admin_headers).json()["view_count"] == 1

    assert client.get("/api/media-kit/view/nope").json() == {"error": "invalid_token"}

    client.put(f"/api/media-kit/{created['id']}", json={"is_active": False}, headers=admin_headers)
    inactive = client.get(f"/api/media-kit/view/{created['token']}")
    assert inactive.status_code == 403
    assert inactive.json() == {"error": "token_inactive"}

    db["media_kit_token"].update_one(
        {"token": created["token"]}, {"$set": {"is_active": True, "expires_at": utcnow() - timedelta(days=1)}}
    )
    assert client.get(f"/api/media-kit/view/{created['token']}").json() == {"error": "token_expired"}

    renewed = client.put(f"/api/media-kit/{created['id']}", json={"expires_in_days": 7}, headers=admin_headers)
    assert client.get(f"/api/media-kit/view/{created['token']}").status_code == 200
    assert renewed.status_code == 200

    assert len(client.get("/api/media-kit", headers=admin_headers).json()) == 1
    assert client.delete(f"/api/media-kit/{created['id']}", headers=admin_headers).json() == {"success": True}
    assert client.get(f"/api/media-kit/view/{created['token']}").status_code == 404
