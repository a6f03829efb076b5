from __future__ import annotations

from datetime import timedelta

import pytest

from database import utcnow


@pytest.fixture()
def project(db, make_member):
    owner = make_member()
    result = db["project"].insert_one(
        {
            "member_id": owner["_id"],
            "title": "Campus Map",
            "description": "Interactive map",
            "github_url": "https://github.com/club/map",
            "status": "approved",
            "created_at": utcnow(),
        }
    )
    return {"id": str(result.inserted_id), "owner": owner}


def _comment(client, project_id, content, **extra):
    return client.post(
        "/api/comments",
        params={"type": "project", "id": project_id},
        json={"content": content, **extra},
    )


def test_comment_requires_login_and_valid_type(client, make_member, sign_in, project):
    assert _comment(client, project["id"], "Nice").status_code == 401

    sign_in(make_member())
    response = client.post("/api/comments", params={"type": "video", "id": "x"}, json={"content": "Hi"})
    assert response.status_code == 400


def test_comment_content_rules(client, db, make_member, sign_in, project):
    sign_in(make_member())
    assert _comment(client, project["id"], "   ").status_code == 400
    assert _comment(client, project["id"], "x" * 501).status_code == 400

    link = _comment(client, project["id"], "see www.example.com")
    assert link.status_code == 400
    assert link.json()["error"] == "Links are not allowed in comments"
    assert db["comment"].count_documents({}) == 0


def test_comment_cooldown(client, make_member, sign_in, project):
    sign_in(make_member())
    assert _comment(client, project["id"], "First").status_code == 200
    second = _comment(client, project["id"], "Second")
    assert second.status_code == 429
    assert second.json()["error"] == "Please wait a minute before commenting again"


def test_comment_notifies_owner_and_parent_author(client, db, make_member, make_president, sign_in, project):
    make_president()
    first_author = make_member()
    sign_in(first_author)
    parent = _comment(client, project["id"], "Looks great").json()
    assert parent["author"]["nickname"] == first_author["nickname"]

    replier = make_member()
    sign_in(replier)
    reply = _comment(client, project["id"], "Agreed", parent_id=parent["id"])
    assert reply.status_code == 200

    owner_notes = db["notification"].count_documents({"recipient_id": project["owner"]["_id"], "type": "comment"})
    assert owner_notes == 2
    assert db["notification"].count_documents({"recipient_id": first_author["_id"], "type": "reply"}) == 1
    assert db["notification"].count_documents({"is_admin_notification": True}) == 2


def test_reply_must_match_parent_content(client, db, make_member, sign_in, project):
    sign_in(make_member())
    parent = _comment(client, project["id"], "Hello").json()

    sign_in(make_member())
    response = client.post(
        "/api/comments",
        params={"type": "announcement", "id": "spring-fest"},
        json={"content": "Hi", "parent_id": parent["id"]},
    )
    assert response.status_code == 400

    missing = _comment(client, project["id"], "Hi", parent_id="0123456789abcdef01234567")
    assert missing.status_code == 404


def test_list_hides_deleted_and_respects_visibility(client, db, make_member, sign_in, project):
    author = make_member(profile_visibility={"show_full_name": False, "show_email": True})
    sign_in(author)
    created = _comment(client, project["id"], "Visible").json()

    listing = client.get("/api/comments", params={"type": "project", "id": project["id"]}).json()
    assert [item["content"] for item in listing] == ["Visible"]
    assert "full_name" not in listing[0]["author"]
    assert listing[0]["author"]["email"] == author["email"]

    client.delete("/api/comments", params={"id": created["id"]})
    assert client.get("/api/comments", params={"type": "project", "id": project["id"]}).json() == []


def test_only_owner_or_admin_may_delete(client, db, admin_headers, make_member, make_president, sign_in, project):
    author = make_member()
    sign_in(author)
    comment = _comment(client, project["id"], "Mine").json()

    sign_in(make_member())
    assert client.delete("/api/comments", params={"id": comment["id"]}).status_code == 403

    president = make_president()
    sign_in(president)
    assert client.delete("/api/comments", params={"id": comment["id"]}).json() == {"success": True}

    stored = db["comment"].find_one({"content": "Mine"})
    assert stored["is_deleted"] is True
    assert stored["deleted_at"] is not None
    assert db["audit_log"].find_one({"action": "DELETE_COMMENT"})["admin_name"] == president["full_name"]

    assert client.delete("/api/comments", params={"id": comment["id"]}).status_code == 404


def test_soft_delete_restore_and_cleanup(client, db, admin_headers, make_member, sign_in, project):
    sign_in(make_member())
    comment = _comment(client, project["id"], "Keep me").json()
    client.cookies.clear()

    deleted = client.delete("/api/comments", params={"id": comment["id"]}, headers={"x-admin-password": admin_headers["x-admin-password"]})
    assert deleted.status_code == 200

    admin_view = client.get("/api/admin/comments", headers=admin_headers).json()
    assert admin_view[0]["is_deleted"] is True
    assert admin_view[0]["content_title"] == "Campus Map"
    assert admin_view[0]["author"]["student_no"]

    restored = client.post(f"/api/admin/comments/{comment['id']}/restore", headers=admin_headers)
    assert restored.json() == {"success": True}
    assert db["comment"].find_one({"content": "Keep me"})["is_deleted"] is False

    client.delete("/api/comments", params={"id": comment["id"]}, headers=admin_headers)
    preview = client.get("/api/admin/cleanup", headers=admin_headers).json()
    assert preview["eligible"]["comments"] == 0

    db["comment"].update_one({"content": "Keep me"}, {"$set": {"deleted_at": utcnow() - timedelta(days=31)}})
    preview = client.get("/api/admin/cleanup", headers=admin_headers).json()
    assert preview["eligible"]["comments"] == 1
    assert preview["totals"]["comments"] == 1

    result = client.post("/api/admin/cleanup", headers=admin_headers).json()
    assert result["deleted"]["comments"] == 1
    assert db["comment"].count_documents({}) == 0
