from __future__ import annotations

from datetime import timedelta

import httpx

from conftest import ADMIN_PASSWORD, MEMBER_PASSWORD
from database import utcnow
from mailer import mask_email, send_email
from security import SESSION_COOKIE, decode_session_token, hash_password, validate_password_strength


def test_mask_email_keeps_first_and_last_character():
    assert mask_email("ahmet@x.com") == "a***t@x.com"
    assert mask_email("averyveryverylongname@uni.edu.tr") == "a*****e@uni.edu.tr"
    assert mask_email("ab@x.com") == "ab@x.com"
    assert mask_email("broken") == "***@***.***"


def test_send_email_without_key_reports_failure(settings_env):
    assert send_email("someone@uni.edu.tr", "Hi", "<p>Hi</p>") is False


def test_send_email_posts_to_resend(settings_env, monkeypatch):
    from config import get_settings

    monkeypatch.setenv("RESEND_API_KEY", "re_test")
    get_settings.cache_clear()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "email-1"})

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        assert send_email("someone@uni.edu.tr", "Hi", "<p>Hi</p>", client=client) is True
    assert seen[0].headers["authorization"] == "Bearer re_test"


def test_send_email_swallows_http_errors(settings_env, monkeypatch):
    from config import get_settings

    monkeypatch.setenv("RESEND_API_KEY", "re_test")
    get_settings.cache_clear()
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    with httpx.Client(transport=transport) as client:
        assert send_email("someone@uni.edu.tr", "Hi", "<p>Hi</p>", client=client) is False


def test_password_strength_rules():
    assert validate_password_strength("Password123") == []
    assert validate_password_strength("short1") == ["Password must be at least 8 characters"]
    assert "Password must contain a digit" in validate_password_strength("onlyletters")
    assert "Password must contain a letter" in validate_password_strength("12345678")


def test_signup_requires_data_protection_consent(client, make_member):
    member = make_member(registered=False)
    response = client.post("/api/auth/signup", json={"student_no": member["student_no"]})
    assert response.status_code == 400


def test_signup_unknown_and_registered_members(client, make_member):
    assert client.post(
        "/api/auth/signup", json={"student_no": "00000000", "kvkk_accepted": True}
    ).status_code == 404

    inactive = make_member(registered=False, is_active=False)
    assert client.post(
        "/api/auth/signup", json={"student_no": inactive["student_no"], "kvkk_accepted": True}
    ).status_code == 404

    registered = make_member()
    response = client.post(
        "/api/auth/signup", json={"student_no": registered["student_no"], "kvkk_accepted": True}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "This account is already registered"


def test_signup_then_set_password_then_login(client, db, make_member):
    member = make_member(registered=False, email="ahmet@x.com")

    response = client.post(
        "/api/auth/signup",
        json={"student_no": member["student_no"], "kvkk_accepted": True, "email_consent": True},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "email": "a***t@x.com", "email_sent": False}

    token = db["password_token"].find_one({"member_id": member["_id"]})
    assert token["type"] == "signup"
    assert len(token["token"]) == 64

    weak = client.post("/api/auth/set-password", json={"token": token["token"], "password": "weak"})
    assert weak.status_code == 400

    done = client.post(
        "/api/auth/set-password", json={"token": token["token"], "password": MEMBER_PASSWORD}
    )
    assert done.status_code == 200
    assert db["password_token"].count_documents({}) == 0

    stored = db["member"].find_one({"_id": member["_id"]})
    assert stored["is_registered"] is True
    assert stored["kvkk_accepted"] is True
    assert stored["email_consent"] is True
    assert stored["password_hash"] == hash_password(MEMBER_PASSWORD)

    login = client.post(
        "/api/auth/login", json={"student_no": member["student_no"], "password": MEMBER_PASSWORD}
    )
    assert login.status_code == 200
    assert login.json()["member"]["student_no"] == member["student_no"]
    claims = decode_session_token(client.cookies[SESSION_COOKIE])
    assert claims["member_id"] == str(member["_id"])


def test_set_password_rejects_expired_token(client, db, make_member):
    member = make_member(registered=False)
    db["password_token"].insert_one(
        {
            "member_id": member["_id"],
            "token": "expired",
            "type": "signup",
            "expires_at": utcnow() - timedelta(minutes=1),
        }
    )
    response = client.post("/api/auth/set-password", json={"token": "expired", "password": MEMBER_PASSWORD})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid or expired token"


def test_login_failures(client, make_member):
    member = make_member()
    wrong = client.post("/api/auth/login", json={"student_no": member["student_no"], "password": "Nope12345"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid student number or password"}

    unknown = client.post("/api/auth/login", json={"student_no": "99999999", "password": "Nope12345"})
    assert unknown.json() == wrong.json()

    pending = make_member(registered=False)
    response = client.post("/api/auth/login", json={"student_no": pending["student_no"], "password": "x"})
    assert response.status_code == 401
    assert response.json()["not_registered"] is True


def test_me_and_profile_update(client, make_member, sign_in):
    assert client.get("/api/auth/me").status_code == 401

    member = make_member()
    sign_in(member)
    me = client.get("/api/auth/me").json()
    assert me["nickname"] == member["nickname"]
    assert "password_hash" not in me

    short = client.put("/api/auth/me", json={"nickname": " a "})
    assert short.status_code == 400

    updated = client.put(
        "/api/auth/me",
        json={"nickname": "Ahmet", "profile_visibility": {"show_email": True}},
    )
    assert updated.status_code == 200
    assert updated.json()["nickname"] == "Ahmet"
    assert updated.json()["profile_visibility"]["show_email"] is True


def test_logout_clears_session(client, make_member, sign_in):
    sign_in(make_member())
    assert client.post("/api/auth/logout").json() == {"success": True}
    assert client.get("/api/auth/me").status_code == 401


def test_forged_session_is_ignored(client, make_member):
    make_member()
    client.cookies.set(SESSION_COOKIE, "not-a-jwt")
    assert client.get("/api/auth/me").status_code == 401


def test_forgot_password_answers_uniformly_and_is_rate_limited(client, db, clock, make_member):
    member = make_member()
    known = client.post("/api/auth/forgot-password", json={"student_no": member["student_no"]})
    unknown = client.post("/api/auth/forgot-password", json={"student_no": "12345678"})
    assert known.json() == unknown.json()
    assert db["password_token"].find_one({"member_id": member["_id"]})["type"] == "reset"

    client.post("/api/auth/forgot-password", json={"student_no": "12345678"})
    limited = client.post("/api/auth/forgot-password", json={"student_no": "12345678"})
    assert limited.status_code == 429

    clock.advance(5 * 60)
    assert client.post("/api/auth/forgot-password", json={"student_no": "12345678"}).status_code == 200


def test_admin_can_create_test_member(client, db, make_president, sign_in):
    payload = {
        "student_no": "20990001",
        "full_name": "Test Account",
        "email": "Test@Uni.edu.tr",
        "password": "Testpass1",
    }
    header_only = client.post("/api/admin/members", json=payload, headers={"x-admin-password": ADMIN_PASSWORD})
    assert header_only.status_code in (401, 403)

    president = make_president()
    sign_in(president)
    referer = {"Referer": "http://testserver/admin/members"}
    response = client.post("/api/admin/members", json=payload, headers=referer)
    assert response.status_code == 200
    stored = db["member"].find_one({"student_no": "20990001"})
    assert stored["email"] == "test@uni.edu.tr"
    assert stored["is_test_account"] is True
    assert stored["is_registered"] is True

    duplicate = client.post("/api/admin/members", json=payload, headers=referer)
    assert duplicate.status_code == 409
    assert db["audit_log"].find_one({"action": "CREATE_MEMBER"})["admin_name"] == president["full_name"]


def test_member_import_and_listing(client, db, admin_headers, make_member):
    existing = make_member(registered=False)
    rows = [
        {"student_no": existing["student_no"], "full_name": "Renamed Member", "email": "NEW@uni.edu.tr"},
        {"student_no": "20220001", "full_name": "Zeynep Kaya", "email": "zeynep@uni.edu.tr"},
        {"student_no": "", "full_name": "Nobody"},
    ]
    response = client.post("/api/members/import", json={"members": rows}, headers=admin_headers)
    assert response.json() == {"inserted": 1, "updated": 1, "skipped": 1}
    assert db["member"].find_one({"_id": existing["_id"]})["email"] == "new@uni.edu.tr"

    listing = client.get("/api/members", params={"search": "zeynep"}, headers=admin_headers).json()
    assert listing["total"] == 1
    assert listing["members"][0]["student_no"] == "20220001"
    assert "password_hash" not in listing["members"][0]

    count = client.get("/api/members", params={"count_only": True}, headers=admin_headers).json()
    assert count == {"count": 2}
