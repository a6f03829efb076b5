from __future__ import annotations

import base64
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

mongomock = pytest.importorskip("mongomock")
pytest.importorskip("fastapi")
pytest.importorskip("httpx")
limits_memory = pytest.importorskip("limits.storage.memory")

from fastapi.testclient import TestClient

import database
from config import get_settings
from gate import AttemptTracker
from schemas import Member
from security import hash_password

ADMIN_USERNAME = "clubadmin"
ADMIN_PASSWORD = "gate-pass-123"
MEMBER_PASSWORD = "Password123"


def basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def settings_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("ADMIN_USERNAME", ADMIN_USERNAME)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("TRANSLATE_DELAY_SECONDS", "0")
    monkeypatch.delenv("DEEPL_API_KEY", raising=False)
    monkeypatch.delenv("RESEND_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def db(settings_env, monkeypatch: pytest.MonkeyPatch):
    test_db = mongomock.MongoClient().club_portal_test
    monkeypatch.setattr(database, "db", test_db)
    return test_db


@pytest.fixture()
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """One settable clock for the gate counters and the limits store behind them."""
    fake = FakeClock()
    monkeypatch.setattr(limits_memory, "time", SimpleNamespace(time=fake))
    return fake


@pytest.fixture()
def app(db, clock):
    from main import create_app

    return create_app(AttemptTracker(clock=clock))


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    """Passes the gate with Basic credentials and the routes with the admin password."""
    return {
        "Authorization": basic_auth(ADMIN_USERNAME, ADMIN_PASSWORD),
        "x-admin-password": ADMIN_PASSWORD,
    }


@pytest.fixture()
def make_member(db) -> Callable[..., Dict[str, Any]]:
    counter = {"n": 0}

    def _make(registered: bool = True, **fields: Any) -> Dict[str, Any]:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "student_no": f"2021{n:04d}",
            "full_name": f"Member {n}",
            "email": f"member{n}@uni.edu.tr",
            "department": "Computer Engineering",
            "is_registered": registered,
            "password_hash": hash_password(MEMBER_PASSWORD) if registered else None,
            "nickname": f"member{n}",
        }
        data.update(fields)
        member_id = database.create_document("member", Member(**data))
        return db["member"].find_one({"_id": database.parse_object_id(member_id)})

    return _make


@pytest.fixture()
def make_president(db, make_member) -> Callable[..., Dict[str, Any]]:
    def _make(**fields: Any) -> Dict[str, Any]:
        member = make_member(**fields)
        database.create_document(
            "team_member",
            {"member_id": member["_id"], "name": member["full_name"], "role": "president", "is_active": True},
        )
        return member

    return _make


@pytest.fixture()
def sign_in(client) -> Callable[[Dict[str, Any]], None]:
    def _sign_in(member: Dict[str, Any]) -> None:
        client.cookies.clear()
        response = client.post(
            "/api/auth/login",
            json={"student_no": member["student_no"], "password": MEMBER_PASSWORD},
        )
        assert response.status_code == 200, response.text

    return _sign_in
