"""
Member sessions and admin authorization.

Members log in with their student number and receive a signed JWT in the
``auth-token`` cookie. Admin rights come from three places: the
``x-admin-password`` header, an ``admin_access`` rule, or an active
president/vice-president seat on the team.
"""
from __future__ import annotations

import hmac
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from hashlib import sha256
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, Response
from jose import JWTError, jwt
from pymongo.database import Database

from config import get_settings
from database import get_db, utcnow
from gate import client_ip

LOGGER = logging.getLogger(__name__)

SESSION_COOKIE = "auth-token"
SESSION_TTL = timedelta(days=7)
JWT_ALGORITHM = "HS256"

ADMIN_PASSWORD_HEADER = "x-admin-password"
SUPERADMIN_ROLES = ("president", "vice_president")
ALL_KEYS = "ALL"


def hash_password(password: str) -> str:
    salt = get_settings().password_salt
    return sha256(f"{salt}:{password}".encode()).hexdigest()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return hmac.compare_digest(hash_password(password), password_hash)


def validate_password_strength(password: str) -> List[str]:
    """Return the rules ``password`` breaks; an empty list means it is acceptable."""
    problems = []
    if len(password) < 8:
        problems.append("Password must be at least 8 characters")
    if not re.search(r"[A-Za-z]", password):
        problems.append("Password must contain a letter")
    if not re.search(r"\d", password):
        problems.append("Password must contain a digit")
    return problems


def create_session_token(member: Dict[str, Any]) -> str:
    claims = {
        "member_id": str(member["_id"]),
        "student_no": member.get("student_no"),
        "nickname": member.get("nickname"),
        "exp": utcnow() + SESSION_TTL,
    }
    return jwt.encode(claims, get_settings().jwt_secret, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, get_settings().jwt_secret, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(SESSION_TTL.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=get_settings().cookie_secure,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")


def _session_member(request: Request, db: Database) -> Optional[Dict[str, Any]]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    claims = decode_session_token(token)
    if not claims or not claims.get("member_id"):
        return None
    try:
        member_id = ObjectId(claims["member_id"])
    except (InvalidId, TypeError):
        return None
    return db["member"].find_one({"_id": member_id})


def current_member_optional(request: Request, db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    member = _session_member(request, db)
    if member is None or not member.get("is_registered"):
        return None
    return member


def require_member(member: Optional[Dict[str, Any]] = Depends(current_member_optional)) -> Dict[str, Any]:
    if member is None:
        raise HTTPException(status_code=401, detail="Login required")
    return member


@dataclass
class AdminActor:
    """Whoever is performing an admin action."""

    id: Optional[str]
    name: str
    is_system: bool = False
    is_superadmin: bool = False
    allowed_keys: List[str] = field(default_factory=list)

    @property
    def audit_name(self) -> str:
        return self.name or "Admin"


SYSTEM_ACTOR = AdminActor(id=None, name="System Admin", is_system=True)


def has_admin_password(request: Request) -> bool:
    expected = get_settings().admin_password
    supplied = request.headers.get(ADMIN_PASSWORD_HEADER)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())


def admin_actor_for(db: Database, member: Dict[str, Any]) -> Optional[AdminActor]:
    """Resolve a member's admin rights, or ``None`` when they have none."""
    member_id = member["_id"]
    seat = db["team_member"].find_one(
        {"member_id": member_id, "is_active": True, "role": {"$in": list(SUPERADMIN_ROLES)}}
    )
    access = db["admin_access"].find_one({"member_id": member_id})
    if seat is None and access is None:
        return None
    allowed_keys = list(access.get("allowed_keys") or []) if access else []
    return AdminActor(
        id=str(member_id),
        name=member.get("full_name") or member.get("nickname") or "",
        is_superadmin=seat is not None or ALL_KEYS in allowed_keys,
        allowed_keys=allowed_keys,
    )


def optional_admin(request: Request, db: Database = Depends(get_db)) -> Optional[AdminActor]:
    if has_admin_password(request):
        return SYSTEM_ACTOR
    member = current_member_optional(request, db)
    if member is None:
        return None
    return admin_actor_for(db, member)


def require_admin(request: Request, db: Database = Depends(get_db)) -> AdminActor:
    if has_admin_password(request):
        return SYSTEM_ACTOR
    member = current_member_optional(request, db)
    if member is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    actor = admin_actor_for(db, member)
    if actor is None:
        LOGGER.warning("Member %s attempted an admin action", member.get("student_no"))
        raise HTTPException(status_code=403, detail="Forbidden")
    return actor


def require_superadmin(request: Request, db: Database = Depends(get_db)) -> AdminActor:
    member = current_member_optional(request, db)
    if member is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    actor = admin_actor_for(db, member)
    if actor is None or not actor.is_superadmin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return actor


def request_ip(request: Request) -> str:
    return client_ip(request.headers)


__all__ = [
    "AdminActor",
    "SESSION_COOKIE",
    "clear_session_cookie",
    "create_session_token",
    "current_member_optional",
    "decode_session_token",
    "hash_password",
    "optional_admin",
    "require_admin",
    "require_member",
    "require_superadmin",
    "set_session_cookie",
    "validate_password_strength",
    "verify_password",
]
