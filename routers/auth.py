"""Member signup, password setup, login and profile."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel
from pymongo.database import Database

from database import create_document, get_db, utcnow
from gate import AttemptTracker
from mailer import mask_email, password_setup_email, send_email
from schemas import PasswordToken, ProfileVisibility
from security import (
    clear_session_cookie,
    create_session_token,
    hash_password,
    request_ip,
    require_member,
    set_session_cookie,
    validate_password_strength,
    verify_password,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

TOKEN_TTL = timedelta(hours=24)
FORGOT_PASSWORD_LIMIT = "3/5minutes"
FORGOT_PASSWORD_REPLY = "If the account exists, a password reset link has been sent."


def forgot_password_limiter() -> AttemptTracker:
    return AttemptTracker(FORGOT_PASSWORD_LIMIT)


def member_profile(member: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(member["_id"]),
        "student_no": member.get("student_no"),
        "full_name": member.get("full_name"),
        "email": member.get("email"),
        "phone": member.get("phone"),
        "department": member.get("department"),
        "nickname": member.get("nickname"),
        "avatar": member.get("avatar"),
        "profile_visibility": member.get("profile_visibility") or ProfileVisibility().model_dump(),
        "native_language": member.get("native_language"),
        "email_consent": member.get("email_consent", False),
        "last_login": member.get("last_login"),
    }


def _issue_token(db: Database, member: Dict[str, Any], token_type: str) -> str:
    db["password_token"].delete_many({"member_id": member["_id"], "type": token_type})
    token = secrets.token_hex(32)
    create_document(
        "password_token",
        PasswordToken(
            member_id=member["_id"],
            token=token,
            type=token_type,
            expires_at=utcnow() + TOKEN_TTL,
        ),
    )
    return token


class SignupRequest(BaseModel):
    student_no: str
    kvkk_accepted: bool = False
    email_consent: bool = False
    native_language: Optional[str] = None


@router.post("/signup")
def signup(body: SignupRequest, db: Database = Depends(get_db)):
    if not body.kvkk_accepted:
        raise HTTPException(status_code=400, detail="You must accept the data protection notice")

    member = db["member"].find_one({"student_no": body.student_no.strip()})
    if not member or not member.get("is_active", True):
        raise HTTPException(status_code=404, detail="No active member with this student number")
    if member.get("is_registered"):
        raise HTTPException(status_code=400, detail="This account is already registered")
    if not member.get("email"):
        raise HTTPException(status_code=400, detail="No email address on file for this member")

    db["member"].update_one(
        {"_id": member["_id"]},
        {
            "$set": {
                "kvkk_accepted": True,
                "email_consent": body.email_consent,
                "native_language": body.native_language,
                "updated_at": utcnow(),
            }
        },
    )
    token = _issue_token(db, member, "signup")
    sent = send_email(
        member["email"],
        "Hesap Oluşturma",
        password_setup_email(member.get("full_name", ""), token),
    )
    return {"success": True, "email": mask_email(member["email"]), "email_sent": sent}


class SetPasswordRequest(BaseModel):
    token: str
    password: str


@router.post("/set-password")
def set_password(body: SetPasswordRequest, db: Database = Depends(get_db)):
    record = db["password_token"].find_one({"token": body.token, "expires_at": {"$gt": utcnow()}})
    if not record:
        raise HTTPException(status_code=400, detail="Invalid or expired token")

    problems = validate_password_strength(body.password)
    if problems:
        raise HTTPException(status_code=400, detail="; ".join(problems))

    result = db["member"].update_one(
        {"_id": record["member_id"]},
        {
            "$set": {
                "password_hash": hash_password(body.password),
                "is_registered": True,
                "updated_at": utcnow(),
            }
        },
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Member not found")
    db["password_token"].delete_one({"_id": record["_id"]})
    return {"success": True}


class ForgotPasswordRequest(BaseModel):
    student_no: str


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordRequest, request: Request, db: Database = Depends(get_db)):
    limiter: AttemptTracker = request.app.state.forgot_password_limiter
    ip = request_ip(request)
    if not limiter.hit(ip):
        LOGGER.warning("Password reset rate limit hit from %s", ip)
        raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")

    member = db["member"].find_one({"student_no": body.student_no.strip()})
    if member and member.get("is_registered") and member.get("email"):
        token = _issue_token(db, member, "reset")
        send_email(
            member["email"],
            "Şifre Sıfırlama",
            password_setup_email(member.get("full_name", ""), token, is_reset=True),
        )
    return {"success": True, "message": FORGOT_PASSWORD_REPLY}


class LoginRequest(BaseModel):
    student_no: str
    password: str


@router.post("/login")
def login(body: LoginRequest, response: Response, db: Database = Depends(get_db)):
    member = db["member"].find_one({"student_no": body.student_no.strip()})
    if not member:
        raise HTTPException(status_code=401, detail="Invalid student number or password")
    if not member.get("is_registered"):
        raise HTTPException(
            status_code=401,
            detail={"error": "Account is not set up yet", "not_registered": True},
        )
    if not verify_password(body.password, member.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid student number or password")

    now = utcnow()
    db["member"].update_one({"_id": member["_id"]}, {"$set": {"last_login": now}})
    member["last_login"] = now
    set_session_cookie(response, create_session_token(member))
    return {"success": True, "member": member_profile(member)}


@router.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/me")
def me(member: Dict[str, Any] = Depends(require_member)):
    return member_profile(member)


class ProfileUpdateRequest(BaseModel):
    nickname: Optional[str] = None
    avatar: Optional[str] = None
    profile_visibility: Optional[ProfileVisibility] = None


@router.put("/me")
def update_me(
    body: ProfileUpdateRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    changes: Dict[str, Any] = {}
    if body.nickname is not None:
        nickname = body.nickname.strip()
        if len(nickname) < 2:
            raise HTTPException(status_code=400, detail="Nickname must be at least 2 characters")
        changes["nickname"] = nickname
    if body.avatar is not None:
        changes["avatar"] = body.avatar
    if body.profile_visibility is not None:
        changes["profile_visibility"] = body.profile_visibility.model_dump()

    if changes:
        changes["updated_at"] = utcnow()
        db["member"].update_one({"_id": member["_id"]}, {"$set": changes})
        member.update(changes)
    return member_profile(member)
