"""
Sponsor media kit links.

Admins mint a token per sponsor contact; the public view behind the token
shows live club statistics and counts how often it has been opened.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from schemas import MediaKitToken
from security import AdminActor, request_ip, require_admin

router = APIRouter(prefix="/api/media-kit", tags=["media-kit"])

BOARD_ROLES = ("president", "vice_president", "secretary", "treasurer", "board_member")


def semester_start(now: datetime) -> datetime:
    """Sept 1 for the fall term, Feb 1 for spring; January still belongs to fall."""
    if now.month >= 9:
        return datetime(now.year, 9, 1)
    if now.month >= 2:
        return datetime(now.year, 2, 1)
    return datetime(now.year - 1, 9, 1)


def live_stats(db: Database, now: datetime) -> Dict[str, Any]:
    start = semester_start(now)
    semester_event_ids = [doc["_id"] for doc in db["event"].find({"event_date": {"$gte": start}}, {"_id": 1})]
    sponsors = db["sponsor"].find({"is_active": True}, {"name": 1, "name_en": 1, "logo": 1}).sort("order", 1)
    board = db["team_member"].find(
        {"is_active": True, "show_in_team": {"$ne": False}, "role": {"$in": list(BOARD_ROLES)}},
        {"name": 1, "role": 1, "title": 1, "title_en": 1},
    ).sort("order", 1)
    return {
        "semester_start": start,
        "total_members": db["member"].count_documents({}),
        "active_members": db["member"].count_documents({"is_active": True}),
        "semester_events": len(semester_event_ids),
        "semester_participants": db["registration"].count_documents(
            {"event_id": {"$in": semester_event_ids}}
        ),
        "total_registrations": db["registration"].count_documents({}),
        "approved_projects": db["project"].count_documents(
            {"status": "approved", "is_deleted": {"$ne": True}}
        ),
        "active_announcements": db["announcement"].count_documents(
            {"is_draft": {"$ne": True}, "is_archived": {"$ne": True}}
        ),
        "sponsors": serialize(list(sponsors)),
        "board_members": serialize(list(board)),
    }


@router.get("/view/{token}")
def view_media_kit(token: str, db: Database = Depends(get_db)):
    record = db["media_kit_token"].find_one({"token": token})
    if not record:
        raise HTTPException(status_code=404, detail="invalid_token")
    if not record.get("is_active"):
        raise HTTPException(status_code=403, detail="token_inactive")
    now = utcnow()
    if record["expires_at"] < now:
        raise HTTPException(status_code=403, detail="token_expired")

    db["media_kit_token"].update_one(
        {"_id": record["_id"]},
        {"$inc": {"view_count": 1}, "$set": {"last_viewed_at": now}},
    )
    return {
        "sponsor_name": record.get("sponsor_name"),
        "default_language": record.get("default_language", "tr"),
        "stats": live_stats(db, now),
    }


@router.get("")
def list_tokens(
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return serialize(list(db["media_kit_token"].find({}).sort("created_at", -1)))


class TokenRequest(BaseModel):
    sponsor_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    note: Optional[str] = Field(None, max_length=1000)
    expires_in_days: int = Field(30, ge=1, le=365)
    default_language: Literal["tr", "en"] = "tr"


class TokenUpdate(BaseModel):
    sponsor_name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    note: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)
    default_language: Optional[Literal["tr", "en"]] = None


@router.post("")
def create_token(
    body: TokenRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    record = MediaKitToken(
        token=secrets.token_hex(24),
        sponsor_name=body.sponsor_name.strip(),
        email=str(body.email) if body.email else None,
        note=body.note,
        expires_at=utcnow() + timedelta(days=body.expires_in_days),
        default_language=body.default_language,
        created_by=actor.audit_name,
    )
    token_id = create_document("media_kit_token", record)
    log_admin_action(
        db, actor, AuditAction.CREATE_MEDIA_KIT_TOKEN, "media_kit_token",
        target_id=token_id, target_name=record.sponsor_name, ip_address=request_ip(request),
    )
    return serialize(db["media_kit_token"].find_one({"token": record.token}))


def _get_token(db: Database, token_id: str) -> Dict[str, Any]:
    record = db["media_kit_token"].find_one({"_id": parse_object_id(token_id, "token")})
    if not record:
        raise HTTPException(status_code=404, detail="Token not found")
    return record


@router.get("/{token_id}")
def get_token(
    token_id: str,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return serialize(_get_token(db, token_id))


@router.put("/{token_id}")
def update_token(
    token_id: str,
    body: TokenUpdate,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    record = _get_token(db, token_id)
    changes = body.model_dump(exclude_unset=True)
    days = changes.pop("expires_in_days", None)
    if days:
        changes["expires_at"] = utcnow() + timedelta(days=days)
    if changes.get("email") is not None:
        changes["email"] = str(changes["email"])
    changes["updated_at"] = utcnow()
    db["media_kit_token"].update_one({"_id": record["_id"]}, {"$set": changes})
    log_admin_action(
        db, actor, AuditAction.UPDATE_MEDIA_KIT_TOKEN, "media_kit_token",
        target_id=token_id, target_name=record.get("sponsor_name"), ip_address=request_ip(request),
    )
    return serialize(db["media_kit_token"].find_one({"_id": record["_id"]}))


@router.delete("/{token_id}")
def delete_token(
    token_id: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    record = _get_token(db, token_id)
    db["media_kit_token"].delete_one({"_id": record["_id"]})
    log_admin_action(
        db, actor, AuditAction.DELETE_MEDIA_KIT_TOKEN, "media_kit_token",
        target_id=token_id, target_name=record.get("sponsor_name"), ip_address=request_ip(request),
    )
    return {"success": True}
