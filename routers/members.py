"""Member directory, bulk import and admin-created test accounts."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, serialize, utcnow
from schemas import Member
from security import (
    AdminActor,
    hash_password,
    request_ip,
    require_admin,
    require_superadmin,
    validate_password_strength,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["members"])

PRIVATE_FIELDS = {"password_hash": 0}


def public_profile(member: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """What other members may see, filtered by the member's visibility settings."""
    if not member:
        return None
    visibility = member.get("profile_visibility") or {}
    profile = {
        "id": str(member["_id"]),
        "nickname": member.get("nickname"),
        "avatar": member.get("avatar"),
    }
    if visibility.get("show_full_name", True):
        profile["full_name"] = member.get("full_name")
    if visibility.get("show_department", True):
        profile["department"] = member.get("department")
    if visibility.get("show_email", False):
        profile["email"] = member.get("email")
    if visibility.get("show_phone", False):
        profile["phone"] = member.get("phone")
    return profile


def admin_profile(member: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not member:
        return None
    return {
        "id": str(member["_id"]),
        "student_no": member.get("student_no"),
        "full_name": member.get("full_name"),
        "email": member.get("email"),
        "nickname": member.get("nickname"),
    }


def members_by_id(db: Database, ids: Iterable[Any]) -> Dict[Any, Dict[str, Any]]:
    wanted = list({member_id for member_id in ids if member_id is not None})
    if not wanted:
        return {}
    return {doc["_id"]: doc for doc in db["member"].find({"_id": {"$in": wanted}}, PRIVATE_FIELDS)}


def with_authors(
    db: Database,
    docs: List[Dict[str, Any]],
    key: str,
    view=public_profile,
) -> List[Dict[str, Any]]:
    """Serialize ``docs`` and attach the member referenced by ``key`` as ``author``."""
    authors = members_by_id(db, (doc.get(key) for doc in docs))
    out = []
    for doc in docs:
        item = serialize(doc)
        item["author"] = view(authors.get(doc.get(key)))
        out.append(item)
    return out


@router.get("/api/members")
def list_members(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    count_only: bool = False,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {"is_active": True}
    if search and search.strip():
        pattern = re.compile(re.escape(search.strip()), re.IGNORECASE)
        query["$or"] = [{"student_no": pattern}, {"full_name": pattern}, {"email": pattern}]

    total = db["member"].count_documents(query)
    if count_only:
        return {"count": total}

    cursor = (
        db["member"].find(query, PRIVATE_FIELDS)
        .sort("full_name", 1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "members": serialize(list(cursor)),
        "total": total,
        "page": page,
        "limit": limit,
    }


class ImportRow(BaseModel):
    student_no: str
    full_name: str = ""
    email: str = ""
    department: Optional[str] = None
    phone: Optional[str] = None


class ImportRequest(BaseModel):
    members: List[ImportRow] = Field(..., min_length=1)


@router.post("/api/members/import")
def import_members(
    body: ImportRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    inserted = updated = skipped = 0
    for row in body.members:
        student_no = row.student_no.strip()
        full_name = row.full_name.strip()
        if not student_no or not full_name:
            skipped += 1
            continue
        fields = {
            "full_name": full_name,
            "email": row.email.strip().lower(),
            "department": row.department,
            "phone": row.phone,
            "is_active": True,
        }
        existing = db["member"].find_one({"student_no": student_no}, {"_id": 1})
        if existing:
            fields["updated_at"] = utcnow()
            db["member"].update_one({"_id": existing["_id"]}, {"$set": fields})
            updated += 1
        else:
            create_document("member", Member(student_no=student_no, **fields))
            inserted += 1

    log_admin_action(
        db, actor, AuditAction.IMPORT_MEMBERS, "member",
        details=f"inserted={inserted} updated={updated} skipped={skipped}",
        ip_address=request_ip(request),
    )
    LOGGER.info("Member import: %d inserted, %d updated, %d skipped", inserted, updated, skipped)
    return {"inserted": inserted, "updated": updated, "skipped": skipped}


class CreateMemberRequest(BaseModel):
    student_no: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    department: Optional[str] = None


@router.post("/api/admin/members")
def create_test_member(
    body: CreateMemberRequest,
    request: Request,
    actor: AdminActor = Depends(require_superadmin),
    db: Database = Depends(get_db),
):
    email = str(body.email).lower()
    student_no = body.student_no.strip()
    if db["member"].find_one({"$or": [{"student_no": student_no}, {"email": email}]}):
        raise HTTPException(status_code=409, detail="A member with this student number or email already exists")

    problems = validate_password_strength(body.password)
    if problems:
        raise HTTPException(status_code=400, detail="; ".join(problems))

    member = Member(
        student_no=student_no,
        full_name=body.full_name.strip(),
        email=email,
        department=body.department,
        password_hash=hash_password(body.password),
        is_registered=True,
        kvkk_accepted=True,
        is_test_account=True,
        nickname=body.full_name.strip(),
    )
    member_id = create_document("member", member)
    log_admin_action(
        db, actor, AuditAction.CREATE_MEMBER, "member",
        target_id=member_id, target_name=student_no, ip_address=request_ip(request),
    )
    return {"success": True, "id": member_id, "student_no": student_no}
