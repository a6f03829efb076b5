from __future__ import annotations

from typing import List

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import get_db, parse_object_id, serialize, utcnow
from routers.members import admin_profile, members_by_id
from security import AdminActor, request_ip, require_superadmin

router = APIRouter(prefix="/api/admin/access", tags=["access"])


@router.get("")
def list_rules(
    actor: AdminActor = Depends(require_superadmin),
    db: Database = Depends(get_db),
):
    rules = list(db["admin_access"].find({}).sort("created_at", -1))
    members = members_by_id(db, (rule.get("member_id") for rule in rules))
    out = []
    for rule in rules:
        item = serialize(rule)
        item["member"] = admin_profile(members.get(rule.get("member_id")))
        out.append(item)
    return out


class AccessRequest(BaseModel):
    member_id: str
    allowed_keys: List[str]


@router.post("")
def grant_access(
    body: AccessRequest,
    request: Request,
    actor: AdminActor = Depends(require_superadmin),
    db: Database = Depends(get_db),
):
    member = db["member"].find_one({"_id": parse_object_id(body.member_id, "member")})
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")

    now = utcnow()
    keys = sorted({key.strip() for key in body.allowed_keys if key.strip()})
    db["admin_access"].update_one(
        {"member_id": member["_id"]},
        {
            "$set": {"allowed_keys": keys, "granted_by": ObjectId(actor.id), "updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    log_admin_action(
        db, actor, AuditAction.GRANT_ACCESS, "admin_access",
        target_id=member["_id"], target_name=member.get("full_name"),
        details=",".join(keys), ip_address=request_ip(request),
    )
    return serialize(db["admin_access"].find_one({"member_id": member["_id"]}))


@router.delete("")
def revoke_access(
    request: Request,
    id: str = Query(...),
    actor: AdminActor = Depends(require_superadmin),
    db: Database = Depends(get_db),
):
    rule = db["admin_access"].find_one_and_delete({"_id": parse_object_id(id, "access")})
    if not rule:
        raise HTTPException(status_code=404, detail="Access rule not found")
    log_admin_action(
        db, actor, AuditAction.REVOKE_ACCESS, "admin_access",
        target_id=rule.get("member_id"), ip_address=request_ip(request),
    )
    return {"success": True}
