from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from schemas import TeamMember, TeamRole
from security import SUPERADMIN_ROLES, AdminActor, request_ip, require_admin

router = APIRouter(prefix="/api/team", tags=["team"])


class TeamMemberRequest(BaseModel):
    member_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    role: TeamRole = "member"
    title: Optional[str] = Field(None, max_length=100)
    title_en: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    description_en: Optional[str] = Field(None, max_length=1000)
    email: Optional[str] = None
    photo: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    is_active: bool = True
    show_in_team: bool = True
    order: int = 0


class TeamMemberUpdate(BaseModel):
    member_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[TeamRole] = None
    title: Optional[str] = Field(None, max_length=100)
    title_en: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    description_en: Optional[str] = Field(None, max_length=1000)
    email: Optional[str] = None
    photo: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    is_active: Optional[bool] = None
    show_in_team: Optional[bool] = None
    order: Optional[int] = None


def _require_seat_rights(actor: AdminActor, role: Optional[str]) -> None:
    """President and VP seats carry superadmin rights; only a superadmin may hand them out."""
    if role in SUPERADMIN_ROLES and not (actor.is_system or actor.is_superadmin):
        raise HTTPException(status_code=403, detail="Only a superadmin can assign this role")


def _linked_member_id(db: Database, member_id: Optional[str]):
    if member_id is None:
        return None
    oid = parse_object_id(member_id, "member")
    if db["member"].find_one({"_id": oid}, {"_id": 1}) is None:
        raise HTTPException(status_code=404, detail="Member not found")
    return oid


@router.get("")
def list_team(
    show_in_team: bool = False,
    role: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {"is_active": True}
    if show_in_team:
        query["show_in_team"] = True
    if role:
        query["role"] = role
    return serialize(list(db["team_member"].find(query).sort([("order", 1), ("created_at", 1)])))


@router.get("/{team_member_id}")
def get_team_member(team_member_id: str, db: Database = Depends(get_db)):
    seat = db["team_member"].find_one({"_id": parse_object_id(team_member_id, "team member")})
    if not seat:
        raise HTTPException(status_code=404, detail="Team member not found")
    return serialize(seat)


@router.post("")
def create_team_member(
    body: TeamMemberRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    _require_seat_rights(actor, body.role)
    data = body.model_dump()
    data["member_id"] = _linked_member_id(db, body.member_id)
    seat_id = create_document("team_member", TeamMember(**data))
    log_admin_action(
        db, actor, AuditAction.CREATE_TEAM_MEMBER, "team_member",
        target_id=seat_id, target_name=body.name, ip_address=request_ip(request),
    )
    return serialize(db["team_member"].find_one({"_id": parse_object_id(seat_id, "team member")}))


@router.put("/{team_member_id}")
def update_team_member(
    team_member_id: str,
    body: TeamMemberUpdate,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = parse_object_id(team_member_id, "team member")
    current = db["team_member"].find_one({"_id": oid})
    if not current:
        raise HTTPException(status_code=404, detail="Team member not found")
    _require_seat_rights(actor, current.get("role"))
    _require_seat_rights(actor, body.role)

    changes = body.model_dump(exclude_unset=True)
    if "member_id" in changes:
        changes["member_id"] = _linked_member_id(db, body.member_id)
    changes["updated_at"] = utcnow()
    db["team_member"].update_one({"_id": oid}, {"$set": changes})
    seat = db["team_member"].find_one({"_id": oid})
    log_admin_action(
        db, actor, AuditAction.UPDATE_TEAM_MEMBER, "team_member",
        target_id=team_member_id, target_name=seat.get("name"), ip_address=request_ip(request),
    )
    return serialize(seat)


@router.delete("/{team_member_id}")
def delete_team_member(
    team_member_id: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = parse_object_id(team_member_id, "team member")
    current = db["team_member"].find_one({"_id": oid})
    if not current:
        raise HTTPException(status_code=404, detail="Team member not found")
    _require_seat_rights(actor, current.get("role"))
    db["team_member"].delete_one({"_id": oid})
    log_admin_action(
        db, actor, AuditAction.DELETE_TEAM_MEMBER, "team_member",
        target_id=team_member_id, target_name=current.get("name"), ip_address=request_ip(request),
    )
    return {"success": True}
