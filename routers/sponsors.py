from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from schemas import Sponsor
from security import AdminActor, request_ip, require_admin

router = APIRouter(prefix="/api/sponsors", tags=["sponsors"])


class SponsorRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    name_en: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=500)
    description_en: Optional[str] = None
    logo: str = Field(..., min_length=1)
    order: int = 0
    is_active: bool = True


class SponsorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    name_en: Optional[str] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    description_en: Optional[str] = None
    logo: Optional[str] = Field(None, min_length=1)
    order: Optional[int] = None
    is_active: Optional[bool] = None


@router.get("")
def list_sponsors(active: bool = False, db: Database = Depends(get_db)):
    query = {"is_active": True} if active else {}
    return serialize(list(db["sponsor"].find(query).sort([("order", 1), ("created_at", 1)])))


@router.get("/{sponsor_id}")
def get_sponsor(sponsor_id: str, db: Database = Depends(get_db)):
    sponsor = db["sponsor"].find_one({"_id": parse_object_id(sponsor_id, "sponsor")})
    if not sponsor:
        raise HTTPException(status_code=404, detail="Sponsor not found")
    return serialize(sponsor)


@router.post("")
def create_sponsor(
    body: SponsorRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    sponsor_id = create_document("sponsor", Sponsor(**body.model_dump()))
    log_admin_action(
        db, actor, AuditAction.CREATE_SPONSOR, "sponsor",
        target_id=sponsor_id, target_name=body.name, ip_address=request_ip(request),
    )
    return serialize(db["sponsor"].find_one({"_id": parse_object_id(sponsor_id, "sponsor")}))


@router.put("/{sponsor_id}")
def update_sponsor(
    sponsor_id: str,
    body: SponsorUpdate,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = parse_object_id(sponsor_id, "sponsor")
    changes = body.model_dump(exclude_unset=True)
    changes["updated_at"] = utcnow()
    result = db["sponsor"].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Sponsor not found")
    sponsor = db["sponsor"].find_one({"_id": oid})
    log_admin_action(
        db, actor, AuditAction.UPDATE_SPONSOR, "sponsor",
        target_id=sponsor_id, target_name=sponsor.get("name"), ip_address=request_ip(request),
    )
    return serialize(sponsor)


@router.delete("/{sponsor_id}")
def delete_sponsor(
    sponsor_id: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    sponsor = db["sponsor"].find_one_and_delete({"_id": parse_object_id(sponsor_id, "sponsor")})
    if not sponsor:
        raise HTTPException(status_code=404, detail="Sponsor not found")
    log_admin_action(
        db, actor, AuditAction.DELETE_SPONSOR, "sponsor",
        target_id=sponsor_id, target_name=sponsor.get("name"), ip_address=request_ip(request),
    )
    return {"success": True}
