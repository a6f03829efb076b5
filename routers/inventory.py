"""Club equipment and who currently holds it."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from schemas import InventoryItem
from security import AdminActor, request_ip, require_admin

router = APIRouter(prefix="/api/admin/inventory", tags=["inventory"])

Status = Literal["available", "assigned", "maintenance", "lost"]
EDITABLE = ("name", "category", "serial_number", "description", "notes", "status")


@router.get("")
def list_items(
    category: Optional[str] = None,
    status: Optional[str] = None,
    q: Optional[str] = None,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if category:
        query["category"] = category
    if status:
        query["status"] = status
    if q and q.strip():
        pattern = re.compile(re.escape(q.strip()), re.IGNORECASE)
        query["$or"] = [
            {"name": pattern},
            {"serial_number": pattern},
            {"assigned_to_name": pattern},
        ]
    return serialize(list(db["inventory_item"].find(query).sort("created_at", -1)))


class ItemRequest(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    serial_number: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None


@router.post("")
def create_item(
    body: ItemRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    item_id = create_document("inventory_item", InventoryItem(**body.model_dump()))
    log_admin_action(
        db, actor, AuditAction.CREATE_INVENTORY, "inventory_item",
        target_id=item_id, target_name=body.name, ip_address=request_ip(request),
    )
    return serialize(db["inventory_item"].find_one({"_id": parse_object_id(item_id, "item")}))


class ItemUpdate(BaseModel):
    id: str
    action: Optional[Literal["assign", "return", "update"]] = None
    member_id: Optional[str] = None
    due_date: Optional[datetime] = None
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    serial_number: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[Status] = None


@router.put("")
def update_item(
    body: ItemUpdate,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    item = db["inventory_item"].find_one({"_id": parse_object_id(body.id, "item")})
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    now = utcnow()
    if body.action == "assign":
        if not body.member_id:
            raise HTTPException(status_code=400, detail="member_id is required to assign an item")
        member = db["member"].find_one({"_id": parse_object_id(body.member_id, "member")})
        if not member:
            raise HTTPException(status_code=404, detail="Member not found")
        changes = {
            "status": "assigned",
            "assigned_to": member["_id"],
            "assigned_to_name": member.get("full_name"),
            "assigned_at": now,
            "due_date": body.due_date,
        }
        action = AuditAction.ASSIGN_INVENTORY
        details = f"assigned to {member.get('full_name')}"
    elif body.action == "return":
        changes = {
            "status": "available",
            "assigned_to": None,
            "assigned_to_name": None,
            "assigned_at": None,
            "due_date": None,
        }
        action = AuditAction.RETURN_INVENTORY
        details = f"returned by {item.get('assigned_to_name')}"
    else:
        fields = body.model_dump(exclude_unset=True)
        changes = {key: fields[key] for key in EDITABLE if key in fields}
        action = AuditAction.UPDATE_INVENTORY
        details = ", ".join(sorted(changes))

    changes["updated_at"] = now
    db["inventory_item"].update_one({"_id": item["_id"]}, {"$set": changes})
    log_admin_action(
        db, actor, action, "inventory_item",
        target_id=item["_id"], target_name=item.get("name"),
        details=details, ip_address=request_ip(request),
    )
    return serialize(db["inventory_item"].find_one({"_id": item["_id"]}))


@router.delete("")
def delete_item(
    request: Request,
    id: str = Query(...),
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    item = db["inventory_item"].find_one_and_delete({"_id": parse_object_id(id, "item")})
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    log_admin_action(
        db, actor, AuditAction.DELETE_INVENTORY, "inventory_item",
        target_id=id, target_name=item.get("name"), ip_address=request_ip(request),
    )
    return {"success": True}
