from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from database import get_db, parse_object_id, serialize, utcnow
from security import require_member

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

PAGE_SIZE = 50


@router.get("")
def list_notifications(
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    mine = {"recipient_id": member["_id"]}
    items = db["notification"].find(mine).sort("created_at", -1).limit(PAGE_SIZE)
    return {
        "notifications": serialize(list(items)),
        "unread": db["notification"].count_documents({**mine, "is_read": False}),
    }


@router.post("/read-all")
def mark_all_read(
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    result = db["notification"].update_many(
        {"recipient_id": member["_id"], "is_read": False},
        {"$set": {"is_read": True, "updated_at": utcnow()}},
    )
    return {"success": True, "updated": result.modified_count}


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    result = db["notification"].update_one(
        {"_id": parse_object_id(notification_id, "notification"), "recipient_id": member["_id"]},
        {"$set": {"is_read": True, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}
