from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, serialize, utcnow
from schemas import Announcement
from security import AdminActor, request_ip, require_admin
from translate import translate_date

router = APIRouter(prefix="/api/announcements", tags=["announcements"])

MONTHS = {
    "ocak": 1, "şubat": 2, "subat": 2, "mart": 3, "nisan": 4, "mayıs": 5, "mayis": 5,
    "haziran": 6, "temmuz": 7, "ağustos": 8, "agustos": 8, "eylül": 9, "eylul": 9,
    "ekim": 10, "kasım": 11, "kasim": 11, "aralık": 12, "aralik": 12,
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}
DISPLAY_DATE = re.compile(r"^\s*(\d{1,2})\s+(\S+)\s+(\d{4})")


def parse_display_date(value: Optional[str]) -> Optional[datetime]:
    """Parse ``"1 Nisan 2024"``, ``"1 April 2024"`` or an ISO date."""
    if not value:
        return None
    match = DISPLAY_DATE.match(value)
    if match:
        day, month_name, year = match.groups()
        month = MONTHS.get(month_name.replace("İ", "i").lower())
        if month:
            try:
                return datetime(int(year), month, int(day))
            except ValueError:
                return None
    try:
        return datetime.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def sort_announcements(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest display date first, ties by creation time, unparseable dates last."""
    docs = sorted(docs, key=lambda doc: doc.get("created_at") or datetime.min, reverse=True)

    def by_date(doc):
        parsed = parse_display_date(doc.get("date"))
        return (parsed is None, -parsed.toordinal() if parsed else 0)

    return sorted(docs, key=by_date)


@router.get("")
def list_announcements(
    active: bool = False,
    type: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if active:
        query["is_draft"] = {"$ne": True}
        query["is_archived"] = {"$ne": True}
    if type:
        query["type"] = type
    return serialize(sort_announcements(list(db["announcement"].find(query))))


@router.get("/{slug}")
def get_announcement(slug: str, db: Database = Depends(get_db)):
    doc = db["announcement"].find_one({"slug": slug})
    if not doc:
        raise HTTPException(status_code=404, detail="Announcement not found")
    return serialize(doc)


class AnnouncementRequest(BaseModel):
    slug: str = Field(..., pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$", max_length=120)
    title: str = Field(..., min_length=1, max_length=200)
    title_en: Optional[str] = None
    date: str = Field(..., min_length=1)
    date_en: Optional[str] = None
    description: str = Field(..., min_length=1)
    description_en: Optional[str] = None
    content: str = Field(..., min_length=1)
    content_en: Optional[str] = None
    type: Literal["event", "news", "article"]
    is_draft: bool = False
    is_archived: bool = False
    gallery_description: Optional[str] = None
    gallery_description_en: Optional[str] = None


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    title_en: Optional[str] = None
    date: Optional[str] = None
    date_en: Optional[str] = None
    description: Optional[str] = None
    description_en: Optional[str] = None
    content: Optional[str] = None
    content_en: Optional[str] = None
    type: Optional[Literal["event", "news", "article"]] = None
    is_draft: Optional[bool] = None
    is_archived: Optional[bool] = None
    gallery_description: Optional[str] = None
    gallery_description_en: Optional[str] = None


@router.post("")
def create_announcement(
    body: AnnouncementRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if db["announcement"].find_one({"slug": body.slug}, {"_id": 1}):
        raise HTTPException(status_code=409, detail="An announcement with this slug already exists")

    data = body.model_dump()
    if not data["date_en"]:
        data["date_en"] = translate_date(body.date)
    create_document("announcement", Announcement(**data))
    log_admin_action(
        db, actor, AuditAction.CREATE_ANNOUNCEMENT, "announcement",
        target_id=body.slug, target_name=body.title, ip_address=request_ip(request),
    )
    return serialize(db["announcement"].find_one({"slug": body.slug}))


@router.put("/{slug}")
def update_announcement(
    slug: str,
    body: AnnouncementUpdate,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    if changes.get("date") and not changes.get("date_en"):
        changes["date_en"] = translate_date(changes["date"])
    changes["updated_at"] = utcnow()

    result = db["announcement"].update_one({"slug": slug}, {"$set": changes})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Announcement not found")
    doc = db["announcement"].find_one({"slug": slug})
    log_admin_action(
        db, actor, AuditAction.UPDATE_ANNOUNCEMENT, "announcement",
        target_id=slug, target_name=doc.get("title"), ip_address=request_ip(request),
    )
    return serialize(doc)


@router.delete("/{slug}")
def delete_announcement(
    slug: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    doc = db["announcement"].find_one_and_delete({"slug": slug})
    if not doc:
        raise HTTPException(status_code=404, detail="Announcement not found")
    log_admin_action(
        db, actor, AuditAction.DELETE_ANNOUNCEMENT, "announcement",
        target_id=slug, target_name=doc.get("title"), ip_address=request_ip(request),
    )
    return {"success": True}
