"""Events, registrations and attendance."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from notifications import NotificationType, create_admin_notification
from routers.members import admin_profile, members_by_id
from schemas import Event, Registration
from security import AdminActor, optional_admin, request_ip, require_admin, require_member

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


def _get_event(db: Database, event_id: str) -> Dict[str, Any]:
    event = db["event"].find_one({"_id": parse_object_id(event_id, "event")})
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


class EventRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    title_en: Optional[str] = None
    description: Optional[str] = None
    description_en: Optional[str] = None
    event_date: datetime
    event_end_date: Optional[datetime] = None
    location: Optional[str] = None
    is_open: bool = True
    is_paid: bool = False
    price: Optional[float] = Field(None, ge=0)
    poster_url: Optional[str] = None


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    title_en: Optional[str] = None
    description: Optional[str] = None
    description_en: Optional[str] = None
    event_date: Optional[datetime] = None
    event_end_date: Optional[datetime] = None
    location: Optional[str] = None
    is_open: Optional[bool] = None
    is_paid: Optional[bool] = None
    price: Optional[float] = Field(None, ge=0)
    poster_url: Optional[str] = None


@router.get("/api/events")
def list_events(
    mode: Optional[str] = None,
    actor: Optional[AdminActor] = Depends(optional_admin),
    db: Database = Depends(get_db),
):
    if mode == "admin":
        if actor is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        events = list(db["event"].find({}).sort("event_date", -1))
        counts = {
            row["_id"]: row["count"]
            for row in db["registration"].aggregate(
                [{"$group": {"_id": "$event_id", "count": {"$sum": 1}}}]
            )
        }
        out = serialize(events)
        for item, event in zip(out, events):
            item["registration_count"] = counts.get(event["_id"], 0)
        return out
    return serialize(list(db["event"].find({"is_open": True}).sort("event_date", -1)))


@router.get("/api/events/{event_id}")
def get_event(event_id: str, db: Database = Depends(get_db)):
    return serialize(_get_event(db, event_id))


@router.post("/api/events")
def create_event(
    body: EventRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    event_id = create_document("event", Event(**body.model_dump()))
    log_admin_action(
        db, actor, AuditAction.CREATE_EVENT, "event",
        target_id=event_id, target_name=body.title, ip_address=request_ip(request),
    )
    return serialize(db["event"].find_one({"_id": parse_object_id(event_id, "event")}))


@router.put("/api/events/{event_id}")
def update_event(
    event_id: str,
    body: EventUpdate,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    event = _get_event(db, event_id)
    changes = body.model_dump(exclude_unset=True)
    changes["updated_at"] = utcnow()
    db["event"].update_one({"_id": event["_id"]}, {"$set": changes})
    log_admin_action(
        db, actor, AuditAction.UPDATE_EVENT, "event",
        target_id=event_id, target_name=changes.get("title", event.get("title")),
        ip_address=request_ip(request),
    )
    return serialize(db["event"].find_one({"_id": event["_id"]}))


@router.delete("/api/events/{event_id}")
def delete_event(
    event_id: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    event = _get_event(db, event_id)
    db["event"].delete_one({"_id": event["_id"]})
    removed = db["registration"].delete_many({"event_id": event["_id"]}).deleted_count
    log_admin_action(
        db, actor, AuditAction.DELETE_EVENT, "event",
        target_id=event_id, target_name=event.get("title"),
        details=f"{removed} registrations removed", ip_address=request_ip(request),
    )
    return {"success": True, "registrations_removed": removed}


class EndEventRequest(BaseModel):
    actual_duration: int = Field(..., ge=0, description="Minutes")


@router.post("/api/events/{event_id}/end")
def end_event(
    event_id: str,
    body: EndEventRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    event = _get_event(db, event_id)
    db["event"].update_one(
        {"_id": event["_id"]},
        {
            "$set": {
                "is_ended": True,
                "is_open": False,
                "actual_duration": body.actual_duration,
                "updated_at": utcnow(),
            }
        },
    )
    log_admin_action(
        db, actor, AuditAction.END_EVENT, "event",
        target_id=event_id, target_name=event.get("title"),
        details=f"duration={body.actual_duration}min", ip_address=request_ip(request),
    )
    return {"success": True}


class RegistrationRequest(BaseModel):
    event_id: str
    payment_proof_url: Optional[str] = None


@router.post("/api/registrations")
def register_for_event(
    body: RegistrationRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    event = _get_event(db, body.event_id)
    if not event.get("is_open") or event.get("is_ended"):
        raise HTTPException(status_code=400, detail="Registration for this event is closed")
    if event.get("is_paid") and not body.payment_proof_url:
        raise HTTPException(status_code=400, detail="A payment proof is required for this event")

    key = {"event_id": event["_id"], "member_id": member["_id"]}
    if db["registration"].find_one(key, {"_id": 1}):
        raise HTTPException(status_code=409, detail="You are already registered for this event")

    registration = Registration(payment_proof_url=body.payment_proof_url, **key)
    try:
        registration_id = create_document("registration", registration)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="You are already registered for this event")

    create_admin_notification(
        db,
        NotificationType.REGISTRATION,
        "Yeni kayıt",
        f"{member.get('full_name')} registered for {event.get('title')}",
        link=f"/admin/events/{event['_id']}/registrations",
        related_content_type="event",
        related_content_id=event["_id"],
        actor_id=member["_id"],
    )
    return {"success": True, "id": registration_id}


@router.get("/api/events/{event_id}/registrations")
def list_registrations(
    event_id: str,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    event = _get_event(db, event_id)
    registrations = list(db["registration"].find({"event_id": event["_id"]}).sort("created_at", 1))
    members = members_by_id(db, (reg["member_id"] for reg in registrations))
    out = []
    for reg in registrations:
        item = serialize(reg)
        member = members.get(reg["member_id"])
        item["member"] = admin_profile(member)
        if member:
            item["member"]["department"] = member.get("department")
            item["member"]["phone"] = member.get("phone")
        out.append(item)
    return {"event": serialize(event), "registrations": out}


class RegistrationStatusRequest(BaseModel):
    payment_status: Literal["pending", "verified", "rejected", "refunded"]


@router.patch("/api/registrations/{registration_id}/status")
def update_registration_status(
    registration_id: str,
    body: RegistrationStatusRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = parse_object_id(registration_id, "registration")
    result = db["registration"].update_one(
        {"_id": oid}, {"$set": {"payment_status": body.payment_status, "updated_at": utcnow()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Registration not found")
    log_admin_action(
        db, actor, AuditAction.UPDATE_REGISTRATION, "registration",
        target_id=registration_id, details=f"payment_status={body.payment_status}",
        ip_address=request_ip(request),
    )
    return serialize(db["registration"].find_one({"_id": oid}))


class CheckinRequest(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)


@router.post("/api/events/{event_id}/checkin")
def check_in(
    event_id: str,
    body: CheckinRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    event = _get_event(db, event_id)
    if event.get("is_ended"):
        raise HTTPException(status_code=400, detail="This event has ended")

    now = utcnow()
    attendance = {"attended_at": now, "rating": body.rating, "feedback": body.feedback}
    registration = db["registration"].find_one({"event_id": event["_id"], "member_id": member["_id"]})
    if registration:
        if registration.get("attended_at"):
            raise HTTPException(status_code=400, detail="You have already checked in")
        attendance["updated_at"] = now
        db["registration"].update_one({"_id": registration["_id"]}, {"$set": attendance})
        registration_id = str(registration["_id"])
    else:
        registration_id = create_document(
            "registration",
            Registration(event_id=event["_id"], member_id=member["_id"], **attendance),
        )
    return {"success": True, "id": registration_id}
