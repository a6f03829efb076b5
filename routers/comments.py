"""
Comments on projects, announcements and galleries.

Deleting a comment only marks it (``is_deleted``/``deleted_at``); the
maintenance cleanup removes it for good after 30 days, which leaves admins
a window to restore it.
"""
from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from notifications import NotificationType, create_admin_notification, create_notification
from routers.members import admin_profile, public_profile, with_authors
from schemas import Comment
from security import (
    SYSTEM_ACTOR,
    AdminActor,
    admin_actor_for,
    current_member_optional,
    has_admin_password,
    request_ip,
    require_admin,
    require_member,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["comments"])

CONTENT_TYPES = ("project", "gallery", "announcement")
MAX_LENGTH = 500
COOLDOWN = timedelta(seconds=60)
URL_PATTERN = re.compile(r"(https?://\S+)|(www\.\S+)", re.IGNORECASE)


def _check_type(content_type: str) -> None:
    if content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid content type")


def _project_owner(db: Database, content_id: str) -> Optional[ObjectId]:
    try:
        project = db["project"].find_one({"_id": ObjectId(content_id)}, {"member_id": 1})
    except (InvalidId, TypeError):
        return None
    return project.get("member_id") if project else None


def _content_title(db: Database, content_type: str, content_id: str) -> Optional[str]:
    if content_type == "project":
        try:
            doc = db["project"].find_one({"_id": ObjectId(content_id)}, {"title": 1})
        except (InvalidId, TypeError):
            return None
    else:
        doc = db["announcement"].find_one({"slug": content_id}, {"title": 1})
    return doc.get("title") if doc else None


@router.get("/api/comments")
def list_comments(
    type: str = Query(...),
    id: str = Query(..., min_length=1),
    db: Database = Depends(get_db),
):
    _check_type(type)
    comments = list(
        db["comment"]
        .find({"content_type": type, "content_id": id, "is_deleted": {"$ne": True}})
        .sort("created_at", -1)
    )
    return with_authors(db, comments, "member_id")


class CommentRequest(BaseModel):
    content: str
    parent_id: Optional[str] = None


@router.post("/api/comments")
def create_comment(
    body: CommentRequest,
    type: str = Query(...),
    id: str = Query(..., min_length=1),
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    _check_type(type)
    now = utcnow()
    recent = db["comment"].find_one(
        {"member_id": member["_id"], "created_at": {"$gt": now - COOLDOWN}}, {"_id": 1}
    )
    if recent:
        raise HTTPException(status_code=429, detail="Please wait a minute before commenting again")

    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment cannot be empty")
    if len(content) > MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"Comment cannot exceed {MAX_LENGTH} characters")
    if URL_PATTERN.search(content):
        raise HTTPException(status_code=400, detail="Links are not allowed in comments")

    parent = None
    if body.parent_id:
        parent = db["comment"].find_one({"_id": parse_object_id(body.parent_id, "comment")})
        if not parent or parent.get("is_deleted"):
            raise HTTPException(status_code=404, detail="Parent comment not found")
        if parent["content_type"] != type or parent["content_id"] != id:
            raise HTTPException(status_code=400, detail="Parent comment belongs to other content")

    comment = Comment(
        content_type=type,
        content_id=id,
        member_id=member["_id"],
        parent_id=parent["_id"] if parent else None,
        content=content,
    )
    comment_id = create_document("comment", comment)
    author_name = member.get("nickname") or member.get("full_name")
    link = f"/projects/{id}" if type == "project" else f"/announcements/{id}"

    notified = {member["_id"]}
    if parent and parent["member_id"] not in notified:
        create_notification(
            db, parent["member_id"], NotificationType.REPLY,
            "Yorumunuza yanıt", f"{author_name} replied to your comment",
            link=link, related_content_type="comment", related_content_id=comment_id,
            actor_id=member["_id"],
        )
        notified.add(parent["member_id"])
    if type == "project":
        owner = _project_owner(db, id)
        if owner and owner not in notified:
            create_notification(
                db, owner, NotificationType.COMMENT,
                "Projenize yorum", f"{author_name} commented on your project",
                link=link, related_content_type="comment", related_content_id=comment_id,
                actor_id=member["_id"],
            )
    create_admin_notification(
        db, NotificationType.ADMIN_COMMENT,
        "Yeni yorum", f"{author_name}: {content[:80]}",
        link="/admin/comments", related_content_type="comment",
        related_content_id=comment_id, actor_id=member["_id"],
    )

    doc = db["comment"].find_one({"_id": ObjectId(comment_id)})
    item = serialize(doc)
    item["author"] = public_profile(member)
    return item


@router.delete("/api/comments")
def delete_comment(
    request: Request,
    id: str = Query(...),
    db: Database = Depends(get_db),
):
    comment = db["comment"].find_one({"_id": parse_object_id(id, "comment")})
    if not comment or comment.get("is_deleted"):
        raise HTTPException(status_code=404, detail="Comment not found")

    actor: Optional[AdminActor] = None
    if has_admin_password(request):
        actor = SYSTEM_ACTOR
    else:
        member = current_member_optional(request, db)
        if member is None:
            raise HTTPException(status_code=401, detail="Login required")
        if comment["member_id"] != member["_id"]:
            actor = admin_actor_for(db, member)
            if actor is None:
                raise HTTPException(status_code=403, detail="You can only delete your own comments")

    db["comment"].update_one(
        {"_id": comment["_id"]},
        {"$set": {"is_deleted": True, "deleted_at": utcnow(), "updated_at": utcnow()}},
    )
    if actor is not None:
        log_admin_action(
            db, actor, AuditAction.DELETE_COMMENT, "comment",
            target_id=comment["_id"], details=comment.get("content", "")[:100],
            ip_address=request_ip(request),
        )
    return {"success": True}


@router.get("/api/admin/comments")
def admin_list_comments(
    type: Optional[str] = None,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if type:
        _check_type(type)
        query["content_type"] = type
    comments = list(db["comment"].find(query).sort("created_at", -1).limit(100))
    out = with_authors(db, comments, "member_id", view=admin_profile)
    titles: Dict[tuple, Optional[str]] = {}
    for item, comment in zip(out, comments):
        key = (comment["content_type"], comment["content_id"])
        if key not in titles:
            titles[key] = _content_title(db, *key)
        item["content_title"] = titles[key]
    return out


@router.post("/api/admin/comments/{comment_id}/restore")
def restore_comment(
    comment_id: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = parse_object_id(comment_id, "comment")
    result = db["comment"].update_one(
        {"_id": oid},
        {"$set": {"is_deleted": False, "deleted_at": None, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Comment not found")
    log_admin_action(
        db, actor, AuditAction.RESTORE_COMMENT, "comment",
        target_id=comment_id, ip_address=request_ip(request),
    )
    return {"success": True}
