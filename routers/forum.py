"""
Discussion forum: categories, topics, threaded replies and votes.

Topics posted by regular members wait in ``pending`` until an admin
approves them; only approved topics count towards their category.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, get_documents, parse_object_id, serialize, utcnow
from notifications import (
    NotificationType,
    clear_admin_notifications,
    create_admin_notification,
    create_notification,
)
from routers.members import with_authors
from schemas import ForumCategory, ForumReply, ForumTopic
from security import (
    AdminActor,
    admin_actor_for,
    current_member_optional,
    optional_admin,
    request_ip,
    require_admin,
    require_member,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forum", tags=["forum"])

TOPIC_COOLDOWN = timedelta(seconds=60)
REPLY_COOLDOWN = timedelta(seconds=30)
MAX_TITLE = 200
MAX_TOPIC_CONTENT = 10000
MAX_REPLY_CONTENT = 5000

SORTS = {
    "latest": [("is_pinned", DESCENDING), ("created_at", DESCENDING)],
    "popular": [("is_pinned", DESCENDING), ("upvotes", DESCENDING), ("created_at", DESCENDING)],
    "active": [("is_pinned", DESCENDING), ("last_reply_at", DESCENDING), ("created_at", DESCENDING)],
}
VOTE_COUNTERS = {1: "upvotes", -1: "downvotes"}
VOTE_COLLECTIONS = {"topic": "forum_topic", "reply": "forum_reply"}


def _bump_category(db: Database, category_id, amount: int) -> None:
    update: Dict[str, Any] = {"$inc": {"topic_count": amount}}
    if amount > 0:
        update["$set"] = {"last_topic_at": utcnow()}
    db["forum_category"].update_one({"_id": category_id}, update)


def _live_topic(db: Database, topic_id: str) -> Dict[str, Any]:
    topic = db["forum_topic"].find_one(
        {"_id": parse_object_id(topic_id, "topic"), "is_deleted": {"$ne": True}}
    )
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")
    return topic


def _check_cooldown(db: Database, collection: str, author_id, window: timedelta) -> None:
    recent = db[collection].find_one(
        {"author_id": author_id, "created_at": {"$gt": utcnow() - window}}, {"_id": 1}
    )
    if recent:
        seconds = int(window.total_seconds())
        raise HTTPException(status_code=429, detail=f"Please wait {seconds} seconds before posting again")


@router.get("/categories")
def list_categories(db: Database = Depends(get_db)):
    categories = db["forum_category"].find({"is_active": True}).sort([("order", 1), ("name", 1)])
    return serialize(list(categories))


class CategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    order: int = 0


@router.post("/categories")
def create_category(
    body: CategoryRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if db["forum_category"].find_one({"slug": body.slug}, {"_id": 1}):
        raise HTTPException(status_code=409, detail="A category with this slug already exists")
    category_id = create_document("forum_category", ForumCategory(**body.model_dump()))
    log_admin_action(
        db, actor, AuditAction.CREATE_FORUM_CATEGORY, "forum_category",
        target_id=category_id, target_name=body.name, ip_address=request_ip(request),
    )
    return serialize(db["forum_category"].find_one({"slug": body.slug}))


@router.get("/topics")
def list_topics(
    category: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    sort: Literal["latest", "popular", "active"] = "latest",
    pending: bool = False,
    actor: Optional[AdminActor] = Depends(optional_admin),
    db: Database = Depends(get_db),
):
    if pending and actor is None:
        raise HTTPException(status_code=403, detail="Forbidden")

    query: Dict[str, Any] = {
        "is_deleted": {"$ne": True},
        "status": "pending" if pending else "approved",
    }
    categories = {doc["_id"]: doc for doc in get_documents("forum_category")}
    if category:
        matched = [doc["_id"] for doc in categories.values() if doc.get("slug") == category]
        if not matched:
            raise HTTPException(status_code=404, detail="Category not found")
        query["category_id"] = matched[0]
    if tag:
        query["tags"] = tag
    if search and search.strip():
        pattern = re.compile(re.escape(search.strip()), re.IGNORECASE)
        query["$or"] = [{"title": pattern}, {"content": pattern}]

    total = db["forum_topic"].count_documents(query)
    topics = list(
        db["forum_topic"].find(query).sort(SORTS[sort]).skip((page - 1) * limit).limit(limit)
    )
    items = with_authors(db, topics, "author_id")
    for item, topic in zip(items, topics):
        cat = categories.get(topic["category_id"])
        item["category"] = {"name": cat["name"], "slug": cat["slug"]} if cat else None
    return {
        "topics": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


class TopicRequest(BaseModel):
    category_id: str
    title: str
    content: str
    tags: List[str] = Field(default_factory=list, max_length=5)


@router.post("/topics")
def create_topic(
    body: TopicRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    _check_cooldown(db, "forum_topic", member["_id"], TOPIC_COOLDOWN)

    title = body.title.strip()
    content = body.content.strip()
    if not title or not content:
        raise HTTPException(status_code=400, detail="Title and content are required")
    if len(title) > MAX_TITLE:
        raise HTTPException(status_code=400, detail=f"Title cannot exceed {MAX_TITLE} characters")
    if len(content) > MAX_TOPIC_CONTENT:
        raise HTTPException(status_code=400, detail=f"Content cannot exceed {MAX_TOPIC_CONTENT} characters")

    category = db["forum_category"].find_one(
        {"_id": parse_object_id(body.category_id, "category"), "is_active": True}
    )
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    is_admin = admin_actor_for(db, member) is not None
    topic = ForumTopic(
        category_id=category["_id"],
        author_id=member["_id"],
        title=title,
        content=content,
        tags=[tag.strip().lower() for tag in body.tags if tag.strip()],
        status="approved" if is_admin else "pending",
    )
    topic_id = create_document("forum_topic", topic)

    if is_admin:
        _bump_category(db, category["_id"], 1)
    else:
        create_admin_notification(
            db, NotificationType.ADMIN_TOPIC,
            "Onay bekleyen konu", title[:100],
            link="/admin/forum", related_content_type="forum_topic",
            related_content_id=topic_id, actor_id=member["_id"],
        )
    return {"success": True, "id": topic_id, "status": topic.status}


@router.get("/topics/{topic_id}")
def get_topic(
    topic_id: str,
    request: Request,
    db: Database = Depends(get_db),
):
    topic = _live_topic(db, topic_id)
    if topic.get("status") != "approved":
        viewer = current_member_optional(request, db)
        is_author = viewer is not None and viewer["_id"] == topic["author_id"]
        is_admin = viewer is not None and admin_actor_for(db, viewer) is not None
        if not (is_author or is_admin):
            raise HTTPException(status_code=404, detail="Topic not found")

    db["forum_topic"].update_one({"_id": topic["_id"]}, {"$inc": {"view_count": 1}})
    topic["view_count"] = topic.get("view_count", 0) + 1

    replies = list(
        db["forum_reply"]
        .find({"topic_id": topic["_id"], "is_deleted": {"$ne": True}})
        .sort("created_at", 1)
    )
    return {
        "topic": with_authors(db, [topic], "author_id")[0],
        "replies": with_authors(db, replies, "author_id"),
    }


class ReplyRequest(BaseModel):
    content: str
    parent_id: Optional[str] = None


@router.post("/topics/{topic_id}/replies")
def create_reply(
    topic_id: str,
    body: ReplyRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    topic = _live_topic(db, topic_id)
    if topic.get("status") != "approved":
        raise HTTPException(status_code=404, detail="Topic not found")
    if topic.get("is_locked"):
        raise HTTPException(status_code=403, detail="This topic is locked")

    _check_cooldown(db, "forum_reply", member["_id"], REPLY_COOLDOWN)

    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Reply cannot be empty")
    if len(content) > MAX_REPLY_CONTENT:
        raise HTTPException(status_code=400, detail=f"Reply cannot exceed {MAX_REPLY_CONTENT} characters")

    parent_id = None
    if body.parent_id:
        parent = db["forum_reply"].find_one(
            {
                "_id": parse_object_id(body.parent_id, "reply"),
                "topic_id": topic["_id"],
                "is_deleted": {"$ne": True},
            }
        )
        if not parent:
            raise HTTPException(status_code=404, detail="Parent reply not found")
        parent_id = parent["_id"]

    reply_id = create_document(
        "forum_reply",
        ForumReply(topic_id=topic["_id"], author_id=member["_id"], parent_id=parent_id, content=content),
    )
    db["forum_topic"].update_one(
        {"_id": topic["_id"]},
        {"$inc": {"reply_count": 1}, "$set": {"last_reply_at": utcnow()}},
    )
    if topic["author_id"] != member["_id"]:
        create_notification(
            db, topic["author_id"], NotificationType.REPLY,
            "Konunuza yanıt", f"{member.get('nickname') or member.get('full_name')} replied to {topic['title']}",
            link=f"/forum/topics/{topic['_id']}", related_content_type="forum_reply",
            related_content_id=reply_id, actor_id=member["_id"],
        )
    return {"success": True, "id": reply_id}


class VoteRequest(BaseModel):
    content_type: Literal["topic", "reply"]
    content_id: str
    value: Literal[1, -1]


@router.post("/vote")
def vote(
    body: VoteRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    """Add, remove (same value again) or flip a member's vote."""
    collection = db[VOTE_COLLECTIONS[body.content_type]]
    target = collection.find_one(
        {"_id": parse_object_id(body.content_id, body.content_type), "is_deleted": {"$ne": True}}
    )
    if not target:
        raise HTTPException(status_code=404, detail="Content not found")
    if target["author_id"] == member["_id"]:
        raise HTTPException(status_code=400, detail="You cannot vote on your own content")

    key = {"member_id": member["_id"], "content_type": body.content_type, "content_id": target["_id"]}
    existing = db["forum_vote"].find_one(key)
    new_counter = VOTE_COUNTERS[body.value]

    if existing is None:
        db["forum_vote"].insert_one({**key, "value": body.value, "created_at": utcnow(), "updated_at": utcnow()})
        collection.update_one({"_id": target["_id"]}, {"$inc": {new_counter: 1}})
        action, user_vote = "added", body.value
    elif existing["value"] == body.value:
        db["forum_vote"].delete_one({"_id": existing["_id"]})
        collection.update_one({"_id": target["_id"]}, {"$inc": {new_counter: -1}})
        action, user_vote = "removed", None
    else:
        old_counter = VOTE_COUNTERS[existing["value"]]
        db["forum_vote"].update_one(
            {"_id": existing["_id"]}, {"$set": {"value": body.value, "updated_at": utcnow()}}
        )
        collection.update_one({"_id": target["_id"]}, {"$inc": {new_counter: 1, old_counter: -1}})
        action, user_vote = "changed", body.value

    counts = collection.find_one({"_id": target["_id"]}, {"upvotes": 1, "downvotes": 1})
    return {
        "action": action,
        "user_vote": user_vote,
        "upvotes": counts.get("upvotes", 0),
        "downvotes": counts.get("downvotes", 0),
    }


class ModerationRequest(BaseModel):
    status: Optional[Literal["pending", "approved", "rejected"]] = None
    is_pinned: Optional[bool] = None
    is_locked: Optional[bool] = None


@router.patch("/topics/{topic_id}")
def moderate_topic(
    topic_id: str,
    body: ModerationRequest,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    topic = _live_topic(db, topic_id)
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    changes["updated_at"] = utcnow()
    db["forum_topic"].update_one({"_id": topic["_id"]}, {"$set": changes})

    was_approved = topic.get("status") == "approved"
    if body.status == "approved" and not was_approved:
        _bump_category(db, topic["category_id"], 1)
        clear_admin_notifications(db, "forum_topic", str(topic["_id"]))
    elif body.status and body.status != "approved" and was_approved:
        _bump_category(db, topic["category_id"], -1)

    log_admin_action(
        db, actor, AuditAction.MODERATE_TOPIC, "forum_topic",
        target_id=topic["_id"], target_name=topic.get("title"),
        details=", ".join(f"{key}={value}" for key, value in body.model_dump(exclude_none=True).items()),
        ip_address=request_ip(request),
    )
    return serialize(db["forum_topic"].find_one({"_id": topic["_id"]}))


@router.delete("/topics/{topic_id}")
def delete_topic(
    topic_id: str,
    request: Request,
    actor: Optional[AdminActor] = Depends(optional_admin),
    db: Database = Depends(get_db),
):
    topic = _live_topic(db, topic_id)
    member = current_member_optional(request, db)
    is_author = member is not None and member["_id"] == topic["author_id"]
    if not is_author and actor is None:
        if member is None:
            raise HTTPException(status_code=401, detail="Login required")
        raise HTTPException(status_code=403, detail="Forbidden")

    db["forum_topic"].update_one(
        {"_id": topic["_id"]}, {"$set": {"is_deleted": True, "updated_at": utcnow()}}
    )
    if topic.get("status") == "approved":
        _bump_category(db, topic["category_id"], -1)
    if actor is not None and not is_author:
        log_admin_action(
            db, actor, AuditAction.MODERATE_TOPIC, "forum_topic",
            target_id=topic["_id"], target_name=topic.get("title"),
            details="deleted", ip_address=request_ip(request),
        )
    return {"success": True}
