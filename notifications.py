"""In-app notifications for members and admins."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import utcnow
from security import SUPERADMIN_ROLES

LOGGER = logging.getLogger(__name__)


class NotificationType:
    COMMENT = "comment"
    REPLY = "reply"
    PROJECT_APPROVED = "project_approved"
    PROJECT_REJECTED = "project_rejected"
    REGISTRATION = "registration"
    ADMIN_COMMENT = "admin_comment"
    ADMIN_PROJECT = "admin_project"
    ADMIN_TOPIC = "admin_topic"


def _build(
    recipient_id: ObjectId,
    type: str,
    title: str,
    message: str,
    link: Optional[str],
    is_admin_notification: bool,
    related_content_type: Optional[str],
    related_content_id: Any,
    actor_id: Any,
) -> Dict[str, Any]:
    now = utcnow()
    return {
        "recipient_id": recipient_id,
        "type": type,
        "title": title,
        "message": message,
        "link": link,
        "is_admin_notification": is_admin_notification,
        "is_read": False,
        "related_content_type": related_content_type,
        "related_content_id": related_content_id,
        "actor_id": actor_id,
        "created_at": now,
        "updated_at": now,
    }


def create_notification(
    db: Database,
    recipient_id: ObjectId,
    type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    related_content_type: Optional[str] = None,
    related_content_id: Any = None,
    actor_id: Any = None,
) -> None:
    doc = _build(
        recipient_id, type, title, message, link, False,
        related_content_type, related_content_id, actor_id,
    )
    try:
        db["notification"].insert_one(doc)
    except PyMongoError:
        LOGGER.exception("Failed to notify member %s", recipient_id)


def admin_member_ids(db: Database) -> List[ObjectId]:
    """Members holding an access rule or an active president/VP seat."""
    ids: Set[ObjectId] = set()
    for access in db["admin_access"].find({}, {"member_id": 1}):
        if access.get("member_id"):
            ids.add(access["member_id"])
    seats = db["team_member"].find(
        {"role": {"$in": list(SUPERADMIN_ROLES)}, "is_active": True}, {"member_id": 1}
    )
    for seat in seats:
        if seat.get("member_id"):
            ids.add(seat["member_id"])
    return sorted(ids)


def create_admin_notification(
    db: Database,
    type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    related_content_type: Optional[str] = None,
    related_content_id: Any = None,
    actor_id: Any = None,
) -> int:
    """Notify every admin; returns how many notifications were written."""
    docs = [
        _build(
            recipient, type, title, message, link, True,
            related_content_type, related_content_id, actor_id,
        )
        for recipient in admin_member_ids(db)
    ]
    if not docs:
        return 0
    try:
        db["notification"].insert_many(docs)
    except PyMongoError:
        LOGGER.exception("Failed to write admin notifications for %s", type)
        return 0
    return len(docs)


def clear_admin_notifications(db: Database, content_type: str, content_id: Any) -> None:
    """Drop the admin notifications about content that has been reviewed."""
    try:
        db["notification"].delete_many(
            {
                "is_admin_notification": True,
                "related_content_type": content_type,
                "related_content_id": content_id,
            }
        )
    except PyMongoError:
        LOGGER.exception("Failed to clear admin notifications for %s %s", content_type, content_id)


__all__ = [
    "NotificationType",
    "admin_member_ids",
    "clear_admin_notifications",
    "create_admin_notification",
    "create_notification",
]
