"""Audit trail of admin actions."""

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import utcnow
from security import AdminActor

LOGGER = logging.getLogger(__name__)


class AuditAction:
    CREATE_EVENT = "CREATE_EVENT"
    UPDATE_EVENT = "UPDATE_EVENT"
    DELETE_EVENT = "DELETE_EVENT"
    END_EVENT = "END_EVENT"

    CREATE_ANNOUNCEMENT = "CREATE_ANNOUNCEMENT"
    UPDATE_ANNOUNCEMENT = "UPDATE_ANNOUNCEMENT"
    DELETE_ANNOUNCEMENT = "DELETE_ANNOUNCEMENT"

    CREATE_MEMBER = "CREATE_MEMBER"
    IMPORT_MEMBERS = "IMPORT_MEMBERS"
    UPDATE_REGISTRATION = "UPDATE_REGISTRATION"

    APPROVE_PROJECT = "APPROVE_PROJECT"
    REJECT_PROJECT = "REJECT_PROJECT"

    CREATE_SPONSOR = "CREATE_SPONSOR"
    UPDATE_SPONSOR = "UPDATE_SPONSOR"
    DELETE_SPONSOR = "DELETE_SPONSOR"

    CREATE_TEAM_MEMBER = "CREATE_TEAM_MEMBER"
    UPDATE_TEAM_MEMBER = "UPDATE_TEAM_MEMBER"
    DELETE_TEAM_MEMBER = "DELETE_TEAM_MEMBER"

    CREATE_INVENTORY = "CREATE_INVENTORY"
    UPDATE_INVENTORY = "UPDATE_INVENTORY"
    ASSIGN_INVENTORY = "ASSIGN_INVENTORY"
    RETURN_INVENTORY = "RETURN_INVENTORY"
    DELETE_INVENTORY = "DELETE_INVENTORY"

    GRANT_ACCESS = "GRANT_ACCESS"
    REVOKE_ACCESS = "REVOKE_ACCESS"

    CREATE_MEDIA_KIT_TOKEN = "CREATE_MEDIA_KIT_TOKEN"
    UPDATE_MEDIA_KIT_TOKEN = "UPDATE_MEDIA_KIT_TOKEN"
    DELETE_MEDIA_KIT_TOKEN = "DELETE_MEDIA_KIT_TOKEN"

    DELETE_COMMENT = "DELETE_COMMENT"
    RESTORE_COMMENT = "RESTORE_COMMENT"
    MODERATE_TOPIC = "MODERATE_TOPIC"
    CREATE_FORUM_CATEGORY = "CREATE_FORUM_CATEGORY"

    BATCH_TRANSLATE = "BATCH_TRANSLATE"
    SYSTEM_CLEANUP = "SYSTEM_CLEANUP"


def _as_object_id(value: Optional[str]) -> Optional[ObjectId]:
    if not value:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def log_admin_action(
    db: Database,
    actor: AdminActor,
    action: str,
    target_type: str,
    target_id: Any = None,
    target_name: Optional[str] = None,
    details: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> None:
    """Record one admin action; failures are logged and swallowed."""
    now = utcnow()
    doc = {
        "admin_id": _as_object_id(actor.id),
        "admin_name": actor.audit_name,
        "action": action,
        "target_type": target_type,
        "target_id": str(target_id) if target_id is not None else None,
        "target_name": target_name,
        "details": details,
        "ip_address": ip_address,
        "created_at": now,
        "updated_at": now,
    }
    try:
        db["audit_log"].insert_one(doc)
    except PyMongoError:
        LOGGER.exception("Failed to log admin action %s on %s", action, target_type)


__all__ = ["AuditAction", "log_admin_action"]
