"""Housekeeping: retention cleanup and the audit log viewer."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import get_db, serialize, utcnow
from security import AdminActor, request_ip, require_admin

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["maintenance"])

READ_NOTIFICATION_RETENTION = timedelta(days=7)
DELETED_COMMENT_RETENTION = timedelta(days=30)
AUDIT_LOG_RETENTION = timedelta(days=30)


def cleanup_filters(now) -> Dict[str, Dict[str, Any]]:
    return {
        "notifications": {
            "is_read": True,
            "created_at": {"$lt": now - READ_NOTIFICATION_RETENTION},
        },
        "comments": {
            "is_deleted": True,
            "deleted_at": {"$lt": now - DELETED_COMMENT_RETENTION},
        },
        "audit_logs": {"created_at": {"$lt": now - AUDIT_LOG_RETENTION}},
    }


CLEANUP_COLLECTIONS = {
    "notifications": "notification",
    "comments": "comment",
    "audit_logs": "audit_log",
}


@router.get("/cleanup")
def cleanup_preview(
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    filters = cleanup_filters(utcnow())
    return {
        "eligible": {
            name: db[CLEANUP_COLLECTIONS[name]].count_documents(query)
            for name, query in filters.items()
        },
        "totals": {
            name: db[collection].estimated_document_count()
            for name, collection in CLEANUP_COLLECTIONS.items()
        },
    }


def run_cleanup(db: Database, now) -> Dict[str, int]:
    deleted = {}
    for name, query in cleanup_filters(now).items():
        deleted[name] = db[CLEANUP_COLLECTIONS[name]].delete_many(query).deleted_count
    return deleted


@router.post("/cleanup")
def cleanup(
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    deleted = run_cleanup(db, utcnow())
    LOGGER.info("Cleanup removed %s", deleted)
    log_admin_action(
        db, actor, AuditAction.SYSTEM_CLEANUP, "system",
        details=", ".join(f"{name}={count}" for name, count in deleted.items()),
        ip_address=request_ip(request),
    )
    return {"success": True, "deleted": deleted}


@router.get("/audit-log")
def audit_log(
    limit: int = Query(100, ge=1, le=500),
    action: Optional[str] = None,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query = {"action": action} if action else {}
    entries = db["audit_log"].find(query).sort("created_at", -1).limit(limit)
    return serialize(list(entries))
