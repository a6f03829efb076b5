"""Admin dashboard metrics built from ``$match``/``$group`` aggregations."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import get_db, utcnow
from security import AdminActor, require_admin

router = APIRouter(prefix="/api/admin/analytics", tags=["analytics"])

TREND_MONTHS = 12


def _group_counts(db: Database, collection: str, field: str, match: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    pipeline: List[Dict[str, Any]] = []
    if match:
        pipeline.append({"$match": match})
    pipeline.append({"$group": {"_id": f"${field}", "count": {"$sum": 1}}})
    return {str(row["_id"]): row["count"] for row in db[collection].aggregate(pipeline)}


def _single_group(db: Database, collection: str, match: Dict[str, Any], accumulators: Dict[str, Any]) -> Dict[str, Any]:
    pipeline = [{"$match": match}, {"$group": {"_id": None, **accumulators}}]
    rows = list(db[collection].aggregate(pipeline))
    return rows[0] if rows else {}


def month_starts(now: datetime, months: int = TREND_MONTHS) -> List[datetime]:
    """First day of each of the last ``months`` months, oldest first, ending with the current one."""
    year, month = now.year, now.month
    starts = []
    for _ in range(months):
        starts.append(datetime(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def _next_month(start: datetime) -> datetime:
    if start.month == 12:
        return datetime(start.year + 1, 1, 1)
    return datetime(start.year, start.month + 1, 1)


def member_metrics(db: Database, now: datetime) -> Dict[str, int]:
    members = db["member"]
    return {
        "total": members.count_documents({}),
        "active": members.count_documents({"is_active": True}),
        "registered": members.count_documents({"is_registered": True}),
        "email_consent": members.count_documents({"email_consent": True}),
        "active_last_7_days": members.count_documents({"last_login": {"$gte": now - timedelta(days=7)}}),
        "active_last_30_days": members.count_documents({"last_login": {"$gte": now - timedelta(days=30)}}),
        "new_this_month": members.count_documents({"created_at": {"$gte": datetime(now.year, now.month, 1)}}),
    }


def event_metrics(db: Database) -> Dict[str, Any]:
    ratings = _single_group(
        db, "registration",
        {"rating": {"$gte": 1}},
        {"average": {"$avg": "$rating"}, "count": {"$sum": 1}},
    )
    durations = _single_group(
        db, "event",
        {"is_ended": True},
        {"minutes": {"$sum": "$actual_duration"}},
    )
    minutes = int(durations.get("minutes") or 0)
    average = ratings.get("average")
    return {
        "total": db["event"].count_documents({}),
        "completed": db["event"].count_documents({"is_ended": True}),
        "open": db["event"].count_documents({"is_open": True, "is_ended": {"$ne": True}}),
        "total_registrations": db["registration"].count_documents({}),
        "total_attendance": db["registration"].count_documents({"attended_at": {"$ne": None}}),
        "average_rating": round(average, 1) if average is not None else None,
        "rating_count": ratings.get("count", 0),
        "total_duration_minutes": minutes,
        "total_duration_hours": round(minutes / 60, 1),
    }


def content_metrics(db: Database) -> Dict[str, Any]:
    return {
        "announcements_by_type": _group_counts(db, "announcement", "type"),
        "projects_by_status": _group_counts(db, "project", "status", {"is_deleted": {"$ne": True}}),
        "forum_topics": db["forum_topic"].count_documents({"is_deleted": {"$ne": True}}),
        "forum_replies": db["forum_reply"].count_documents({"is_deleted": {"$ne": True}}),
        "comments": db["comment"].count_documents({"is_deleted": {"$ne": True}}),
    }


def monthly_trends(db: Database, now: datetime) -> List[Dict[str, Any]]:
    trends = []
    for start in month_starts(now):
        window = {"$gte": start, "$lt": _next_month(start)}
        trends.append(
            {
                "month": start.strftime("%b %Y"),
                "new_members": db["member"].count_documents({"created_at": window}),
                "attendance": db["registration"].count_documents({"attended_at": window}),
                "active_users": db["member"].count_documents({"last_login": window}),
            }
        )
    return trends


@router.get("")
def analytics(
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    now = utcnow()
    return {
        "members": member_metrics(db, now),
        "events": event_metrics(db),
        "content": content_metrics(db),
        "trends": monthly_trends(db, now),
        "generated_at": now,
    }
