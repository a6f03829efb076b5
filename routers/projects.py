from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from database import create_document, get_db, parse_object_id, serialize, utcnow
from notifications import (
    NotificationType,
    clear_admin_notifications,
    create_admin_notification,
    create_notification,
)
from routers.members import admin_profile, with_authors
from schemas import Project
from security import AdminActor, request_ip, require_admin, require_member

router = APIRouter(tags=["projects"])

GITHUB_REPO = re.compile(r"^https://github\.com/[\w-]+/[\w.-]+/?$")
HTTP_URL = re.compile(r"^https?://\S+$")
DEFAULT_REJECTION = "No reason given"

PUBLIC = {"status": "approved", "is_deleted": {"$ne": True}}


@router.get("/api/projects")
def list_projects(db: Database = Depends(get_db)):
    projects = list(db["project"].find(PUBLIC).sort("created_at", -1))
    return with_authors(db, projects, "member_id")


@router.get("/api/projects/my")
def my_projects(
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    projects = db["project"].find({"member_id": member["_id"], "is_deleted": {"$ne": True}})
    return serialize(list(projects.sort("created_at", -1)))


@router.get("/api/projects/{project_id}")
def get_project(project_id: str, db: Database = Depends(get_db)):
    query = {"_id": parse_object_id(project_id, "project"), **PUBLIC}
    project = db["project"].find_one(query)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    db["project"].update_one({"_id": project["_id"]}, {"$inc": {"view_count": 1}})
    project["view_count"] = project.get("view_count", 0) + 1
    return with_authors(db, [project], "member_id")[0]


class ProjectRequest(BaseModel):
    title: str = Field(..., max_length=100)
    title_en: Optional[str] = None
    description: str = Field(..., max_length=2000)
    description_en: Optional[str] = None
    github_url: str
    demo_url: Optional[str] = None
    technologies: List[str] = Field(default_factory=list, max_length=20)


@router.post("/api/projects")
def submit_project(
    body: ProjectRequest,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    title = body.title.strip()
    description = body.description.strip()
    if not title or not description:
        raise HTTPException(status_code=400, detail="Title and description are required")
    github_url = body.github_url.strip()
    if not GITHUB_REPO.match(github_url):
        raise HTTPException(status_code=400, detail="github_url must be a GitHub repository URL")
    demo_url = (body.demo_url or "").strip() or None
    if demo_url and not HTTP_URL.match(demo_url):
        raise HTTPException(status_code=400, detail="demo_url must be an http(s) URL")

    project = Project(
        member_id=member["_id"],
        title=title,
        title_en=body.title_en,
        description=description,
        description_en=body.description_en,
        github_url=github_url,
        demo_url=demo_url,
        technologies=[tech.strip() for tech in body.technologies if tech.strip()],
    )
    project_id = create_document("project", project)
    create_admin_notification(
        db, NotificationType.ADMIN_PROJECT,
        "Onay bekleyen proje", title,
        link="/admin/projects", related_content_type="project",
        related_content_id=project_id, actor_id=member["_id"],
    )
    return {"success": True, "id": project_id, "status": project.status}


@router.delete("/api/projects/{project_id}")
def delete_project(
    project_id: str,
    member: Dict[str, Any] = Depends(require_member),
    db: Database = Depends(get_db),
):
    project = db["project"].find_one(
        {"_id": parse_object_id(project_id, "project"), "is_deleted": {"$ne": True}}
    )
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if project["member_id"] != member["_id"]:
        raise HTTPException(status_code=403, detail="You can only delete your own projects")
    now = utcnow()
    db["project"].update_one(
        {"_id": project["_id"]}, {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}}
    )
    return {"success": True}


@router.get("/api/admin/projects")
def admin_list_projects(
    status: Optional[str] = None,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {"is_deleted": {"$ne": True}}
    if status:
        query["status"] = status
    projects = list(db["project"].find(query).sort("created_at", -1))
    return with_authors(db, projects, "member_id", view=admin_profile)


def _review(
    db: Database,
    project_id: str,
    actor: AdminActor,
    request: Request,
    status: str,
    reason: Optional[str],
) -> Dict[str, Any]:
    project = db["project"].find_one(
        {"_id": parse_object_id(project_id, "project"), "is_deleted": {"$ne": True}}
    )
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    db["project"].update_one(
        {"_id": project["_id"]},
        {"$set": {"status": status, "rejection_reason": reason, "updated_at": utcnow()}},
    )
    approved = status == "approved"
    log_admin_action(
        db, actor,
        AuditAction.APPROVE_PROJECT if approved else AuditAction.REJECT_PROJECT,
        "project", target_id=project["_id"], target_name=project.get("title"),
        details=reason, ip_address=request_ip(request),
    )
    if approved:
        message = f"Your project \"{project.get('title')}\" was approved"
    else:
        message = f"Your project \"{project.get('title')}\" was rejected: {reason}"
    create_notification(
        db, project["member_id"],
        NotificationType.PROJECT_APPROVED if approved else NotificationType.PROJECT_REJECTED,
        "Proje onaylandı" if approved else "Proje reddedildi", message,
        link=f"/projects/{project['_id']}", related_content_type="project",
        related_content_id=str(project["_id"]),
    )
    clear_admin_notifications(db, "project", str(project["_id"]))
    return serialize(db["project"].find_one({"_id": project["_id"]}))


@router.post("/api/admin/projects/{project_id}/approve")
def approve_project(
    project_id: str,
    request: Request,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return _review(db, project_id, actor, request, "approved", None)


class RejectRequest(BaseModel):
    reason: Optional[str] = None


@router.post("/api/admin/projects/{project_id}/reject")
def reject_project(
    project_id: str,
    request: Request,
    body: Optional[RejectRequest] = None,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
):
    reason = ((body.reason if body else None) or "").strip() or DEFAULT_REJECTION
    return _review(db, project_id, actor, request, "rejected", reason)
