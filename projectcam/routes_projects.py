"""
projectcam/routes_projects.py

Project CRUD plus collaborators, checklists and the timeline.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Reads require project membership (owner or collaborator)
- Mutations require the collaborator's can_edit flag; owners always pass
- Deleting a project is reserved to its owner
- Every read-modify-write re-reads the project inside a write transaction
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from projectcam import store
from projectcam.auth_context import AuthContext, require_auth_context
from projectcam.collaborators import CollaboratorExists, add_collaborator, remove_collaborator
from projectcam.config import IS_DEV
from projectcam.db import DB_ERRORS, begin_write, commit, get_db_connection
from projectcam.dependencies import ProjectRequest, load_for_update, require_project_permission
from projectcam.derived import completion_percentage
from projectcam.models import (
    Checklist,
    ChecklistItem,
    Project,
    ProjectStatus,
    TimelineType,
    to_document,
)
from projectcam.permissions import ProjectPermission
from projectcam.realtime import EventType, hub
from projectcam.schemas import (
    ChecklistCreateRequest,
    ChecklistItemUpdateRequest,
    CollaboratorAddRequest,
    ProjectCreateRequest,
    ProjectUpdateRequest,
)
from projectcam.storage import delete_file
from projectcam.timeline import append_timeline
from projectcam.views import load_users, project_user_ids, project_view, project_views

router = APIRouter(
    prefix="/projects",
    tags=["projects"],
)

CAN_EDIT = ProjectPermission.CAN_EDIT.value
PROJECT_NOT_FOUND = "Project not found"


def _db_error(action: str, e: Exception):
    print(f"[PROJECTS] DB error on {action}: {e}")
    return HTTPException(status_code=500, detail="Database error")


def _populated(conn: Any, project: Dict[str, Any], with_photos: bool = False) -> Dict[str, Any]:
    users = load_users(conn, project_user_ids(project))
    photos = None
    if with_photos:
        found = store.find_by_ids(conn, store.PHOTOS, project.get("photos") or [])
        photos = [found[pid] for pid in project.get("photos") or [] if pid in found]
    return project_view(project, users, photos)


def _add_project_ref(user: Optional[Dict[str, Any]], project_id: str) -> bool:
    if user is None or project_id in user.setdefault("projects", []):
        return False
    user["projects"].append(project_id)
    return True


def _pull_project_ref(user: Optional[Dict[str, Any]], project_id: str) -> bool:
    if user is None or project_id not in (user.get("projects") or []):
        return False
    user["projects"] = [p for p in user["projects"] if p != project_id]
    return True


# ---------------------------------------------------------
# Projects
# ---------------------------------------------------------
@router.get("")
def list_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ProjectStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    ctx: AuthContext = Depends(require_auth_context),
):
    """
    Projects the caller owns or collaborates on, most recently updated first.

    Returns:
        {projects, total_pages, current_page, total}
    """
    members = store.PROJECTS.side_table("members")
    clauses = [f"id IN (SELECT doc_id FROM {members} WHERE value = :user_id)"]
    params: Dict[str, Any] = {"user_id": ctx.user_id}
    if status is not None:
        clauses.append("status = :status")
        params["status"] = status.value
    if search and search.strip():
        search_sql, search_params = store.search_clause("search", search)
        clauses.append(search_sql)
        params.update(search_params)
    where = " AND ".join(clauses)

    try:
        with get_db_connection() as conn:
            total = store.count(conn, store.PROJECTS, where, params)
            projects = store.find(
                conn, store.PROJECTS, where, params,
                order_by="updated_at DESC",
                limit=limit,
                offset=(page - 1) * limit,
            )
            views = project_views(conn, projects)
    except DB_ERRORS as e:
        raise _db_error("list", e)

    if IS_DEV:
        print(f"[PROJECTS] Listed {len(views)}/{total} for user_id={ctx.user_id}")
    return {
        "projects": views,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "total": total,
    }


@router.post("", status_code=201)
def create_project(req: ProjectCreateRequest, ctx: AuthContext = Depends(require_auth_context)):
    """
    Create a project owned by the caller.

    The caller's ``projects`` list and the "Project Created" timeline entry
    are written in the same transaction as the project itself.
    """
    fields = req.model_dump(exclude_none=True)
    project = to_document(Project(owner=ctx.user_id, **fields))
    append_timeline(
        project,
        "Project Created",
        f'Project "{project["name"]}" was created',
        ctx.user_id,
        TimelineType.milestone,
    )

    try:
        with get_db_connection() as conn:
            begin_write(conn)
            store.insert(conn, store.PROJECTS, project)
            owner = store.get(conn, store.USERS, ctx.user_id, for_update=True)
            if _add_project_ref(owner, project["id"]):
                store.save(conn, store.USERS, owner)
            commit(conn)
            view = _populated(conn, project)
    except DB_ERRORS as e:
        raise _db_error("create", e)

    print(f"[PROJECTS] Created project_id={project['id']} owner={ctx.user_id}")
    return {"message": "Project created successfully", "project": view}


@router.get("/{project_id}")
def get_project(req: ProjectRequest = Depends(require_project_permission())):
    try:
        with get_db_connection() as conn:
            view = _populated(conn, req.project, with_photos=True)
    except DB_ERRORS as e:
        raise _db_error("get", e)
    return {"project": view}


@router.put("/{project_id}")
def update_project(
    body: ProjectUpdateRequest,
    req: ProjectRequest = Depends(require_project_permission(CAN_EDIT)),
):
    """
    Partial update. Address and settings merge into the stored values;
    a status change appends a status-change timeline entry.
    """
    changes = body.model_dump(exclude_unset=True, mode="json")
    project_id = req.project["id"]

    try:
        with get_db_connection() as conn:
            project = load_for_update(conn, store.PROJECTS, project_id, PROJECT_NOT_FOUND)
            old_status = project.get("status")

            for key in ("name", "start_date", "tags", "custom_fields", "status"):
                if changes.get(key) is not None:
                    project[key] = changes[key]
            for key in ("description", "end_date", "estimated_completion", "budget"):
                if key in changes:
                    project[key] = changes[key]
            for key in ("address", "settings"):
                if changes.get(key):
                    merged = dict(project.get(key) or {})
                    merged.update({k: v for k, v in changes[key].items() if v is not None})
                    project[key] = merged

            new_status = project.get("status")
            if new_status != old_status:
                append_timeline(
                    project,
                    "Status Changed",
                    f'Project status changed from "{old_status}" to "{new_status}"',
                    req.ctx.user_id,
                    TimelineType.status_change,
                )

            store.save(conn, store.PROJECTS, project)
            commit(conn)
            view = _populated(conn, project)
    except DB_ERRORS as e:
        raise _db_error("update", e)

    if IS_DEV:
        print(f"[PROJECTS] Updated project_id={project_id} fields={sorted(changes)}")
    hub.publish(project_id, EventType.PROJECT_UPDATED, {"project_id": project_id, "fields": sorted(changes)})
    return {"message": "Project updated successfully", "project": view}


@router.delete("/{project_id}")
def delete_project(req: ProjectRequest = Depends(require_project_permission())):
    """
    Delete a project with its photos and their files. Owner only.

    The project id is pulled from the ``projects`` list of every member.
    """
    if not req.access.is_owner:
        raise HTTPException(status_code=403, detail="Only project owner can delete the project")

    project_id = req.project["id"]
    try:
        with get_db_connection() as conn:
            project = load_for_update(conn, store.PROJECTS, project_id, PROJECT_NOT_FOUND)
            photos = store.find(conn, store.PHOTOS, "project_id = :project_id", {"project_id": project_id}, order_by="")
            for photo in photos:
                store.delete(conn, store.PHOTOS, photo["id"])

            members = load_users(conn, project_user_ids(project))
            for user in members.values():
                if _pull_project_ref(user, project_id):
                    store.save(conn, store.USERS, user)

            store.delete(conn, store.PROJECTS, project_id)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("delete", e)

    # Files go only after the rows are committed
    for photo in photos:
        delete_file(photo.get("filename"))

    print(f"[PROJECTS] Deleted project_id={project_id} with {len(photos)} photos")
    hub.drop_project(project_id)
    return {"message": "Project deleted successfully"}


# ---------------------------------------------------------
# Collaborators
# ---------------------------------------------------------
@router.post("/{project_id}/collaborators")
def add_project_collaborator(
    body: CollaboratorAddRequest,
    req: ProjectRequest = Depends(require_project_permission(CAN_EDIT)),
):
    project_id = req.project["id"]
    try:
        with get_db_connection() as conn:
            found = store.find(conn, store.USERS, "email = :email", {"email": body.email}, limit=1)
            if not found:
                raise HTTPException(status_code=404, detail="User not found with this email")
            user = found[0]

            project = load_for_update(conn, store.PROJECTS, project_id, PROJECT_NOT_FOUND)
            try:
                record = add_collaborator(project, user["id"], body.role.value, body.permissions)
            except CollaboratorExists as e:
                raise HTTPException(status_code=400, detail=str(e))

            append_timeline(
                project,
                "Collaborator Added",
                f"{user['first_name']} {user['last_name']} was added as {body.role.value}",
                req.ctx.user_id,
                TimelineType.user_added,
            )
            store.save(conn, store.PROJECTS, project)
            if _add_project_ref(user, project_id):
                store.save(conn, store.USERS, user)
            commit(conn)
            view = _populated(conn, project)
    except DB_ERRORS as e:
        raise _db_error("add collaborator", e)

    print(f"[PROJECTS] Added collaborator user_id={user['id']} role={body.role.value} to project_id={project_id}")
    hub.publish(project_id, EventType.COLLABORATOR_ADDED, {"collaborator": record})
    return {"message": "Collaborator added successfully", "collaborators": view["collaborators"]}


@router.delete("/{project_id}/collaborators/{user_id}")
def remove_project_collaborator(
    user_id: str,
    req: ProjectRequest = Depends(require_project_permission(CAN_EDIT)),
):
    """Idempotent: removing someone who is not a collaborator still succeeds."""
    project_id = req.project["id"]
    try:
        with get_db_connection() as conn:
            project = load_for_update(conn, store.PROJECTS, project_id, PROJECT_NOT_FOUND)
            removed = remove_collaborator(project, user_id)
            user = store.get(conn, store.USERS, user_id, for_update=True)

            if removed:
                name = f"{user['first_name']} {user['last_name']}" if user else "A collaborator"
                append_timeline(
                    project,
                    "Collaborator Removed",
                    f"{name} was removed from the project",
                    req.ctx.user_id,
                    TimelineType.user_added,
                )
                store.save(conn, store.PROJECTS, project)

            # The owner keeps the reference even if named here
            if str(user_id) != str(project.get("owner")) and _pull_project_ref(user, project_id):
                store.save(conn, store.USERS, user)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("remove collaborator", e)

    if removed:
        print(f"[PROJECTS] Removed collaborator user_id={user_id} from project_id={project_id}")
        hub.publish(project_id, EventType.COLLABORATOR_REMOVED, {"user_id": user_id})
        hub.drop_user(project_id, user_id)
    return {"message": "Collaborator removed successfully"}


# ---------------------------------------------------------
# Checklists
# ---------------------------------------------------------
@router.post("/{project_id}/checklists")
def add_checklist(
    body: ChecklistCreateRequest,
    req: ProjectRequest = Depends(require_project_permission(CAN_EDIT)),
):
    project_id = req.project["id"]
    checklist = to_document(
        Checklist(
            name=body.name,
            items=[ChecklistItem(text=i.text, due_date=i.due_date) for i in body.items],
            created_by=req.ctx.user_id,
        )
    )
    try:
        with get_db_connection() as conn:
            project = load_for_update(conn, store.PROJECTS, project_id, PROJECT_NOT_FOUND)
            project.setdefault("checklists", []).append(checklist)
            append_timeline(
                project,
                "Checklist Added",
                f'Checklist "{body.name}" was created',
                req.ctx.user_id,
                TimelineType.checklist,
            )
            store.save(conn, store.PROJECTS, project)
            commit(conn)
            view = _populated(conn, project)
    except DB_ERRORS as e:
        raise _db_error("add checklist", e)

    if IS_DEV:
        print(f"[PROJECTS] Added checklist {checklist['id']} ({len(checklist['items'])} items) to project_id={project_id}")
    hub.publish(project_id, EventType.CHECKLIST_ADDED, {"checklist": checklist})
    return {"message": "Checklist added successfully", "checklists": view["checklists"]}


@router.put("/{project_id}/checklists/{checklist_id}/items/{item_id}")
def update_checklist_item(
    checklist_id: str,
    item_id: str,
    body: ChecklistItemUpdateRequest,
    req: ProjectRequest = Depends(require_project_permission(CAN_EDIT)),
):
    """Completing an item stamps who and when; un-completing clears both."""
    project_id = req.project["id"]
    try:
        with get_db_connection() as conn:
            project = load_for_update(conn, store.PROJECTS, project_id, PROJECT_NOT_FOUND)
            checklist = next((c for c in project.get("checklists") or [] if c.get("id") == checklist_id), None)
            if checklist is None:
                raise HTTPException(status_code=404, detail="Checklist not found")
            item = next((i for i in checklist.get("items") or [] if i.get("id") == item_id), None)
            if item is None:
                raise HTTPException(status_code=404, detail="Checklist item not found")

            if body.completed is not None:
                item["completed"] = body.completed
                item["completed_by"] = req.ctx.user_id if body.completed else None
                item["completed_at"] = store.now_iso() if body.completed else None
            if body.text is not None:
                item["text"] = body.text
            if "due_date" in body.model_fields_set:
                item["due_date"] = body.due_date

            store.save(conn, store.PROJECTS, project)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("update checklist item", e)

    percent = completion_percentage(project.get("checklists"))
    hub.publish(
        project_id,
        EventType.CHECKLIST_ITEM_UPDATED,
        {"checklist_id": checklist_id, "item": item, "completion_percentage": percent},
    )
    return {"message": "Checklist item updated successfully", "item": item, "completion_percentage": percent}


# ---------------------------------------------------------
# Timeline
# ---------------------------------------------------------
@router.get("/{project_id}/timeline")
def get_timeline(req: ProjectRequest = Depends(require_project_permission())):
    """Timeline entries, newest first, with the acting user populated."""
    entries: List[Dict[str, Any]] = list(req.project.get("timeline") or [])
    try:
        with get_db_connection() as conn:
            users = load_users(conn, [e.get("user") for e in entries])
    except DB_ERRORS as e:
        raise _db_error("timeline", e)

    timeline = []
    for entry in reversed(entries):
        user = users.get(entry.get("user") or "")
        timeline.append({
            **entry,
            "user": {k: user.get(k) for k in ("id", "first_name", "last_name")} if user else entry.get("user"),
        })
    return {"timeline": timeline}
