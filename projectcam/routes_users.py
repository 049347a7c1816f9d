"""
projectcam/routes_users.py

User search, profiles, statistics, activity and admin account management.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Full profiles are shown only to the user themselves or to users sharing
  a project with them; everyone else gets a limited profile
- Stats and activity are visible to the user themselves or an admin
- Status and role changes are admin-only (require_role("admin"));
  deactivation also ends the user's live subscriptions
- Avatars can only be changed by their owner
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from projectcam import store
from projectcam.auth_context import AuthContext, require_auth_context
from projectcam.config import AVATAR_EXTENSIONS, IS_DEV
from projectcam.db import DB_ERRORS, commit, get_db_connection
from projectcam.dependencies import load_for_update, require_role
from projectcam.models import Trade
from projectcam.permissions import ADMIN_ROLE, can_view_user_private
from projectcam.realtime import hub
from projectcam.schemas import ProfileUpdateRequest, UserRoleUpdateRequest, UserStatusUpdateRequest
from projectcam.storage import UploadRejected, delete_file, save_upload
from projectcam.views import public_user, user_summary

router = APIRouter(
    prefix="/users",
    tags=["users"],
)

USER_NOT_FOUND = "User not found"
SEARCH_FIELDS = ("id", "first_name", "last_name", "email", "company", "trade", "avatar")


def _db_error(action: str, e: Exception):
    print(f"[USERS] DB error on {action}: {e}")
    return HTTPException(status_code=500, detail="Database error")


def _require_self_or_admin(ctx: AuthContext, user_id: str) -> None:
    if not can_view_user_private(ctx.user_id, ctx.role, user_id):
        raise HTTPException(status_code=403, detail="Permission denied")


def _members_sql(param: str) -> str:
    return f"id IN (SELECT doc_id FROM {store.PROJECTS.side_table('members')} WHERE value = :{param})"


def _shares_project(conn: Any, user_a: str, user_b: str) -> bool:
    """One owns a project the other collaborates on."""
    where = (
        f"(owner_id = :a AND {_members_sql('b')}) OR (owner_id = :b AND {_members_sql('a')})"
    )
    return store.count(conn, store.PROJECTS, where, {"a": user_a, "b": user_b}) > 0


# ---------------------------------------------------------
# Search & admin listing
# ---------------------------------------------------------
@router.get("/search")
def search_users(
    q: Optional[str] = Query(None, max_length=200),
    limit: int = Query(10, ge=1, le=50),
    ctx: AuthContext = Depends(require_auth_context),
):
    """Active users matching name, email or company, excluding the caller."""
    term = (q or "").strip()
    if len(term) < 2:
        raise HTTPException(status_code=400, detail="Search query must be at least 2 characters")

    search_sql, params = store.search_clause("q", term)
    params["me"] = ctx.user_id
    try:
        with get_db_connection() as conn:
            users = store.find(
                conn, store.USERS,
                f"{search_sql} AND is_active = 1 AND id != :me",
                params,
                order_by="created_at DESC",
                limit=limit,
            )
    except DB_ERRORS as e:
        raise _db_error("search", e)

    return {"users": [{k: u.get(k) for k in SEARCH_FIELDS} for u in users]}


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    trade: Optional[Trade] = Query(None),
    is_active: Optional[bool] = Query(None),
    ctx: AuthContext = Depends(require_role(ADMIN_ROLE)),
):
    clauses = []
    params: Dict[str, Any] = {}
    if search and search.strip():
        search_sql, search_params = store.search_clause("search", search)
        clauses.append(search_sql)
        params.update(search_params)
    if trade is not None:
        clauses.append("trade = :trade")
        params["trade"] = trade.value
    if is_active is not None:
        clauses.append("is_active = :is_active")
        params["is_active"] = 1 if is_active else 0
    where = " AND ".join(clauses)

    try:
        with get_db_connection() as conn:
            total = store.count(conn, store.USERS, where, params)
            users = store.find(conn, store.USERS, where, params, limit=limit, offset=(page - 1) * limit)
    except DB_ERRORS as e:
        raise _db_error("list", e)

    return {
        "users": [public_user(u) for u in users],
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "total": total,
    }


# ---------------------------------------------------------
# Profiles
# ---------------------------------------------------------
@router.put("/me")
def update_profile(body: ProfileUpdateRequest, ctx: AuthContext = Depends(require_auth_context)):
    changes = {k: v for k, v in body.model_dump(exclude_unset=True, mode="json").items() if v is not None}
    try:
        with get_db_connection() as conn:
            user = load_for_update(conn, store.USERS, ctx.user_id, USER_NOT_FOUND)
            user.update(changes)
            store.save(conn, store.USERS, user)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("profile update", e)

    if IS_DEV:
        print(f"[USERS] Profile updated: user_id={ctx.user_id}, fields={sorted(changes)}")
    return {"message": "Profile updated successfully", "user": public_user(user)}


@router.get("/{user_id}")
def get_user(user_id: str, ctx: AuthContext = Depends(require_auth_context)):
    """Full profile for self or a project partner; limited profile otherwise."""
    try:
        with get_db_connection() as conn:
            user = store.get(conn, store.USERS, user_id)
            if not user:
                raise HTTPException(status_code=404, detail=USER_NOT_FOUND)

            if user_id != ctx.user_id and not _shares_project(conn, ctx.user_id, user_id):
                return {"user": user_summary(user)}

            found = store.find_by_ids(conn, store.PROJECTS, user.get("projects") or [])
    except DB_ERRORS as e:
        raise _db_error("get", e)

    view = public_user(user)
    view["projects"] = [
        {k: found[pid].get(k) for k in ("id", "name", "description", "status", "created_at")}
        for pid in user.get("projects") or []
        if pid in found
    ]
    return {"user": view}


# ---------------------------------------------------------
# Admin
# ---------------------------------------------------------
@router.put("/{user_id}/status")
def update_user_status(
    user_id: str,
    body: UserStatusUpdateRequest,
    ctx: AuthContext = Depends(require_role(ADMIN_ROLE)),
):
    try:
        with get_db_connection() as conn:
            user = load_for_update(conn, store.USERS, user_id, USER_NOT_FOUND)
            user["is_active"] = body.is_active
            store.save(conn, store.USERS, user)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("status update", e)

    print(f"[USERS] Admin {ctx.user_id} set user_id={user_id} is_active={body.is_active}")
    if not body.is_active:
        hub.drop_user_everywhere(user_id)
    return {
        "message": f"User {'activated' if body.is_active else 'deactivated'} successfully",
        "user": {k: user.get(k) for k in ("id", "first_name", "last_name", "email", "is_active")},
    }


@router.put("/{user_id}/role")
def update_user_role(
    user_id: str,
    body: UserRoleUpdateRequest,
    ctx: AuthContext = Depends(require_role(ADMIN_ROLE)),
):
    try:
        with get_db_connection() as conn:
            user = load_for_update(conn, store.USERS, user_id, USER_NOT_FOUND)
            user["role"] = body.role.value
            store.save(conn, store.USERS, user)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("role update", e)

    print(f"[USERS] Admin {ctx.user_id} set user_id={user_id} role={body.role.value}")
    return {
        "message": "User role updated successfully",
        "user": {k: user.get(k) for k in ("id", "first_name", "last_name", "email", "role")},
    }


# ---------------------------------------------------------
# Stats & activity
# ---------------------------------------------------------
@router.get("/{user_id}/stats")
def get_user_stats(user_id: str, ctx: AuthContext = Depends(require_auth_context)):
    """
    Project, photo and comment counts for a user, plus last-30-day activity.

    Visible to the user themselves or an admin.
    """
    _require_self_or_admin(ctx, user_id)
    since = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat(timespec="microseconds").replace("+00:00", "Z")

    try:
        with get_db_connection() as conn:
            if not store.get(conn, store.USERS, user_id):
                raise HTTPException(status_code=404, detail=USER_NOT_FOUND)
            p = {"user_id": user_id, "since": since}
            stats = {
                "total_projects": store.count_side_values(conn, store.PROJECTS, "members", user_id),
                "owned_projects": store.count(conn, store.PROJECTS, "owner_id = :user_id", p),
                "total_photos": store.count(conn, store.PHOTOS, "uploaded_by = :user_id", p),
                "total_comments": store.count_side_values(conn, store.PHOTOS, "comment_authors", user_id),
                "recent_activity": {
                    "photos_last_30_days": store.count(
                        conn, store.PHOTOS, "uploaded_by = :user_id AND created_at >= :since", p
                    ),
                    "projects_last_30_days": store.count(
                        conn, store.PROJECTS, "owner_id = :user_id AND created_at >= :since", p
                    ),
                },
            }
    except DB_ERRORS as e:
        raise _db_error("stats", e)

    return {"stats": stats}


@router.get("/{user_id}/activity")
def get_user_activity(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    ctx: AuthContext = Depends(require_auth_context),
):
    """Recent photo uploads and created projects, merged newest first."""
    _require_self_or_admin(ctx, user_id)
    per_kind = max(limit // 2, 1)

    try:
        with get_db_connection() as conn:
            photos = store.find(conn, store.PHOTOS, "uploaded_by = :user_id", {"user_id": user_id}, limit=per_kind)
            projects = store.find(conn, store.PROJECTS, "owner_id = :user_id", {"user_id": user_id}, limit=per_kind)
            photo_projects = store.find_by_ids(conn, store.PROJECTS, [p["project"] for p in photos])
    except DB_ERRORS as e:
        raise _db_error("activity", e)

    activity = [
        {
            "type": "photo",
            "id": photo["id"],
            "title": photo.get("title"),
            "project": (
                {"id": photo["project"], "name": photo_projects[photo["project"]].get("name")}
                if photo["project"] in photo_projects
                else photo["project"]
            ),
            "created_at": photo["created_at"],
            "url": photo.get("url"),
        }
        for photo in photos
    ] + [
        {
            "type": "project",
            "id": project["id"],
            "title": project.get("name"),
            "description": project.get("description"),
            "status": project.get("status"),
            "created_at": project["created_at"],
        }
        for project in projects
    ]
    activity.sort(key=lambda a: a["created_at"], reverse=True)
    return {"activity": activity[:limit]}


# ---------------------------------------------------------
# Avatar
# ---------------------------------------------------------
@router.post("/{user_id}/avatar")
def upload_avatar(user_id: str, avatar: UploadFile = File(...), ctx: AuthContext = Depends(require_auth_context)):
    if user_id != ctx.user_id:
        raise HTTPException(status_code=403, detail="Permission denied")

    try:
        stored = save_upload(avatar, AVATAR_EXTENSIONS)
    except UploadRejected as e:
        print(f"[USERS] Avatar rejected for user_id={user_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        print(f"[USERS] Avatar write failed for user_id={user_id}: {e}")
        raise HTTPException(status_code=500, detail="File storage error")

    try:
        with get_db_connection() as conn:
            user = load_for_update(conn, store.USERS, user_id, USER_NOT_FOUND)
            previous = user.get("avatar")
            user["avatar"] = stored.url
            store.save(conn, store.USERS, user)
            commit(conn)
    except HTTPException:
        delete_file(stored.filename)
        raise
    except DB_ERRORS as e:
        delete_file(stored.filename)
        raise _db_error("avatar", e)

    if previous and previous.startswith("/uploads/"):
        delete_file(previous.rsplit("/", 1)[-1])
    if IS_DEV:
        print(f"[USERS] Avatar updated: user_id={user_id} -> {stored.filename}")
    return {"message": "Avatar updated successfully", "avatar": user["avatar"]}
