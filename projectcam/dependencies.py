"""
projectcam/dependencies.py

Reusable FastAPI dependencies for authorization.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, HTTPException

from projectcam import store
from projectcam.auth_context import AuthContext, require_auth_context
from projectcam.config import IS_DEV
from projectcam.db import DB_ERRORS, begin_write, get_db_connection
from projectcam.permissions import AccessDenied, ProjectAccess, resolve_project_access


@dataclass
class ProjectRequest:
    """Authenticated caller plus their resolved standing on the project in the path."""
    ctx: AuthContext
    access: ProjectAccess
    project: Dict[str, Any]


def load_project(project_id: str) -> Dict[str, Any]:
    """
    Fetch a project document.

    Raises:
        HTTPException(404): no such project
        HTTPException(500): database error
    """
    try:
        with get_db_connection() as conn:
            project = store.get(conn, store.PROJECTS, project_id)
    except DB_ERRORS as e:
        print(f"[AUTHZ] DB error loading project {project_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def load_for_update(conn: Any, collection: store.Collection, doc_id: str, not_found: str) -> Dict[str, Any]:
    """
    Open a write transaction and re-read a document inside it.

    Handlers authorize against the copy loaded by their dependency, then
    mutate the copy returned here so concurrent writers cannot lose updates.

    Raises:
        HTTPException(404): document vanished since authorization
    """
    begin_write(conn)
    doc = store.get(conn, collection, doc_id, for_update=True)
    if not doc:
        raise HTTPException(status_code=404, detail=not_found)
    return doc


def authorize_project(project: Dict[str, Any], ctx: AuthContext, permission: Optional[str] = None) -> ProjectAccess:
    """Translate resolver denials into 403 responses."""
    try:
        access = resolve_project_access(project, ctx.user_id, permission)
    except AccessDenied as e:
        if IS_DEV:
            print(f"[AUTHZ] Denied: project_id={project.get('id')}, user_id={ctx.user_id}, "
                  f"permission={permission}, reason={e.message}")
        raise HTTPException(status_code=403, detail=e.message)
    return access


def require_project_permission(permission: Optional[str] = None) -> Callable:
    """
    Dependency factory enforcing standing on the ``project_id`` path parameter.

    Owners always pass; collaborators pass when the named flag is set, or on
    membership alone when no flag is named.

    Usage:
        @router.put("/{project_id}")
        def update_project(req: ProjectRequest = Depends(require_project_permission("can_edit"))):
            ...

    Raises:
        HTTPException(404): project does not exist
        HTTPException(403): no standing or flag not granted
    """
    def _check(project_id: str, ctx: AuthContext = Depends(require_auth_context)) -> ProjectRequest:
        project = load_project(project_id)
        access = authorize_project(project, ctx, permission)
        return ProjectRequest(ctx=ctx, access=access, project=project)

    return _check


def require_role(*roles: str) -> Callable:
    """
    Dependency factory requiring the caller's account role to be one of ``roles``.

    The role is read from the user record by require_auth_context, so a role
    change takes effect on the next request.
    """
    allowed = {r.lower() for r in roles}

    def _check(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if ctx.role.lower() not in allowed:
            if IS_DEV:
                print(f"[AUTHZ] Role denied: user_id={ctx.user_id}, role={ctx.role}, required={sorted(allowed)}")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return ctx

    return _check
