"""
projectcam/permissions.py

Project-level authorization resolver.

A caller's standing on a project is one of:
- owner: every permission flag, always
- collaborator: the flags stored on their collaborator record
- none: no relation to the project (denied)

Ownership is checked first and short-circuits the collaborator lookup.
Role labels on collaborator records are advisory; the permission flags are
what gets enforced.

Photos add a resource-level rule on top: the uploader may always edit or
delete their own photo regardless of project-level flags.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# Permission Flags
# ============================================================================

class ProjectPermission(str, Enum):
    """Collaborator permission flags (independent booleans, not a hierarchy)."""
    CAN_UPLOAD = "can_upload"
    CAN_COMMENT = "can_comment"
    CAN_EDIT = "can_edit"
    CAN_DELETE = "can_delete"


ALL_PERMISSIONS: Dict[str, bool] = {p.value: True for p in ProjectPermission}

OWNER_ROLE = "owner"


class AccessDenied(Exception):
    """Raised when a caller has no standing, or lacks the requested flag."""

    def __init__(self, message: str, permission: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.permission = permission


@dataclass(frozen=True)
class ProjectAccess:
    """Resolved standing of one user on one project."""
    project_id: str
    user_id: str
    role: str
    permissions: Dict[str, bool] = field(default_factory=dict)

    @property
    def is_owner(self) -> bool:
        return self.role == OWNER_ROLE

    def allows(self, permission: str) -> bool:
        return bool(self.permissions.get(_flag(permission), False))


def _flag(permission: Any) -> str:
    return permission.value if isinstance(permission, ProjectPermission) else str(permission)


# ============================================================================
# Relationship Checks
# ============================================================================

def is_project_owner(project: Dict[str, Any], user_id: str) -> bool:
    return str(project.get("owner")) == str(user_id)


def find_collaborator(project: Dict[str, Any], user_id: str) -> Optional[Dict[str, Any]]:
    for collab in project.get("collaborators") or []:
        if str(collab.get("user")) == str(user_id):
            return collab
    return None


def is_collaborator(project: Dict[str, Any], user_id: str) -> bool:
    return find_collaborator(project, user_id) is not None


def can_view_project(project: Dict[str, Any], user_id: str) -> bool:
    return is_project_owner(project, user_id) or is_collaborator(project, user_id)


# ============================================================================
# Resolver
# ============================================================================

def resolve_project_access(
    project: Dict[str, Any],
    user_id: str,
    permission: Optional[str] = None,
) -> ProjectAccess:
    """
    Determine the caller's standing on a project.

    Args:
        project: Project document
        user_id: Caller's user id
        permission: Optional flag name (e.g. "can_upload"). When omitted,
            collaborator membership alone is sufficient.

    Returns:
        ProjectAccess for owners and qualifying collaborators

    Raises:
        AccessDenied: caller is unrelated to the project, or is a
            collaborator whose flag for ``permission`` is false
    """
    project_id = str(project.get("id"))

    if is_project_owner(project, user_id):
        return ProjectAccess(project_id, str(user_id), OWNER_ROLE, dict(ALL_PERMISSIONS))

    collab = find_collaborator(project, user_id)
    if collab is None:
        raise AccessDenied("Access denied to this project")

    flags = {p.value: bool((collab.get("permissions") or {}).get(p.value, False)) for p in ProjectPermission}
    if permission is not None and not flags.get(_flag(permission), False):
        raise AccessDenied(f"Permission denied: {_flag(permission)}", permission=_flag(permission))

    return ProjectAccess(project_id, str(user_id), str(collab.get("role", "viewer")), flags)


def has_project_permission(project: Dict[str, Any], user_id: str, permission: Optional[str] = None) -> bool:
    try:
        resolve_project_access(project, user_id, permission)
    except AccessDenied:
        return False
    return True


# ============================================================================
# Photo-level Rules (creator override)
# ============================================================================

def is_photo_uploader(photo: Dict[str, Any], user_id: str) -> bool:
    return str(photo.get("uploaded_by")) == str(user_id)


def _photo_right(project: Dict[str, Any], photo: Dict[str, Any], user_id: str, flag: ProjectPermission) -> bool:
    if is_project_owner(project, user_id) or is_photo_uploader(photo, user_id):
        return True
    collab = find_collaborator(project, user_id)
    return collab is not None and bool((collab.get("permissions") or {}).get(flag.value, False))


def can_edit_photo(project: Dict[str, Any], photo: Dict[str, Any], user_id: str) -> bool:
    """is_project_owner OR is_photo_uploader OR (is_collaborator AND can_edit)."""
    return _photo_right(project, photo, user_id, ProjectPermission.CAN_EDIT)


def can_delete_photo(project: Dict[str, Any], photo: Dict[str, Any], user_id: str) -> bool:
    """is_project_owner OR is_photo_uploader OR (is_collaborator AND can_delete)."""
    return _photo_right(project, photo, user_id, ProjectPermission.CAN_DELETE)


def can_view_photo(project: Optional[Dict[str, Any]], photo: Dict[str, Any], user_id: Optional[str]) -> bool:
    """Public photos are visible to anyone; otherwise project membership is required."""
    if photo.get("is_public"):
        return True
    if user_id is None or project is None:
        return False
    return can_view_project(project, user_id)


# ============================================================================
# Admin Override (user administration only)
# ============================================================================

ADMIN_ROLE = "admin"


def can_view_user_private(actor_id: str, actor_role: str, target_id: str) -> bool:
    """Stats and activity are visible to the user themselves or to an admin."""
    return str(actor_id) == str(target_id) or (actor_role or "").lower() == ADMIN_ROLE
