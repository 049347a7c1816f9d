"""
projectcam/collaborators.py

Collaborator membership mutations on a project document (in place).

Pure Python logic - no FastAPI imports, no database access. The caller
persists the project and keeps each user's ``projects`` list in sync.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from projectcam.models import Collaborator, CollaboratorPermissions, CollaboratorRole, to_document
from projectcam.permissions import find_collaborator, is_project_owner


class CollaboratorExists(Exception):
    """The identity already has standing on the project."""


def default_permissions(role: str) -> Dict[str, bool]:
    """
    Role-derived defaults for a new collaborator.

    contributor/manager may upload, manager may also edit and delete,
    every role may comment.
    """
    role = CollaboratorRole(role).value
    return CollaboratorPermissions(
        can_upload=role in (CollaboratorRole.contributor.value, CollaboratorRole.manager.value),
        can_comment=True,
        can_edit=role == CollaboratorRole.manager.value,
        can_delete=role == CollaboratorRole.manager.value,
    ).model_dump()


def add_collaborator(
    project: Dict[str, Any],
    user_id: str,
    role: str = CollaboratorRole.viewer.value,
    permissions: Optional[Dict[str, bool]] = None,
) -> Dict[str, Any]:
    """
    Append a collaborator record and return it.

    Explicitly supplied flags override the role defaults; unknown keys are
    ignored.

    Raises:
        CollaboratorExists: user is already a collaborator or is the owner
        ValueError: unknown role
    """
    if find_collaborator(project, user_id) is not None:
        raise CollaboratorExists("User is already a collaborator on this project")
    if is_project_owner(project, user_id):
        raise CollaboratorExists("User is already the owner of this project")

    flags = default_permissions(role)
    for key, value in (permissions or {}).items():
        if key in flags and value is not None:
            flags[key] = bool(value)

    record = to_document(
        Collaborator(user=str(user_id), role=CollaboratorRole(role), permissions=CollaboratorPermissions(**flags))
    )
    project.setdefault("collaborators", []).append(record)
    return record


def remove_collaborator(project: Dict[str, Any], user_id: str) -> bool:
    """Drop the user's collaborator record; no error when absent. Returns True if removed."""
    before = project.get("collaborators") or []
    after = [c for c in before if str(c.get("user")) != str(user_id)]
    project["collaborators"] = after
    return len(after) != len(before)
