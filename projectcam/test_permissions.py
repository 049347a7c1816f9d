"""
projectcam/test_permissions.py

Project permission resolver and photo-level creator override.

Run:
    pytest projectcam/test_permissions.py -v
"""

import itertools

import pytest

from projectcam.permissions import (
    AccessDenied,
    can_delete_photo,
    can_edit_photo,
    can_view_photo,
    can_view_user_private,
    has_project_permission,
    resolve_project_access,
)

OWNER = "owner-1"
CALLER = "caller-1"
OTHER = "other-1"


def make_project(owner=OWNER, collaborators=()):
    return {"id": "proj-1", "owner": owner, "collaborators": list(collaborators)}


def make_collab(user_id, role="viewer", **flags):
    permissions = {"can_upload": False, "can_comment": True, "can_edit": False, "can_delete": False}
    permissions.update(flags)
    return {"user": user_id, "role": role, "permissions": permissions}


class TestResolveProjectAccess:
    def test_owner_gets_every_flag(self):
        access = resolve_project_access(make_project(), OWNER, "can_delete")
        assert access.is_owner
        assert all(access.allows(flag) for flag in ("can_upload", "can_comment", "can_edit", "can_delete"))

    def test_owner_short_circuits_collaborator_record(self):
        """An owner who also appears as a flagless collaborator still has full rights."""
        project = make_project(collaborators=[make_collab(OWNER, can_edit=False)])
        access = resolve_project_access(project, OWNER, "can_edit")
        assert access.role == "owner"

    def test_stranger_denied(self):
        with pytest.raises(AccessDenied) as exc:
            resolve_project_access(make_project(), CALLER)
        assert exc.value.message == "Access denied to this project"

    def test_membership_alone_suffices_without_flag(self):
        project = make_project(collaborators=[make_collab(CALLER, can_comment=False)])
        access = resolve_project_access(project, CALLER)
        assert access.role == "viewer"
        assert not access.is_owner

    def test_missing_flag_denied_with_flag_name(self):
        project = make_project(collaborators=[make_collab(CALLER)])
        with pytest.raises(AccessDenied) as exc:
            resolve_project_access(project, CALLER, "can_upload")
        assert exc.value.message == "Permission denied: can_upload"
        assert exc.value.permission == "can_upload"

    def test_flags_enforced_not_role_label(self):
        """A 'manager' label without can_edit does not grant editing."""
        project = make_project(collaborators=[make_collab(CALLER, role="manager", can_edit=False)])
        assert not has_project_permission(project, CALLER, "can_edit")
        project = make_project(collaborators=[make_collab(CALLER, role="viewer", can_edit=True)])
        assert has_project_permission(project, CALLER, "can_edit")


class TestCreatorOverride:
    @pytest.mark.parametrize(
        "is_owner, is_uploader, is_collab, flag",
        list(itertools.product([False, True], repeat=4)),
    )
    def test_edit_truth_table(self, is_owner, is_uploader, is_collab, flag):
        project = make_project(
            owner=CALLER if is_owner else OWNER,
            collaborators=[make_collab(CALLER, can_edit=flag)] if is_collab else [],
        )
        photo = {"id": "photo-1", "uploaded_by": CALLER if is_uploader else OTHER}
        expected = is_owner or is_uploader or (is_collab and flag)
        assert can_edit_photo(project, photo, CALLER) is expected, (
            f"owner={is_owner} uploader={is_uploader} collab={is_collab} can_edit={flag}"
        )

    @pytest.mark.parametrize(
        "is_owner, is_uploader, is_collab, flag",
        list(itertools.product([False, True], repeat=4)),
    )
    def test_delete_truth_table(self, is_owner, is_uploader, is_collab, flag):
        project = make_project(
            owner=CALLER if is_owner else OWNER,
            collaborators=[make_collab(CALLER, can_delete=flag)] if is_collab else [],
        )
        photo = {"id": "photo-1", "uploaded_by": CALLER if is_uploader else OTHER}
        expected = is_owner or is_uploader or (is_collab and flag)
        assert can_delete_photo(project, photo, CALLER) is expected

    def test_edit_flag_does_not_grant_delete(self):
        project = make_project(collaborators=[make_collab(CALLER, can_edit=True)])
        photo = {"uploaded_by": OTHER}
        assert can_edit_photo(project, photo, CALLER)
        assert not can_delete_photo(project, photo, CALLER)


class TestViewRules:
    def test_public_photo_visible_to_anyone(self):
        assert can_view_photo(make_project(), {"is_public": True}, None)
        assert can_view_photo(None, {"is_public": True}, CALLER)

    def test_private_photo_needs_membership(self):
        photo = {"is_public": False}
        assert not can_view_photo(make_project(), photo, None)
        assert not can_view_photo(make_project(), photo, CALLER)
        assert can_view_photo(make_project(collaborators=[make_collab(CALLER)]), photo, CALLER)

    def test_private_user_data_self_or_admin(self):
        assert can_view_user_private(CALLER, "worker", CALLER)
        assert can_view_user_private(CALLER, "admin", OTHER)
        assert not can_view_user_private(CALLER, "manager", OTHER)
