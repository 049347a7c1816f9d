"""
projectcam/test_collaborators.py

Collaborator membership mutations on a project document.

Run:
    pytest projectcam/test_collaborators.py -v
"""

import pytest

from projectcam.collaborators import CollaboratorExists, add_collaborator, default_permissions, remove_collaborator


def make_project():
    return {"id": "proj-1", "owner": "owner-1", "collaborators": []}


class TestDefaultPermissions:
    def test_viewer(self):
        assert default_permissions("viewer") == {
            "can_upload": False, "can_comment": True, "can_edit": False, "can_delete": False,
        }

    def test_contributor_can_upload(self):
        flags = default_permissions("contributor")
        assert flags["can_upload"] and flags["can_comment"]
        assert not flags["can_edit"] and not flags["can_delete"]

    def test_manager_gets_everything(self):
        assert all(default_permissions("manager").values())

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            default_permissions("owner")


class TestAddCollaborator:
    def test_appends_record_with_role_defaults(self):
        project = make_project()
        record = add_collaborator(project, "user-1", "contributor")
        assert project["collaborators"] == [record]
        assert record["user"] == "user-1"
        assert record["role"] == "contributor"
        assert record["permissions"]["can_upload"] is True
        assert record["added_at"]

    def test_explicit_flags_override_defaults(self):
        project = make_project()
        record = add_collaborator(project, "user-1", "viewer", {"can_edit": True, "can_comment": False, "bogus": True})
        assert record["permissions"] == {
            "can_upload": False, "can_comment": False, "can_edit": True, "can_delete": False,
        }

    def test_same_identity_twice_rejected_regardless_of_role(self):
        project = make_project()
        add_collaborator(project, "user-1", "viewer")
        with pytest.raises(CollaboratorExists) as exc:
            add_collaborator(project, "user-1", "manager")
        assert "already a collaborator" in str(exc.value)
        assert len(project["collaborators"]) == 1

    def test_owner_cannot_be_added(self):
        project = make_project()
        with pytest.raises(CollaboratorExists):
            add_collaborator(project, "owner-1", "viewer")
        assert project["collaborators"] == []


class TestRemoveCollaborator:
    def test_removes_existing(self):
        project = make_project()
        add_collaborator(project, "user-1")
        add_collaborator(project, "user-2")
        assert remove_collaborator(project, "user-1") is True
        assert [c["user"] for c in project["collaborators"]] == ["user-2"]

    def test_absent_is_not_an_error(self):
        project = make_project()
        assert remove_collaborator(project, "nobody") is False
        assert project["collaborators"] == []
