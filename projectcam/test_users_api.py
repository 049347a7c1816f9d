"""
projectcam/test_users_api.py

User search, profiles, admin account management, stats, activity and avatars.

Run:
    pytest projectcam/test_users_api.py -v
"""

import os

from fastapi import HTTPException

from projectcam import routes_users
from projectcam.storage import upload_root

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64 + b"\xff\xd9"


class TestSearch:
    def test_search_excludes_self_and_inactive(self, client, register):
        admin = register(role="admin")
        caller = register()
        match = register(company="Northwind Framing")
        inactive = register(company="Northwind Framing")
        client.put(f"/users/{inactive['id']}/status", json={"is_active": False}, headers=admin["headers"])

        resp = client.get("/users/search", params={"q": match["last_name"]}, headers=caller["headers"])
        assert resp.status_code == 200
        users = resp.json()["users"]
        assert [u["id"] for u in users] == [match["id"]]
        assert "password_hash" not in users[0]

        resp = client.get("/users/search", params={"q": "northwind"}, headers=caller["headers"])
        ids = {u["id"] for u in resp.json()["users"]}
        assert match["id"] in ids
        assert inactive["id"] not in ids

        resp = client.get("/users/search", params={"q": caller["last_name"]}, headers=caller["headers"])
        assert resp.json()["users"] == []

    def test_wildcards_match_literally(self, client, register):
        admin, caller = register(role="admin"), register()
        register(company="100%_Builders")

        for q in ("%%", "__"):
            resp = client.get("/users/search", params={"q": q}, headers=caller["headers"])
            assert resp.status_code == 200
            assert resp.json()["users"] == [], f"{q!r} should not match every user"

        resp = client.get("/users/search", params={"q": "0%_b"}, headers=caller["headers"])
        assert [u["company"] for u in resp.json()["users"]] == ["100%_Builders"]

        resp = client.get("/users", params={"search": "%"}, headers=admin["headers"])
        assert resp.json()["total"] == 1

    def test_short_query_rejected(self, client, register):
        user = register()
        resp = client.get("/users/search", params={"q": " a "}, headers=user["headers"])
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Search query must be at least 2 characters"


class TestAdminList:
    def test_non_admin_forbidden(self, client, register):
        user = register()
        resp = client.get("/users", headers=user["headers"])
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Insufficient permissions"

    def test_admin_lists_with_filters(self, client, register):
        admin = register(role="admin")
        target = register(trade="Plumbing")
        resp = client.get(
            "/users",
            params={"search": target["last_name"], "trade": "Plumbing", "is_active": True},
            headers=admin["headers"],
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 1
        assert body["users"][0]["id"] == target["id"]
        assert "password_hash" not in body["users"][0]


class TestProfiles:
    def test_stranger_sees_limited_profile(self, client, register):
        viewer, target = register(), register(phone="555-0100")
        resp = client.get(f"/users/{target['id']}", headers=viewer["headers"])
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert set(user) == {"id", "first_name", "last_name", "company", "trade", "avatar"}

    def test_project_partner_sees_full_profile(self, client, register, create_project, add_collaborator):
        owner, partner = register(), register()
        project = create_project(owner)
        add_collaborator(owner, project, partner)

        for caller, target in ((owner, partner), (partner, owner)):
            user = client.get(f"/users/{target['id']}", headers=caller["headers"]).json()["user"]
            assert user["email"] == target["email"]
            assert "password_hash" not in user
            assert [p["id"] for p in user["projects"]] == [project["id"]]

    def test_self_and_unknown(self, client, register):
        user = register()
        body = client.get(f"/users/{user['id']}", headers=user["headers"]).json()["user"]
        assert body["email"] == user["email"]
        assert client.get("/users/nope", headers=user["headers"]).status_code == 404

    def test_update_own_profile(self, client, register):
        user = register()
        resp = client.put(
            "/users/me",
            json={"first_name": "  Robin ", "phone": "555-0199", "trade": "Electrical"},
            headers=user["headers"],
        )
        assert resp.status_code == 200, resp.text
        updated = resp.json()["user"]
        assert updated["first_name"] == "Robin"
        assert updated["phone"] == "555-0199"
        assert updated["trade"] == "Electrical"
        assert updated["email"] == user["email"]

        resp = client.put("/users/me", json={"trade": "Astronaut"}, headers=user["headers"])
        assert resp.status_code == 400


class TestAdminStatusAndRole:
    def test_status_toggle(self, client, register):
        admin, user = register(role="admin"), register()
        resp = client.put(f"/users/{user['id']}/status", json={"is_active": False}, headers=admin["headers"])
        assert resp.json()["message"] == "User deactivated successfully"
        resp = client.put(f"/users/{user['id']}/status", json={"is_active": True}, headers=admin["headers"])
        assert resp.json()["message"] == "User activated successfully"
        assert client.get("/auth/me", headers=user["headers"]).status_code == 200

    def test_role_change_takes_effect_immediately(self, client, register):
        admin, user = register(role="admin"), register()
        assert client.get("/users", headers=user["headers"]).status_code == 403

        resp = client.put(f"/users/{user['id']}/role", json={"role": "admin"}, headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "admin"
        assert client.get("/users", headers=user["headers"]).status_code == 200

    def test_non_admin_cannot_change_status(self, client, register):
        user, other = register(), register()
        resp = client.put(f"/users/{other['id']}/status", json={"is_active": False}, headers=user["headers"])
        assert resp.status_code == 403

    def test_unknown_user(self, client, register):
        admin = register(role="admin")
        resp = client.put("/users/nope/role", json={"role": "manager"}, headers=admin["headers"])
        assert resp.status_code == 404


class TestStatsAndActivity:
    def test_stats_counts(self, client, register, create_project, add_collaborator, photo):
        owner, user = register(), register()
        own = create_project(user)
        shared = create_project(owner)
        add_collaborator(owner, shared, user, role="contributor")
        uploaded = photo(user, shared)
        photo(user, own)
        client.post(f"/photos/{uploaded['id']}/comments", json={"text": "one"}, headers=user["headers"])
        client.post(f"/photos/{uploaded['id']}/comments", json={"text": "two"}, headers=user["headers"])

        resp = client.get(f"/users/{user['id']}/stats", headers=user["headers"])
        assert resp.status_code == 200
        assert resp.json()["stats"] == {
            "total_projects": 2,
            "owned_projects": 1,
            "total_photos": 2,
            "total_comments": 2,
            "recent_activity": {"photos_last_30_days": 2, "projects_last_30_days": 1},
        }

    def test_stats_permissions(self, client, register):
        user, other, admin = register(), register(), register(role="admin")
        resp = client.get(f"/users/{user['id']}/stats", headers=other["headers"])
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Permission denied"
        assert client.get(f"/users/{user['id']}/stats", headers=admin["headers"]).status_code == 200

    def test_activity_newest_first(self, client, register, create_project, photo):
        user = register()
        project = create_project(user, name="Basement")
        uploaded = photo(user, project, title="Sump pit")

        resp = client.get(f"/users/{user['id']}/activity", headers=user["headers"])
        assert resp.status_code == 200
        activity = resp.json()["activity"]
        assert [a["type"] for a in activity] == ["photo", "project"]
        assert activity[0]["id"] == uploaded["id"]
        assert activity[0]["project"] == {"id": project["id"], "name": "Basement"}
        assert activity[1]["title"] == "Basement"

    def test_activity_permissions(self, client, register):
        user, other = register(), register()
        assert client.get(f"/users/{user['id']}/activity", headers=other["headers"]).status_code == 403


class TestAvatar:
    def test_upload_avatar_replaces_previous(self, client, register):
        user = register()
        url = f"/users/{user['id']}/avatar"
        first = client.post(url, files={"avatar": ("me.jpg", JPEG_BYTES, "image/jpeg")}, headers=user["headers"])
        assert first.status_code == 200, first.text
        first_url = first.json()["avatar"]
        assert first_url.startswith("/uploads/")

        second = client.post(url, files={"avatar": ("me2.png", b"\x89PNG fake", "image/png")}, headers=user["headers"])
        assert second.status_code == 200
        assert client.get(first_url).status_code == 404, "Old avatar file should be removed"
        me = client.get("/auth/me", headers=user["headers"]).json()["user"]
        assert me["avatar"] == second.json()["avatar"]

    def test_only_images_accepted(self, client, register):
        user = register()
        resp = client.post(
            f"/users/{user['id']}/avatar",
            files={"avatar": ("cv.pdf", b"%PDF-1.4", "application/pdf")},
            headers=user["headers"],
        )
        assert resp.status_code == 400

    def test_cannot_change_someone_elses_avatar(self, client, register):
        user, other = register(), register()
        resp = client.post(
            f"/users/{other['id']}/avatar",
            files={"avatar": ("me.jpg", JPEG_BYTES, "image/jpeg")},
            headers=user["headers"],
        )
        assert resp.status_code == 403

    def test_stored_file_removed_when_save_fails(self, client, register, monkeypatch):
        user = register()

        def missing(*args, **kwargs):
            raise HTTPException(status_code=404, detail="User not found")

        monkeypatch.setattr(routes_users, "load_for_update", missing)
        before = set(os.listdir(upload_root()))
        resp = client.post(
            f"/users/{user['id']}/avatar",
            files={"avatar": ("me.jpg", JPEG_BYTES, "image/jpeg")},
            headers=user["headers"],
        )
        assert resp.status_code == 404
        assert set(os.listdir(upload_root())) == before, "Avatar file should not outlive a failed save"
