"""
Shared pytest fixtures.

The database and upload directory are pointed at a temporary directory
BEFORE the app is imported, since config.py reads the environment once.

Run: pytest projectcam -v
"""

import os
import tempfile
import uuid

import pytest

_TEST_DIR = tempfile.mkdtemp(prefix="projectcam-test-")
os.environ["DATABASE_PATH"] = os.path.join(_TEST_DIR, "test.db")
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_DIR, "uploads")
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ.pop("DATABASE_URL", None)

from fastapi.testclient import TestClient  # noqa: E402

from projectcam.main import app  # noqa: E402
from projectcam.manage import set_role  # noqa: E402

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64 + b"\xff\xd9"
PASSWORD = "secret123"


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    """
    Factory registering a fresh user through the API.

    Returns a dict with id, email, password, token and ready-made headers.
    """
    def _register(role=None, **overrides):
        payload = {
            "first_name": "Test",
            "last_name": f"User{uuid.uuid4().hex[:6]}",
            "email": f"user-{uuid.uuid4().hex[:12]}@example.com",
            "password": PASSWORD,
            "company": "Acme Builders",
            "trade": "General Contractor",
        }
        payload.update(overrides)
        resp = client.post("/auth/register", json=payload)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        if role:
            assert set_role(payload["email"], role)
        return {
            "id": body["user"]["id"],
            "email": body["user"]["email"],
            "last_name": payload["last_name"],
            "password": payload["password"],
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _register


@pytest.fixture
def create_project(client):
    def _create(owner, **overrides):
        payload = {
            "name": "Kitchen Remodel",
            "description": "Full gut and rebuild",
            "address": {"street": "12 Oak St", "city": "Springfield", "state": "IL", "zip_code": "62701"},
        }
        payload.update(overrides)
        resp = client.post("/projects", json=payload, headers=owner["headers"])
        assert resp.status_code == 201, resp.text
        return resp.json()["project"]

    return _create


@pytest.fixture
def add_collaborator(client):
    def _add(owner, project, user, role="viewer", permissions=None):
        resp = client.post(
            f"/projects/{project['id']}/collaborators",
            json={"email": user["email"], "role": role, "permissions": permissions or {}},
            headers=owner["headers"],
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["collaborators"]

    return _add


@pytest.fixture
def upload(client):
    """Factory posting files to the upload endpoint; returns the raw response."""
    def _upload(user, project, files=None, **fields):
        files = files or [("photos", ("site.jpg", JPEG_BYTES, "image/jpeg"))]
        return client.post(
            f"/photos/upload/{project['id']}",
            files=files,
            data=fields,
            headers=user["headers"],
        )

    return _upload


@pytest.fixture
def photo(upload):
    """Factory returning the first uploaded photo document."""
    def _photo(user, project, **fields):
        resp = upload(user, project, **fields)
        assert resp.status_code == 201, resp.text
        return resp.json()["photos"][0]

    return _photo
