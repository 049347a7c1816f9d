"""
projectcam/test_auth_api.py

Registration, login and token handling through the HTTP API.

Tests:
1. Register returns a token and never leaks the password hash
2. Duplicate emails are rejected case-insensitively
3. Unknown email and wrong password are indistinguishable
4. Deactivated accounts cannot log in or keep using old tokens
5. Missing, expired and malformed tokens map to distinct 401s
6. A corrupt stored password hash is an ordinary failed login

Run:
    pytest projectcam/test_auth_api.py -v
"""

import uuid
from datetime import timedelta

import pytest

from projectcam import store
from projectcam.auth_context import create_access_token, hash_password, verify_password
from projectcam.db import begin_write, commit, get_db_connection


def _payload(**overrides):
    payload = {
        "first_name": "Dana",
        "last_name": "Builder",
        "email": f"dana-{uuid.uuid4().hex[:10]}@example.com",
        "password": "secret123",
        "company": "Acme Builders",
        "trade": "Roofing",
    }
    payload.update(overrides)
    return payload


class TestRegister:
    def test_register_returns_token_and_public_user(self, client):
        payload = _payload(email=f"  Mixed-{uuid.uuid4().hex[:8]}@Example.COM ")
        resp = client.post("/auth/register", json=payload)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["message"] == "User registered successfully"
        assert body["token"]
        assert body["user"]["email"] == payload["email"].strip().lower()
        assert body["user"]["role"] == "worker"
        assert body["user"]["is_active"] is True
        assert "password_hash" not in body["user"], "Password hash must never be returned"

    def test_duplicate_email_case_insensitive(self, client):
        email = f"dup-{uuid.uuid4().hex[:8]}@example.com"
        assert client.post("/auth/register", json=_payload(email=email)).status_code == 201
        resp = client.post("/auth/register", json=_payload(email=email.upper()))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "User with this email already exists"

    def test_short_password_rejected(self, client):
        resp = client.post("/auth/register", json=_payload(password="12345"))
        assert resp.status_code == 400
        assert "password" in resp.json()["detail"]

    def test_unknown_trade_rejected(self, client):
        resp = client.post("/auth/register", json=_payload(trade="Wizardry"))
        assert resp.status_code == 400


class TestLogin:
    def test_login_success_updates_last_login(self, client, register):
        user = register()
        resp = client.post("/auth/login", json={"email": user["email"].upper(), "password": user["password"]})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["message"] == "Login successful"
        assert body["user"]["id"] == user["id"]
        assert body["user"]["last_login"] is not None
        assert "password_hash" not in body["user"]

    def test_wrong_password_and_unknown_email_identical(self, client, register):
        user = register()
        wrong_pw = client.post("/auth/login", json={"email": user["email"], "password": "not-it"})
        unknown = client.post("/auth/login", json={"email": "nobody-here@example.com", "password": "whatever"})
        assert wrong_pw.status_code == unknown.status_code == 401
        assert wrong_pw.json() == unknown.json() == {"detail": "Invalid email or password"}

    def test_deactivated_account(self, client, register):
        admin = register(role="admin")
        user = register()
        resp = client.put(f"/users/{user['id']}/status", json={"is_active": False}, headers=admin["headers"])
        assert resp.status_code == 200, resp.text

        resp = client.post("/auth/login", json={"email": user["email"], "password": user["password"]})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Account is deactivated. Please contact support."

        # Wrong password still gets the generic message
        resp = client.post("/auth/login", json={"email": user["email"], "password": "not-it"})
        assert resp.json()["detail"] == "Invalid email or password"

        # Previously issued tokens stop working
        resp = client.get("/auth/me", headers=user["headers"])
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token or user not found"

    def test_corrupt_stored_hash_is_a_failed_login(self, client, register):
        user = register()
        with get_db_connection() as conn:
            begin_write(conn)
            doc = store.get(conn, store.USERS, user["id"])
            doc["password_hash"] = "pbkdf2_sha256$many$salt$digest"
            store.save(conn, store.USERS, doc)
            commit(conn)

        resp = client.post("/auth/login", json={"email": user["email"], "password": user["password"]})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"


class TestPasswordHashing:
    def test_round_trip(self):
        stored = hash_password("secret123")
        assert verify_password("secret123", stored)
        assert not verify_password("secret124", stored)

    @pytest.mark.parametrize(
        "stored",
        ["", "garbage", "pbkdf2_sha256$abc$salt$digest", "pbkdf2_sha256$0$salt$digest", "md5$10$salt$digest"],
    )
    def test_malformed_hash_never_matches(self, stored):
        assert verify_password("secret123", stored) is False


class TestTokens:
    def test_me_returns_current_user(self, client, register):
        user = register()
        resp = client.get("/auth/me", headers=user["headers"])
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == user["email"]

    def test_missing_token(self, client):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Access token required"

    def test_expired_token(self, client, register):
        user = register()
        token = create_access_token(user["id"], user["email"], expires_delta=timedelta(seconds=-10))
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"

    def test_malformed_token(self, client):
        resp = client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_token_for_deleted_user(self, client):
        token = create_access_token("no-such-user", "ghost@example.com")
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token or user not found"

    def test_verification_fault_is_500(self, client, register, monkeypatch):
        user = register()

        def boom(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(store, "get", boom)
        resp = client.get("/auth/me", headers=user["headers"])
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Token verification failed"
