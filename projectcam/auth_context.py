"""
projectcam/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Contains:
- hash_password / verify_password: salted PBKDF2-SHA256
- create_access_token / verify_token: HS256 JWT handling
- AuthContext: identity attached to an authenticated request
- require_auth_context: dependency that rejects unauthenticated requests
- optional_auth_context: dependency that proceeds anonymously instead

This module MUST NOT import projectcam.main to avoid circular dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from projectcam import store
from projectcam.config import ACCESS_TOKEN_DAYS, ALGORITHM, IS_DEV, PASSWORD_HASH_ITERATIONS, SECRET_KEY
from projectcam.db import get_db_connection

# auto_error=False so a missing header maps to our own 401 message
security = HTTPBearer(auto_error=False)

HASH_SCHEME = "pbkdf2_sha256"


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt>$<digest>``."""
    rounds = iterations or PASSWORD_HASH_ITERATIONS
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), rounds).hex()
    return f"{HASH_SCHEME}${rounds}${salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, rounds, salt, digest = (password_hash or "").split("$", 3)
    except ValueError:
        return False
    if scheme != HASH_SCHEME or not rounds.isdigit() or int(rounds) < 1:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(rounds)).hex()
    return hmac.compare_digest(candidate, digest)


# ---------------------------------------------------------
# JWT
# ---------------------------------------------------------
def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + (expires_delta or timedelta(days=ACCESS_TOKEN_DAYS)),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): "Token expired" or "Invalid token"
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Identity derived from a verified token plus the current user record.
    Never trust user ids from request bodies for authorization.
    """
    user_id: str
    email: str
    role: str
    first_name: str = ""
    last_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def authenticate_token(token: Optional[str]) -> AuthContext:
    """
    Resolve a raw bearer token to an AuthContext.

    Process:
    1. Reject a missing token
    2. Verify signature and expiry
    3. Load the user (source of truth) and require it to be active

    Raises:
        HTTPException(401): missing, expired or invalid token; user absent or inactive
        HTTPException(500): any other verification fault
    """
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")

    try:
        payload = verify_token(token)
        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")

        with get_db_connection() as conn:
            user = store.get(conn, store.USERS, str(user_id))
    except HTTPException:
        raise
    except Exception as e:
        print(f"[AUTH] Token verification failed: {e}")
        raise HTTPException(status_code=500, detail="Token verification failed")

    if not user or not user.get("is_active", True):
        print(f"[AUTH] Rejected token for missing/inactive user: user_id={user_id}")
        raise HTTPException(status_code=401, detail="Invalid token or user not found")

    ctx = AuthContext(
        user_id=user["id"],
        email=user["email"],
        role=user.get("role") or "worker",
        first_name=user.get("first_name", ""),
        last_name=user.get("last_name", ""),
    )
    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role}")
    return ctx


def require_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    """
    Auth dependency for protected routes.

    Usage:
        @router.get("/protected")
        def protected_route(ctx: AuthContext = Depends(require_auth_context)):
            ...
    """
    return authenticate_token(credentials.credentials if credentials else None)


def optional_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthContext]:
    """Like require_auth_context, but any verification failure yields None."""
    if not credentials:
        return None
    try:
        return authenticate_token(credentials.credentials)
    except HTTPException:
        return None
