"""
projectcam/routes_auth.py

Registration, login and current-user endpoints.

Login failures for an unknown email and a wrong password are
indistinguishable to the client.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from projectcam import store
from projectcam.auth_context import AuthContext, create_access_token, hash_password, require_auth_context, verify_password
from projectcam.config import IS_DEV
from projectcam.db import DB_ERRORS, INTEGRITY_ERRORS, begin_write, commit, get_db_connection
from projectcam.models import User, to_document
from projectcam.schemas import LoginRequest, RegisterRequest
from projectcam.views import public_user

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)

INVALID_CREDENTIALS = "Invalid email or password"
DUPLICATE_EMAIL = "User with this email already exists"


@router.post("/register", status_code=201)
def register(req: RegisterRequest):
    """
    Create a user account and return a token for it.

    Raises:
        HTTPException(400): email already registered (case-insensitive)
        HTTPException(500): database error
    """
    email_norm = req.email
    if IS_DEV:
        print(f"[AUTH] Register attempt: email={email_norm!r}")

    user = to_document(
        User(
            first_name=req.first_name,
            last_name=req.last_name,
            email=email_norm,
            password_hash=hash_password(req.password),
            company=req.company,
            trade=req.trade,
            phone=req.phone or None,
        )
    )

    try:
        with get_db_connection() as conn:
            begin_write(conn)
            if store.count(conn, store.USERS, "email = :email", {"email": email_norm}):
                raise HTTPException(status_code=400, detail=DUPLICATE_EMAIL)
            store.insert(conn, store.USERS, user)
            commit(conn)
    except INTEGRITY_ERRORS as e:
        # Lost a race against a concurrent register for the same email
        print(f"[AUTH] IntegrityError on register: {e}, email={email_norm!r}")
        raise HTTPException(status_code=400, detail=DUPLICATE_EMAIL)
    except DB_ERRORS as e:
        print(f"[AUTH] DB error on register: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    print(f"[AUTH] Registered user_id={user['id']}")
    return {
        "message": "User registered successfully",
        "token": create_access_token(user["id"], user["email"]),
        "user": public_user(user),
    }


@router.post("/login")
def login(req: LoginRequest):
    """
    Exchange credentials for a token.

    The password is checked before the account status, so only someone who
    knows the password learns that an account is deactivated.
    """
    try:
        with get_db_connection() as conn:
            found = store.find(conn, store.USERS, "email = :email", {"email": req.email}, limit=1)
            user = found[0] if found else None

            if user is None or not verify_password(req.password, user.get("password_hash", "")):
                print("[AUTH] Login rejected: bad credentials")
                raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

            if not user.get("is_active", True):
                print(f"[AUTH] Login rejected: user_id={user['id']} is deactivated")
                raise HTTPException(status_code=401, detail="Account is deactivated. Please contact support.")

            begin_write(conn)
            user["last_login"] = store.now_iso()
            store.save(conn, store.USERS, user)
            commit(conn)
    except DB_ERRORS as e:
        print(f"[AUTH] DB error on login: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    if IS_DEV:
        print(f"[AUTH] Login ok: user_id={user['id']}")
    return {
        "message": "Login successful",
        "token": create_access_token(user["id"], user["email"]),
        "user": public_user(user),
    }


@router.get("/me")
def me(ctx: AuthContext = Depends(require_auth_context)):
    try:
        with get_db_connection() as conn:
            user = store.get(conn, store.USERS, ctx.user_id)
    except DB_ERRORS as e:
        print(f"[AUTH] DB error loading current user: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": public_user(user)}
