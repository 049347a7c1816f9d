"""
projectcam/schemas.py

Request schemas for the auth, project, photo and user endpoints.
Input is trimmed and validated here; invalid input becomes a 400.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, validator

from projectcam.models import (
    Address,
    AnnotationCoordinates,
    AnnotationType,
    CollaboratorRole,
    CustomField,
    PhotoPhase,
    ProjectStatus,
    Trade,
    UserRole,
)


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


def split_tags(value: Union[str, List[str], None]) -> List[str]:
    """Accept "a, b" or ["a", "b"]; drop blanks."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else value
    return [str(p).strip() for p in parts if str(p).strip()]


# ========================================================================
# AUTH
# ========================================================================

class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6, max_length=256)
    company: str = Field(..., min_length=1, max_length=200)
    trade: Trade
    phone: Optional[str] = Field(None, max_length=50)

    @validator("first_name", "last_name", "company", "phone", pre=True)
    def trim_text(cls, v):
        return _strip(v)

    @validator("email", pre=True)
    def normalize_email(cls, v):
        """Emails are stored lowercased so uniqueness is case-insensitive."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @validator("email")
    def validate_email(cls, v):
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("email must be a valid address")
        return v


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @validator("email", pre=True)
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


# ========================================================================
# PROJECTS
# ========================================================================

class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    address: Address
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    estimated_completion: Optional[str] = None
    budget: Optional[float] = Field(None, ge=0)
    tags: List[str] = Field(default_factory=list)
    custom_fields: List[CustomField] = Field(default_factory=list)

    @validator("name", pre=True)
    def trim_name(cls, v):
        return _strip(v)

    @validator("name")
    def validate_name_non_empty(cls, v):
        if not v:
            raise ValueError("name must not be empty")
        return v

    @validator("tags", pre=True)
    def normalize_tags(cls, v):
        return split_tags(v)


class AddressUpdate(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class SettingsUpdate(BaseModel):
    is_public: Optional[bool] = None
    allow_guest_uploads: Optional[bool] = None
    require_approval: Optional[bool] = None
    auto_backup: Optional[bool] = None


class ProjectUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged, address/settings merge."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    address: Optional[AddressUpdate] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    estimated_completion: Optional[str] = None
    budget: Optional[float] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    custom_fields: Optional[List[CustomField]] = None
    settings: Optional[SettingsUpdate] = None

    @validator("name", pre=True)
    def trim_name(cls, v):
        return _strip(v)

    @validator("tags", pre=True)
    def normalize_tags(cls, v):
        if v is None:
            return None
        return split_tags(v)


class CollaboratorAddRequest(BaseModel):
    email: str = Field(..., min_length=3)
    role: CollaboratorRole = CollaboratorRole.viewer
    permissions: Dict[str, Optional[bool]] = Field(default_factory=dict)

    @validator("email", pre=True)
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class ChecklistItemInput(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    due_date: Optional[str] = None


class ChecklistCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    items: List[ChecklistItemInput] = Field(default_factory=list)


class ChecklistItemUpdateRequest(BaseModel):
    completed: Optional[bool] = None
    text: Optional[str] = Field(None, min_length=1, max_length=500)
    due_date: Optional[str] = None


# ========================================================================
# PHOTOS
# ========================================================================

class PhotoUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = Field(None, max_length=5000)
    tags: Optional[List[str]] = None
    phase: Optional[PhotoPhase] = None
    room: Optional[str] = Field(None, max_length=100)
    is_before_photo: Optional[bool] = None
    is_after_photo: Optional[bool] = None
    is_public: Optional[bool] = None

    @validator("tags", pre=True)
    def normalize_tags(cls, v):
        if v is None:
            return None
        return split_tags(v)


class CommentCreateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    mentions: List[str] = Field(default_factory=list)

    @validator("text", pre=True)
    def trim_text(cls, v):
        return _strip(v)


class ReplyCreateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)

    @validator("text", pre=True)
    def trim_text(cls, v):
        return _strip(v)


class AnnotationCreateRequest(BaseModel):
    type: AnnotationType
    coordinates: AnnotationCoordinates
    text: Optional[str] = Field(None, max_length=1000)
    color: str = Field("#ff0000", max_length=32)
    stroke_width: float = Field(2, gt=0, le=100)


# ========================================================================
# USERS
# ========================================================================

class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    company: Optional[str] = Field(None, min_length=1, max_length=200)
    trade: Optional[Trade] = None
    phone: Optional[str] = Field(None, max_length=50)

    @validator("first_name", "last_name", "company", "phone", pre=True)
    def trim_text(cls, v):
        return _strip(v)


class UserStatusUpdateRequest(BaseModel):
    is_active: bool


class UserRoleUpdateRequest(BaseModel):
    role: UserRole
