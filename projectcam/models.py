"""
projectcam/models.py

Document shapes for the users, projects and photos collections.

Documents are stored as JSON; these models define the fields and defaults a
freshly created document carries. Route handlers build a model, dump it with
``model_dump(mode="json")`` and hand the dict to the store.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from projectcam.store import new_id, now_iso


# Enums
class UserRole(str, Enum):
    admin = "admin"
    manager = "manager"
    worker = "worker"


class Trade(str, Enum):
    general_contractor = "General Contractor"
    roofing = "Roofing"
    plumbing = "Plumbing"
    electrical = "Electrical"
    hvac = "HVAC"
    flooring = "Flooring"
    painting = "Painting"
    landscaping = "Landscaping"
    concrete = "Concrete"
    framing = "Framing"
    drywall = "Drywall"
    siding = "Siding"
    windows_doors = "Windows & Doors"
    insulation = "Insulation"
    tile_stone = "Tile & Stone"
    cabinetry = "Cabinetry"
    demolition = "Demolition"
    excavation = "Excavation"
    other = "Other"


class CollaboratorRole(str, Enum):
    viewer = "viewer"
    contributor = "contributor"
    manager = "manager"


class ProjectStatus(str, Enum):
    planning = "planning"
    active = "active"
    on_hold = "on-hold"
    completed = "completed"
    cancelled = "cancelled"


class TimelineType(str, Enum):
    milestone = "milestone"
    photo = "photo"
    comment = "comment"
    status_change = "status-change"
    user_added = "user-added"
    checklist = "checklist"


class CustomFieldType(str, Enum):
    text = "text"
    number = "number"
    date = "date"
    boolean = "boolean"


class PhotoPhase(str, Enum):
    pre_construction = "pre-construction"
    foundation = "foundation"
    framing = "framing"
    roofing = "roofing"
    electrical = "electrical"
    plumbing = "plumbing"
    insulation = "insulation"
    drywall = "drywall"
    flooring = "flooring"
    painting = "painting"
    final = "final"
    other = "other"


class PhotoStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    flagged = "flagged"


class AnnotationType(str, Enum):
    arrow = "arrow"
    circle = "circle"
    rectangle = "rectangle"
    text = "text"
    measurement = "measurement"


# Users
class User(BaseModel):
    id: str = Field(default_factory=new_id)
    first_name: str
    last_name: str
    email: str
    password_hash: str
    company: str
    trade: Trade
    phone: Optional[str] = None
    avatar: Optional[str] = None
    role: UserRole = UserRole.worker
    is_active: bool = True
    last_login: Optional[str] = None
    projects: List[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)


# Projects
class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Address(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str
    coordinates: Optional[Coordinates] = None


class CustomField(BaseModel):
    name: str
    value: str
    type: CustomFieldType = CustomFieldType.text


class CollaboratorPermissions(BaseModel):
    can_upload: bool = False
    can_comment: bool = True
    can_edit: bool = False
    can_delete: bool = False


class Collaborator(BaseModel):
    user: str
    role: CollaboratorRole = CollaboratorRole.viewer
    permissions: CollaboratorPermissions = Field(default_factory=CollaboratorPermissions)
    added_at: str = Field(default_factory=now_iso)


class ChecklistItem(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str
    completed: bool = False
    completed_by: Optional[str] = None
    completed_at: Optional[str] = None
    due_date: Optional[str] = None


class Checklist(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    items: List[ChecklistItem] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: str = Field(default_factory=now_iso)


class TimelineEntry(BaseModel):
    event: str
    description: Optional[str] = None
    date: str = Field(default_factory=now_iso)
    user: Optional[str] = None
    type: TimelineType = TimelineType.milestone


class ProjectSettings(BaseModel):
    is_public: bool = False
    allow_guest_uploads: bool = False
    require_approval: bool = False
    auto_backup: bool = True


class Project(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    address: Address
    owner: str
    collaborators: List[Collaborator] = Field(default_factory=list)
    status: ProjectStatus = ProjectStatus.planning
    start_date: str = Field(default_factory=now_iso)
    end_date: Optional[str] = None
    estimated_completion: Optional[str] = None
    budget: Optional[float] = Field(None, ge=0)
    tags: List[str] = Field(default_factory=list)
    custom_fields: List[CustomField] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list)
    checklists: List[Checklist] = Field(default_factory=list)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    created_at: str = Field(default_factory=now_iso)


# Photos
class AnnotationCoordinates(BaseModel):
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


class Annotation(BaseModel):
    id: str = Field(default_factory=new_id)
    type: AnnotationType
    coordinates: AnnotationCoordinates
    text: Optional[str] = None
    color: str = "#ff0000"
    stroke_width: float = 2
    created_by: str
    created_at: str = Field(default_factory=now_iso)


class Reply(BaseModel):
    id: str = Field(default_factory=new_id)
    user: str
    text: str
    created_at: str = Field(default_factory=now_iso)


class Comment(BaseModel):
    id: str = Field(default_factory=new_id)
    user: str
    text: str
    mentions: List[str] = Field(default_factory=list)
    replies: List[Reply] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)


class Like(BaseModel):
    user: str
    created_at: str = Field(default_factory=now_iso)


class PhotoLocation(BaseModel):
    coordinates: Optional[Coordinates] = None
    address: Optional[str] = None


class Photo(BaseModel):
    id: str = Field(default_factory=new_id)
    filename: str
    original_name: str
    url: str
    thumbnail_url: Optional[str] = None
    file_size: int
    mime_type: str
    project: str
    uploaded_by: str
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    location: Optional[PhotoLocation] = None
    annotations: List[Annotation] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    likes: List[Like] = Field(default_factory=list)
    status: PhotoStatus = PhotoStatus.approved
    is_before_photo: bool = False
    is_after_photo: bool = False
    phase: PhotoPhase = PhotoPhase.other
    room: Optional[str] = None
    is_public: bool = False
    download_count: int = 0
    view_count: int = 0
    created_at: str = Field(default_factory=now_iso)


def to_document(model: BaseModel) -> dict:
    """JSON-ready dict for the store (enums become their values)."""
    return model.model_dump(mode="json")
