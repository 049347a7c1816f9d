"""
projectcam/routes_photos.py

Photo upload, listing, metadata, comments, likes, annotations and download.

Security guarantees:
- Listing and uploading go through require_project_permission on the
  project in the path
- Single-photo endpoints load the photo, then its project, and check the
  caller's standing on that project
- Edit/delete follow the creator override: the uploader keeps edit and
  delete rights on their own photo regardless of project flags
- Public photos are readable without a token
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse

from projectcam import store
from projectcam.auth_context import AuthContext, optional_auth_context, require_auth_context
from projectcam.config import IS_DEV, MAX_FILES_PER_UPLOAD
from projectcam.db import DB_ERRORS, commit, get_db_connection
from projectcam.dependencies import ProjectRequest, authorize_project, load_for_update, require_project_permission
from projectcam.models import (
    Annotation,
    Comment,
    Like,
    Photo,
    PhotoPhase,
    Reply,
    TimelineType,
    to_document,
)
from projectcam.permissions import ProjectPermission, can_delete_photo, can_edit_photo, can_view_photo, can_view_project
from projectcam.realtime import EventType, hub
from projectcam.schemas import (
    AnnotationCreateRequest,
    CommentCreateRequest,
    PhotoUpdateRequest,
    ReplyCreateRequest,
    split_tags,
)
from projectcam.storage import StoredFile, UploadRejected, delete_file, resolve_path, save_upload
from projectcam.timeline import append_timeline
from projectcam.views import load_users, photo_views, populate_annotations, populate_comments, populate_likes

router = APIRouter(
    prefix="/photos",
    tags=["photos"],
)

PHOTO_NOT_FOUND = "Photo not found"
PHOTO_ACCESS_DENIED = "Access denied to this photo"

# Client-selectable sort keys -> promoted columns
SORT_COLUMNS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "title": "title",
    "file_size": "file_size",
    "phase": "phase",
    "room": "room",
}


def _db_error(action: str, e: Exception):
    print(f"[PHOTOS] DB error on {action}: {e}")
    return HTTPException(status_code=500, detail="Database error")


def _form_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def _load_photo(conn: Any, photo_id: str, for_update: bool = False) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """
    Photo plus its project (None if the project is gone).

    Raises:
        HTTPException(404): no such photo
    """
    if for_update:
        photo = load_for_update(conn, store.PHOTOS, photo_id, PHOTO_NOT_FOUND)
    else:
        photo = store.get(conn, store.PHOTOS, photo_id)
        if not photo:
            raise HTTPException(status_code=404, detail=PHOTO_NOT_FOUND)
    project = store.get(conn, store.PROJECTS, photo["project"])
    return photo, project


def _require_member(project: Optional[Dict[str, Any]], ctx: AuthContext) -> Dict[str, Any]:
    if project is None or not can_view_project(project, ctx.user_id):
        raise HTTPException(status_code=403, detail=PHOTO_ACCESS_DENIED)
    return project


def _discard(stored: List[StoredFile]) -> None:
    # Files written for a request whose rows were never committed
    for f in stored:
        delete_file(f.filename)


def _populated(conn: Any, photo: Dict[str, Any]) -> Dict[str, Any]:
    return photo_views(conn, [photo])[0]


# ---------------------------------------------------------
# Listing & upload
# ---------------------------------------------------------
@router.get("/project/{project_id}")
def list_project_photos(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    phase: Optional[PhotoPhase] = Query(None),
    tags: Optional[str] = Query(None, max_length=500, description="Comma-separated; matches any"),
    search: Optional[str] = Query(None, max_length=200),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    req: ProjectRequest = Depends(require_project_permission()),
):
    """
    Photos of one project, filtered and paginated.

    Returns:
        {photos, total_pages, current_page, total}
    """
    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by: {sort_by}")
    if sort_order.lower() not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail=f"Invalid sort_order: {sort_order}")

    clauses = ["project_id = :project_id"]
    params: Dict[str, Any] = {"project_id": req.project["id"]}
    if phase is not None:
        clauses.append("phase = :phase")
        params["phase"] = phase.value
    tag_list = split_tags(tags)
    if tag_list:
        in_sql, in_params = store.in_clause("tag", tag_list)
        clauses.append(f"id IN (SELECT doc_id FROM {store.PHOTOS.side_table('tags')} WHERE value IN {in_sql})")
        params.update(in_params)
    if search and search.strip():
        search_sql, search_params = store.search_clause("search", search)
        clauses.append(search_sql)
        params.update(search_params)
    where = " AND ".join(clauses)

    try:
        with get_db_connection() as conn:
            total = store.count(conn, store.PHOTOS, where, params)
            photos = store.find(
                conn, store.PHOTOS, where, params,
                order_by=f"{column} {sort_order.upper()}, id",
                limit=limit,
                offset=(page - 1) * limit,
            )
            views = photo_views(conn, photos)
    except DB_ERRORS as e:
        raise _db_error("list", e)

    return {
        "photos": views,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "total": total,
    }


@router.post("/upload/{project_id}", status_code=201)
def upload_photos(
    photos: List[UploadFile] = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    phase: Optional[str] = Form(None),
    room: Optional[str] = Form(None),
    is_before_photo: Optional[str] = Form(None),
    is_after_photo: Optional[str] = Form(None),
    req: ProjectRequest = Depends(require_project_permission(ProjectPermission.CAN_UPLOAD.value)),
):
    """
    Store up to MAX_FILES_PER_UPLOAD files and create one photo per file.

    Files are validated and written sequentially; any rejection removes the
    files already written. The photo documents, the project's photo list and
    one timeline entry per photo are committed in a single transaction.

    Raises:
        HTTPException(400): no files, too many files, bad type/size, bad phase
        HTTPException(403): caller lacks can_upload
    """
    files = [f for f in photos if f.filename]
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise HTTPException(status_code=400, detail=f"Too many files (max {MAX_FILES_PER_UPLOAD})")
    try:
        photo_phase = PhotoPhase(phase) if phase else PhotoPhase.other
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid phase: {phase}")

    stored: List[StoredFile] = []
    try:
        for upload in files:
            stored.append(save_upload(upload))
    except UploadRejected as e:
        _discard(stored)
        print(f"[PHOTOS] Upload rejected for project_id={req.project['id']}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        _discard(stored)
        print(f"[PHOTOS] Upload write failed for project_id={req.project['id']}: {e}")
        raise HTTPException(status_code=500, detail="File storage error")

    project_id = req.project["id"]
    user_id = req.ctx.user_id
    docs = [
        to_document(
            Photo(
                filename=f.filename,
                original_name=f.original_name,
                url=f.url,
                file_size=f.size,
                mime_type=f.mime_type,
                project=project_id,
                uploaded_by=user_id,
                title=title or f.original_name,
                description=description,
                tags=split_tags(tags),
                phase=photo_phase,
                room=room,
                is_before_photo=_form_flag(is_before_photo),
                is_after_photo=_form_flag(is_after_photo),
            )
        )
        for f in stored
    ]

    try:
        with get_db_connection() as conn:
            project = load_for_update(conn, store.PROJECTS, project_id, "Project not found")
            for doc in docs:
                store.insert(conn, store.PHOTOS, doc)
                project.setdefault("photos", []).append(doc["id"])
                append_timeline(
                    project,
                    "Photo Uploaded",
                    f'Photo "{doc["title"]}" was uploaded',
                    user_id,
                    TimelineType.photo,
                )
            store.save(conn, store.PROJECTS, project)
            commit(conn)
            views = photo_views(conn, docs)
    except HTTPException:
        _discard(stored)
        raise
    except DB_ERRORS as e:
        _discard(stored)
        raise _db_error("upload", e)

    print(f"[PHOTOS] Uploaded {len(docs)} photo(s) to project_id={project_id} by user_id={user_id}")
    hub.publish(project_id, EventType.PHOTO_ADDED, {"photos": views, "uploaded_by": user_id})
    return {"message": "Photos uploaded successfully", "photos": views}


# ---------------------------------------------------------
# Single photo
# ---------------------------------------------------------
@router.get("/{photo_id}")
def get_photo(photo_id: str, ctx: Optional[AuthContext] = Depends(optional_auth_context)):
    """
    One photo with users populated; counts as a view.

    Members of the photo's project may read it; public photos are readable
    by anyone, with or without a token.
    """
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id)
            if not can_view_photo(project, photo, ctx.user_id if ctx else None):
                if ctx is None:
                    raise HTTPException(status_code=401, detail="Access token required")
                raise HTTPException(status_code=403, detail=PHOTO_ACCESS_DENIED)

            photo = load_for_update(conn, store.PHOTOS, photo_id, PHOTO_NOT_FOUND)
            photo["view_count"] = int(photo.get("view_count") or 0) + 1
            store.save(conn, store.PHOTOS, photo)
            commit(conn)
            view = _populated(conn, photo)
    except DB_ERRORS as e:
        raise _db_error("get", e)
    return {"photo": view}


@router.put("/{photo_id}")
def update_photo(photo_id: str, body: PhotoUpdateRequest, ctx: AuthContext = Depends(require_auth_context)):
    changes = body.model_dump(exclude_unset=True, mode="json")
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            if project is None or not can_edit_photo(project, photo, ctx.user_id):
                raise HTTPException(status_code=403, detail="Permission denied to edit this photo")

            for key, value in changes.items():
                if key == "tags":
                    photo["tags"] = value or []
                elif key in ("is_before_photo", "is_after_photo", "is_public", "phase"):
                    if value is not None:
                        photo[key] = value
                else:
                    photo[key] = value

            store.save(conn, store.PHOTOS, photo)
            commit(conn)
            view = _populated(conn, photo)
    except DB_ERRORS as e:
        raise _db_error("update", e)

    if IS_DEV:
        print(f"[PHOTOS] Updated photo_id={photo_id} fields={sorted(changes)} by user_id={ctx.user_id}")
    hub.publish(photo["project"], EventType.PHOTO_UPDATED, {"photo": view})
    return {"message": "Photo updated successfully", "photo": view}


@router.delete("/{photo_id}")
def delete_photo(photo_id: str, ctx: AuthContext = Depends(require_auth_context)):
    """Remove the photo, pull it from its project and delete the stored file."""
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            if project is None or not can_delete_photo(project, photo, ctx.user_id):
                raise HTTPException(status_code=403, detail="Permission denied to delete this photo")

            project = store.get(conn, store.PROJECTS, project["id"], for_update=True)
            project["photos"] = [p for p in project.get("photos") or [] if p != photo_id]
            store.save(conn, store.PROJECTS, project)
            store.delete(conn, store.PHOTOS, photo_id)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("delete", e)

    delete_file(photo.get("filename"))
    print(f"[PHOTOS] Deleted photo_id={photo_id} by user_id={ctx.user_id}")
    hub.publish(photo["project"], EventType.PHOTO_DELETED, {"photo_id": photo_id})
    return {"message": "Photo deleted successfully"}


# ---------------------------------------------------------
# Comments & replies
# ---------------------------------------------------------
@router.post("/{photo_id}/comments")
def add_comment(photo_id: str, body: CommentCreateRequest, ctx: AuthContext = Depends(require_auth_context)):
    """Members may comment; collaborators also need can_comment."""
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            authorize_project(_require_member(project, ctx), ctx, ProjectPermission.CAN_COMMENT.value)

            comment = to_document(Comment(user=ctx.user_id, text=body.text, mentions=body.mentions))
            photo.setdefault("comments", []).append(comment)
            store.save(conn, store.PHOTOS, photo)
            commit(conn)

            users = load_users(conn, [c.get("user") for c in photo["comments"]])
            comments = populate_comments(photo["comments"], users)
    except DB_ERRORS as e:
        raise _db_error("comment", e)

    if IS_DEV:
        print(f"[PHOTOS] Comment {comment['id']} on photo_id={photo_id} by user_id={ctx.user_id}")
    hub.publish(photo["project"], EventType.COMMENT_ADDED, {"photo_id": photo_id, "comment": comments[-1]})
    return {"message": "Comment added successfully", "comments": comments}


@router.post("/{photo_id}/comments/{comment_id}/replies")
def add_reply(
    photo_id: str,
    comment_id: str,
    body: ReplyCreateRequest,
    ctx: AuthContext = Depends(require_auth_context),
):
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            authorize_project(_require_member(project, ctx), ctx, ProjectPermission.CAN_COMMENT.value)

            comment = next((c for c in photo.get("comments") or [] if c.get("id") == comment_id), None)
            if comment is None:
                raise HTTPException(status_code=404, detail="Comment not found")

            reply = to_document(Reply(user=ctx.user_id, text=body.text))
            comment.setdefault("replies", []).append(reply)
            comment["updated_at"] = store.now_iso()
            store.save(conn, store.PHOTOS, photo)
            commit(conn)

            users = load_users(conn, [comment.get("user")] + [r.get("user") for r in comment["replies"]])
            populated = populate_comments([comment], users)[0]
    except DB_ERRORS as e:
        raise _db_error("reply", e)

    hub.publish(
        photo["project"],
        EventType.REPLY_ADDED,
        {"photo_id": photo_id, "comment_id": comment_id, "reply": populated["replies"][-1]},
    )
    return {"message": "Reply added successfully", "comment": populated}


# ---------------------------------------------------------
# Likes & annotations
# ---------------------------------------------------------
@router.post("/{photo_id}/like")
def toggle_like(photo_id: str, ctx: AuthContext = Depends(require_auth_context)):
    """Like if the caller has not liked the photo yet, otherwise unlike."""
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            _require_member(project, ctx)

            likes = photo.get("likes") or []
            remaining = [like for like in likes if like.get("user") != ctx.user_id]
            liked = len(remaining) == len(likes)
            if liked:
                remaining.append(to_document(Like(user=ctx.user_id)))
            photo["likes"] = remaining
            store.save(conn, store.PHOTOS, photo)
            commit(conn)

            users = load_users(conn, [like.get("user") for like in remaining])
            populated = populate_likes(remaining, users)
    except DB_ERRORS as e:
        raise _db_error("like", e)

    hub.publish(
        photo["project"],
        EventType.LIKE_TOGGLED,
        {"photo_id": photo_id, "user_id": ctx.user_id, "liked": liked, "like_count": len(remaining)},
    )
    return {"message": "Like toggled successfully", "liked": liked, "likes": populated}


@router.post("/{photo_id}/annotations")
def add_annotation(photo_id: str, body: AnnotationCreateRequest, ctx: AuthContext = Depends(require_auth_context)):
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            _require_member(project, ctx)

            annotation = to_document(
                Annotation(
                    type=body.type,
                    coordinates=body.coordinates,
                    text=body.text,
                    color=body.color,
                    stroke_width=body.stroke_width,
                    created_by=ctx.user_id,
                )
            )
            photo.setdefault("annotations", []).append(annotation)
            store.save(conn, store.PHOTOS, photo)
            commit(conn)

            users = load_users(conn, [a.get("created_by") for a in photo["annotations"]])
            annotations = populate_annotations(photo["annotations"], users)
    except DB_ERRORS as e:
        raise _db_error("annotation", e)

    hub.publish(photo["project"], EventType.ANNOTATION_ADDED, {"photo_id": photo_id, "annotation": annotations[-1]})
    return {"message": "Annotation added successfully", "annotations": annotations}


# ---------------------------------------------------------
# Download
# ---------------------------------------------------------
@router.get("/{photo_id}/download")
def download_photo(photo_id: str, ctx: AuthContext = Depends(require_auth_context)):
    """Stream the stored file as an attachment; counts as a download."""
    try:
        with get_db_connection() as conn:
            photo, project = _load_photo(conn, photo_id, for_update=True)
            _require_member(project, ctx)

            path = resolve_path(photo["filename"])
            if not path.is_file():
                print(f"[PHOTOS] Stored file missing for photo_id={photo_id}: {photo['filename']}")
                raise HTTPException(status_code=404, detail="File not found")

            photo["download_count"] = int(photo.get("download_count") or 0) + 1
            store.save(conn, store.PHOTOS, photo)
            commit(conn)
    except DB_ERRORS as e:
        raise _db_error("download", e)

    return FileResponse(
        path,
        media_type=photo.get("mime_type") or "application/octet-stream",
        filename=photo.get("original_name") or photo["filename"],
    )
