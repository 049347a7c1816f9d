"""
projectcam/views.py

Response shaping: strips private fields and populates user references.

Stored documents reference users by id only. Responses replace those ids
with small user summaries, loaded in one batch per response.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from projectcam import store
from projectcam.derived import completion_percentage, file_type, format_file_size, full_address

SUMMARY_FIELDS = ("id", "first_name", "last_name", "company", "trade", "avatar")
PHOTO_SUMMARY_FIELDS = ("id", "filename", "url", "thumbnail_url", "uploaded_by", "created_at", "tags", "phase")


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """User document without credentials."""
    return {k: v for k, v in user.items() if k != "password_hash"}


def user_summary(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {k: user.get(k) for k in SUMMARY_FIELDS}


def load_users(conn: Any, ids: Iterable[Optional[str]]) -> Dict[str, Dict[str, Any]]:
    return store.find_by_ids(conn, store.USERS, [i for i in ids if i])


def _ref(users: Dict[str, Dict[str, Any]], user_id: Optional[str]) -> Any:
    # Dangling references stay as the bare id
    if not user_id:
        return user_id
    return user_summary(users.get(user_id)) or user_id


# ---------------------------------------------------------
# Projects
# ---------------------------------------------------------
def project_user_ids(project: Dict[str, Any]) -> List[str]:
    ids = [project.get("owner")]
    ids += [c.get("user") for c in project.get("collaborators") or []]
    ids += [cl.get("created_by") for cl in project.get("checklists") or []]
    return [i for i in ids if i]


def project_view(
    project: Dict[str, Any],
    users: Dict[str, Dict[str, Any]],
    photos: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Populated project for responses.

    ``photos`` replaces the stored id list with photo summaries when given;
    otherwise the ids are returned as stored.
    """
    view = dict(project)
    view["owner"] = _ref(users, project.get("owner"))
    view["collaborators"] = [
        {**c, "user": _ref(users, c.get("user"))} for c in project.get("collaborators") or []
    ]
    view["checklists"] = [
        {**cl, "created_by": _ref(users, cl.get("created_by"))} for cl in project.get("checklists") or []
    ]
    if photos is not None:
        view["photos"] = [{k: p.get(k) for k in PHOTO_SUMMARY_FIELDS} for p in photos]
    view["completion_percentage"] = completion_percentage(project.get("checklists"))
    view["full_address"] = full_address(project.get("address"))
    return view


def project_views(conn: Any, projects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids: List[str] = []
    for project in projects:
        ids += project_user_ids(project)
    users = load_users(conn, ids)
    return [project_view(p, users) for p in projects]


# ---------------------------------------------------------
# Photos
# ---------------------------------------------------------
def photo_user_ids(photo: Dict[str, Any]) -> List[str]:
    ids = [photo.get("uploaded_by")]
    for comment in photo.get("comments") or []:
        ids.append(comment.get("user"))
        ids += [r.get("user") for r in comment.get("replies") or []]
    ids += [like.get("user") for like in photo.get("likes") or []]
    ids += [a.get("created_by") for a in photo.get("annotations") or []]
    return [i for i in ids if i]


def populate_comments(comments: List[Dict[str, Any]], users: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            **c,
            "user": _ref(users, c.get("user")),
            "replies": [{**r, "user": _ref(users, r.get("user"))} for r in c.get("replies") or []],
        }
        for c in comments
    ]


def populate_likes(likes: List[Dict[str, Any]], users: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**like, "user": _ref(users, like.get("user"))} for like in likes]


def populate_annotations(annotations: List[Dict[str, Any]], users: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**a, "created_by": _ref(users, a.get("created_by"))} for a in annotations]


def photo_view(photo: Dict[str, Any], users: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    view = dict(photo)
    view["uploaded_by"] = _ref(users, photo.get("uploaded_by"))
    view["comments"] = populate_comments(photo.get("comments") or [], users)
    view["likes"] = populate_likes(photo.get("likes") or [], users)
    view["annotations"] = populate_annotations(photo.get("annotations") or [], users)
    view["file_type"] = file_type(photo.get("mime_type"))
    view["formatted_file_size"] = format_file_size(int(photo.get("file_size") or 0))
    view["like_count"] = len(photo.get("likes") or [])
    view["comment_count"] = len(photo.get("comments") or [])
    return view


def photo_views(conn: Any, photos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids: List[str] = []
    for photo in photos:
        ids += photo_user_ids(photo)
    users = load_users(conn, ids)
    return [photo_view(p, users) for p in photos]
