"""
projectcam/store.py

Document store on top of the SQL connection layer in db.py.

Each collection is a table holding the JSON body of every document plus a
handful of promoted columns that queries filter and sort on. Multi-valued
fields (project members, photo tags, comment authors) are mirrored into
side tables named ``<collection>_<suffix>`` with one ``(doc_id, value)`` row
per element; they are rewritten on every save.

Filters passed to find()/count() are SQL fragments over the promoted
columns, always parameterized. ORDER BY clauses must come from code, never
from request input.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from projectcam.db import IS_POSTGRES, execute_query, fetch_all, fetch_one


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Collection:
    """Table layout for one document collection."""
    name: str
    # column -> (DDL type, extractor over the document)
    columns: Dict[str, Tuple[str, Callable[[dict], Any]]] = field(default_factory=dict)
    # side table suffix -> extractor returning the values to mirror
    side_tables: Dict[str, Callable[[dict], Iterable[str]]] = field(default_factory=dict)
    # (index name, indexed expression on this table)
    indexes: Tuple[Tuple[str, str], ...] = ()

    def side_table(self, suffix: str) -> str:
        return f"{self.name}_{suffix}"


def _lower_join(*parts: Any) -> str:
    words: List[str] = []
    for part in parts:
        if not part:
            continue
        if isinstance(part, (list, tuple)):
            words.extend(str(p) for p in part if p)
        else:
            words.append(str(part))
    return " ".join(words).lower()


USERS = Collection(
    name="users",
    columns={
        "email": ("TEXT NOT NULL UNIQUE", lambda d: d["email"]),
        "role": ("TEXT", lambda d: d.get("role")),
        "trade": ("TEXT", lambda d: d.get("trade")),
        "is_active": ("INTEGER", lambda d: 1 if d.get("is_active", True) else 0),
        "search_text": (
            "TEXT",
            lambda d: _lower_join(d.get("first_name"), d.get("last_name"), d.get("email"), d.get("company")),
        ),
    },
)

PROJECTS = Collection(
    name="projects",
    columns={
        "owner_id": ("TEXT NOT NULL", lambda d: d["owner"]),
        "status": ("TEXT", lambda d: d.get("status")),
        "search_text": ("TEXT", lambda d: _lower_join(d.get("name"), d.get("description"), d.get("tags"))),
    },
    side_tables={
        # Everyone with standing on the project, owner included
        "members": lambda d: [d["owner"]] + [c["user"] for c in d.get("collaborators", [])],
    },
    indexes=(
        ("idx_projects_owner_status", "(owner_id, status)"),
        ("idx_projects_updated", "(updated_at DESC)"),
        ("idx_projects_search", "(search_text)"),
    ),
)

PHOTOS = Collection(
    name="photos",
    columns={
        "project_id": ("TEXT NOT NULL", lambda d: d["project"]),
        "uploaded_by": ("TEXT NOT NULL", lambda d: d["uploaded_by"]),
        "phase": ("TEXT", lambda d: d.get("phase")),
        "room": ("TEXT", lambda d: d.get("room")),
        "title": ("TEXT", lambda d: d.get("title")),
        "file_size": ("INTEGER", lambda d: d.get("file_size", 0)),
        "is_public": ("INTEGER", lambda d: 1 if d.get("is_public") else 0),
        "search_text": ("TEXT", lambda d: _lower_join(d.get("title"), d.get("description"), d.get("tags"))),
    },
    side_tables={
        "tags": lambda d: d.get("tags", []),
        "comment_authors": lambda d: [c["user"] for c in d.get("comments", [])],
    },
    indexes=(
        ("idx_photos_project_created", "(project_id, created_at DESC)"),
        ("idx_photos_uploader_created", "(uploaded_by, created_at DESC)"),
        ("idx_photos_phase_room", "(phase, room)"),
    ),
)

COLLECTIONS: Tuple[Collection, ...] = (USERS, PROJECTS, PHOTOS)


# ---------------------------------------------------------
# Schema
# ---------------------------------------------------------
def schema_statements(collection: Collection) -> List[str]:
    cols = ",\n    ".join(f"{name} {ddl}" for name, (ddl, _) in collection.columns.items())
    stmts = [
        f"""
        CREATE TABLE IF NOT EXISTS {collection.name} (
            id TEXT PRIMARY KEY,
            body TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            {cols}
        )
        """
    ]
    for index_name, expr in collection.indexes:
        stmts.append(f"CREATE INDEX IF NOT EXISTS {index_name} ON {collection.name} {expr}")
    for suffix in collection.side_tables:
        table = collection.side_table(suffix)
        stmts.append(
            f"CREATE TABLE IF NOT EXISTS {table} (doc_id TEXT NOT NULL, value TEXT NOT NULL)"
        )
        stmts.append(f"CREATE INDEX IF NOT EXISTS idx_{table}_value ON {table} (value)")
        stmts.append(f"CREATE INDEX IF NOT EXISTS idx_{table}_doc ON {table} (doc_id)")
    return stmts


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def in_clause(prefix: str, values: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """Build ``(:p0, :p1, ...)`` and its params for an IN filter."""
    params = {f"{prefix}{i}": v for i, v in enumerate(values)}
    if not params:
        # IN () is invalid SQL; match nothing
        return "(NULL)", {}
    return "(" + ", ".join(f":{k}" for k in params) + ")", params


def search_clause(param: str, term: str) -> Tuple[str, Dict[str, Any]]:
    """
    Case-insensitive substring match on the ``search_text`` column.

    ``%``, ``_`` and ``\\`` in ``term`` match literally.
    """
    escaped = term.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"search_text LIKE :{param} ESCAPE '\\'", {param: f"%{escaped}%"}


def _decode(row: Optional[Dict[str, Any]]) -> Optional[dict]:
    if row is None:
        return None
    return json.loads(row["body"])


def _write_side_tables(conn: Any, collection: Collection, doc: dict) -> None:
    for suffix, extract in collection.side_tables.items():
        table = collection.side_table(suffix)
        execute_query(conn, f"DELETE FROM {table} WHERE doc_id = :doc_id", {"doc_id": doc["id"]})
        for value in extract(doc):
            execute_query(
                conn,
                f"INSERT INTO {table} (doc_id, value) VALUES (:doc_id, :value)",
                {"doc_id": doc["id"], "value": str(value)},
            )


# ---------------------------------------------------------
# CRUD
# ---------------------------------------------------------
def insert(conn: Any, collection: Collection, doc: dict) -> dict:
    """Insert a new document, assigning id and timestamps when absent."""
    now = now_iso()
    doc.setdefault("id", new_id())
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)

    names = ["id", "body", "created_at", "updated_at"] + list(collection.columns)
    params: Dict[str, Any] = {
        "id": doc["id"],
        "body": json.dumps(doc),
        "created_at": doc["created_at"],
        "updated_at": doc["updated_at"],
    }
    for name, (_, extract) in collection.columns.items():
        params[name] = extract(doc)

    execute_query(
        conn,
        f"INSERT INTO {collection.name} ({', '.join(names)}) VALUES ({', '.join(':' + n for n in names)})",
        params,
    )
    _write_side_tables(conn, collection, doc)
    return doc


def get(conn: Any, collection: Collection, doc_id: str, for_update: bool = False) -> Optional[dict]:
    query = f"SELECT body FROM {collection.name} WHERE id = :id"
    if for_update and IS_POSTGRES:
        query += " FOR UPDATE"
    return _decode(fetch_one(conn, query, {"id": doc_id}))


def save(conn: Any, collection: Collection, doc: dict) -> dict:
    """Replace a stored document with ``doc``, bumping updated_at."""
    doc["updated_at"] = now_iso()
    assignments = ["body = :body", "updated_at = :updated_at"]
    params: Dict[str, Any] = {"id": doc["id"], "body": None, "updated_at": doc["updated_at"]}
    for name, (_, extract) in collection.columns.items():
        assignments.append(f"{name} = :{name}")
        params[name] = extract(doc)
    params["body"] = json.dumps(doc)

    execute_query(conn, f"UPDATE {collection.name} SET {', '.join(assignments)} WHERE id = :id", params)
    _write_side_tables(conn, collection, doc)
    return doc


def delete(conn: Any, collection: Collection, doc_id: str) -> bool:
    result = execute_query(conn, f"DELETE FROM {collection.name} WHERE id = :id", {"id": doc_id})
    for suffix in collection.side_tables:
        execute_query(
            conn,
            f"DELETE FROM {collection.side_table(suffix)} WHERE doc_id = :doc_id",
            {"doc_id": doc_id},
        )
    return result.rowcount > 0


def find(
    conn: Any,
    collection: Collection,
    where: str = "",
    params: Optional[Dict[str, Any]] = None,
    order_by: str = "created_at DESC",
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[dict]:
    query = f"SELECT body FROM {collection.name}"
    bound = dict(params or {})
    if where:
        query += f" WHERE {where}"
    if order_by:
        query += f" ORDER BY {order_by}"
    if limit is not None:
        query += " LIMIT :_limit OFFSET :_offset"
        bound["_limit"] = limit
        bound["_offset"] = offset
    return [json.loads(row["body"]) for row in fetch_all(conn, query, bound)]


def count(conn: Any, collection: Collection, where: str = "", params: Optional[Dict[str, Any]] = None) -> int:
    query = f"SELECT COUNT(*) AS n FROM {collection.name}"
    if where:
        query += f" WHERE {where}"
    row = fetch_one(conn, query, params)
    return int(row["n"]) if row else 0


def find_by_ids(conn: Any, collection: Collection, ids: Sequence[str]) -> Dict[str, dict]:
    """Batch lookup; missing ids are simply absent from the result."""
    unique = list(dict.fromkeys(i for i in ids if i))
    if not unique:
        return {}
    clause, params = in_clause("id", unique)
    return {doc["id"]: doc for doc in find(conn, collection, f"id IN {clause}", params, order_by="")}


def count_side_values(conn: Any, collection: Collection, suffix: str, value: str) -> int:
    row = fetch_one(
        conn,
        f"SELECT COUNT(*) AS n FROM {collection.side_table(suffix)} WHERE value = :value",
        {"value": value},
    )
    return int(row["n"]) if row else 0
