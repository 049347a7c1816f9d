# projectcam/db.py
# Database abstraction layer supporting PostgreSQL (production) and SQLite (dev)
#
# Queries use named parameters (:name) which both sqlite3 and SQLAlchemy's
# text() understand, so the same SQL runs on either engine.

import sqlite3
from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, List, Optional, Tuple
from urllib.parse import urlparse

from projectcam.config import DATABASE_PATH, DATABASE_URL, IS_DEV, IS_POSTGRES


# Exceptions handlers map to "Database error" (500)
DB_ERRORS: Tuple[type, ...] = (sqlite3.Error,)
# Unique-constraint violations (e.g. duplicate email on a concurrent register)
INTEGRITY_ERRORS: Tuple[type, ...] = (sqlite3.IntegrityError,)

# Global engine (SQLAlchemy) or None for SQLite
_engine = None


def init_engine() -> None:
    """Initialize SQLAlchemy engine for PostgreSQL if DATABASE_URL is set."""
    global _engine, DB_ERRORS, INTEGRITY_ERRORS

    if not IS_POSTGRES:
        # SQLite mode - no engine needed
        _engine = None
        print("[DB] Using SQLite (local dev mode)")
        return

    from sqlalchemy import create_engine, pool
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError

    DB_ERRORS = (sqlite3.Error, SQLAlchemyError)
    INTEGRITY_ERRORS = (sqlite3.IntegrityError, IntegrityError)

    # Parse and validate URL
    parsed = urlparse(DATABASE_URL)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid DATABASE_URL: {DATABASE_URL[:20]}...")

    _engine = create_engine(
        DATABASE_URL,
        poolclass=pool.QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        echo=False,
    )

    print(f"[DB] Using PostgreSQL ({parsed.hostname})")


def sqlite_path() -> str:
    return str(FsPath(__file__).resolve().parent / DATABASE_PATH)


@contextmanager
def get_db_connection() -> Generator[Any, None, None]:
    """
    Context manager for database connections.
    Yields sqlite3.Connection for SQLite or sqlalchemy.Connection for Postgres.
    Uncommitted work is rolled back when the block exits.
    """
    if IS_POSTGRES:
        if _engine is None:
            init_engine()

        with _engine.connect() as conn:
            yield conn
    else:
        conn = sqlite3.connect(sqlite_path(), timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()


def execute_query(conn: Any, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """
    Execute a query with named parameters.

    Returns:
        Cursor (SQLite) or CursorResult (PostgreSQL); both expose rowcount
    """
    if IS_POSTGRES:
        from sqlalchemy import text

        return conn.execute(text(query), params or {})
    cur = conn.cursor()
    return cur.execute(query, params or {})


def fetch_all(conn: Any, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    result = execute_query(conn, query, params)
    if IS_POSTGRES:
        return [dict(row) for row in result.mappings().all()]
    return [dict(row) for row in result.fetchall()]


def fetch_one(conn: Any, query: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(conn, query, params)
    return rows[0] if rows else None


def begin_write(conn: Any) -> None:
    """
    Open a write transaction before a read-modify-write cycle.

    SQLite takes the RESERVED lock up front so concurrent writers serialize;
    PostgreSQL relies on SELECT ... FOR UPDATE issued by the store instead.
    """
    if not IS_POSTGRES:
        conn.execute("BEGIN IMMEDIATE")


def commit(conn: Any) -> None:
    conn.commit()


# Initialize engine on module import if Postgres mode
if IS_POSTGRES and _engine is None:
    init_engine()
elif IS_DEV:
    print(f"[DB] SQLite file: {sqlite_path()}")
