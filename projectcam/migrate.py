# projectcam/migrate.py
# Database migration module for PostgreSQL and SQLite
# Run: python -m projectcam.migrate

from projectcam.db import IS_POSTGRES, commit, execute_query, get_db_connection
from projectcam.store import COLLECTIONS, schema_statements


def run_migrations() -> None:
    """
    Create collection tables, side tables and named indexes (idempotent).
    Safe to run multiple times; the app runs it on startup.
    """
    print(f"[MIGRATION] Ensuring document collections ({'PostgreSQL' if IS_POSTGRES else 'SQLite'})")

    with get_db_connection() as conn:
        for collection in COLLECTIONS:
            for stmt in schema_statements(collection):
                execute_query(conn, stmt)
            print(f"[MIGRATION] Ensured collection {collection.name} and indexes")
        commit(conn)


if __name__ == "__main__":
    run_migrations()
