# projectcam/manage.py
# Operator commands
#
# Run: python -m projectcam.manage init-db
#      python -m projectcam.manage set-role admin@example.com admin

import argparse
import sys
from typing import List, Optional

from projectcam import store
from projectcam.db import begin_write, commit, get_db_connection
from projectcam.migrate import run_migrations
from projectcam.models import UserRole


def set_role(email: str, role: str) -> bool:
    """Assign an account role by email; returns False when no such user exists."""
    role = UserRole(role).value
    with get_db_connection() as conn:
        begin_write(conn)
        found = store.find(conn, store.USERS, "email = :email", {"email": email.strip().lower()}, limit=1)
        if not found:
            return False
        user = found[0]
        user["role"] = role
        store.save(conn, store.USERS, user)
        commit(conn)
    print(f"[ADMIN] Set user {user['id']} ({user['email']}) role to {role}")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="projectcam.manage", description="ProjectCam operator commands")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create collections and indexes (idempotent)")

    role_cmd = sub.add_parser("set-role", help="Set a user's account role (bootstraps the first admin)")
    role_cmd.add_argument("email")
    role_cmd.add_argument("role", choices=[r.value for r in UserRole])

    args = parser.parse_args(argv)

    if args.command == "init-db":
        run_migrations()
        return 0

    if args.command == "set-role":
        run_migrations()
        if not set_role(args.email, args.role):
            print(f"[ADMIN] No user with email {args.email!r}", file=sys.stderr)
            return 1
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
