#!/usr/bin/env python3
"""Set a user's roles (idempotent). Refuses to remove the last admin.

Usage:
  python scripts/set_user_roles.py --username jane --roles admin,editor
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.cms.accounts import find_user_by_username  # noqa: E402
from app.cms.constants import Role  # noqa: E402
from app.cms.errors import CmsError  # noqa: E402
from app.cms.rbac import change_user_roles, roles_for_user  # noqa: E402
from scripts._db_utils import script_database_url, script_session  # noqa: E402


def parse_roles(raw: str) -> list[Role]:
    roles: list[Role] = []
    for name in (raw or "").split(","):
        name = name.strip().upper()
        if not name:
            continue
        if name not in Role.__members__:
            raise SystemExit(f"Unknown role: {name.lower()} (expected one of: admin, editor, user)")
        roles.append(Role[name])
    return roles


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--username", required=True, help="Username whose roles to set")
    parser.add_argument("--roles", default="", help="Comma-separated roles; empty removes all")
    args = parser.parse_args(argv)

    roles = parse_roles(args.roles)
    try:
        with script_session(script_database_url()) as s:
            user = find_user_by_username(s, args.username)
            if user is None:
                print(f"User not found: {args.username}")
                return 1
            change_user_roles(s, user.id, roles)
            final = sorted(r.name.lower() for r in roles_for_user(s, user.id))
    except CmsError as e:
        print(f"Refused: {e.message}")
        return 2
    print(f"Roles for {args.username}: {', '.join(final) or '(none)'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
