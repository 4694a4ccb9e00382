import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.cms.accounts import create_user, find_user_by_username  # noqa: E402
from app.cms.constants import Role  # noqa: E402
from app.cms.modules.site_settings.service import create_settings, get_settings  # noqa: E402
from app.cms.rbac import roles_for_user, set_roles_for_user  # noqa: E402
from scripts._db_utils import script_database_url, script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the settings row and an admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip().lower()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me-now"
    site_name = (os.environ.get("SITE_NAME") or "My Site").strip()

    db_url = script_database_url(database_url)

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        if get_settings(s) is None:
            create_settings(s, site_name=site_name)

        user = find_user_by_username(s, admin_username)
        if user is None:
            user, duplicate = create_user(
                s,
                display_name="Administrator",
                email=admin_email,
                username=admin_username,
                password=admin_password,
                roles=[Role.ADMIN],
            )
            if duplicate or user is None:
                raise RuntimeError(f"Cannot seed admin: email {admin_email} belongs to another user.")
        else:
            roles = roles_for_user(s, user.id)
            if Role.ADMIN not in roles:
                set_roles_for_user(s, user.id, roles | {Role.ADMIN})

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
