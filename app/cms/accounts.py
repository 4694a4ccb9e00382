"""
User account service: create, list, read, update and soft-delete users.

Usernames are stored trimmed and lower-cased. Uniqueness of username and
email is enforced by partial unique indexes over live rows; violations are
detected from the IntegrityError, never pre-checked.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.cms.constants import MAX_ROW_ID, USERS_PER_PAGE
from app.cms.db import is_unique_violation
from app.cms.errors import Conflict, NotFound, PolicyViolation, StorageError, ValidationError, storage_errors
from app.cms.models import User, utcnow
from app.cms.rbac import LAST_ADMIN_MESSAGE, normalize_roles, set_roles_for_user, would_remove_last_admin
from app.cms.security import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_username(username: str | None) -> str:
    return (username or "").strip().lower()


def _is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def validate_profile(display_name: str, email: str, username: str) -> None:
    errors: list[str] = []
    if not display_name:
        errors.append("Display name is required.")
    elif len(display_name) > 100:
        errors.append("Display name must be at most 100 characters.")
    if not email:
        errors.append("Email is required.")
    elif len(email) > 255 or not _is_valid_email(email):
        errors.append("Email is invalid.")
    if not username:
        errors.append("Username is required.")
    elif len(username) > 100:
        errors.append("Username must be at most 100 characters.")
    if errors:
        raise ValidationError(errors)


def validate_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")


def create_user(
    s: Session,
    *,
    display_name: str,
    email: str,
    username: str,
    password: str,
    roles: Iterable[Any] = (),
) -> tuple[User | None, bool]:
    """
    Insert a user with the given roles. Returns (user, False), or (None, True)
    when the username or email is already held by a live user.
    """
    display_name = (display_name or "").strip()
    email = (email or "").strip().lower()
    username = normalize_username(username)
    validate_profile(display_name, email, username)
    validate_password(password)
    desired = normalize_roles(roles)

    with storage_errors("user create"):
        try:
            with s.begin_nested():
                user = User(
                    display_name=display_name,
                    email=email,
                    username=username,
                    password_hash=hash_password(password),
                )
                s.add(user)
                s.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                return None, True
            raise StorageError("user create failed") from e

    set_roles_for_user(s, user.id, desired)
    return user, False


def get_user(s: Session, user_id: int) -> User | None:
    """Live user by id, or None."""
    if not 1 <= user_id <= MAX_ROW_ID:
        return None
    with storage_errors("user lookup"):
        user = s.get(User, user_id)
    if user is None or user.is_deleted:
        return None
    return user


def find_user_by_username(s: Session, username: str) -> User | None:
    with storage_errors("user lookup"):
        return s.scalars(
            select(User).where(User.username == normalize_username(username)).where(User.deleted_at.is_(None))
        ).one_or_none()


def list_users_with_roles(
    s: Session, page_number: int, page_size: int = USERS_PER_PAGE
) -> tuple[list[User], int]:
    if page_number < 0 or page_size < 1:
        raise ValidationError("Invalid page.")
    live = User.deleted_at.is_(None)
    with storage_errors("user list"):
        total = s.scalar(select(func.count()).select_from(User).where(live)) or 0
        users = list(
            s.scalars(
                select(User).where(live).order_by(User.id.desc()).offset(page_number * page_size).limit(page_size)
            ).all()
        )
    return users, int(total)


def update_user(
    s: Session,
    user_id: int,
    *,
    display_name: str,
    email: str,
    username: str,
    roles: Iterable[Any],
) -> User:
    """
    Update profile fields and roles in the caller's transaction.

    Order matters: the last-admin check runs before anything is written, then
    the profile update (Conflict on a duplicate username/email), then role
    reconciliation.
    """
    display_name = (display_name or "").strip()
    email = (email or "").strip().lower()
    username = normalize_username(username)
    validate_profile(display_name, email, username)
    desired = normalize_roles(roles)

    user = get_user(s, user_id)
    if user is None:
        raise NotFound("User not found.")

    if would_remove_last_admin(s, user_id, desired):
        logger.warning("Rejected update removing last admin (user_id=%s)", user_id)
        raise PolicyViolation(LAST_ADMIN_MESSAGE)

    with storage_errors("user update"):
        try:
            with s.begin_nested():
                user.display_name = display_name
                user.email = email
                user.username = username
                s.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                s.refresh(user)
                raise Conflict("Username or email is already in use.") from None
            raise StorageError("user update failed") from e

    set_roles_for_user(s, user_id, desired)
    return user


def soft_delete_user(s: Session, user_id: int, *, actor_user_id: int) -> User:
    if user_id == actor_user_id:
        raise PolicyViolation("You cannot delete yourself.")
    user = get_user(s, user_id)
    if user is None:
        raise NotFound("User not found.")
    if would_remove_last_admin(s, user_id, ()):
        logger.warning("Rejected delete of last admin (user_id=%s)", user_id)
        raise PolicyViolation(LAST_ADMIN_MESSAGE)
    with storage_errors("user delete"):
        user.deleted_at = utcnow()
        s.flush()
    return user


def check_credentials(s: Session, username: str, password: str) -> User | None:
    """Live user matching username/password, or None. Does not say which part failed."""
    user = find_user_by_username(s, username)
    if not verify_password(user.password_hash if user else None, password or ""):
        return None
    return user
