"""
Role-based feature access.

Roles are persisted as RoleMapping rows; features are never stored and are
always derived from the static FEATURES_BY_ROLE table. Every function takes
the SQLAlchemy session it should use.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import abort, g
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.cms.constants import FEATURES_BY_ROLE, MAX_ROW_ID, ProductFeature, Role
from app.cms.db import db_session
from app.cms.errors import PolicyViolation, ValidationError, storage_errors
from app.cms.models import RoleMapping, User

if TYPE_CHECKING:
    from app.cms.auth import Authenticated

logger = logging.getLogger(__name__)

LAST_ADMIN_MESSAGE = "You need at least one user with the admin role."


def features_for_role(role: Any) -> frozenset[ProductFeature]:
    # bool is an int subclass; True must not resolve to Role.ADMIN
    if isinstance(role, bool):
        return frozenset()
    try:
        return FEATURES_BY_ROLE.get(role, frozenset())
    except TypeError:
        return frozenset()


def normalize_roles(roles: Iterable[Any]) -> frozenset[Role]:
    """Coerce role values (ints or Role) to a set of Role; unknown values are rejected."""
    out: set[Role] = set()
    for raw in roles:
        if isinstance(raw, bool):
            raise ValidationError(f"Invalid role: {raw!r}")
        try:
            out.add(Role(raw))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid role: {raw!r}") from None
    return frozenset(out)


def roles_for_user(s: Session, user_id: int) -> frozenset[Role]:
    with storage_errors("role lookup"):
        raw = s.scalars(select(RoleMapping.role).where(RoleMapping.user_id == user_id)).all()
    return frozenset(Role(r) for r in raw if r in Role._value2member_map_)


def features_for_user(s: Session, user_id: int) -> frozenset[ProductFeature]:
    with storage_errors("feature lookup"):
        raw = s.scalars(select(RoleMapping.role).where(RoleMapping.user_id == user_id)).all()
    features: set[ProductFeature] = set()
    for role in raw:
        features |= features_for_role(role)
    return frozenset(features)


def set_roles_for_user(s: Session, user_id: int, desired_roles: Iterable[Any]) -> None:
    """
    Reconcile the user's role mappings to exactly `desired_roles`.

    Runs inside a SAVEPOINT: read current, delete unwanted, insert missing.
    Any failure rolls the whole reconciliation back. Idempotent.
    """
    if not 1 <= user_id <= MAX_ROW_ID:
        raise ValidationError("Invalid user.")
    desired = normalize_roles(desired_roles)

    with storage_errors("role reconciliation"):
        with s.begin_nested():
            current = set(s.scalars(select(RoleMapping.role).where(RoleMapping.user_id == user_id)).all())
            s.execute(
                delete(RoleMapping)
                .where(RoleMapping.user_id == user_id)
                .where(RoleMapping.role.not_in([int(r) for r in desired]))
                .execution_options(synchronize_session=False)
            )
            for role in sorted(desired):
                if int(role) not in current:
                    s.add(RoleMapping(user_id=user_id, role=int(role)))

        user = s.get(User, user_id)
        if user is not None:
            s.expire(user, ["role_mappings"])


def would_remove_last_admin(s: Session, user_id: int, desired_roles: Iterable[Any]) -> bool:
    """
    True when `user_id` is the only live user holding Admin and the desired
    roles drop it. Admin mapping rows are locked FOR UPDATE where supported so
    the following reconciliation sees the same admin set.
    """
    if not 1 <= user_id <= MAX_ROW_ID:
        raise ValidationError("Invalid user.")
    if Role.ADMIN in normalize_roles(desired_roles):
        return False

    with storage_errors("admin lookup"):
        admin_ids = set(
            s.scalars(
                select(RoleMapping.user_id)
                .join(User, User.id == RoleMapping.user_id)
                .where(RoleMapping.role == int(Role.ADMIN))
                .where(User.deleted_at.is_(None))
                .with_for_update(of=RoleMapping)
            ).all()
        )
    if user_id not in admin_ids:
        return False
    return not (admin_ids - {user_id})


def change_user_roles(s: Session, user_id: int, desired_roles: Iterable[Any]) -> None:
    """Last-admin check followed by reconciliation, in the caller's transaction."""
    desired = normalize_roles(desired_roles)
    if would_remove_last_admin(s, user_id, desired):
        logger.warning("Rejected role change removing last admin (user_id=%s)", user_id)
        raise PolicyViolation(LAST_ADMIN_MESSAGE)
    set_roles_for_user(s, user_id, desired)


def require_feature(feature: ProductFeature) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Wrap a view already wrapped by `login_required`. Features are recomputed
    from storage on every request, so role changes apply immediately.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(auth: "Authenticated", *args: Any, **kwargs: Any):
            features = features_for_user(db_session(), auth.user_id)
            if feature not in features:
                g.missing_feature = feature.name
                logger.info("Forbidden: user_id=%s missing feature %s", auth.user_id, feature.name)
                abort(403)
            return fn(replace(auth, features=features), *args, **kwargs)

        return wrapped

    return decorator
