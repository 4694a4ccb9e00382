from __future__ import annotations

from flask import Blueprint, jsonify

from app.cms.accounts import create_user, get_user, list_users_with_roles, soft_delete_user, update_user
from app.cms.audit import record_event
from app.cms.auth import Authenticated, login_required
from app.cms.constants import USERS_PER_PAGE, ProductFeature
from app.cms.db import db_session
from app.cms.errors import NotFound, ValidationError
from app.cms.models import User
from app.cms.utils import get_int, get_int_list, get_str, iso, json_payload, page_count
from app.cms.rbac import require_feature

bp = Blueprint("admin", __name__)


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "displayName": user.display_name,
        "email": user.email,
        "username": user.username,
        "roles": [m.role for m in user.role_mappings],
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


@bp.post("/add-user")
@login_required
@require_feature(ProductFeature.MANAGE_USERS)
def add_user(auth: Authenticated):
    payload = json_payload()
    s = db_session()
    user, duplicate = create_user(
        s,
        display_name=get_str(payload, "displayName"),
        email=get_str(payload, "email"),
        username=get_str(payload, "username"),
        password=get_str(payload, "password"),
        roles=get_int_list(payload, "selectedRoles"),
    )
    if duplicate or user is None:
        raise ValidationError("Username is already in use")
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="user.create",
        entity_type="User",
        entity_id=user.id,
        metadata={"username": user.username, "roles": sorted(get_int_list(payload, "selectedRoles"))},
    )
    s.commit()
    return jsonify(userId=user.id), 201


@bp.post("/list-users")
@login_required
@require_feature(ProductFeature.MANAGE_USERS)
def list_users(auth: Authenticated):
    page_number = get_int(json_payload(), "page", minimum=0, default=0)
    users, total = list_users_with_roles(db_session(), page_number, USERS_PER_PAGE)
    return jsonify(userList=[_user_to_dict(u) for u in users], pageCount=page_count(total, USERS_PER_PAGE))


@bp.post("/get-user")
@login_required
@require_feature(ProductFeature.MANAGE_USERS)
def get_user_detail(auth: Authenticated):
    user = get_user(db_session(), get_int(json_payload(), "id"))
    if user is None:
        raise NotFound("User not found.")
    return jsonify(_user_to_dict(user))


@bp.post("/update-user")
@login_required
@require_feature(ProductFeature.MANAGE_USERS)
def update_user_detail(auth: Authenticated):
    payload = json_payload()
    s = db_session()
    roles = get_int_list(payload, "selectedRoles")
    user = update_user(
        s,
        get_int(payload, "id"),
        display_name=get_str(payload, "displayName"),
        email=get_str(payload, "email"),
        username=get_str(payload, "username"),
        roles=roles,
    )
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="user.update",
        entity_type="User",
        entity_id=user.id,
        metadata={"username": user.username, "roles": sorted(roles)},
    )
    s.commit()
    return jsonify(_user_to_dict(user))


@bp.post("/delete-user")
@login_required
@require_feature(ProductFeature.MANAGE_USERS)
def delete_user(auth: Authenticated):
    s = db_session()
    user = soft_delete_user(s, get_int(json_payload(), "id"), actor_user_id=auth.user_id)
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="user.delete",
        entity_type="User",
        entity_id=user.id,
        metadata={"username": user.username},
    )
    s.commit()
    return jsonify(ok=True)
