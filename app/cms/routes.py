from flask import Blueprint, current_app, jsonify

from app.cms.accounts import create_user
from app.cms.audit import record_event
from app.cms.auth import start_session
from app.cms.constants import Role
from app.cms.db import db_session
from app.cms.errors import PolicyViolation, ValidationError
from app.cms.modules.site_settings.service import create_settings, site_exists
from app.cms.utils import get_str, json_payload

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200


@bp.post("/api/public/v1/site-setup")
def site_setup():
    """
    First-run setup: creates the settings row and the first admin, then signs
    them in. Refused once the site exists.
    """
    payload = json_payload()
    s = db_session()
    if site_exists(s):
        raise PolicyViolation("Site is already set up.")

    settings = create_settings(s, site_name=get_str(payload, "siteName"))
    user, duplicate = create_user(
        s,
        display_name=get_str(payload, "displayName"),
        email=get_str(payload, "email"),
        username=get_str(payload, "username"),
        password=get_str(payload, "password"),
        roles=[Role.ADMIN],
    )
    if duplicate or user is None:
        raise ValidationError("Username is already in use")

    record_event(
        s,
        actor_user_id=user.id,
        action="site.setup",
        entity_type="SiteSettings",
        entity_id="active",
        metadata={"site_name": settings.site_name, "username": user.username},
    )
    s.commit()
    start_session(user.id)
    current_app.logger.info("Site setup complete (admin user_id=%s)", user.id)
    return jsonify(userId=user.id), 201
