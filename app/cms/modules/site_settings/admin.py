from __future__ import annotations

from flask import Blueprint, jsonify

from app.cms.audit import record_event
from app.cms.auth import Authenticated, login_required
from app.cms.constants import ProductFeature
from app.cms.db import db_session
from app.cms.errors import NotFound
from app.cms.modules.site_settings.service import get_settings, settings_to_dict, update_general, update_smtp
from app.cms.rbac import require_feature
from app.cms.utils import get_str, json_payload

bp = Blueprint("site_settings", __name__)


@bp.get("/list")
@login_required
@require_feature(ProductFeature.MANAGE_SETTINGS)
def list_settings(auth: Authenticated):
    row = get_settings(db_session())
    if row is None:
        raise NotFound("Site has not been set up.")
    return jsonify(settings_to_dict(row))


@bp.post("/update-general")
@login_required
@require_feature(ProductFeature.MANAGE_SETTINGS)
def update_general_settings(auth: Authenticated):
    payload = json_payload()
    s = db_session()
    row = update_general(
        s,
        site_name=get_str(payload, "siteName"),
        image_directory_path=get_str(payload, "imageDirectoryPath"),
    )
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="settings.update_general",
        entity_type="SiteSettings",
        entity_id="active",
        metadata={"site_name": row.site_name, "image_directory_path": row.image_directory_path},
    )
    s.commit()
    return jsonify(settings_to_dict(row))


@bp.post("/update-smtp")
@login_required
@require_feature(ProductFeature.MANAGE_SETTINGS)
def update_smtp_settings(auth: Authenticated):
    payload = json_payload()
    s = db_session()
    row = update_smtp(
        s,
        smtp_server=get_str(payload, "smtpServer"),
        smtp_username=get_str(payload, "smtpUsername"),
        smtp_password=get_str(payload, "smtpPassword"),
        smtp_port=str(payload.get("smtpPort") or ""),
    )
    # Never log the password.
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="settings.update_smtp",
        entity_type="SiteSettings",
        entity_id="active",
        metadata={"smtp_server": row.smtp_server, "smtp_port": row.smtp_port},
    )
    s.commit()
    return jsonify(settings_to_dict(row))
