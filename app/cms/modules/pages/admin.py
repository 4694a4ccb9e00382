from __future__ import annotations

from flask import Blueprint, jsonify

from app.cms.audit import record_event
from app.cms.auth import Authenticated, login_required
from app.cms.constants import PAGES_PER_PAGE, ProductFeature
from app.cms.db import db_session
from app.cms.errors import NotFound, ValidationError
from app.cms.modules.pages.models import ContentRevision, Page
from app.cms.modules.pages.service import (
    create_page,
    get_page_with_current_draft,
    list_recently_edited,
    publish_draft,
    save_draft,
    soft_delete_page,
)
from app.cms.rbac import require_feature
from app.cms.utils import get_int, get_str, iso, json_payload, page_count

bp = Blueprint("page_editor", __name__)


def _revision_from_payload(payload: dict, *, created_by_user_id: int) -> ContentRevision:
    return ContentRevision(
        rendered_html=get_str(payload, "renderedHtml"),
        rendered_css=get_str(payload, "renderedCss"),
        editor_content=get_str(payload, "editorContent"),
        created_by_user_id=created_by_user_id,
    )


def _page_to_dict(page: Page) -> dict:
    return {
        "id": page.id,
        "title": page.title,
        "publishedRevisionId": page.published_revision_id,
        "createdAt": iso(page.created_at),
        "updatedAt": iso(page.updated_at),
    }


def _revision_to_dict(rev: ContentRevision) -> dict:
    return {
        "id": rev.id,
        "pageId": rev.page_id,
        "renderedHtml": rev.rendered_html,
        "renderedCss": rev.rendered_css,
        "editorContent": rev.editor_content,
        "createdAt": iso(rev.created_at),
        "createdByUserId": rev.created_by_user_id,
    }


@bp.post("/create")
@login_required
@require_feature(ProductFeature.ADD_EDIT_CONTENT)
def create(auth: Authenticated):
    payload = json_payload()
    s = db_session()
    title = get_str(payload, "title")
    page_id, duplicate = create_page(s, title, _revision_from_payload(payload, created_by_user_id=auth.user_id))
    if duplicate:
        raise ValidationError("A page with this title already exists.")
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="page.create",
        entity_type="Page",
        entity_id=page_id,
        metadata={"title": title.strip()},
    )
    s.commit()
    return jsonify(pageId=page_id), 201


@bp.post("/get-page-with-draft")
@login_required
@require_feature(ProductFeature.ADD_EDIT_CONTENT)
def get_page_with_draft(auth: Authenticated):
    page_id = get_int(json_payload(), "pageId")
    page, draft = get_page_with_current_draft(db_session(), page_id)
    if page is None:
        raise NotFound("Page not found.")
    return jsonify(page=_page_to_dict(page), draft=_revision_to_dict(draft) if draft else None)


@bp.post("/save-draft")
@login_required
@require_feature(ProductFeature.ADD_EDIT_CONTENT)
def save(auth: Authenticated):
    payload = json_payload()
    s = db_session()
    revision = _revision_from_payload(payload, created_by_user_id=auth.user_id)
    revision.page_id = get_int(payload, "pageId")
    save_draft(s, revision)
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="page.save_draft",
        entity_type="Page",
        entity_id=revision.page_id,
        metadata={"revision_id": revision.id},
    )
    s.commit()
    return jsonify(draftId=revision.id), 201


@bp.post("/publish-draft")
@login_required
@require_feature(ProductFeature.ADD_EDIT_CONTENT)
def publish(auth: Authenticated):
    s = db_session()
    draft_id = get_int(json_payload(), "draftId")
    page = publish_draft(s, draft_id)
    record_event(
        s,
        actor_user_id=auth.user_id,
        action="page.publish",
        entity_type="Page",
        entity_id=page.id,
        metadata={"revision_id": draft_id},
    )
    s.commit()
    return jsonify(pageId=page.id, publishedRevisionId=page.published_revision_id)


@bp.post("/list-pages")
@login_required
@require_feature(ProductFeature.ADD_EDIT_CONTENT)
def list_pages(auth: Authenticated):
    page_number = get_int(json_payload(), "page", minimum=0, default=0)
    pages, total = list_recently_edited(db_session(), page_number, PAGES_PER_PAGE)
    return jsonify(pageList=[_page_to_dict(p) for p in pages], pageCount=page_count(total, PAGES_PER_PAGE))


@bp.post("/delete-page")
@login_required
@require_feature(ProductFeature.ADD_EDIT_CONTENT)
def delete_page(auth: Authenticated):
    s = db_session()
    page = soft_delete_page(s, get_int(json_payload(), "pageId"))
    record_event(s, actor_user_id=auth.user_id, action="page.delete", entity_type="Page", entity_id=page.id)
    s.commit()
    return jsonify(ok=True)
