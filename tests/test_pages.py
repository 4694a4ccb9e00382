from datetime import datetime, timedelta

import pytest

from app.cms import create_app
from app.cms.accounts import create_user
from app.cms.auth import reset_rate_limits
from app.cms.constants import Role
from app.cms.db import session_scope
from app.cms.errors import InvalidArgument, NotFound, ValidationError
from app.cms.models import AuditEvent, Base
from app.cms.modules.pages.models import ContentRevision, Page
from app.cms.modules.pages.service import (
    create_page,
    get_page_with_current_draft,
    list_recently_edited,
    publish_draft,
    save_draft,
    soft_delete_page,
)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("PASSWORD_HASH_METHOD", "pbkdf2:sha256:1000")
    reset_rate_limits()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        create_user(
            s,
            display_name="Editor",
            email="editor@example.com",
            username="editor",
            password="password1",
            roles=[Role.EDITOR],
        )
        create_user(
            s,
            display_name="Admin",
            email="admin@example.com",
            username="admin",
            password="password1",
            roles=[Role.ADMIN],
        )
    return app


@pytest.fixture()
def editor(app):
    c = app.test_client()
    r = c.post("/api/public/v1/sign-in", json={"username": "editor", "password": "password1"})
    assert r.status_code == 200
    return c


def _rev(html: str = "<p>hi</p>", page_id: int | None = None) -> ContentRevision:
    return ContentRevision(page_id=page_id, rendered_html=html, rendered_css="p{}", editor_content="{}")


def test_create_page_duplicate_title_leaves_original_untouched(app):
    with session_scope(app) as s:
        page_id, duplicate = create_page(s, "Home", _rev("<p>first</p>"))
        assert duplicate is False
        assert page_id is not None

    with session_scope(app) as s:
        again, duplicate = create_page(s, "Home", _rev("<p>second</p>"))
        assert (again, duplicate) == (None, True)

    with session_scope(app) as s:
        pages = s.query(Page).filter(Page.title == "Home").all()
        assert len(pages) == 1
        revs = s.query(ContentRevision).all()
        assert [r.rendered_html for r in revs] == ["<p>first</p>"]
        assert revs[0].page_id == page_id


def test_deleted_page_title_can_be_reused(app):
    with session_scope(app) as s:
        page_id, _ = create_page(s, "About", _rev())
    with session_scope(app) as s:
        soft_delete_page(s, page_id)
    with session_scope(app) as s:
        new_id, duplicate = create_page(s, "About", _rev())
        assert duplicate is False
        assert new_id != page_id


def test_create_page_requires_title(app):
    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            create_page(s, "   ", _rev())


def test_save_draft_twice_keeps_both_revisions(app):
    with session_scope(app) as s:
        page_id, _ = create_page(s, "Blog", _rev("<p>v1</p>"))

    with session_scope(app) as s:
        a = save_draft(s, _rev("<p>same</p>", page_id))
        b = save_draft(s, _rev("<p>same</p>", page_id))
        assert a.id != b.id
        ids = (a.id, b.id)

    with session_scope(app) as s:
        for rid in ids:
            assert s.get(ContentRevision, rid).rendered_html == "<p>same</p>"
        page, draft = get_page_with_current_draft(s, page_id)
        assert page.id == page_id
        assert draft.id == max(ids)
        assert s.query(ContentRevision).filter(ContentRevision.page_id == page_id).count() == 3


def test_save_draft_rejects_existing_revision(app):
    with session_scope(app) as s:
        page_id, _ = create_page(s, "Contact", _rev())
    with session_scope(app) as s:
        _, draft = get_page_with_current_draft(s, page_id)
        with pytest.raises(InvalidArgument):
            save_draft(s, draft)


def test_saved_revisions_cannot_be_updated(app):
    with session_scope(app) as s:
        page_id, _ = create_page(s, "Frozen", _rev("<p>orig</p>"))
    with pytest.raises(RuntimeError):
        with session_scope(app) as s:
            _, draft = get_page_with_current_draft(s, page_id)
            draft.rendered_html = "<p>edited</p>"
            s.flush()
    with session_scope(app) as s:
        _, draft = get_page_with_current_draft(s, page_id)
        assert draft.rendered_html == "<p>orig</p>"


def test_save_draft_for_missing_page_is_not_found(app):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            save_draft(s, _rev(page_id=12345))


def test_get_page_with_current_draft_edge_cases(app):
    with session_scope(app) as s:
        assert get_page_with_current_draft(s, 999) == (None, None)
        bare = Page(title="No revisions")
        s.add(bare)
        s.flush()
        page, draft = get_page_with_current_draft(s, bare.id)
        assert page is bare
        assert draft is None


def test_publish_draft_sets_pointer_only_for_that_page(app):
    with session_scope(app) as s:
        home_id, _ = create_page(s, "Home", _rev())
        other_id, _ = create_page(s, "Other", _rev())
    with session_scope(app) as s:
        draft = save_draft(s, _rev("<p>v2</p>", home_id))
        draft_id = draft.id
    with session_scope(app) as s:
        before = s.get(Page, home_id).updated_at
        page = publish_draft(s, draft_id)
        assert page.id == home_id
    with session_scope(app) as s:
        home = s.get(Page, home_id)
        assert home.published_revision_id == draft_id
        assert home.updated_at == before
        assert s.get(Page, other_id).published_revision_id is None


def test_publish_unknown_draft_is_not_found_and_mutates_nothing(app):
    with session_scope(app) as s:
        page_id, _ = create_page(s, "Home", _rev())
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            publish_draft(s, 424242)
    with session_scope(app) as s:
        assert s.get(Page, page_id).published_revision_id is None


def test_list_recently_edited_paginates_newest_first(app):
    base = datetime(2026, 1, 1, 12, 0, 0)
    with session_scope(app) as s:
        for i in range(25):
            page_id, _ = create_page(s, f"Page {i:02d}", _rev())
            s.get(Page, page_id).updated_at = base + timedelta(minutes=i)

    with session_scope(app) as s:
        first, total = list_recently_edited(s, 0, 10)
        assert total == 25
        assert [p.title for p in first] == [f"Page {i:02d}" for i in range(24, 14, -1)]

        last, total = list_recently_edited(s, 2, 10)
        assert total == 25
        assert [p.title for p in last] == [f"Page {i:02d}" for i in range(4, -1, -1)]


def test_save_draft_moves_page_to_top_of_recent_list(app):
    with session_scope(app) as s:
        old_id, _ = create_page(s, "Old", _rev())
        s.get(Page, old_id).updated_at = datetime(2020, 1, 1)
        create_page(s, "New", _rev())
    with session_scope(app) as s:
        save_draft(s, _rev(page_id=old_id))
    with session_scope(app) as s:
        pages, _ = list_recently_edited(s, 0, 10)
        assert pages[0].id == old_id


def test_page_editor_api_flow(editor, app):
    r = editor.post(
        "/api/authed/v1/page-editor/create",
        json={"title": "Landing", "renderedHtml": "<h1>Hi</h1>", "renderedCss": "", "editorContent": "{}"},
    )
    assert r.status_code == 201
    page_id = r.json["pageId"]

    r = editor.post(
        "/api/authed/v1/page-editor/create",
        json={"title": "Landing", "renderedHtml": "", "renderedCss": "", "editorContent": ""},
    )
    assert r.status_code == 400

    r = editor.post(
        "/api/authed/v1/page-editor/save-draft",
        json={"pageId": page_id, "renderedHtml": "<h1>Hello</h1>", "renderedCss": "", "editorContent": "{}"},
    )
    assert r.status_code == 201
    draft_id = r.json["draftId"]

    r = editor.post("/api/authed/v1/page-editor/get-page-with-draft", json={"pageId": page_id})
    assert r.status_code == 200
    assert r.json["draft"]["id"] == draft_id
    assert r.json["draft"]["renderedHtml"] == "<h1>Hello</h1>"
    assert r.json["page"]["publishedRevisionId"] is None

    r = editor.post("/api/authed/v1/page-editor/publish-draft", json={"draftId": draft_id})
    assert r.status_code == 200
    assert r.json == {"pageId": page_id, "publishedRevisionId": draft_id}

    r = editor.post("/api/authed/v1/page-editor/publish-draft", json={"draftId": draft_id + 100})
    assert r.status_code == 404
    assert r.json["error"] == "NotFound"

    r = editor.post("/api/authed/v1/page-editor/list-pages", json={"page": 0})
    assert r.status_code == 200
    assert r.json["pageCount"] == 1
    assert [p["title"] for p in r.json["pageList"]] == ["Landing"]

    r = editor.post("/api/authed/v1/page-editor/delete-page", json={"pageId": page_id})
    assert r.status_code == 200
    r = editor.post("/api/authed/v1/page-editor/get-page-with-draft", json={"pageId": page_id})
    assert r.status_code == 404

    with session_scope(app) as s:
        events = s.query(AuditEvent).filter(AuditEvent.action.like("page.%")).order_by(AuditEvent.id).all()
        actions = [e.action for e in events]
    assert actions == ["page.create", "page.save_draft", "page.publish", "page.delete"]


def test_page_editor_requires_content_feature(app):
    c = app.test_client()
    c.post("/api/public/v1/sign-in", json={"username": "admin", "password": "password1"})
    r = c.post("/api/authed/v1/page-editor/list-pages", json={"page": 0})
    assert r.status_code == 403


def test_page_editor_validates_payload(editor):
    r = editor.post("/api/authed/v1/page-editor/get-page-with-draft", json={"pageId": "abc"})
    assert r.status_code == 400
    assert r.json["error"] == "ValidationError"
    r = editor.post("/api/authed/v1/page-editor/save-draft", json=["not", "an", "object"])
    assert r.status_code == 400


@pytest.mark.parametrize("value", ["--5", "²", "1.5", " ", 2**70, "99999999999"])
def test_page_editor_rejects_malformed_or_out_of_range_ids(editor, value):
    r = editor.post("/api/authed/v1/page-editor/get-page-with-draft", json={"pageId": value})
    assert r.status_code == 400
    assert r.json["error"] == "ValidationError"

    r = editor.post("/api/authed/v1/page-editor/publish-draft", json={"draftId": value})
    assert r.status_code == 400

    r = editor.post("/api/authed/v1/page-editor/list-pages", json={"page": value})
    assert r.status_code == 400


def test_page_editor_accepts_numeric_string_ids(editor):
    page_id = editor.post(
        "/api/authed/v1/page-editor/create",
        json={"title": "Text id", "renderedHtml": "", "renderedCss": "", "editorContent": ""},
    ).json["pageId"]
    r = editor.post("/api/authed/v1/page-editor/get-page-with-draft", json={"pageId": f" {page_id} "})
    assert r.status_code == 200
    assert r.json["page"]["id"] == page_id


def test_ids_beyond_column_range_are_not_found(app):
    with session_scope(app) as s:
        create_page(s, "Home", _rev())
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            publish_draft(s, 2**70)
        with pytest.raises(NotFound):
            soft_delete_page(s, 2**70)
        assert get_page_with_current_draft(s, 2**70) == (None, None)
