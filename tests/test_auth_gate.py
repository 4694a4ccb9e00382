import pytest
from flask.sessions import SecureCookieSession

from app.cms import create_app
from app.cms.accounts import create_user, soft_delete_user
from app.cms.auth import Authenticated, Unauthenticated, authenticate, reset_rate_limits
from app.cms.constants import SESSION_USER_ID_KEY, ProductFeature, Role
from app.cms.db import session_scope
from app.cms.models import AuditEvent, Base
from app.cms.rbac import set_roles_for_user


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
            display_name="Admin",
            email="admin@example.com",
            username="admin",
            password="password1",
            roles=[Role.ADMIN],
        )
        create_user(
            s,
            display_name="Editor",
            email="editor@example.com",
            username="editor",
            password="password1",
            roles=[Role.EDITOR],
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _user_id(app, username: str) -> int:
    from app.cms.accounts import find_user_by_username

    with session_scope(app) as s:
        return find_user_by_username(s, username).id


@pytest.mark.parametrize("claim", [None, 0, -3, True, "1", 1.0])
def test_invalid_claims_are_unauthenticated_and_expire_the_session(app, claim):
    sess = SecureCookieSession({"other": "x"})
    if claim is not None:
        sess[SESSION_USER_ID_KEY] = claim

    with session_scope(app) as s:
        result = authenticate(s, sess)

    assert isinstance(result, Unauthenticated)
    assert len(sess) == 0
    assert sess.modified is True


def test_unknown_or_deleted_user_is_unauthenticated(app):
    editor_id = _user_id(app, "editor")
    admin_id = _user_id(app, "admin")

    sess = SecureCookieSession({SESSION_USER_ID_KEY: 9999})
    with session_scope(app) as s:
        assert isinstance(authenticate(s, sess), Unauthenticated)
    assert SESSION_USER_ID_KEY not in sess

    with session_scope(app) as s:
        soft_delete_user(s, editor_id, actor_user_id=admin_id)

    sess = SecureCookieSession({SESSION_USER_ID_KEY: editor_id})
    with session_scope(app) as s:
        assert isinstance(authenticate(s, sess), Unauthenticated)
    assert SESSION_USER_ID_KEY not in sess


def test_valid_session_is_authenticated_and_refreshed(app):
    admin_id = _user_id(app, "admin")
    sess = SecureCookieSession({SESSION_USER_ID_KEY: admin_id})

    with session_scope(app) as s:
        result = authenticate(s, sess)

    assert result == Authenticated(
        user_id=admin_id,
        features=frozenset({ProductFeature.MANAGE_USERS, ProductFeature.MANAGE_SETTINGS}),
    )
    assert sess.permanent is True
    assert sess.modified is True
    assert sess[SESSION_USER_ID_KEY] == admin_id


def test_check_session_requires_sign_in(client):
    r = client.get("/api/authed/v1/account/check-session")
    assert r.status_code == 401
    assert r.json["error"] == "Unauthorized"


def test_sign_in_check_session_sign_out(client, app):
    r = client.post("/api/public/v1/sign-in", json={"username": "  Editor ", "password": "password1"})
    assert r.status_code == 200
    editor_id = r.json["userId"]
    assert "cms_session" in (r.headers.get("Set-Cookie") or "")

    r = client.get("/api/authed/v1/account/check-session")
    assert r.status_code == 200
    assert r.json == {"userId": editor_id, "allowedFeatures": [int(ProductFeature.ADD_EDIT_CONTENT)]}
    # Sliding expiry: every authenticated response re-issues the cookie.
    assert "cms_session" in (r.headers.get("Set-Cookie") or "")

    r = client.post("/api/authed/v1/account/sign-out")
    assert r.status_code == 200

    r = client.get("/api/authed/v1/account/check-session")
    assert r.status_code == 401

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id.asc()).all()]
    assert actions == ["auth.sign_in", "auth.sign_out"]


def test_sign_in_rejects_bad_credentials_without_detail(client, app):
    r1 = client.post("/api/public/v1/sign-in", json={"username": "editor", "password": "wrong-password"})
    r2 = client.post("/api/public/v1/sign-in", json={"username": "nobody", "password": "password1"})
    assert r1.status_code == r2.status_code == 401
    assert r1.json == r2.json

    with session_scope(app) as s:
        failed = s.query(AuditEvent).filter(AuditEvent.action == "auth.sign_in_failed").count()
    assert failed == 2


def test_sign_in_is_throttled_per_ip(client):
    for _ in range(5):
        r = client.post("/api/public/v1/sign-in", json={"username": "editor", "password": "nope-nope"})
        assert r.status_code == 401
    r = client.post("/api/public/v1/sign-in", json={"username": "editor", "password": "password1"})
    assert r.status_code == 429


def test_role_change_applies_on_next_request(client, app):
    r = client.post("/api/public/v1/sign-in", json={"username": "editor", "password": "password1"})
    assert r.status_code == 200
    editor_id = r.json["userId"]

    r = client.post("/api/authed/v1/page-editor/list-pages", json={"page": 0})
    assert r.status_code == 200

    with session_scope(app) as s:
        set_roles_for_user(s, editor_id, [Role.USER])

    r = client.post("/api/authed/v1/page-editor/list-pages", json={"page": 0})
    assert r.status_code == 403

    r = client.get("/api/authed/v1/account/check-session")
    assert r.json["allowedFeatures"] == []


def test_deleted_user_session_is_rejected(client, app):
    client.post("/api/public/v1/sign-in", json={"username": "editor", "password": "password1"})
    editor_id, admin_id = _user_id(app, "editor"), _user_id(app, "admin")
    with session_scope(app) as s:
        soft_delete_user(s, editor_id, actor_user_id=admin_id)

    r = client.get("/api/authed/v1/account/check-session")
    assert r.status_code == 401


@pytest.mark.parametrize(
    "body",
    [
        {"username": 123, "password": "password1"},
        {"username": "editor", "password": 5},
        ["editor", "password1"],
    ],
)
def test_sign_in_rejects_malformed_body(client, body):
    r = client.post("/api/public/v1/sign-in", json=body)
    assert r.status_code == 400
    assert r.json["error"] == "ValidationError"
