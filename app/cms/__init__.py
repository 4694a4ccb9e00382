import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.cms.config import load_config
from app.cms.db import init_db, teardown_db_session
from app.cms.errors import CmsError, StorageError
from app.cms.routes import bp as routes_bp
from app.cms.auth import assign_request_id, bp as auth_bp
from app.cms.admin import bp as admin_bp
from app.cms.modules.pages.admin import bp as page_editor_bp
from app.cms.modules.site_settings.admin import bp as site_settings_bp

REQUIRED_TABLES = ("users", "role_mappings", "pages", "content_revisions", "site_settings", "audit_events")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=app.config["SESSION_LIFETIME_HOURS"])
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        secret = str(app.config.get("SECRET_KEY") or "")
        if secret in ("", "change-me") or len(secret) < 32:
            raise RuntimeError("SECRET_KEY must be set to a strong value (32+ chars) in production.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp, url_prefix="/api/authed/v1/admin/users")
    app.register_blueprint(site_settings_bp, url_prefix="/api/authed/v1/admin/site-settings")
    app.register_blueprint(page_editor_bp, url_prefix="/api/authed/v1/page-editor")

    app.before_request(assign_request_id)
    app.teardown_appcontext(teardown_db_session)

    # Schema health: log once if migrations have not been applied.
    try:
        insp = sa_inspect(app.extensions["sqlalchemy_engine"])
        missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
    except Exception as e:
        app.logger.error("Schema health check failed: %s", e)

    @app.errorhandler(CmsError)
    def _err_cms(e: CmsError):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if isinstance(e, StorageError):
            app.logger.exception("Storage failure (request_id=%s): %s", rid, e.message)
        else:
            app.logger.info("%s (request_id=%s): %s", e.kind, rid, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        # Routing redirects are HTTPExceptions too.
        if e.code is not None and e.code < 400:
            return e
        if e.code == 403:
            missing = getattr(g, "missing_feature", None)
            if missing:
                app.logger.warning("Forbidden: missing_feature=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify(error=e.name.replace(" ", ""), message=e.description), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify(error="InternalServerError", message="Internal server error."), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
