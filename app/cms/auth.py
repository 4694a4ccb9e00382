"""
Session authentication gate and the sign-in / account routes.

The session is Flask's signed cookie; its only claim is the integer user id
under SESSION_USER_ID_KEY. `authenticate` turns a session into either
Authenticated or Unauthenticated; `login_required` hands the Authenticated
value to the view as its first argument.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, abort, current_app, g, jsonify, request, session
from sqlalchemy.orm import Session

from app.cms.accounts import check_credentials, get_user, normalize_username
from app.cms.audit import record_event
from app.cms.constants import SESSION_USER_ID_KEY, ProductFeature
from app.cms.db import db_session
from app.cms.rbac import features_for_user
from app.cms.utils import get_str, json_payload

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)
_sign_in_attempts: dict[str, list[datetime]] = defaultdict(list)
_SIGN_IN_RATE_LIMIT = 5
_SIGN_IN_RATE_WINDOW = 300  # seconds


@dataclass(frozen=True)
class Authenticated:
    user_id: int
    features: frozenset[ProductFeature]


@dataclass(frozen=True)
class Unauthenticated:
    reason: str


AuthResult = Authenticated | Unauthenticated


def _parse_user_id(raw: Any) -> int | None:
    # bool is an int subclass; a True claim is not user 1
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    if raw < 1:
        return None
    return raw


def expire_session(sess: MutableMapping[str, Any]) -> None:
    sess.clear()


def refresh_session(sess: MutableMapping[str, Any]) -> None:
    """Slide the expiry window: a modified permanent session is re-issued with a fresh expiry."""
    if hasattr(sess, "permanent"):
        sess.permanent = True  # type: ignore[attr-defined]
    if hasattr(sess, "modified"):
        sess.modified = True  # type: ignore[attr-defined]


def authenticate(s: Session, sess: MutableMapping[str, Any]) -> AuthResult:
    user_id = _parse_user_id(sess.get(SESSION_USER_ID_KEY))
    if user_id is None:
        expire_session(sess)
        return Unauthenticated("missing or invalid user id claim")

    if get_user(s, user_id) is None:
        expire_session(sess)
        return Unauthenticated("user not found")

    features = features_for_user(s, user_id)
    refresh_session(sess)
    return Authenticated(user_id=user_id, features=features)


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any):
        result = authenticate(db_session(), session)
        if isinstance(result, Unauthenticated):
            logger.info("Unauthenticated request to %s: %s", request.path, result.reason)
            abort(401)
        g.auth = result
        return fn(result, *args, **kwargs)

    return wrapper


def assign_request_id() -> None:
    """Per-request id for log and audit correlation."""
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_SIGN_IN_RATE_WINDOW)
    _sign_in_attempts[ip] = [t for t in _sign_in_attempts[ip] if t > cutoff]
    return len(_sign_in_attempts[ip]) >= _SIGN_IN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _sign_in_attempts[ip].append(datetime.utcnow())


def reset_rate_limits() -> None:
    _sign_in_attempts.clear()


def start_session(user_id: int) -> None:
    session.clear()
    session[SESSION_USER_ID_KEY] = user_id
    session.permanent = True


@bp.post("/api/public/v1/sign-in")
def sign_in():
    payload = json_payload()
    username = normalize_username(get_str(payload, "username"))
    password = get_str(payload, "password")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        logger.warning("Sign-in throttled (ip=%s)", ip)
        return jsonify(error="TooManyRequests", message="Too many sign-in attempts. Please wait 5 minutes."), 429

    _record_attempt(ip)

    s = db_session()
    user = check_credentials(s, username, password) if username else None
    if user is None:
        logger.info("Sign-in failed (username=%s request_id=%s)", username, getattr(g, "request_id", None))
        record_event(
            s,
            actor_user_id=None,
            action="auth.sign_in_failed",
            entity_type="User",
            entity_id=username or None,
            metadata={"username": username},
        )
        s.commit()
        return jsonify(error="Unauthenticated", message="Invalid username or password."), 401

    start_session(user.id)
    _sign_in_attempts[ip].clear()
    record_event(s, actor_user_id=user.id, action="auth.sign_in", entity_type="User", entity_id=user.id)
    s.commit()
    current_app.logger.info("User %s signed in", user.id)
    return jsonify(userId=user.id)


@bp.get("/api/authed/v1/account/check-session")
@login_required
def check_session(auth: Authenticated):
    return jsonify(
        userId=auth.user_id,
        allowedFeatures=sorted(int(f) for f in auth.features),
    )


@bp.post("/api/authed/v1/account/sign-out")
@login_required
def sign_out(auth: Authenticated):
    s = db_session()
    record_event(s, actor_user_id=auth.user_id, action="auth.sign_out", entity_type="User", entity_id=auth.user_id)
    s.commit()
    expire_session(session)
    return jsonify(ok=True)
