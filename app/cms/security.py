from __future__ import annotations

import os

from flask import current_app, has_app_context
from werkzeug.security import check_password_hash, generate_password_hash

DEFAULT_HASH_METHOD = "pbkdf2:sha256:600000"

# Checked against a throwaway hash when the username is unknown so timing
# does not reveal which half of the credentials was wrong.
_DUMMY_HASH: str | None = None


def _hash_method() -> str:
    if has_app_context():
        return current_app.config.get("PASSWORD_HASH_METHOD") or DEFAULT_HASH_METHOD
    # Scripts run without an app.
    return (os.environ.get("PASSWORD_HASH_METHOD") or "").strip() or DEFAULT_HASH_METHOD


def hash_password(password: str, *, method: str | None = None) -> str:
    return generate_password_hash(password, method=method or _hash_method())


def verify_password(password_hash: str | None, password: str) -> bool:
    global _DUMMY_HASH
    if not password_hash:
        if _DUMMY_HASH is None:
            _DUMMY_HASH = hash_password("not-a-real-password")
        check_password_hash(_DUMMY_HASH, password)
        return False
    return check_password_hash(password_hash, password)
