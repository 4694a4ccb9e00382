"""
Error taxonomy shared by services and routes.

Services raise these; the handlers registered in `create_app` turn them into
JSON responses. Expected business outcomes that a caller can act on
(duplicate title on create, duplicate username on create) are returned as
flags instead of raised.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class CmsError(Exception):
    status_code = 500
    kind = "Error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(CmsError):
    status_code = 400
    kind = "ValidationError"

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(" ".join(self.errors))

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, "errors": self.errors}


class NotFound(CmsError):
    status_code = 404
    kind = "NotFound"


class Conflict(CmsError):
    status_code = 409
    kind = "Conflict"


class PolicyViolation(CmsError):
    status_code = 403
    kind = "PolicyViolation"


class InvalidArgument(PolicyViolation):
    """A caller tried to mutate something that is immutable (e.g. a saved revision)."""

    status_code = 400
    kind = "InvalidArgument"


class StorageError(CmsError):
    status_code = 500
    kind = "StorageError"


@contextmanager
def storage_errors(action: str) -> Generator[None, None, None]:
    """Re-raise unclassified SQLAlchemy failures as StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageError(f"{action} failed") from e
