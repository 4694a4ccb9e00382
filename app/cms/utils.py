from __future__ import annotations

import math
from typing import Any

from flask import request

from app.cms.constants import MAX_ROW_ID
from app.cms.errors import ValidationError


def json_payload() -> dict[str, Any]:
    """Request body as a JSON object; anything else is a ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def get_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string.")
    return value


def get_int(
    payload: dict[str, Any],
    key: str,
    *,
    minimum: int = 1,
    maximum: int = MAX_ROW_ID,
    default: int | None = None,
) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{key} must be an integer.")
    if isinstance(value, str):
        # Query-string values arrive as text.
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(f"{key} must be an integer.") from None
    if value < minimum:
        raise ValidationError(f"{key} must be at least {minimum}.")
    if value > maximum:
        raise ValidationError(f"{key} must be at most {maximum}.")
    return value


def get_int_list(payload: dict[str, Any], key: str) -> list[int]:
    value = payload.get(key) or []
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise ValidationError(f"{key} must be a list of integers.")
    return list(value)


def page_count(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


def iso(dt) -> str | None:
    return dt.isoformat() if dt is not None else None
