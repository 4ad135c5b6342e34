from __future__ import annotations

from typing import Any

from flask import request

from utils import ApiError


def require_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object")
    return body


def optional_json() -> dict[str, Any]:
    """Body for POSTs where every field is optional; an empty body is ``{}``."""
    if not request.data:
        return {}
    return require_json()


def validate_password(value: Any, *, allow_short: bool) -> str:
    password = str(value or "")
    if not password:
        raise ApiError("BAD_REQUEST", "Password required")
    if not allow_short and len(password) < 8:
        raise ApiError("BAD_REQUEST", "Password must be at least 8 characters")
    return password


def query_args() -> dict[str, Any]:
    """Query string as a flat dict; repeated keys keep the first value."""
    return {k: v for k, v in request.args.items() if str(v).strip() != ""}
