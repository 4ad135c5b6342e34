from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import current_app, request

from models import User
from utils import ApiError, AuthContext


def create_access_token(app, user: User) -> tuple[str, str]:
    cfg = app.config["CFG"]
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.JWT_EXP_MINUTES)
    payload = {
        "sub": str(user.id),
        "username": str(user.username or ""),
        "role": str(user.role or ""),
        "org": user.organizationId,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    token = jwt.encode(payload, cfg.JWT_SECRET, algorithm="HS256")
    return token, exp.isoformat().replace("+00:00", "Z")


def _decode_token(token: str) -> dict[str, Any]:
    cfg = current_app.config["CFG"]
    try:
        return jwt.decode(token, cfg.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as e:
        raise ApiError("AUTH_INVALID", "Token expired") from e
    except jwt.InvalidTokenError as e:
        raise ApiError("AUTH_INVALID", "Invalid token") from e


def bearer_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return ""


def get_current_auth(db) -> AuthContext:
    """Resolve the bearer token against the users table; role and organization come from the row."""

    token = bearer_token()
    if not token:
        raise ApiError("AUTH_INVALID", "Missing bearer token")

    payload = _decode_token(token)
    try:
        user_id = int(str(payload.get("sub") or "").strip())
    except ValueError as e:
        raise ApiError("AUTH_INVALID", "Invalid token subject") from e

    user = db.get(User, user_id)
    if user is None:
        raise ApiError("AUTH_INVALID", "User not found")
    if not user.active:
        raise ApiError("FORBIDDEN", "User is disabled")

    exp = payload.get("exp")
    expires_at = (
        datetime.fromtimestamp(int(exp), tz=timezone.utc).isoformat().replace("+00:00", "Z") if exp else ""
    )
    return AuthContext(
        valid=True,
        userId=int(user.id),
        username=str(user.username),
        role=str(user.role),
        organizationId=user.organizationId,
        expiresAt=expires_at,
    )
