from __future__ import annotations

import hmac
import os

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func, select

import db as db_
from actions.helpers import append_audit
from actions.users import user_to_dict, validate_email, validate_new_password
from app.utils.auth import create_access_token, get_current_auth
from app.utils.validators import require_json, validate_password
from auth import hash_password, permissions_for_role, verify_password
from models import Organization, User
from utils import ApiError, clean_str, utc_now

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/bootstrap")
def bootstrap():
    """Create the first organization and its owner. Disabled once any organization exists."""

    bootstrap_token = str(os.getenv("BOOTSTRAP_TOKEN", "") or "").strip()
    if not bootstrap_token:
        raise ApiError("FORBIDDEN", "Bootstrap is disabled")

    provided = str(request.headers.get("X-Bootstrap-Token") or "").strip()
    if not provided or not hmac.compare_digest(provided, bootstrap_token):
        raise ApiError("FORBIDDEN", "Invalid bootstrap token")

    body = require_json()
    org_name = clean_str(body.get("organizationName"))
    username = clean_str(body.get("username"))
    full_name = clean_str(body.get("fullName")) or username
    if not org_name or not username:
        raise ApiError("BAD_REQUEST", "organizationName and username are required")
    email = validate_email(body.get("email"))
    password = validate_new_password(body.get("password"))

    db = db_.SessionLocal()
    try:
        if db.execute(select(func.count(Organization.id))).scalar_one() > 0:
            raise ApiError("CONFLICT", "Bootstrap already completed")
        if db.execute(select(User.id).where(User.username == username)).scalar_one_or_none() is not None:
            raise ApiError("CONFLICT", "Username already exists")

        org = Organization(name=org_name)
        db.add(org)
        db.flush()
        owner = User(
            username=username,
            passwordHash=hash_password(password),
            fullName=full_name,
            email=email,
            role="owner",
            category="active",
            organizationId=org.id,
            active=True,
        )
        db.add(owner)
        db.flush()
        db.commit()
        data = {"organization": {"id": org.id, "name": org.name}, "user": user_to_dict(owner)}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    return jsonify({"success": True, "data": data}), 201


@auth_bp.post("/login")
def login():
    body = require_json()
    username = clean_str(body.get("username")).lower()
    password = validate_password(body.get("password"), allow_short=True)
    if not username:
        raise ApiError("BAD_REQUEST", "username is required")

    db = db_.SessionLocal()
    try:
        user = db.execute(select(User).where(func.lower(User.username) == username)).scalars().first()
        # The system actor has no usable hash, so verify_password always fails for it.
        if user is None or not verify_password(password, str(user.passwordHash or "")):
            raise ApiError("AUTH_INVALID", "Invalid credentials")
        if not user.active:
            raise ApiError("FORBIDDEN", "User is disabled")

        token, expires_at = create_access_token(current_app, user)
        user.lastLoginAt = utc_now()
        db.commit()
        data = {
            "access_token": token,
            "token_type": "bearer",
            "expires_at": expires_at,
            "user": user_to_dict(user),
        }
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    return jsonify({"success": True, "data": data})


@auth_bp.get("/me")
def me():
    db = db_.SessionLocal()
    try:
        auth = get_current_auth(db)
        user = db.get(User, auth.userId)
        data = {
            "user": user_to_dict(user),
            "permissions": permissions_for_role(db, auth.organizationId, auth.role),
            "expiresAt": auth.expiresAt,
        }
    finally:
        db.close()
    return jsonify({"success": True, "data": data})


@auth_bp.post("/password")
def change_password():
    body = require_json()
    current = validate_password(body.get("currentPassword"), allow_short=True)
    new = validate_new_password(body.get("newPassword"))
    if current == new:
        raise ApiError("BAD_REQUEST", "New password must differ from the current password")

    db = db_.SessionLocal()
    try:
        auth = get_current_auth(db)
        user = db.get(User, auth.userId)
        if not verify_password(current, str(user.passwordHash or "")):
            raise ApiError("AUTH_INVALID", "Current password is incorrect")
        user.passwordHash = hash_password(new)
        append_audit(db, entityType="USER", entityId=user.id, action="PASSWORD_CHANGE", stageTag="AUTH", actor=auth)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    return jsonify({"success": True, "data": {"changed": True}})
