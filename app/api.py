from __future__ import annotations

import hmac
import logging
from typing import Any

from flask import current_app, g, jsonify, request

import db as db_
from actions import dispatch
from actions.helpers import append_audit
from app.utils.auth import get_current_auth
from auth import assert_permission
from services.batch_status import get_system_user_id
from utils import ApiError, redact_for_audit, system_auth

log = logging.getLogger("api")


def _internal_caller(db, cfg):
    expected = str(cfg.INTERNAL_CRON_TOKEN or "")
    provided = str(request.headers.get("X-Internal-Token") or "").strip()
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        return None
    return system_auth(get_system_user_id(db, cfg.SYSTEM_USERNAME), cfg.SYSTEM_USERNAME)


def handle_action(action: str, data: dict, *, allow_internal: bool = False) -> Any:
    """
    Authenticate, authorize and run one action in its own session.

    The action's writes and its audit row commit together; any error rolls
    both back. ``allow_internal`` lets a scheduler authenticate with
    ``X-Internal-Token`` instead of a user token.
    """

    cfg = current_app.config["CFG"]
    action_u = str(action or "").upper().strip()
    g.action = action_u

    db = db_.SessionLocal()
    try:
        auth_ctx = _internal_caller(db, cfg) if allow_internal else None
        if auth_ctx is None:
            auth_ctx = get_current_auth(db)
        g.user_id = auth_ctx.userId

        assert_permission(db, auth_ctx, action_u)
        out = dispatch(action_u, data or {}, auth_ctx, db, cfg)

        append_audit(
            db,
            entityType="API",
            entityId=auth_ctx.userId,
            action=action_u,
            stageTag="API_CALL",
            actor=auth_ctx,
            meta={"data": redact_for_audit(data or {})},
        )
        db.commit()
        return out
    except Exception:
        db.rollback()
        log.info("action rolled back action=%s request_id=%s", action_u, getattr(g, "request_id", ""))
        raise
    finally:
        db.close()


def run_action(action: str, data: dict, *, allow_internal: bool = False, status: int = 200):
    out = handle_action(action, data, allow_internal=allow_internal)
    return jsonify({"success": True, "data": out}), status
