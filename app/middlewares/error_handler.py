from __future__ import annotations

import logging
from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from utils import ApiError

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "AUTH_INVALID",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "BAD_REQUEST",
    409: "CONFLICT",
    413: "BAD_REQUEST",
    415: "BAD_REQUEST",
    429: "RATE_LIMITED",
}


def error_payload(code: str, message: str, details: Any = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
    }
    if getattr(g, "request_id", None):
        payload["request_id"] = g.request_id
    return payload


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(err: ApiError):
        if err.status >= 500:
            logging.getLogger("app").error("api error request_id=%s %s", getattr(g, "request_id", ""), err)
        return jsonify(error_payload(err.code, err.message, err.details)), err.status

    @app.errorhandler(HTTPException)
    def _http_error(err: HTTPException):
        status = int(err.code or 500)
        code = _HTTP_CODES.get(status, "INTERNAL" if status >= 500 else "BAD_REQUEST")
        return jsonify(error_payload(code, str(err.description or "HTTP error"))), status

    @app.errorhandler(Exception)
    def _unhandled(err: Exception):
        logging.getLogger("app").exception("Unhandled exception request_id=%s", getattr(g, "request_id", ""))
        return jsonify(error_payload("INTERNAL", "Unexpected error")), 500
