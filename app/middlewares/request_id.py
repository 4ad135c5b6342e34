from __future__ import annotations

import os
import time

from flask import Flask, g, request


def _client_ip(trust_proxy_headers: bool) -> str:
    ip = request.remote_addr or ""
    if trust_proxy_headers:
        forwarded = str(request.headers.get("X-Forwarded-For") or "").strip()
        if forwarded:
            ip = forwarded.split(",", 1)[0].strip()
    return ip


def init_request_id(app: Flask) -> None:
    trust_proxy = bool(getattr(app.config.get("CFG"), "TRUST_PROXY_HEADERS", False))

    @app.before_request
    def _set_request_context():
        incoming = str(request.headers.get("X-Request-ID") or "").strip()[:64]
        g.request_id = incoming or os.urandom(8).hex()
        g.start_ts = time.monotonic()
        g.client_ip = _client_ip(trust_proxy)

    @app.after_request
    def _add_header(resp):
        rid = getattr(g, "request_id", "")
        if rid:
            resp.headers["X-Request-ID"] = rid
        return resp
