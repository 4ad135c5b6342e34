from __future__ import annotations

from flask import Flask, request


def init_security_headers(app: Flask) -> None:
    cfg = app.config.get("CFG")

    @app.after_request
    def _headers(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        resp.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")

        # Trainee rosters and reports must not sit in shared caches.
        if request.path.startswith("/api/"):
            resp.headers.setdefault("Cache-Control", "no-store")

        is_https = request.is_secure or str(request.headers.get("X-Forwarded-Proto") or "").lower() == "https"
        if getattr(cfg, "IS_PRODUCTION", False) and is_https:
            resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")

        return resp
