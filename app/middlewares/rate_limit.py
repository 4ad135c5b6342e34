from __future__ import annotations

from flask import Flask, g, request

from app.utils.rate_limiter import InMemoryRateLimiter

limiter = InMemoryRateLimiter()

_EXEMPT_PATHS = {"/health", "/version"}


def init_rate_limiting(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.before_request
    def _rate_limit():
        path = request.path or ""
        if path in _EXEMPT_PATHS or request.method == "OPTIONS":
            return None

        ip = getattr(g, "client_ip", "") or request.remote_addr or ""

        if path.startswith("/api/v1/auth/login"):
            limiter.check(f"{ip}:LOGIN", cfg.RATE_LIMIT_LOGIN)
            return None

        if path.startswith("/api/v1/"):
            limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)
            limiter.check(f"{ip}:PATH:{request.method}:{path}", cfg.RATE_LIMIT_DEFAULT)
        return None
