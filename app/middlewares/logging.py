from __future__ import annotations

import json
import logging
import time
from typing import Any

from flask import Flask, g, request


def init_request_logging(app: Flask) -> None:
    logger = logging.getLogger("app.request")

    @app.after_request
    def _log(resp):
        start = getattr(g, "start_ts", None)
        latency_ms = int((time.monotonic() - start) * 1000) if isinstance(start, (int, float)) else None

        data: dict[str, Any] = {
            "type": "request",
            "request_id": getattr(g, "request_id", ""),
            "method": request.method,
            "path": request.path,
            "status": resp.status_code,
            "latency_ms": latency_ms,
            "ip": getattr(g, "client_ip", ""),
        }
        # Set by the action runner once the caller is known.
        if getattr(g, "action", None):
            data["action"] = g.action
        if getattr(g, "user_id", None) is not None:
            data["user_id"] = g.user_id

        level = logging.WARNING if resp.status_code >= 500 else logging.INFO
        logger.log(level, json.dumps(data, separators=(",", ":")))
        return resp
