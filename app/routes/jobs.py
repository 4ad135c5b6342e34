from __future__ import annotations

from flask import Blueprint

from app.api import run_action
from app.utils.validators import optional_json

jobs_bp = Blueprint("jobs", __name__)


@jobs_bp.post("/batch-status")
def batch_status():
    """External cron entry point; send ``X-Internal-Token`` or a bearer token."""
    body = optional_json()
    data = {k: body[k] for k in ("today", "dryRun") if k in body}
    return run_action("BATCH_STATUS_RUN", data, allow_internal=True)
