from __future__ import annotations

from actions.helpers import append_audit, bool_maybe
from services.batch_status import run_batch_status_job
from utils import ApiError, AuthContext, parse_date_maybe


def batch_status_run(data, auth: AuthContext | None, db, cfg):
    today = None
    if data.get("today"):
        today = parse_date_maybe(data.get("today"))
        if today is None:
            raise ApiError("BAD_REQUEST", "today must be a date (YYYY-MM-DD)")

    out = run_batch_status_job(
        db,
        today=today,
        app_timezone=cfg.APP_TIMEZONE,
        system_username=cfg.SYSTEM_USERNAME,
        dry_run=bool(bool_maybe(data.get("dryRun"))),
    )
    if not out["dryRun"]:
        append_audit(
            db,
            entityType="JOB",
            entityId="batch-status",
            action="BATCH_STATUS_RUN",
            stageTag="JOBS",
            actor=auth,
            meta={k: out[k] for k in ("today", "reset", "failed")},
        )
    return out
