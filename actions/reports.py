from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import func, select

from actions.helpers import org_id_of
from models import BatchHistory, OrganizationBatch, UserBatchProcess
from phases import BATCH_PHASES
from utils import ApiError, AuthContext, clean_str, parse_date_maybe


def _date_range(data: dict) -> tuple[date, date]:
    from_s = clean_str(data.get("from"))
    to_s = clean_str(data.get("to"))
    if not from_s or not to_s:
        raise ApiError("BAD_REQUEST", "from and to are required (YYYY-MM-DD)")
    start_d = parse_date_maybe(from_s)
    end_d = parse_date_maybe(to_s)
    if start_d is None or end_d is None:
        raise ApiError("BAD_REQUEST", "Date must be YYYY-MM-DD")
    if end_d < start_d:
        raise ApiError("BAD_REQUEST", "Invalid date range")
    return start_d, end_d


def batch_summary_report(db, organization_id: int, start_d: date, end_d: date) -> dict[str, Any]:
    """Batches starting in [start_d, end_d], their enrollments, and phase changes logged in the range."""

    in_range = (
        select(OrganizationBatch.id)
        .where(OrganizationBatch.organizationId == organization_id)
        .where(OrganizationBatch.startDate >= start_d)
        .where(OrganizationBatch.startDate <= end_d)
    )

    by_status = dict(
        db.execute(
            select(OrganizationBatch.status, func.count(OrganizationBatch.id))
            .where(OrganizationBatch.id.in_(in_range))
            .group_by(OrganizationBatch.status)
        ).all()
    )
    batches = [{"status": s, "count": int(by_status.get(s, 0))} for s in BATCH_PHASES]

    trainee_rows = db.execute(
        select(UserBatchProcess.traineeStatus, func.count(UserBatchProcess.id))
        .where(UserBatchProcess.batchId.in_(in_range))
        .where(UserBatchProcess.status == "active")
        .group_by(UserBatchProcess.traineeStatus)
    ).all()
    trainees = sorted(
        ({"traineeStatus": s or "unknown", "count": int(n)} for s, n in trainee_rows),
        key=lambda x: x["traineeStatus"],
    )

    start_dt = datetime.combine(start_d, time.min, tzinfo=timezone.utc)
    end_dt = datetime.combine(end_d + timedelta(days=1), time.min, tzinfo=timezone.utc)
    transition_rows = db.execute(
        select(BatchHistory.previousValue, BatchHistory.newValue, func.count(BatchHistory.id))
        .where(BatchHistory.organizationId == organization_id)
        .where(BatchHistory.eventType == "phase_change")
        .where(BatchHistory.date >= start_dt)
        .where(BatchHistory.date < end_dt)
        .group_by(BatchHistory.previousValue, BatchHistory.newValue)
    ).all()
    transitions = sorted(
        ({"from": a or "", "to": b or "", "count": int(n)} for a, b, n in transition_rows),
        key=lambda x: (x["from"], x["to"]),
    )

    return {
        "batches": {"total": sum(x["count"] for x in batches), "byStatus": batches},
        "trainees": {"total": sum(x["count"] for x in trainees), "byTraineeStatus": trainees},
        "phaseChanges": {"total": sum(x["count"] for x in transitions), "items": transitions},
    }


def report_batch_summary(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    start_d, end_d = _date_range(data)
    return {"from": start_d.isoformat(), "to": end_d.isoformat(), **batch_summary_report(db, org_id, start_d, end_d)}
