from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import date, datetime
from typing import Any, Optional

from dotenv import load_dotenv
from sqlalchemy import func, select, update

from models import BatchHistory, OrganizationBatch, User, UserBatchProcess
from phases import (
    ACTIVE_PHASES,
    ACTUAL_DATE_FIELDS,
    BATCH_PHASES,
    actual_end_field,
    actual_start_field,
    is_active_phase,
    next_phase,
    planned_end_field,
)
from utils import ApiError, parse_date_maybe, today_in_tz, utc_now

log = logging.getLogger("batch_status")

DEFAULT_SYSTEM_USERNAME = "system"


def get_system_user_id(db, username: str = DEFAULT_SYSTEM_USERNAME) -> int:
    """Id of the non-login account that automatic history entries are attributed to."""
    user_id = db.execute(select(User.id).where(User.username == username)).scalar_one_or_none()
    if user_id is not None:
        return int(user_id)

    user = User(
        username=username,
        passwordHash="!",
        fullName="System",
        role="owner",
        category="active",
        active=False,
    )
    db.add(user)
    db.flush()
    log.info("created system actor user_id=%s", user.id)
    return int(user.id)


def append_batch_history(
    db,
    batch: OrganizationBatch,
    *,
    event_type: str,
    description: str,
    user_id: int,
    previous_value: Optional[str] = None,
    new_value: Optional[str] = None,
    at: Optional[datetime] = None,
) -> BatchHistory:
    row = BatchHistory(
        batchId=batch.id,
        eventType=event_type,
        description=description,
        previousValue=previous_value,
        newValue=new_value,
        date=at or utc_now(),
        userId=user_id,
        organizationId=batch.organizationId,
    )
    db.add(row)
    return row


def count_enrolled_trainees(db, batch_id: int) -> int:
    """Enrollments that keep a batch alive: every row except dropped ones."""
    return int(
        db.execute(
            select(func.count(UserBatchProcess.id))
            .where(UserBatchProcess.batchId == batch_id)
            .where(UserBatchProcess.status != "dropped")
        ).scalar_one()
    )


def propagate_trainee_status(db, batch_id: int, status: str) -> int:
    res = db.execute(
        update(UserBatchProcess)
        .where(UserBatchProcess.batchId == batch_id)
        .where(UserBatchProcess.status == "active")
        .where(UserBatchProcess.isManualStatus == False)  # noqa: E712
        .values(traineeStatus=status, updatedAt=utc_now())
    )
    return int(res.rowcount or 0)


def transition_batch(
    db,
    batch: OrganizationBatch,
    *,
    to_phase: str,
    on_date: date,
    actor_user_id: int,
    description: Optional[str] = None,
) -> dict[str, Any]:
    """
    Move ``batch`` one phase forward.

    Stamps the actual end of the departing phase and the actual start of the
    arriving one, appends one ``phase_change`` history entry and pushes the new
    phase to every active, non-manual enrollment. Does not commit.
    """

    from_phase = str(batch.status or "")
    expected = next_phase(from_phase)
    if expected is None or to_phase != expected:
        raise ApiError(
            "CONFLICT",
            f"Batch can only move from {from_phase} to {expected or 'nowhere'}",
            details={"currentPhase": from_phase, "requestedPhase": to_phase},
        )
    if count_enrolled_trainees(db, batch.id) == 0:
        raise ApiError("CONFLICT", "Batch has no enrolled trainees", details={"batchId": batch.id})

    end_field = actual_end_field(from_phase)
    if end_field:
        setattr(batch, end_field, on_date)
    setattr(batch, actual_start_field(to_phase), on_date)
    batch.status = to_phase

    append_batch_history(
        db,
        batch,
        event_type="phase_change",
        description=description or f"Batch phase changed from {from_phase} to {to_phase}",
        previous_value=from_phase,
        new_value=to_phase,
        user_id=actor_user_id,
    )
    updated = propagate_trainee_status(db, batch.id, to_phase)
    return {"batchId": batch.id, "from": from_phase, "to": to_phase, "traineesUpdated": updated}


def _batch_ids(db, statuses) -> list[int]:
    return list(
        db.execute(
            select(OrganizationBatch.id).where(OrganizationBatch.status.in_(list(statuses))).order_by(OrganizationBatch.id)
        )
        .scalars()
        .all()
    )


def due_transitions(db, *, today: date) -> list[dict[str, Any]]:
    """Batches whose current phase has ended on or before ``today`` (read-only)."""
    out: list[dict[str, Any]] = []
    for batch_id in _batch_ids(db, ACTIVE_PHASES):
        batch = db.get(OrganizationBatch, batch_id)
        if batch is None:
            continue
        end_date = getattr(batch, planned_end_field(batch.status))
        if end_date is None or today < end_date:
            continue
        out.append(
            {
                "batchId": batch.id,
                "name": batch.name,
                "from": batch.status,
                "to": next_phase(batch.status),
                "phaseEndDate": end_date.isoformat(),
                "trainees": count_enrolled_trainees(db, batch.id),
            }
        )
    return out


def update_batch_statuses(db, *, today: date, system_user_id: int) -> dict[str, Any]:
    result: dict[str, Any] = {"transitioned": [], "skippedEmpty": [], "failed": []}

    for batch_id in _batch_ids(db, ACTIVE_PHASES):
        try:
            batch = db.get(OrganizationBatch, batch_id)
            if batch is None or not is_active_phase(batch.status):
                continue

            end_date = getattr(batch, planned_end_field(batch.status))
            if end_date is None or today < end_date:
                continue

            target = next_phase(batch.status)
            if count_enrolled_trainees(db, batch.id) == 0:
                log.info("batch_id=%s phase=%s ended but has no trainees; not advancing", batch.id, batch.status)
                result["skippedEmpty"].append(batch.id)
                continue

            moved = transition_batch(db, batch, to_phase=target, on_date=today, actor_user_id=system_user_id)
            db.commit()
            log.info(
                "batch_id=%s %s -> %s trainees_updated=%s",
                batch_id,
                moved["from"],
                moved["to"],
                moved["traineesUpdated"],
            )
            result["transitioned"].append(moved)
        except Exception:
            db.rollback()
            log.exception("batch status update failed batch_id=%s", batch_id)
            result["failed"].append(batch_id)

    return result


def backfill_actual_start_dates(db, *, today: date) -> list[int]:
    """Batches sitting in an active phase with no actual start for it get ``today``."""
    fixed: list[int] = []
    for batch_id in _batch_ids(db, ACTIVE_PHASES):
        try:
            batch = db.get(OrganizationBatch, batch_id)
            if batch is None or not is_active_phase(batch.status):
                continue
            field = actual_start_field(batch.status)
            if getattr(batch, field) is not None:
                continue
            setattr(batch, field, today)
            db.commit()
            log.info("batch_id=%s backfilled %s=%s", batch_id, field, today.isoformat())
            fixed.append(batch_id)
        except Exception:
            db.rollback()
            log.exception("start date backfill failed batch_id=%s", batch_id)
    return fixed


def backfill_actual_end_dates(db) -> list[int]:
    """A passed phase with no actual end inherits the actual start of the phase after it."""
    fixed: list[int] = []
    for batch_id in _batch_ids(db, BATCH_PHASES[2:]):
        try:
            batch = db.get(OrganizationBatch, batch_id)
            if batch is None:
                continue
            current_idx = BATCH_PHASES.index(batch.status)
            changed = []
            for phase in ACTIVE_PHASES:
                following = next_phase(phase)
                if BATCH_PHASES.index(following) > current_idx:
                    break
                end_field = actual_end_field(phase)
                next_start = getattr(batch, actual_start_field(following))
                if getattr(batch, end_field) is None and next_start is not None:
                    setattr(batch, end_field, next_start)
                    changed.append(end_field)
            if not changed:
                continue
            db.commit()
            log.info("batch_id=%s backfilled %s", batch_id, ",".join(changed))
            fixed.append(batch_id)
        except Exception:
            db.rollback()
            log.exception("end date backfill failed batch_id=%s", batch_id)
    return fixed


def reset_empty_batches(db, *, system_user_id: int) -> list[int]:
    reset: list[int] = []
    for batch_id in _batch_ids(db, ACTIVE_PHASES):
        try:
            batch = db.get(OrganizationBatch, batch_id)
            if batch is None or not is_active_phase(batch.status):
                continue
            if count_enrolled_trainees(db, batch.id) > 0:
                continue

            previous = batch.status
            batch.status = "planned"
            for field in ACTUAL_DATE_FIELDS:
                setattr(batch, field, None)
            append_batch_history(
                db,
                batch,
                event_type="phase_change",
                description=f"Batch reset from {previous} to planned due to having no enrolled users",
                previous_value=previous,
                new_value="planned",
                user_id=system_user_id,
            )
            db.commit()
            log.info("batch_id=%s reset %s -> planned (no trainees)", batch_id, previous)
            reset.append(batch_id)
        except Exception:
            db.rollback()
            log.exception("empty batch reset failed batch_id=%s", batch_id)
    return reset


def initialize_trainee_statuses(db) -> int:
    """Active enrollments without a trainee status take their batch's phase."""
    total = 0
    rows = db.execute(
        select(OrganizationBatch.id, OrganizationBatch.status)
        .join(UserBatchProcess, UserBatchProcess.batchId == OrganizationBatch.id)
        .where(UserBatchProcess.traineeStatus.is_(None))
        .where(UserBatchProcess.status == "active")
        .distinct()
    ).all()
    for batch_id, status in rows:
        res = db.execute(
            update(UserBatchProcess)
            .where(UserBatchProcess.batchId == batch_id)
            .where(UserBatchProcess.status == "active")
            .where(UserBatchProcess.traineeStatus.is_(None))
            .values(traineeStatus=status, updatedAt=utc_now())
        )
        total += int(res.rowcount or 0)
    db.commit()
    if total:
        log.info("initialized trainee status rows=%s", total)
    return total


def run_batch_status_job(
    db,
    *,
    today: Optional[date] = None,
    app_timezone: str = "Asia/Kolkata",
    system_username: str = DEFAULT_SYSTEM_USERNAME,
    dry_run: bool = False,
) -> dict[str, Any]:
    """One scheduled pass: reset empty batches, advance due ones, then repair actual dates."""

    day = today or today_in_tz(app_timezone)
    if dry_run:
        return {"today": day.isoformat(), "dryRun": True, "due": due_transitions(db, today=day)}

    system_user_id = get_system_user_id(db, system_username)
    db.commit()

    reset = reset_empty_batches(db, system_user_id=system_user_id)
    moved = update_batch_statuses(db, today=day, system_user_id=system_user_id)
    starts = backfill_actual_start_dates(db, today=day)
    ends = backfill_actual_end_dates(db)

    return {
        "today": day.isoformat(),
        "dryRun": False,
        "reset": reset,
        "transitioned": moved["transitioned"],
        "skippedEmpty": moved["skippedEmpty"],
        "failed": moved["failed"],
        "backfilledStartDates": starts,
        "backfilledEndDates": ends,
    }


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Batch phase progression and maintenance.")
    parser.add_argument(
        "command",
        choices=["run", "reset-empty", "backfill", "init-trainee-status"],
        help="run = full scheduled pass; the others run a single maintenance step.",
    )
    parser.add_argument("--today", default="", help="Override today's date (YYYY-MM-DD).")
    parser.add_argument("--dry-run", action="store_true", help="Only list batches that are due (run only).")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=str(os.getenv("LOG_LEVEL", "INFO") or "INFO").upper(), format="%(message)s")

    import db as db_
    from schema import ensure_schema

    engine = db_.init_engine(os.getenv("DATABASE_URL", "sqlite:///./cloudlms.db"))
    ensure_schema(engine)

    app_timezone = str(os.getenv("APP_TIMEZONE", "Asia/Kolkata") or "Asia/Kolkata")
    system_username = str(os.getenv("SYSTEM_USERNAME", DEFAULT_SYSTEM_USERNAME) or DEFAULT_SYSTEM_USERNAME)
    today = parse_date_maybe(args.today) if args.today else today_in_tz(app_timezone)
    if today is None:
        parser.error("--today must be YYYY-MM-DD")

    db = db_.SessionLocal()
    try:
        if args.command == "run":
            out: Any = run_batch_status_job(
                db, today=today, system_username=system_username, dry_run=bool(args.dry_run)
            )
        elif args.command == "reset-empty":
            system_user_id = get_system_user_id(db, system_username)
            db.commit()
            out = {"reset": reset_empty_batches(db, system_user_id=system_user_id)}
        elif args.command == "backfill":
            out = {
                "backfilledStartDates": backfill_actual_start_dates(db, today=today),
                "backfilledEndDates": backfill_actual_end_dates(db),
            }
        else:
            out = {"initialized": initialize_trainee_statuses(db)}
    finally:
        db.close()

    print(json.dumps(out, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
