from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from actions.helpers import append_audit, bool_maybe, get_in_org, org_id_of, paginate, require_id
from actions.holidays import holidays_for_location
from models import (
    BatchEvent,
    BatchHistory,
    BatchPhaseChangeRequest,
    OrganizationBatch,
    OrganizationLineOfBusiness,
    OrganizationLocation,
    OrganizationProcess,
    User,
    UserBatchProcess,
)
from phases import ACTUAL_DATE_FIELDS, BATCH_CATEGORIES, PHASE_DURATION_FIELDS, PLANNED_DATE_FIELDS, normalize_phase
from schedule import compute_phase_dates, normalize_weekly_off_days
from services.batch_status import transition_batch
from utils import (
    ApiError,
    AuthContext,
    clean_str,
    iso_date,
    parse_date_required,
    parse_int_maybe,
    safe_json_loads,
    to_iso_utc,
    today_in_tz,
)


def batch_to_dict(b: OrganizationBatch, *, trainee_count: Optional[int] = None) -> dict:
    out: dict[str, Any] = {
        "id": b.id,
        "name": b.name,
        "batchCategory": b.batchCategory,
        "status": b.status,
        "capacityLimit": int(b.capacityLimit or 0),
        "processId": b.processId,
        "locationId": b.locationId,
        "lineOfBusinessId": b.lineOfBusinessId,
        "trainerId": b.trainerId,
        "organizationId": b.organizationId,
        "startDate": iso_date(b.startDate),
        "endDate": iso_date(b.endDate),
        "weeklyOffDays": safe_json_loads(b.weeklyOffDaysJson, []),
        "considerHolidays": bool(b.considerHolidays),
        "createdAt": to_iso_utc(b.createdAt),
        "updatedAt": to_iso_utc(b.updatedAt),
    }
    for field in PLANNED_DATE_FIELDS + ACTUAL_DATE_FIELDS:
        out[field] = iso_date(getattr(b, field))
    if trainee_count is not None:
        out["userCount"] = trainee_count
    return out


def trainee_counts(db, batch_ids: list[int]) -> dict[int, int]:
    if not batch_ids:
        return {}
    rows = db.execute(
        select(UserBatchProcess.batchId, func.count(UserBatchProcess.id))
        .where(UserBatchProcess.batchId.in_(batch_ids))
        .where(UserBatchProcess.status == "active")
        .group_by(UserBatchProcess.batchId)
    ).all()
    return {int(bid): int(n) for bid, n in rows}


def load_batch(db, data: dict, auth: AuthContext | None, key: str = "batchId") -> OrganizationBatch:
    return get_in_org(db, OrganizationBatch, require_id(data, key), org_id_of(auth), "Batch")


def _validate_trainer(db, org_id: int, trainer_id: Any, location_id: int) -> int:
    trainer = get_in_org(db, User, trainer_id, org_id, "Trainer")
    if trainer.role != "trainer" or not trainer.active:
        raise ApiError("BAD_REQUEST", "trainerId must be an active trainer")
    if trainer.locationId and trainer.locationId != location_id:
        raise ApiError("BAD_REQUEST", "Trainer must belong to the batch location")
    return trainer.id


def _weekly_off_days(value: Any) -> list[str]:
    if value is None:
        return normalize_weekly_off_days(None)
    if not isinstance(value, list):
        raise ApiError("BAD_REQUEST", "weeklyOffDays must be a list of weekday names")
    try:
        return normalize_weekly_off_days(value)
    except ValueError as e:
        raise ApiError("BAD_REQUEST", str(e)) from e


def _planned_dates(
    db, *, org_id: int, process: OrganizationProcess, location_id: int, start_date, weekly_off_days, consider_holidays
) -> dict:
    durations = {field: int(getattr(process, field) or 0) for field in PHASE_DURATION_FIELDS.values()}
    holidays = holidays_for_location(db, org_id, location_id) if consider_holidays else []
    try:
        return compute_phase_dates(
            start_date,
            durations,
            weekly_off_days=weekly_off_days,
            holidays=holidays,
            consider_holidays=consider_holidays,
        )
    except ValueError as e:
        raise ApiError("BAD_REQUEST", str(e)) from e


def _apply_planned_dates(batch: OrganizationBatch, dates: dict, overrides: dict) -> None:
    batch.startDate = dates["startDate"]
    batch.endDate = dates["endDate"]
    for field in PLANNED_DATE_FIELDS:
        setattr(batch, field, dates.get(field))
    # Explicit dates from the caller win over the computed schedule.
    for field in PLANNED_DATE_FIELDS + ("endDate",):
        if field in overrides and overrides.get(field):
            setattr(batch, field, parse_date_required(overrides.get(field), field))


def batch_schedule_preview(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    process = get_in_org(db, OrganizationProcess, require_id(data, "processId"), org_id, "Process")
    location_id = parse_int_maybe(data.get("locationId"))
    if location_id:
        get_in_org(db, OrganizationLocation, location_id, org_id, "Location")
    consider = bool_maybe(data.get("considerHolidays"))
    dates = _planned_dates(
        db,
        org_id=org_id,
        process=process,
        location_id=location_id,
        start_date=parse_date_required(data.get("startDate"), "startDate"),
        weekly_off_days=_weekly_off_days(data.get("weeklyOffDays")),
        consider_holidays=True if consider is None else consider,
    )
    return {k: iso_date(v) for k, v in dates.items()}


def batch_create(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    if "status" in data and normalize_phase(data.get("status")) != "planned":
        raise ApiError("BAD_REQUEST", "New batches start in the planned phase")

    name = clean_str(data.get("name"))
    if not name:
        raise ApiError("BAD_REQUEST", "name is required")
    category = clean_str(data.get("batchCategory")).lower() or "new_training"
    if category not in BATCH_CATEGORIES:
        raise ApiError("BAD_REQUEST", "batchCategory must be new_training|upskill")

    location = get_in_org(db, OrganizationLocation, require_id(data, "locationId"), org_id, "Location")
    lob = get_in_org(db, OrganizationLineOfBusiness, require_id(data, "lineOfBusinessId"), org_id, "Line of business")
    process = get_in_org(db, OrganizationProcess, require_id(data, "processId"), org_id, "Process")
    if process.lineOfBusinessId != lob.id:
        raise ApiError("BAD_REQUEST", "Process does not belong to the line of business")
    if process.status != "active":
        raise ApiError("BAD_REQUEST", "Process is not active")

    trainer_id = None
    if data.get("trainerId"):
        trainer_id = _validate_trainer(db, org_id, data.get("trainerId"), location.id)

    capacity = parse_int_maybe(data.get("capacityLimit"))
    if capacity is None or capacity < 1:
        raise ApiError("BAD_REQUEST", "capacityLimit must be a positive integer")

    weekly_off = _weekly_off_days(data.get("weeklyOffDays"))
    consider = bool_maybe(data.get("considerHolidays"))
    consider = True if consider is None else consider

    batch = OrganizationBatch(
        name=name,
        batchCategory=category,
        status="planned",
        capacityLimit=capacity,
        processId=process.id,
        locationId=location.id,
        lineOfBusinessId=lob.id,
        trainerId=trainer_id,
        organizationId=org_id,
        weeklyOffDaysJson=json.dumps(weekly_off),
        considerHolidays=consider,
    )
    dates = _planned_dates(
        db,
        org_id=org_id,
        process=process,
        location_id=location.id,
        start_date=parse_date_required(data.get("startDate"), "startDate"),
        weekly_off_days=weekly_off,
        consider_holidays=consider,
    )
    _apply_planned_dates(batch, dates, data)

    db.add(batch)
    try:
        db.flush()
    except IntegrityError as e:
        raise ApiError("CONFLICT", "A batch with this name already exists") from e

    append_audit(db, entityType="BATCH", entityId=batch.id, action="BATCH_CREATE", stageTag="BATCH", actor=auth)
    return batch_to_dict(batch, trainee_count=0)


def batch_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    q = select(OrganizationBatch).where(OrganizationBatch.organizationId == org_id)
    if data.get("status"):
        q = q.where(OrganizationBatch.status == normalize_phase(data.get("status")))
    for key, column in (
        ("processId", OrganizationBatch.processId),
        ("locationId", OrganizationBatch.locationId),
        ("lineOfBusinessId", OrganizationBatch.lineOfBusinessId),
        ("trainerId", OrganizationBatch.trainerId),
    ):
        n = parse_int_maybe(data.get(key))
        if n:
            q = q.where(column == n)
    text = clean_str(data.get("q")).lower()
    if text:
        q = q.where(func.lower(OrganizationBatch.name).contains(text))

    rows = db.execute(q.order_by(OrganizationBatch.startDate.desc(), OrganizationBatch.id.desc())).scalars().all()
    counts = trainee_counts(db, [b.id for b in rows])
    items = [batch_to_dict(b, trainee_count=counts.get(b.id, 0)) for b in rows]
    return paginate(items, data)


def batch_get(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    return batch_to_dict(batch, trainee_count=trainee_counts(db, [batch.id]).get(batch.id, 0))


def batch_update(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    batch = load_batch(db, data, auth)
    if "status" in data:
        raise ApiError("BAD_REQUEST", "Batch status changes through start, phase requests or the scheduler")

    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            raise ApiError("BAD_REQUEST", "name cannot be empty")
        batch.name = name
    if "batchCategory" in data:
        category = clean_str(data.get("batchCategory")).lower()
        if category not in BATCH_CATEGORIES:
            raise ApiError("BAD_REQUEST", "batchCategory must be new_training|upskill")
        batch.batchCategory = category
    if "capacityLimit" in data:
        capacity = parse_int_maybe(data.get("capacityLimit"))
        if capacity is None or capacity < 1:
            raise ApiError("BAD_REQUEST", "capacityLimit must be a positive integer")
        enrolled = trainee_counts(db, [batch.id]).get(batch.id, 0)
        if capacity < enrolled:
            raise ApiError("CONFLICT", "capacityLimit is below the enrolled trainee count", details={"enrolled": enrolled})
        batch.capacityLimit = capacity
    if "trainerId" in data:
        batch.trainerId = (
            _validate_trainer(db, org_id, data.get("trainerId"), batch.locationId) if data.get("trainerId") else None
        )

    reschedule = any(k in data for k in ("startDate", "weeklyOffDays", "considerHolidays"))
    explicit = [f for f in PLANNED_DATE_FIELDS + ("endDate",) if f in data]
    if reschedule or explicit:
        if batch.status != "planned":
            raise ApiError("CONFLICT", "Planned dates can only change before the batch starts")
        if "weeklyOffDays" in data:
            batch.weeklyOffDaysJson = json.dumps(_weekly_off_days(data.get("weeklyOffDays")))
        if "considerHolidays" in data:
            batch.considerHolidays = bool(bool_maybe(data.get("considerHolidays")))
        if reschedule:
            process = db.get(OrganizationProcess, batch.processId)
            dates = _planned_dates(
                db,
                org_id=org_id,
                process=process,
                location_id=batch.locationId,
                start_date=(
                    parse_date_required(data.get("startDate"), "startDate") if "startDate" in data else batch.startDate
                ),
                weekly_off_days=safe_json_loads(batch.weeklyOffDaysJson, None),
                consider_holidays=bool(batch.considerHolidays),
            )
            _apply_planned_dates(batch, dates, data)
        else:
            for field in explicit:
                setattr(batch, field, parse_date_required(data.get(field), field))

    try:
        db.flush()
    except IntegrityError as e:
        raise ApiError("CONFLICT", "A batch with this name already exists") from e
    append_audit(db, entityType="BATCH", entityId=batch.id, action="BATCH_UPDATE", stageTag="BATCH", actor=auth)
    return batch_to_dict(batch, trainee_count=trainee_counts(db, [batch.id]).get(batch.id, 0))


def batch_delete(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    if batch.status != "planned":
        raise ApiError("CONFLICT", "Only planned batches can be deleted")

    for model in (UserBatchProcess, BatchHistory, BatchEvent, BatchPhaseChangeRequest):
        db.execute(delete(model).where(model.batchId == batch.id))
    db.delete(batch)
    append_audit(db, entityType="BATCH", entityId=batch.id, action="BATCH_DELETE", stageTag="BATCH", actor=auth)
    return {"id": batch.id, "deleted": True}


def batch_start(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    if batch.status != "planned":
        raise ApiError("CONFLICT", "Batch has already started", details={"status": batch.status})

    moved = transition_batch(
        db,
        batch,
        to_phase="induction",
        on_date=today_in_tz(cfg.APP_TIMEZONE),
        actor_user_id=auth.userId,
        description="Batch started: phase changed from planned to induction",
    )
    append_audit(
        db, entityType="BATCH", entityId=batch.id, action="BATCH_START", stageTag="BATCH", actor=auth, meta=moved
    )
    return {**batch_to_dict(batch), "traineesUpdated": moved["traineesUpdated"]}


def my_batches(data, auth: AuthContext | None, db, cfg):
    rows = db.execute(
        select(UserBatchProcess, OrganizationBatch)
        .join(OrganizationBatch, OrganizationBatch.id == UserBatchProcess.batchId)
        .where(UserBatchProcess.userId == auth.userId)
        .order_by(OrganizationBatch.startDate.desc())
    ).all()
    items = []
    for ubp, batch in rows:
        items.append(
            {
                "enrollmentId": ubp.id,
                "enrollmentStatus": ubp.status,
                "traineeStatus": ubp.traineeStatus,
                "isManualStatus": bool(ubp.isManualStatus),
                "batch": batch_to_dict(batch),
            }
        )
    return {"items": items, "total": len(items)}
