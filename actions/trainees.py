from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from actions.batches import load_batch, trainee_counts
from actions.helpers import append_audit, bool_maybe, get_in_org, org_id_of, require_id
from actions.users import create_user_record, user_to_dict
from models import OrganizationBatch, User, UserBatchProcess
from phases import normalize_enrollment_status, normalize_trainee_status
from services.batch_status import append_batch_history
from services.trainee_import import parse_trainee_workbook
from utils import ApiError, AuthContext, decode_base64_to_bytes, parse_int_maybe, to_iso_utc, utc_now

MAX_IMPORT_BYTES = 5 * 1024 * 1024


def enrollment_to_dict(ubp: UserBatchProcess, user: Optional[User] = None) -> dict:
    out: dict[str, Any] = {
        "id": ubp.id,
        "userId": ubp.userId,
        "batchId": ubp.batchId,
        "processId": ubp.processId,
        "status": ubp.status,
        "traineeStatus": ubp.traineeStatus,
        "isManualStatus": bool(ubp.isManualStatus),
        "joinedAt": to_iso_utc(ubp.joinedAt),
        "completedAt": to_iso_utc(ubp.completedAt),
    }
    if user is not None:
        out["user"] = {
            "id": user.id,
            "username": user.username,
            "fullName": user.fullName or "",
            "employeeId": user.employeeId,
            "email": user.email,
        }
    return out


def _enrollment(db, batch: OrganizationBatch, data: dict) -> UserBatchProcess:
    enrollment_id = parse_int_maybe(data.get("enrollmentId"))
    if enrollment_id:
        ubp = db.get(UserBatchProcess, enrollment_id)
    else:
        ubp = (
            db.execute(
                select(UserBatchProcess)
                .where(UserBatchProcess.batchId == batch.id)
                .where(UserBatchProcess.userId == require_id(data, "userId"))
            )
            .scalars()
            .first()
        )
    if ubp is None or ubp.batchId != batch.id:
        raise ApiError("NOT_FOUND", "Trainee is not enrolled in this batch")
    return ubp


def _assert_capacity(db, batch: OrganizationBatch, adding: int = 1) -> None:
    enrolled = trainee_counts(db, [batch.id]).get(batch.id, 0)
    if batch.capacityLimit and enrolled + adding > batch.capacityLimit:
        raise ApiError(
            "CONFLICT",
            "Batch is at capacity",
            details={"capacityLimit": batch.capacityLimit, "enrolled": enrolled},
        )


def enroll_user(db, batch: OrganizationBatch, user: User) -> UserBatchProcess:
    if batch.status == "completed":
        raise ApiError("CONFLICT", "Batch is completed")
    if user.organizationId != batch.organizationId:
        raise ApiError("NOT_FOUND", "User not found")
    if not user.active:
        raise ApiError("BAD_REQUEST", "User is inactive")

    existing = db.execute(
        select(UserBatchProcess.id)
        .where(UserBatchProcess.userId == user.id)
        .where(UserBatchProcess.batchId == batch.id)
        .where(UserBatchProcess.processId == batch.processId)
    ).scalar_one_or_none()
    if existing is not None:
        raise ApiError("CONFLICT", "User is already enrolled in this batch")

    ubp = UserBatchProcess(
        userId=user.id,
        batchId=batch.id,
        processId=batch.processId,
        status="active",
        traineeStatus=batch.status,
        isManualStatus=False,
        joinedAt=utc_now(),
    )
    db.add(ubp)
    try:
        db.flush()
    except IntegrityError as e:
        raise ApiError("CONFLICT", "User is already enrolled in this batch") from e
    return ubp


def trainee_list(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    q = (
        select(UserBatchProcess, User)
        .join(User, User.id == UserBatchProcess.userId)
        .where(UserBatchProcess.batchId == batch.id)
    )
    if data.get("status"):
        q = q.where(UserBatchProcess.status == normalize_enrollment_status(data.get("status")))
    if data.get("traineeStatus"):
        q = q.where(UserBatchProcess.traineeStatus == normalize_trainee_status(data.get("traineeStatus")))
    rows = db.execute(q.order_by(User.fullName, User.id)).all()
    return {"items": [enrollment_to_dict(ubp, u) for ubp, u in rows], "total": len(rows)}


def trainee_enroll(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    batch = load_batch(db, data, auth)
    _assert_capacity(db, batch)

    if data.get("userId"):
        user = get_in_org(db, User, data.get("userId"), org_id, "User")
        created = False
    else:
        fields = dict(data.get("user") or {})
        fields.setdefault("locationId", batch.locationId)
        fields.setdefault("managerId", batch.trainerId)
        user = create_user_record(db, org_id, fields, default_role="trainee")
        created = True

    ubp = enroll_user(db, batch, user)
    append_audit(
        db,
        entityType="BATCH",
        entityId=batch.id,
        action="TRAINEE_ENROLL",
        stageTag="ENROLLMENT",
        actor=auth,
        meta={"userId": user.id, "createdUser": created},
    )
    return {**enrollment_to_dict(ubp, user), "createdUser": created}


def trainee_import(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    batch = load_batch(db, data, auth)
    if batch.status == "completed":
        raise ApiError("CONFLICT", "Batch is completed")
    content = decode_base64_to_bytes(str(data.get("fileBase64") or ""))
    if not content:
        raise ApiError("BAD_REQUEST", "fileBase64 is required")
    if len(content) > MAX_IMPORT_BYTES:
        raise ApiError("BAD_REQUEST", "File is too large")

    try:
        rows, errors = parse_trainee_workbook(content)
    except ValueError as e:
        raise ApiError("BAD_REQUEST", str(e)) from e

    default_password = str(data.get("defaultPassword") or "")
    created: list[dict] = []
    enrolled = trainee_counts(db, [batch.id]).get(batch.id, 0)
    for rec in rows:
        if batch.capacityLimit and enrolled >= batch.capacityLimit:
            errors.append({"row": rec["row"], "errors": ["batch is at capacity"]})
            continue
        fields = {k: v for k, v in rec.items() if k != "row"}
        fields["password"] = fields.get("password") or default_password
        fields["locationId"] = batch.locationId
        fields["managerId"] = batch.trainerId
        fields["role"] = "trainee"
        # Validation in both helpers runs before anything is added to the session.
        try:
            user = create_user_record(db, org_id, fields, default_role="trainee")
            ubp = enroll_user(db, batch, user)
        except ApiError as e:
            errors.append({"row": rec["row"], "errors": [e.message]})
            continue
        enrolled += 1
        created.append({"row": rec["row"], "user": user_to_dict(user), "enrollmentId": ubp.id})

    errors.sort(key=lambda x: x["row"])
    append_audit(
        db,
        entityType="BATCH",
        entityId=batch.id,
        action="TRAINEE_IMPORT",
        stageTag="ENROLLMENT",
        actor=auth,
        meta={"created": len(created), "errors": len(errors)},
    )
    return {"created": created, "errors": errors, "createdCount": len(created), "errorCount": len(errors)}


def trainee_remove(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    ubp = _enrollment(db, batch, data)
    db.execute(delete(UserBatchProcess).where(UserBatchProcess.id == ubp.id))
    append_audit(
        db,
        entityType="BATCH",
        entityId=batch.id,
        action="TRAINEE_REMOVE",
        stageTag="ENROLLMENT",
        actor=auth,
        meta={"userId": ubp.userId},
    )
    return {"batchId": batch.id, "userId": ubp.userId, "removed": True}


def trainee_transfer(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    source = load_batch(db, data, auth)
    target = get_in_org(db, OrganizationBatch, require_id(data, "targetBatchId"), org_id, "Target batch")
    if target.id == source.id:
        raise ApiError("BAD_REQUEST", "Target batch is the current batch")
    if target.status == "completed":
        raise ApiError("CONFLICT", "Target batch is completed")

    ubp = _enrollment(db, source, data)
    duplicate = db.execute(
        select(UserBatchProcess.id)
        .where(UserBatchProcess.userId == ubp.userId)
        .where(UserBatchProcess.batchId == target.id)
    ).scalar_one_or_none()
    if duplicate is not None:
        raise ApiError("CONFLICT", "User is already enrolled in the target batch")
    _assert_capacity(db, target)

    ubp.batchId = target.id
    ubp.processId = target.processId
    ubp.traineeStatus = target.status
    ubp.isManualStatus = False
    ubp.status = "active"
    ubp.completedAt = None
    db.flush()

    append_audit(
        db,
        entityType="BATCH",
        entityId=source.id,
        action="TRAINEE_TRANSFER",
        stageTag="ENROLLMENT",
        actor=auth,
        meta={"userId": ubp.userId, "targetBatchId": target.id},
    )
    return enrollment_to_dict(ubp)


def trainee_status_update(data, auth: AuthContext | None, db, cfg):
    """Manual trainee status override; ``isManualStatus: false`` hands the trainee back to the batch phase."""

    batch = load_batch(db, data, auth)
    ubp = _enrollment(db, batch, data)
    user = db.get(User, ubp.userId)

    manual = bool_maybe(data.get("isManualStatus"))
    if manual is False:
        new_status = batch.status
        ubp.isManualStatus = False
    else:
        new_status = normalize_trainee_status(data.get("traineeStatus"))
        ubp.isManualStatus = True

    previous = ubp.traineeStatus
    ubp.traineeStatus = new_status
    if previous != new_status:
        name = (user.fullName or user.username) if user else f"user {ubp.userId}"
        mode = "manually" if ubp.isManualStatus else "automatically (synced with batch)"
        append_batch_history(
            db,
            batch,
            event_type="status_update",
            description=f"Trainee {name} status set {mode} from {previous or 'none'} to {new_status}",
            previous_value=previous,
            new_value=new_status,
            user_id=auth.userId,
        )
    return enrollment_to_dict(ubp, user)


def enrollment_status_update(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    ubp = _enrollment(db, batch, data)
    status = normalize_enrollment_status(data.get("status"))
    if status == "active" and ubp.status != "active":
        _assert_capacity(db, batch)
    ubp.status = status
    ubp.completedAt = utc_now() if status == "completed" else None
    append_audit(
        db,
        entityType="ENROLLMENT",
        entityId=ubp.id,
        action="ENROLLMENT_STATUS_UPDATE",
        stageTag="ENROLLMENT",
        actor=auth,
        meta={"status": status},
    )
    return enrollment_to_dict(ubp)
