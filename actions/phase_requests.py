from __future__ import annotations

from sqlalchemy import select

from actions.batches import batch_to_dict, load_batch
from actions.helpers import append_audit, get_in_org, org_id_of, require_id
from models import BatchPhaseChangeRequest, OrganizationBatch, User
from phases import next_phase, normalize_phase
from services.batch_status import transition_batch
from utils import ApiError, AuthContext, clean_str, to_iso_utc, today_in_tz

REQUEST_STATUSES = ("pending", "approved", "rejected")
MANAGER_ROLES = {"owner", "admin", "manager"}


def request_to_dict(r: BatchPhaseChangeRequest, *, batch_name: str | None = None) -> dict:
    return {
        "id": r.id,
        "batchId": r.batchId,
        "batchName": batch_name,
        "trainerId": r.trainerId,
        "managerId": r.managerId,
        "currentPhase": r.currentPhase,
        "requestedPhase": r.requestedPhase,
        "justification": r.justification or "",
        "status": r.status,
        "managerComments": r.managerComments,
        "createdAt": to_iso_utc(r.createdAt),
        "updatedAt": to_iso_utc(r.updatedAt),
    }


def _load_request(db, data: dict, auth: AuthContext | None) -> BatchPhaseChangeRequest:
    return get_in_org(db, BatchPhaseChangeRequest, require_id(data, "requestId"), org_id_of(auth), "Request")


def _pending_for_batch(db, batch_id: int):
    return db.execute(
        select(BatchPhaseChangeRequest.id)
        .where(BatchPhaseChangeRequest.batchId == batch_id)
        .where(BatchPhaseChangeRequest.status == "pending")
    ).scalar_one_or_none()


def phase_request_create(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    batch = load_batch(db, data, auth)

    requested = normalize_phase(data.get("requestedPhase"))
    expected = next_phase(batch.status)
    if expected is None or requested != expected:
        raise ApiError(
            "BAD_REQUEST",
            "requestedPhase must be the next phase of the batch",
            details={"currentPhase": batch.status, "nextPhase": expected},
        )

    manager = get_in_org(db, User, require_id(data, "managerId"), org_id, "Manager")
    if manager.role not in MANAGER_ROLES or not manager.active:
        raise ApiError("BAD_REQUEST", "managerId must be an active manager")
    if manager.id == auth.userId:
        raise ApiError("BAD_REQUEST", "A request cannot be addressed to its author")

    justification = clean_str(data.get("justification"))
    if not justification:
        raise ApiError("BAD_REQUEST", "justification is required")
    if _pending_for_batch(db, batch.id) is not None:
        raise ApiError("CONFLICT", "Batch already has a pending phase change request")

    row = BatchPhaseChangeRequest(
        batchId=batch.id,
        trainerId=auth.userId,
        managerId=manager.id,
        currentPhase=batch.status,
        requestedPhase=requested,
        justification=justification,
        status="pending",
        organizationId=org_id,
    )
    db.add(row)
    db.flush()
    append_audit(
        db,
        entityType="PHASE_REQUEST",
        entityId=row.id,
        action="PHASE_REQUEST_CREATE",
        stageTag="PHASE",
        actor=auth,
        meta={"batchId": batch.id, "requestedPhase": requested, "managerId": manager.id},
    )
    return request_to_dict(row, batch_name=batch.name)


def phase_request_list(data, auth: AuthContext | None, db, cfg):
    """Requests the caller sent (``view=trainer``) or received (``view=manager``, the default)."""

    org_id = org_id_of(auth)
    q = (
        select(BatchPhaseChangeRequest, OrganizationBatch.name)
        .join(OrganizationBatch, OrganizationBatch.id == BatchPhaseChangeRequest.batchId)
        .where(BatchPhaseChangeRequest.organizationId == org_id)
    )
    view = clean_str(data.get("view")).lower() or "manager"
    if view == "trainer":
        q = q.where(BatchPhaseChangeRequest.trainerId == auth.userId)
    elif view == "manager":
        q = q.where(BatchPhaseChangeRequest.managerId == auth.userId)
    elif view != "all" or auth.role not in {"owner", "admin"}:
        raise ApiError("BAD_REQUEST", "view must be trainer|manager")

    status = clean_str(data.get("status")).lower()
    if status:
        if status not in REQUEST_STATUSES:
            raise ApiError("BAD_REQUEST", "status must be pending|approved|rejected")
        q = q.where(BatchPhaseChangeRequest.status == status)
    if data.get("batchId"):
        q = q.where(BatchPhaseChangeRequest.batchId == require_id(data, "batchId"))

    rows = db.execute(q.order_by(BatchPhaseChangeRequest.createdAt.desc(), BatchPhaseChangeRequest.id.desc())).all()
    return {"items": [request_to_dict(r, batch_name=name) for r, name in rows], "total": len(rows)}


def phase_request_decide(data, auth: AuthContext | None, db, cfg):
    row = _load_request(db, data, auth)
    if row.managerId != auth.userId:
        raise ApiError("FORBIDDEN", "Only the addressed manager can decide this request")
    if row.status != "pending":
        raise ApiError("CONFLICT", "Request has already been decided", details={"status": row.status})

    decision = clean_str(data.get("status") or data.get("decision")).lower()
    if decision not in {"approved", "rejected"}:
        raise ApiError("BAD_REQUEST", "status must be approved|rejected")

    batch = db.get(OrganizationBatch, row.batchId)
    moved = None
    if decision == "approved":
        if batch.status != row.currentPhase:
            raise ApiError(
                "CONFLICT",
                "Batch phase changed since the request was made",
                details={"currentPhase": batch.status, "requestedFrom": row.currentPhase},
            )
        moved = transition_batch(
            db,
            batch,
            to_phase=row.requestedPhase,
            on_date=today_in_tz(cfg.APP_TIMEZONE),
            actor_user_id=auth.userId,
            description=f"Phase change request approved: phase changed from {row.currentPhase} to {row.requestedPhase}",
        )

    row.status = decision
    row.managerComments = clean_str(data.get("comments") or data.get("managerComments")) or None
    append_audit(
        db,
        entityType="PHASE_REQUEST",
        entityId=row.id,
        action="PHASE_REQUEST_DECIDE",
        stageTag="PHASE",
        actor=auth,
        meta={"decision": decision, "transition": moved},
    )
    out = request_to_dict(row, batch_name=batch.name)
    out["batch"] = batch_to_dict(batch)
    return out


def phase_request_delete(data, auth: AuthContext | None, db, cfg):
    row = _load_request(db, data, auth)
    if row.trainerId != auth.userId:
        raise ApiError("FORBIDDEN", "Only the author can delete this request")
    if row.status != "pending":
        raise ApiError("CONFLICT", "Only pending requests can be deleted")
    db.delete(row)
    append_audit(db, entityType="PHASE_REQUEST", entityId=row.id, action="PHASE_REQUEST_DELETE", stageTag="PHASE", actor=auth)
    return {"id": row.id, "deleted": True}
