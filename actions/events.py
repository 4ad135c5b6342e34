from __future__ import annotations

from sqlalchemy import select

from actions.batches import load_batch
from actions.helpers import append_audit, require_id
from models import BatchEvent
from utils import ApiError, AuthContext, as_utc, clean_str, parse_datetime_maybe, to_iso_utc

EVENT_TYPES = {"refresher", "quiz", "training", "meeting", "other"}
EVENT_STATUSES = {"scheduled", "completed", "cancelled"}


def event_to_dict(e: BatchEvent) -> dict:
    return {
        "id": e.id,
        "batchId": e.batchId,
        "title": e.title,
        "description": e.description or "",
        "startDate": to_iso_utc(e.startDate),
        "endDate": to_iso_utc(e.endDate),
        "eventType": e.eventType,
        "status": e.status,
        "refresherReason": e.refresherReason,
        "createdBy": e.createdBy,
        "organizationId": e.organizationId,
    }


def _apply(e: BatchEvent, data: dict, cfg) -> None:
    if "title" in data:
        title = clean_str(data.get("title"))
        if not title:
            raise ApiError("BAD_REQUEST", "title is required")
        e.title = title
    if "description" in data:
        e.description = clean_str(data.get("description"))
    for key in ("startDate", "endDate"):
        if key in data:
            dt = parse_datetime_maybe(data.get(key), app_timezone=cfg.APP_TIMEZONE)
            if dt is None:
                raise ApiError("BAD_REQUEST", f"{key} must be a date or datetime")
            setattr(e, key, dt)
    if "eventType" in data:
        event_type = clean_str(data.get("eventType")).lower()
        if event_type not in EVENT_TYPES:
            raise ApiError("BAD_REQUEST", "eventType must be refresher|quiz|training|meeting|other")
        e.eventType = event_type
    if "status" in data:
        status = clean_str(data.get("status")).lower()
        if status not in EVENT_STATUSES:
            raise ApiError("BAD_REQUEST", "status must be scheduled|completed|cancelled")
        e.status = status
    if "refresherReason" in data:
        e.refresherReason = clean_str(data.get("refresherReason")) or None

    if e.startDate and e.endDate and as_utc(e.endDate) < as_utc(e.startDate):
        raise ApiError("BAD_REQUEST", "endDate must not be before startDate")
    if e.eventType == "refresher" and not e.refresherReason:
        raise ApiError("BAD_REQUEST", "refresherReason is required for refresher events")


def _event(db, batch, data: dict) -> BatchEvent:
    e = db.get(BatchEvent, require_id(data, "eventId"))
    if e is None or e.batchId != batch.id:
        raise ApiError("NOT_FOUND", "Event not found")
    return e


def batch_event_list(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    q = select(BatchEvent).where(BatchEvent.batchId == batch.id)
    event_type = clean_str(data.get("eventType")).lower()
    if event_type:
        q = q.where(BatchEvent.eventType == event_type)
    rows = db.execute(q.order_by(BatchEvent.startDate)).scalars().all()
    return {"items": [event_to_dict(e) for e in rows], "total": len(rows)}


def batch_event_create(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    if not data.get("startDate") or not data.get("endDate") or not clean_str(data.get("title")):
        raise ApiError("BAD_REQUEST", "title, startDate and endDate are required")
    e = BatchEvent(
        batchId=batch.id,
        organizationId=batch.organizationId,
        createdBy=auth.userId,
        eventType="other",
        status="scheduled",
    )
    _apply(e, data, cfg)
    db.add(e)
    db.flush()
    append_audit(db, entityType="BATCH_EVENT", entityId=e.id, action="BATCH_EVENT_CREATE", stageTag="EVENTS", actor=auth)
    return event_to_dict(e)


def batch_event_update(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    e = _event(db, batch, data)
    _apply(e, data, cfg)
    return event_to_dict(e)


def batch_event_delete(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    e = _event(db, batch, data)
    db.delete(e)
    append_audit(db, entityType="BATCH_EVENT", entityId=e.id, action="BATCH_EVENT_DELETE", stageTag="EVENTS", actor=auth)
    return {"id": e.id, "deleted": True}
