from __future__ import annotations

from sqlalchemy import select

from actions.batches import load_batch
from actions.helpers import paginate
from models import BatchHistory, User
from services.batch_status import append_batch_history
from utils import ApiError, AuthContext, clean_str, to_iso_utc


def history_to_dict(h: BatchHistory, user_name: str | None = None) -> dict:
    return {
        "id": h.id,
        "batchId": h.batchId,
        "eventType": h.eventType,
        "description": h.description,
        "previousValue": h.previousValue,
        "newValue": h.newValue,
        "date": to_iso_utc(h.date),
        "userId": h.userId,
        "user": {"id": h.userId, "fullName": user_name or ""},
        "organizationId": h.organizationId,
    }


def batch_history_list(data, auth: AuthContext | None, db, cfg):
    batch = load_batch(db, data, auth)
    q = (
        select(BatchHistory, User.fullName)
        .outerjoin(User, User.id == BatchHistory.userId)
        .where(BatchHistory.batchId == batch.id)
    )
    event_type = clean_str(data.get("eventType")).lower()
    if event_type:
        q = q.where(BatchHistory.eventType == event_type)
    rows = db.execute(q.order_by(BatchHistory.date.desc(), BatchHistory.id.desc())).all()
    return paginate([history_to_dict(h, name) for h, name in rows], data, default_size=200)


def batch_history_add(data, auth: AuthContext | None, db, cfg):
    """Operator notes and milestones; phase and status entries come from the workflows that cause them."""

    batch = load_batch(db, data, auth)
    event_type = clean_str(data.get("eventType")).lower() or "note"
    if event_type not in {"note", "milestone"}:
        raise ApiError("BAD_REQUEST", "eventType must be note|milestone")
    description = clean_str(data.get("description"))
    if not description:
        raise ApiError("BAD_REQUEST", "description is required")

    row = append_batch_history(db, batch, event_type=event_type, description=description, user_id=auth.userId)
    db.flush()
    user = db.get(User, auth.userId)
    return history_to_dict(row, user.fullName if user else "")
