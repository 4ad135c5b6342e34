from __future__ import annotations

from typing import Any, Optional

from models import AuditLog
from utils import ApiError, AuthContext, iso_utc_now, new_log_id, parse_int_maybe, safe_json_string


def append_audit(
    db,
    *,
    entityType: str,
    entityId: Any,
    action: str,
    stageTag: str,
    actor: AuthContext | None,
    remark: str = "",
    meta: Any = None,
    at: Optional[str] = None,
) -> None:
    if meta is None:
        meta_json = "{}"
    elif isinstance(meta, str):
        meta_json = meta
    else:
        meta_json = safe_json_string(meta, "{}")

    db.add(
        AuditLog(
            logId=new_log_id(),
            entityType=str(entityType or ""),
            entityId=str(entityId if entityId is not None else ""),
            action=str(action or "").upper(),
            stageTag=str(stageTag or ""),
            remark=str(remark or ""),
            actorUserId=str(actor.userId if actor else "PUBLIC"),
            actorRole=str(actor.role if actor else "PUBLIC"),
            organizationId=actor.organizationId if actor else None,
            at=str(at or iso_utc_now()),
            metaJson=meta_json,
        )
    )


def org_id_of(auth: AuthContext | None) -> int:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")
    if not auth.organizationId:
        raise ApiError("FORBIDDEN", "User does not belong to an organization")
    return int(auth.organizationId)


def require_id(data: dict, key: str) -> int:
    n = parse_int_maybe(data.get(key))
    if n is None or n <= 0:
        raise ApiError("BAD_REQUEST", f"{key} is required")
    return n


def get_in_org(db, model, row_id: Any, organization_id: int, label: str):
    """Row of ``model`` with ``row_id`` owned by the organization, else NOT_FOUND."""
    n = parse_int_maybe(row_id)
    row = db.get(model, n) if n else None
    if row is None or getattr(row, "organizationId", None) != organization_id:
        raise ApiError("NOT_FOUND", f"{label} not found", details={"id": row_id})
    return row


def bool_maybe(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None or value == "":
        return None
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return None


def paginate(items: list, data: dict, *, default_size: int = 100) -> dict[str, Any]:
    page = max(1, parse_int_maybe(data.get("page")) or 1)
    page_size = max(1, min(500, parse_int_maybe(data.get("pageSize")) or default_size))
    start = (page - 1) * page_size
    return {"items": items[start : start + page_size], "total": len(items), "page": page, "pageSize": page_size}
