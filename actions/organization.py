from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from actions.helpers import append_audit, get_in_org, org_id_of, require_id
from models import (
    Organization,
    OrganizationBatch,
    OrganizationLineOfBusiness,
    OrganizationLocation,
    OrganizationProcess,
    User,
)
from phases import PHASE_DURATION_FIELDS
from utils import ApiError, AuthContext, clean_str, parse_int_maybe, to_iso_utc

PROCESS_STATUSES = {"active", "inactive", "archived"}


def _org_to_dict(o: Organization) -> dict:
    return {"id": o.id, "name": o.name, "createdAt": to_iso_utc(o.createdAt)}


def _location_to_dict(loc: OrganizationLocation) -> dict:
    return {
        "id": loc.id,
        "name": loc.name,
        "address": loc.address or "",
        "city": loc.city or "",
        "state": loc.state or "",
        "country": loc.country or "",
        "organizationId": loc.organizationId,
    }


def _lob_to_dict(lob: OrganizationLineOfBusiness) -> dict:
    return {"id": lob.id, "name": lob.name, "description": lob.description or "", "organizationId": lob.organizationId}


def process_to_dict(p: OrganizationProcess) -> dict:
    out = {
        "id": p.id,
        "name": p.name,
        "description": p.description or "",
        "status": p.status,
        "lineOfBusinessId": p.lineOfBusinessId,
        "organizationId": p.organizationId,
    }
    for field in PHASE_DURATION_FIELDS.values():
        out[field] = int(getattr(p, field) or 0)
    return out


def _require_name(data: dict, label: str) -> str:
    name = clean_str(data.get("name"))
    if not name:
        raise ApiError("BAD_REQUEST", f"{label} name is required")
    return name


def _flush_unique(db, label: str) -> None:
    try:
        db.flush()
    except IntegrityError as e:
        raise ApiError("CONFLICT", f"{label} with this name already exists") from e


def _in_use(db, column, row_id: int) -> int:
    return int(db.execute(select(func.count(OrganizationBatch.id)).where(column == row_id)).scalar_one())


def organization_get(data, auth: AuthContext | None, db, cfg):
    org = db.get(Organization, org_id_of(auth))
    if org is None:
        raise ApiError("NOT_FOUND", "Organization not found")
    return _org_to_dict(org)


def organization_update(data, auth: AuthContext | None, db, cfg):
    org = db.get(Organization, org_id_of(auth))
    if org is None:
        raise ApiError("NOT_FOUND", "Organization not found")
    org.name = _require_name(data, "Organization")
    _flush_unique(db, "Organization")
    append_audit(db, entityType="ORGANIZATION", entityId=org.id, action="ORGANIZATION_UPDATE", stageTag="ORG", actor=auth)
    return _org_to_dict(org)


# Locations


def location_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    rows = (
        db.execute(
            select(OrganizationLocation)
            .where(OrganizationLocation.organizationId == org_id)
            .order_by(OrganizationLocation.name)
        )
        .scalars()
        .all()
    )
    return {"items": [_location_to_dict(r) for r in rows], "total": len(rows)}


def _apply_location(loc: OrganizationLocation, data: dict) -> None:
    for key in ("address", "city", "state", "country"):
        if key in data:
            setattr(loc, key, clean_str(data.get(key)))


def location_create(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    loc = OrganizationLocation(name=_require_name(data, "Location"), organizationId=org_id)
    _apply_location(loc, data)
    db.add(loc)
    _flush_unique(db, "Location")
    append_audit(db, entityType="LOCATION", entityId=loc.id, action="LOCATION_CREATE", stageTag="ORG", actor=auth)
    return _location_to_dict(loc)


def location_update(data, auth: AuthContext | None, db, cfg):
    loc = get_in_org(db, OrganizationLocation, require_id(data, "id"), org_id_of(auth), "Location")
    if "name" in data:
        loc.name = _require_name(data, "Location")
    _apply_location(loc, data)
    _flush_unique(db, "Location")
    return _location_to_dict(loc)


def location_delete(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    loc = get_in_org(db, OrganizationLocation, require_id(data, "id"), org_id, "Location")
    if _in_use(db, OrganizationBatch.locationId, loc.id):
        raise ApiError("CONFLICT", "Location is used by batches")
    users = db.execute(select(func.count(User.id)).where(User.locationId == loc.id)).scalar_one()
    if users:
        raise ApiError("CONFLICT", "Location is assigned to users")
    db.delete(loc)
    append_audit(db, entityType="LOCATION", entityId=loc.id, action="LOCATION_DELETE", stageTag="ORG", actor=auth)
    return {"id": loc.id, "deleted": True}


# Lines of business


def lob_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    rows = (
        db.execute(
            select(OrganizationLineOfBusiness)
            .where(OrganizationLineOfBusiness.organizationId == org_id)
            .order_by(OrganizationLineOfBusiness.name)
        )
        .scalars()
        .all()
    )
    return {"items": [_lob_to_dict(r) for r in rows], "total": len(rows)}


def lob_create(data, auth: AuthContext | None, db, cfg):
    lob = OrganizationLineOfBusiness(
        name=_require_name(data, "Line of business"),
        description=clean_str(data.get("description")),
        organizationId=org_id_of(auth),
    )
    db.add(lob)
    _flush_unique(db, "Line of business")
    append_audit(db, entityType="LOB", entityId=lob.id, action="LOB_CREATE", stageTag="ORG", actor=auth)
    return _lob_to_dict(lob)


def lob_update(data, auth: AuthContext | None, db, cfg):
    lob = get_in_org(db, OrganizationLineOfBusiness, require_id(data, "id"), org_id_of(auth), "Line of business")
    if "name" in data:
        lob.name = _require_name(data, "Line of business")
    if "description" in data:
        lob.description = clean_str(data.get("description"))
    _flush_unique(db, "Line of business")
    return _lob_to_dict(lob)


def lob_delete(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    lob = get_in_org(db, OrganizationLineOfBusiness, require_id(data, "id"), org_id, "Line of business")
    if _in_use(db, OrganizationBatch.lineOfBusinessId, lob.id):
        raise ApiError("CONFLICT", "Line of business is used by batches")
    processes = db.execute(
        select(func.count(OrganizationProcess.id)).where(OrganizationProcess.lineOfBusinessId == lob.id)
    ).scalar_one()
    if processes:
        raise ApiError("CONFLICT", "Line of business still has processes")
    db.delete(lob)
    append_audit(db, entityType="LOB", entityId=lob.id, action="LOB_DELETE", stageTag="ORG", actor=auth)
    return {"id": lob.id, "deleted": True}


# Processes


def process_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    q = select(OrganizationProcess).where(OrganizationProcess.organizationId == org_id)
    lob_id = parse_int_maybe(data.get("lineOfBusinessId"))
    if lob_id:
        q = q.where(OrganizationProcess.lineOfBusinessId == lob_id)
    status = clean_str(data.get("status")).lower()
    if status:
        q = q.where(OrganizationProcess.status == status)
    rows = db.execute(q.order_by(OrganizationProcess.name)).scalars().all()
    return {"items": [process_to_dict(r) for r in rows], "total": len(rows)}


def _apply_process(db, p: OrganizationProcess, data: dict, org_id: int) -> None:
    if "description" in data:
        p.description = clean_str(data.get("description"))
    if "status" in data:
        status = clean_str(data.get("status")).lower()
        if status not in PROCESS_STATUSES:
            raise ApiError("BAD_REQUEST", "status must be active|inactive|archived")
        p.status = status
    if "lineOfBusinessId" in data:
        lob = get_in_org(db, OrganizationLineOfBusiness, data.get("lineOfBusinessId"), org_id, "Line of business")
        p.lineOfBusinessId = lob.id
    for field in PHASE_DURATION_FIELDS.values():
        if field not in data:
            continue
        n = parse_int_maybe(data.get(field))
        if n is None or n < 0:
            raise ApiError("BAD_REQUEST", f"{field} must be a non-negative integer")
        setattr(p, field, n)


def process_create(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    if not data.get("lineOfBusinessId"):
        raise ApiError("BAD_REQUEST", "lineOfBusinessId is required")
    p = OrganizationProcess(name=_require_name(data, "Process"), organizationId=org_id, status="active")
    for field in PHASE_DURATION_FIELDS.values():
        setattr(p, field, 0)
    _apply_process(db, p, data, org_id)
    db.add(p)
    _flush_unique(db, "Process")
    append_audit(db, entityType="PROCESS", entityId=p.id, action="PROCESS_CREATE", stageTag="ORG", actor=auth)
    return process_to_dict(p)


def process_update(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    p = get_in_org(db, OrganizationProcess, require_id(data, "id"), org_id, "Process")
    if "name" in data:
        p.name = _require_name(data, "Process")
    _apply_process(db, p, data, org_id)
    _flush_unique(db, "Process")
    return process_to_dict(p)


def process_delete(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    p = get_in_org(db, OrganizationProcess, require_id(data, "id"), org_id, "Process")
    if _in_use(db, OrganizationBatch.processId, p.id):
        raise ApiError("CONFLICT", "Process is used by batches")
    db.delete(p)
    append_audit(db, entityType="PROCESS", entityId=p.id, action="PROCESS_DELETE", stageTag="ORG", actor=auth)
    return {"id": p.id, "deleted": True}
