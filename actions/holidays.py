from __future__ import annotations

from typing import Optional

from sqlalchemy import or_, select

from actions.helpers import append_audit, bool_maybe, get_in_org, org_id_of, require_id
from models import OrganizationHoliday, OrganizationLocation
from schedule import Holiday
from utils import ApiError, AuthContext, clean_str, iso_date, parse_date_required, parse_int_maybe


def _holiday_to_dict(h: OrganizationHoliday) -> dict:
    return {
        "id": h.id,
        "name": h.name,
        "date": iso_date(h.date),
        "isRecurring": bool(h.isRecurring),
        "locationId": h.locationId,
        "organizationId": h.organizationId,
    }


def holidays_for_location(db, organization_id: int, location_id: Optional[int]) -> list[Holiday]:
    """Organization-wide holidays plus the ones specific to ``location_id``."""
    q = select(OrganizationHoliday).where(OrganizationHoliday.organizationId == organization_id)
    if location_id:
        q = q.where(or_(OrganizationHoliday.locationId.is_(None), OrganizationHoliday.locationId == location_id))
    else:
        q = q.where(OrganizationHoliday.locationId.is_(None))
    rows = db.execute(q).scalars().all()
    return [Holiday(date=r.date, name=r.name, isRecurring=bool(r.isRecurring)) for r in rows]


def holiday_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    q = select(OrganizationHoliday).where(OrganizationHoliday.organizationId == org_id)
    location_id = parse_int_maybe(data.get("locationId"))
    if location_id:
        q = q.where(or_(OrganizationHoliday.locationId.is_(None), OrganizationHoliday.locationId == location_id))
    rows = db.execute(q.order_by(OrganizationHoliday.date)).scalars().all()
    return {"items": [_holiday_to_dict(r) for r in rows], "total": len(rows)}


def _apply(db, h: OrganizationHoliday, data: dict, org_id: int) -> None:
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            raise ApiError("BAD_REQUEST", "Holiday name is required")
        h.name = name
    if "date" in data:
        h.date = parse_date_required(data.get("date"), "date")
    if "isRecurring" in data:
        h.isRecurring = bool(bool_maybe(data.get("isRecurring")))
    if "locationId" in data:
        if data.get("locationId") in (None, "", 0):
            h.locationId = None
        else:
            h.locationId = get_in_org(db, OrganizationLocation, data.get("locationId"), org_id, "Location").id


def holiday_create(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    if not clean_str(data.get("name")) or not data.get("date"):
        raise ApiError("BAD_REQUEST", "name and date are required")
    h = OrganizationHoliday(organizationId=org_id, isRecurring=False)
    _apply(db, h, data, org_id)
    db.add(h)
    db.flush()
    append_audit(db, entityType="HOLIDAY", entityId=h.id, action="HOLIDAY_CREATE", stageTag="ORG", actor=auth)
    return _holiday_to_dict(h)


def holiday_update(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    h = get_in_org(db, OrganizationHoliday, require_id(data, "id"), org_id, "Holiday")
    _apply(db, h, data, org_id)
    return _holiday_to_dict(h)


def holiday_delete(data, auth: AuthContext | None, db, cfg):
    h = get_in_org(db, OrganizationHoliday, require_id(data, "id"), org_id_of(auth), "Holiday")
    db.delete(h)
    append_audit(db, entityType="HOLIDAY", entityId=h.id, action="HOLIDAY_DELETE", stageTag="ORG", actor=auth)
    return {"id": h.id, "deleted": True}
