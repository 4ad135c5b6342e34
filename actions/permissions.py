from __future__ import annotations

import json

from sqlalchemy import select

from actions.helpers import append_audit, org_id_of
from auth import ALL_PERMISSIONS, ROLES, default_permissions, invalidate_permissions_cache, permissions_for_role
from models import RolePermission
from utils import ApiError, AuthContext, normalize_role


def _role_from(data: dict) -> str:
    role = normalize_role(data.get("role"))
    if role not in ROLES:
        raise ApiError("BAD_REQUEST", "Invalid role", details={"allowed": list(ROLES)})
    return role


def _override_row(db, org_id: int, role: str):
    return (
        db.execute(
            select(RolePermission).where(RolePermission.organizationId == org_id).where(RolePermission.role == role)
        )
        .scalars()
        .first()
    )


def permissions_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    overridden = {
        r.role
        for r in db.execute(select(RolePermission).where(RolePermission.organizationId == org_id)).scalars().all()
    }
    items = [
        {"role": role, "permissions": permissions_for_role(db, org_id, role), "customized": role in overridden}
        for role in ROLES
    ]
    return {"items": items, "allPermissions": list(ALL_PERMISSIONS)}


def permissions_update(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    role = _role_from(data)
    if role == "owner":
        raise ApiError("FORBIDDEN", "Owner permissions cannot be changed")

    perms = data.get("permissions")
    if not isinstance(perms, list):
        raise ApiError("BAD_REQUEST", "permissions must be a list")
    unknown = sorted({str(p) for p in perms} - set(ALL_PERMISSIONS))
    if unknown:
        raise ApiError("BAD_REQUEST", "Unknown permissions", details={"unknown": unknown})
    clean = [p for p in ALL_PERMISSIONS if p in set(perms)]

    row = _override_row(db, org_id, role)
    if row is None:
        row = RolePermission(organizationId=org_id, role=role)
        db.add(row)
    row.permissionsJson = json.dumps(clean)
    row.updatedBy = auth.userId
    db.flush()
    invalidate_permissions_cache(org_id)

    append_audit(
        db,
        entityType="ROLE_PERMISSIONS",
        entityId=role,
        action="PERMISSIONS_UPDATE",
        stageTag="RBAC",
        actor=auth,
        meta={"permissions": clean},
    )
    return {"role": role, "permissions": clean, "customized": True}


def permissions_reset(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    role = _role_from(data)
    row = _override_row(db, org_id, role)
    if row is not None:
        db.delete(row)
        db.flush()
    invalidate_permissions_cache(org_id)
    append_audit(db, entityType="ROLE_PERMISSIONS", entityId=role, action="PERMISSIONS_RESET", stageTag="RBAC", actor=auth)
    return {"role": role, "permissions": default_permissions(role), "customized": False}


def my_permissions(data, auth: AuthContext | None, db, cfg):
    return {"role": auth.role, "permissions": permissions_for_role(db, auth.organizationId, auth.role)}
