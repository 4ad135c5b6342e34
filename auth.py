from __future__ import annotations

from typing import Any, Optional

import bcrypt
from sqlalchemy import select

from cache_layer import cache_get, cache_invalidate_prefix, cache_set
from models import RolePermission
from utils import ApiError, AuthContext, normalize_role, safe_json_loads

ROLES = ("owner", "admin", "manager", "team_lead", "quality_analyst", "trainer", "advisor", "trainee")

ALL_PERMISSIONS = (
    "manage_billing",
    "manage_subscription",
    "manage_organization_settings",
    "manage_users",
    "view_users",
    "edit_users",
    "delete_users",
    "upload_users",
    "add_users",
    "manage_organization",
    "view_organization",
    "edit_organization",
    "manage_locations",
    "manage_processes",
    "manage_holidaylist",
    "manage_lineofbusiness",
    "view_performance",
    "manage_performance",
    "export_reports",
    "manage_batches",
    "manage_batch_users_add",
    "manage_batch_users_remove",
    "view_trainee_management",
    "manage_trainee_management",
)

DEFAULT_ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "owner": ALL_PERMISSIONS,
    "admin": (
        "manage_users",
        "view_users",
        "edit_users",
        "delete_users",
        "upload_users",
        "add_users",
        "view_organization",
        "manage_holidaylist",
        "manage_locations",
        "manage_processes",
        "manage_lineofbusiness",
        "manage_performance",
        "export_reports",
        "manage_batches",
        "manage_batch_users_add",
        "manage_batch_users_remove",
        "view_trainee_management",
        "manage_trainee_management",
    ),
    "manager": (
        "view_users",
        "edit_users",
        "view_organization",
        "manage_holidaylist",
        "manage_locations",
        "manage_processes",
        "manage_lineofbusiness",
        "manage_performance",
        "manage_batches",
        "manage_batch_users_add",
        "manage_batch_users_remove",
        "view_trainee_management",
        "manage_trainee_management",
    ),
    "team_lead": ("view_users", "manage_performance", "view_organization"),
    "quality_analyst": ("view_users", "manage_performance", "export_reports", "view_organization"),
    "trainer": (
        "view_users",
        "view_performance",
        "manage_batches",
        "manage_batch_users_add",
        "manage_batch_users_remove",
        "view_trainee_management",
        "manage_trainee_management",
    ),
    "advisor": ("view_users", "view_performance", "export_reports"),
    "trainee": (),
}

_VIEW_BATCHES = ["manage_batches", "view_trainee_management"]

# Any-of permissions per action. An empty list means "any logged-in user".
ACTION_PERMISSIONS: dict[str, list[str]] = {
    "ORGANIZATION_GET": [],
    "ORGANIZATION_UPDATE": ["manage_organization_settings", "edit_organization"],
    "LOCATION_LIST": [],
    "LOCATION_CREATE": ["manage_locations"],
    "LOCATION_UPDATE": ["manage_locations"],
    "LOCATION_DELETE": ["manage_locations"],
    "LOB_LIST": [],
    "LOB_CREATE": ["manage_lineofbusiness"],
    "LOB_UPDATE": ["manage_lineofbusiness"],
    "LOB_DELETE": ["manage_lineofbusiness"],
    "PROCESS_LIST": [],
    "PROCESS_CREATE": ["manage_processes"],
    "PROCESS_UPDATE": ["manage_processes"],
    "PROCESS_DELETE": ["manage_processes"],
    "HOLIDAY_LIST": [],
    "HOLIDAY_CREATE": ["manage_holidaylist"],
    "HOLIDAY_UPDATE": ["manage_holidaylist"],
    "HOLIDAY_DELETE": ["manage_holidaylist"],
    "USER_LIST": ["view_users", "manage_users"],
    "USER_GET": ["view_users", "manage_users"],
    "USER_CREATE": ["manage_users", "add_users"],
    "USER_UPDATE": ["manage_users", "edit_users"],
    "USER_DEACTIVATE": ["manage_users", "delete_users"],
    "REPORTING_TRAINERS": ["view_users", "manage_batches"],
    "PERMISSIONS_LIST": ["manage_users"],
    "PERMISSIONS_UPDATE": ["manage_users"],
    "PERMISSIONS_RESET": ["manage_users"],
    "MY_PERMISSIONS": [],
    "BATCH_LIST": _VIEW_BATCHES,
    "BATCH_GET": _VIEW_BATCHES,
    "BATCH_CREATE": ["manage_batches"],
    "BATCH_UPDATE": ["manage_batches"],
    "BATCH_DELETE": ["manage_batches"],
    "BATCH_START": ["manage_batches"],
    "BATCH_SCHEDULE_PREVIEW": ["manage_batches"],
    "MY_BATCHES": [],
    "TRAINEE_LIST": _VIEW_BATCHES,
    "TRAINEE_ENROLL": ["manage_batch_users_add"],
    "TRAINEE_IMPORT": ["manage_batch_users_add"],
    "TRAINEE_REMOVE": ["manage_batch_users_remove"],
    "TRAINEE_TRANSFER": ["manage_trainee_management"],
    "TRAINEE_STATUS_UPDATE": ["manage_trainee_management"],
    "ENROLLMENT_STATUS_UPDATE": ["manage_trainee_management"],
    "BATCH_HISTORY_LIST": _VIEW_BATCHES,
    "BATCH_HISTORY_ADD": ["manage_batches"],
    "BATCH_EVENT_LIST": _VIEW_BATCHES,
    "BATCH_EVENT_CREATE": ["manage_batches", "manage_trainee_management"],
    "BATCH_EVENT_UPDATE": ["manage_batches", "manage_trainee_management"],
    "BATCH_EVENT_DELETE": ["manage_batches", "manage_trainee_management"],
    "PHASE_REQUEST_CREATE": ["manage_batches"],
    "PHASE_REQUEST_LIST": ["manage_batches"],
    "PHASE_REQUEST_DECIDE": ["manage_batches"],
    "PHASE_REQUEST_DELETE": ["manage_batches"],
    "BATCH_STATUS_RUN": ["manage_organization_settings"],
    "REPORT_BATCH_SUMMARY": ["export_reports"],
}

# Actions a deployment's scheduler may call without a user session.
SYSTEM_ACTIONS = {"BATCH_STATUS_RUN"}

_RBAC_CACHE_PREFIX = "RBAC:"
_RBAC_PERMS_PREFIX = f"{_RBAC_CACHE_PREFIX}PERMS:"


def default_permissions(role: str) -> list[str]:
    r = normalize_role(role) or ""
    return list(DEFAULT_ROLE_PERMISSIONS.get(r, ()))


def _sanitize(perms: Any) -> list[str]:
    if not isinstance(perms, list):
        return []
    known = set(ALL_PERMISSIONS)
    out = []
    for p in perms:
        s = str(p or "").strip().lower()
        if s in known and s not in out:
            out.append(s)
    return out


def permissions_for_role(db, organization_id: Optional[int], role: str) -> list[str]:
    role_n = normalize_role(role)
    if not role_n:
        raise ApiError("AUTH_INVALID", "Login required")
    if role_n == "owner":
        return list(ALL_PERMISSIONS)

    cache_key = f"{_RBAC_PERMS_PREFIX}{organization_id or 0}:{role_n}"
    cached = cache_get(cache_key)
    if isinstance(cached, list):
        return list(cached)

    perms = default_permissions(role_n)
    if organization_id:
        row = (
            db.execute(
                select(RolePermission)
                .where(RolePermission.organizationId == organization_id)
                .where(RolePermission.role == role_n)
            )
            .scalars()
            .first()
        )
        if row is not None:
            perms = _sanitize(safe_json_loads(row.permissionsJson, []))

    cache_set(cache_key, perms)
    return list(perms)


def invalidate_permissions_cache(organization_id: Optional[int] = None) -> int:
    if organization_id is None:
        return cache_invalidate_prefix(_RBAC_PERMS_PREFIX)
    return cache_invalidate_prefix(f"{_RBAC_PERMS_PREFIX}{organization_id}:")


def has_permission(db, auth: AuthContext, permission: str) -> bool:
    if auth.is_system:
        return True
    return permission in permissions_for_role(db, auth.organizationId, auth.role)


def assert_permission(db, auth: Optional[AuthContext], action: str) -> None:
    action_u = str(action or "").upper().strip()
    if action_u not in ACTION_PERMISSIONS:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")

    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")

    if auth.is_system:
        if action_u in SYSTEM_ACTIONS:
            return
        raise ApiError("FORBIDDEN", f"Action not available to the scheduler: {action_u}")

    required = ACTION_PERMISSIONS[action_u]
    if not required:
        return

    granted = set(permissions_for_role(db, auth.organizationId, auth.role))
    if not granted.intersection(required):
        raise ApiError("FORBIDDEN", f"Not allowed for role: {auth.role}", details={"required": required})


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except Exception:
        return False
