from __future__ import annotations

import re
from typing import Any, Optional

from sqlalchemy import or_, select

from actions.helpers import append_audit, bool_maybe, get_in_org, org_id_of, paginate, require_id
from auth import ROLES, hash_password
from models import OrganizationLocation, User
from utils import ApiError, AuthContext, clean_str, iso_date, normalize_role, parse_date_maybe, parse_int_maybe, to_iso_utc

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9._-]{3,64}$")
MIN_PASSWORD_LENGTH = 8


def user_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "fullName": u.fullName or "",
        "employeeId": u.employeeId,
        "email": u.email,
        "phoneNumber": u.phoneNumber or "",
        "role": u.role,
        "category": u.category,
        "locationId": u.locationId,
        "managerId": u.managerId,
        "organizationId": u.organizationId,
        "dateOfJoining": iso_date(u.dateOfJoining),
        "active": bool(u.active),
        "certified": bool(u.certified),
        "lastLoginAt": to_iso_utc(u.lastLoginAt),
        "createdAt": to_iso_utc(u.createdAt),
    }


def validate_email(value: Any) -> str:
    email = clean_str(value).lower()
    if not email or not _EMAIL_RE.match(email):
        raise ApiError("BAD_REQUEST", "Invalid email")
    return email


def validate_new_password(value: Any) -> str:
    password = str(value or "")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError("BAD_REQUEST", f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _validate_role(value: Any) -> str:
    role = normalize_role(value)
    if role not in ROLES:
        raise ApiError("BAD_REQUEST", "Invalid role", details={"allowed": list(ROLES)})
    return role


def _assert_unique(db, *, username: str, email: Optional[str], employee_id: Optional[str], exclude_id: int = 0):
    conds = [User.username == username]
    if email:
        conds.append(User.email == email)
    if employee_id:
        conds.append(User.employeeId == employee_id)
    rows = db.execute(select(User).where(or_(*conds)).where(User.id != exclude_id)).scalars().all()
    for u in rows:
        if u.username == username:
            raise ApiError("CONFLICT", "Username already exists")
        if email and u.email == email:
            raise ApiError("CONFLICT", "Email already exists")
        if employee_id and u.employeeId == employee_id:
            raise ApiError("CONFLICT", "Employee id already exists")


def create_user_record(db, organization_id: int, data: dict, *, default_role: str = "advisor") -> User:
    """Validate and insert one user of ``organization_id``; also used by trainee enrollment and import."""

    username = clean_str(data.get("username"))
    if not _USERNAME_RE.match(username):
        raise ApiError("BAD_REQUEST", "username must be 3-64 letters, digits, dot, dash or underscore")
    full_name = clean_str(data.get("fullName"))
    if not full_name:
        raise ApiError("BAD_REQUEST", "fullName is required")
    email = validate_email(data.get("email"))
    employee_id = clean_str(data.get("employeeId")) or None
    role = _validate_role(data.get("role") or default_role)
    if role == "owner":
        raise ApiError("FORBIDDEN", "An organization has exactly one owner")

    category = clean_str(data.get("category")).lower() or ("trainee" if role == "trainee" else "active")
    if category not in {"active", "trainee"}:
        raise ApiError("BAD_REQUEST", "category must be active|trainee")

    location_id = None
    if data.get("locationId"):
        location_id = get_in_org(db, OrganizationLocation, data.get("locationId"), organization_id, "Location").id
    manager_id = None
    if data.get("managerId"):
        manager_id = get_in_org(db, User, data.get("managerId"), organization_id, "Manager").id

    _assert_unique(db, username=username, email=email, employee_id=employee_id)

    user = User(
        username=username,
        passwordHash=hash_password(validate_new_password(data.get("password"))),
        fullName=full_name,
        email=email,
        employeeId=employee_id,
        phoneNumber=clean_str(data.get("phoneNumber")),
        role=role,
        category=category,
        locationId=location_id,
        managerId=manager_id,
        organizationId=organization_id,
        dateOfJoining=parse_date_maybe(data.get("dateOfJoining")),
        active=True,
        certified=bool(bool_maybe(data.get("certified"))),
    )
    db.add(user)
    db.flush()
    return user


def user_list(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    q = select(User).where(User.organizationId == org_id)
    role = normalize_role(data.get("role"))
    if role:
        q = q.where(User.role == role)
    category = clean_str(data.get("category")).lower()
    if category:
        q = q.where(User.category == category)
    active = bool_maybe(data.get("active"))
    if active is not None:
        q = q.where(User.active == active)
    location_id = parse_int_maybe(data.get("locationId"))
    if location_id:
        q = q.where(User.locationId == location_id)

    rows = db.execute(q.order_by(User.fullName, User.id)).scalars().all()
    text = clean_str(data.get("q")).lower()
    items = []
    for u in rows:
        if text:
            hay = f"{u.username} {u.fullName} {u.email or ''} {u.employeeId or ''}".lower()
            if text not in hay:
                continue
        items.append(user_to_dict(u))
    return paginate(items, data)


def user_get(data, auth: AuthContext | None, db, cfg):
    return user_to_dict(get_in_org(db, User, require_id(data, "id"), org_id_of(auth), "User"))


def user_create(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    user = create_user_record(db, org_id, data)
    append_audit(
        db,
        entityType="USER",
        entityId=user.id,
        action="USER_CREATE",
        stageTag="USERS",
        actor=auth,
        meta={"role": user.role},
    )
    return user_to_dict(user)


def user_update(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    user = get_in_org(db, User, require_id(data, "id"), org_id, "User")

    if "role" in data:
        role = _validate_role(data.get("role"))
        if (role == "owner") != (user.role == "owner"):
            raise ApiError("FORBIDDEN", "The owner role cannot be assigned or removed")
        user.role = role
    if "fullName" in data:
        name = clean_str(data.get("fullName"))
        if not name:
            raise ApiError("BAD_REQUEST", "fullName cannot be empty")
        user.fullName = name
    if "email" in data:
        email = validate_email(data.get("email"))
        _assert_unique(db, username=user.username, email=email, employee_id=None, exclude_id=user.id)
        user.email = email
    if "employeeId" in data:
        employee_id = clean_str(data.get("employeeId")) or None
        _assert_unique(db, username=user.username, email=None, employee_id=employee_id, exclude_id=user.id)
        user.employeeId = employee_id
    if "phoneNumber" in data:
        user.phoneNumber = clean_str(data.get("phoneNumber"))
    if "category" in data:
        category = clean_str(data.get("category")).lower()
        if category not in {"active", "trainee"}:
            raise ApiError("BAD_REQUEST", "category must be active|trainee")
        user.category = category
    if "locationId" in data:
        user.locationId = (
            get_in_org(db, OrganizationLocation, data.get("locationId"), org_id, "Location").id
            if data.get("locationId")
            else None
        )
    if "managerId" in data:
        if data.get("managerId"):
            manager = get_in_org(db, User, data.get("managerId"), org_id, "Manager")
            if manager.id == user.id or user.id in _report_chain(db, manager):
                raise ApiError("BAD_REQUEST", "Manager assignment would create a reporting cycle")
            user.managerId = manager.id
        else:
            user.managerId = None
    if "dateOfJoining" in data:
        user.dateOfJoining = parse_date_maybe(data.get("dateOfJoining"))
    if "certified" in data:
        user.certified = bool(bool_maybe(data.get("certified")))
    if "active" in data:
        active = bool(bool_maybe(data.get("active")))
        if not active and user.id == auth.userId:
            raise ApiError("BAD_REQUEST", "You cannot deactivate yourself")
        user.active = active
    if data.get("password"):
        user.passwordHash = hash_password(validate_new_password(data.get("password")))

    append_audit(db, entityType="USER", entityId=user.id, action="USER_UPDATE", stageTag="USERS", actor=auth)
    return user_to_dict(user)


def user_deactivate(data, auth: AuthContext | None, db, cfg):
    user = get_in_org(db, User, require_id(data, "id"), org_id_of(auth), "User")
    if user.id == auth.userId:
        raise ApiError("BAD_REQUEST", "You cannot deactivate yourself")
    if user.role == "owner":
        raise ApiError("FORBIDDEN", "The owner cannot be deactivated")
    user.active = False
    append_audit(db, entityType="USER", entityId=user.id, action="USER_DEACTIVATE", stageTag="USERS", actor=auth)
    return user_to_dict(user)


def _report_chain(db, user: User) -> set[int]:
    """Ids of ``user``'s managers, walking up the hierarchy."""
    seen: set[int] = set()
    current = user
    while current is not None and current.managerId and current.managerId not in seen:
        seen.add(current.managerId)
        current = db.get(User, current.managerId)
    return seen


def reporting_user_ids(db, organization_id: int, manager_id: int) -> set[int]:
    """Everyone reporting to ``manager_id`` directly or through intermediate managers."""
    rows = db.execute(
        select(User.id, User.managerId).where(User.organizationId == organization_id)
    ).all()
    children: dict[int, list[int]] = {}
    for uid, mid in rows:
        if mid:
            children.setdefault(mid, []).append(uid)

    out: set[int] = set()
    stack = [manager_id]
    while stack:
        for child in children.get(stack.pop(), []):
            if child not in out:
                out.add(child)
                stack.append(child)
    return out


def reporting_trainers(data, auth: AuthContext | None, db, cfg):
    org_id = org_id_of(auth)
    manager_id = parse_int_maybe(data.get("managerId")) or auth.userId
    get_in_org(db, User, manager_id, org_id, "Manager")
    ids = reporting_user_ids(db, org_id, manager_id)
    if not ids:
        return {"items": [], "total": 0}
    rows = (
        db.execute(select(User).where(User.id.in_(ids)).where(User.role == "trainer").order_by(User.fullName))
        .scalars()
        .all()
    )
    return {"items": [user_to_dict(u) for u in rows], "total": len(rows)}
