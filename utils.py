from __future__ import annotations

import base64
import json
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from dateutil import parser as dt_parser
from zoneinfo import ZoneInfo

ALLOWED_ERROR_CODES = {
    "BAD_REQUEST",
    "AUTH_INVALID",
    "FORBIDDEN",
    "NOT_FOUND",
    "CONFLICT",
    "RATE_LIMITED",
    "INTERNAL",
}

_DEFAULT_STATUS = {
    "BAD_REQUEST": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
}

SYSTEM_ROLE = "system"


@dataclass(frozen=True)
class ApiError(Exception):
    code: str
    message: str
    status: int = 0
    details: Any | None = None

    def __post_init__(self) -> None:
        code = str(self.code or "").upper().strip()
        if code not in ALLOWED_ERROR_CODES:
            code = "INTERNAL"
        object.__setattr__(self, "code", code)
        if not self.status:
            object.__setattr__(self, "status", _DEFAULT_STATUS[code])

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class AuthContext:
    valid: bool
    userId: int
    username: str
    role: str
    organizationId: Optional[int]
    expiresAt: str = ""

    @property
    def is_system(self) -> bool:
        return self.role == SYSTEM_ROLE


def system_auth(user_id: int = 0, username: str = "system") -> AuthContext:
    return AuthContext(valid=True, userId=user_id, username=username, role=SYSTEM_ROLE, organizationId=None)


def iso_utc_now() -> str:
    dt = datetime.now(timezone.utc)
    dt = dt.replace(microsecond=(dt.microsecond // 1000) * 1000)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    # SQLite hands back naive values; they were written as UTC.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_utc(dt: Optional[datetime]) -> Optional[str]:
    x = as_utc(dt)
    if x is None:
        return None
    x = x.replace(microsecond=(x.microsecond // 1000) * 1000)
    return x.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def today_in_tz(app_timezone: str = "Asia/Kolkata") -> date:
    try:
        tz = ZoneInfo(app_timezone)
    except Exception:
        tz = timezone.utc
    return datetime.now(tz).date()


def parse_datetime_maybe(value: Any, *, app_timezone: str = "Asia/Kolkata") -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value or "").strip()
        if not s:
            return None
        try:
            dt = dt_parser.parse(s)
        except Exception:
            return None

    if dt.tzinfo is None:
        try:
            dt = dt.replace(tzinfo=ZoneInfo(app_timezone))
        except Exception:
            dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date_maybe(value: Any) -> Optional[date]:
    """Calendar date from a date, datetime or string; None when blank or unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value or "").strip()
    if not s:
        return None
    try:
        return dt_parser.parse(s).date()
    except Exception:
        return None


def parse_date_required(value: Any, field: str) -> date:
    d = parse_date_maybe(value)
    if d is None:
        raise ApiError("BAD_REQUEST", f"{field} must be a date (YYYY-MM-DD)")
    return d


def parse_int_maybe(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except Exception:
        return None


def new_log_id() -> str:
    return f"LOG-{uuid.uuid4()}"


def safe_json_string(value: Any, fallback: str = "") -> str:
    try:
        return json.dumps(value, default=str)
    except Exception:
        return fallback


def safe_json_loads(raw: Any, fallback: Any = None) -> Any:
    if raw is None or raw == "":
        return fallback
    try:
        return json.loads(raw)
    except Exception:
        return fallback


def redact_for_audit(obj: Any) -> Any:
    if not obj or not isinstance(obj, (dict, list)):
        return obj
    try:
        copy = json.loads(json.dumps(obj, default=str))
    except Exception:
        return obj

    secret_keys = {
        "password",
        "currentPassword",
        "newPassword",
        "token",
        "email",
        "phoneNumber",
        "fileBase64",
    }

    def _walk(x: Any) -> Any:
        if isinstance(x, dict):
            for k in list(x.keys()):
                if k in secret_keys:
                    x[k] = "[REDACTED]"
                else:
                    x[k] = _walk(x[k])
            return x
        if isinstance(x, list):
            return [_walk(v) for v in x]
        return x

    copy = _walk(copy)
    if isinstance(copy, dict) and isinstance(copy.get("trainees"), list):
        copy["trainees"] = f"[OMITTED:{len(copy['trainees'])}]"
    return copy


def decode_base64_to_bytes(b64: str) -> bytes:
    try:
        return base64.b64decode(b64, validate=True)
    except Exception:
        raise ApiError("BAD_REQUEST", "Invalid base64")


def normalize_role(role: Any) -> Optional[str]:
    r = str(role or "").strip().lower().replace(" ", "_").replace("-", "_")
    if r == "qualityassurance":
        r = "quality_analyst"
    return r or None


def clean_str(value: Any) -> str:
    return str(value or "").strip()
