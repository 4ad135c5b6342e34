"""
Trainee spreadsheet import.

The workbook's first sheet holds one trainee per row below a header row.
Headers are matched case-insensitively and ignore spaces/underscores, so
"Full Name", "full_name" and "fullName" are the same column.

Required columns: username, fullName, email, employeeId.
Optional columns: phoneNumber, dateOfJoining, password.
"""

from __future__ import annotations

from datetime import date, datetime
from io import BytesIO
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from utils import parse_date_maybe

TEMPLATE_HEADERS = ["username", "fullName", "email", "employeeId", "phoneNumber", "dateOfJoining", "password"]
REQUIRED_COLUMNS = ("username", "fullName", "email", "employeeId")
MAX_ROWS = 2000

_ALIASES = {
    "name": "fullName",
    "employeename": "fullName",
    "empid": "employeeId",
    "employeecode": "employeeId",
    "phone": "phoneNumber",
    "mobile": "phoneNumber",
    "doj": "dateOfJoining",
    "joiningdate": "dateOfJoining",
}


def _header_key(value: Any) -> str:
    return "".join(ch for ch in str(value or "").lower() if ch.isalnum())


def _canonical(value: Any) -> str:
    key = _header_key(value)
    for h in TEMPLATE_HEADERS:
        if _header_key(h) == key:
            return h
    return _ALIASES.get(key, "")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def parse_trainee_workbook(content: bytes) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Return (rows, errors). Each row carries its spreadsheet ``row`` number."""
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError("File is not a readable .xlsx workbook") from e

    try:
        ws = wb.worksheets[0]
        it = ws.iter_rows(values_only=True)
        header = next(it, None)
        if not header:
            raise ValueError("Workbook is empty")

        columns = [_canonical(h) for h in header]
        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(missing)}")

        rows: list[dict[str, Any]] = []
        errors: list[dict[str, Any]] = []
        seen: dict[str, set[str]] = {"username": set(), "email": set(), "employeeId": set()}

        for offset, values in enumerate(it, start=2):
            if values is None or all(v is None or str(v).strip() == "" for v in values):
                continue
            if len(rows) + len(errors) >= MAX_ROWS:
                raise ValueError(f"Too many rows (max {MAX_ROWS})")

            rec: dict[str, Any] = {"row": offset}
            for col, value in zip(columns, values):
                if col:
                    rec[col] = _cell_text(value)

            problems = [f"{c} is required" for c in REQUIRED_COLUMNS if not rec.get(c)]
            if rec.get("email") and "@" not in rec["email"]:
                problems.append("email is invalid")
            if rec.get("dateOfJoining"):
                doj = parse_date_maybe(rec["dateOfJoining"])
                if doj is None:
                    problems.append("dateOfJoining is not a date")
                rec["dateOfJoining"] = doj
            for key, bucket in seen.items():
                v = str(rec.get(key) or "").lower()
                if v and v in bucket:
                    problems.append(f"duplicate {key} in file")
                elif v:
                    bucket.add(v)

            if problems:
                errors.append({"row": offset, "errors": problems})
            else:
                rows.append(rec)
        return rows, errors
    finally:
        wb.close()


def build_template_bytes() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Trainees"
    ws.append(TEMPLATE_HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.append(["jdoe", "John Doe", "jdoe@example.com", "EMP001", "9999999999", "2026-01-05", ""])
    for idx, _ in enumerate(TEMPLATE_HEADERS, start=1):
        ws.column_dimensions[ws.cell(row=1, column=idx).column_letter].width = 18

    with BytesIO() as bio:
        wb.save(bio)
        return bio.getvalue()
