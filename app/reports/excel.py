from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from typing import Any
from zoneinfo import ZoneInfo

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter


def _display_now(tz_name: str) -> str:
    try:
        tz = ZoneInfo(tz_name)
    except Exception:
        tz = timezone.utc
    return datetime.now(tz).replace(microsecond=0).isoformat()


def _auto_fit(ws) -> None:
    for col in ws.columns:
        col_letter = get_column_letter(col[0].column)
        max_len = max(len("" if cell.value is None else str(cell.value)) for cell in col)
        ws.column_dimensions[col_letter].width = min(max(12, max_len + 2), 60)


def _write_table(ws, headers: list[str], rows: list[list[Any]]) -> None:
    ws.append(headers)
    for r in rows:
        ws.append(r)

    ws.freeze_panes = "A2"
    ws.auto_filter.ref = ws.dimensions

    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    _auto_fit(ws)


def build_workbook_bytes(*, from_s: str, to_s: str, timezone_display: str, data: dict[str, Any]) -> bytes:
    """Batch summary report as an .xlsx: a Meta sheet plus one sheet per breakdown."""

    wb = Workbook()
    wb.remove(wb.active)

    _write_table(
        wb.create_sheet("Meta"),
        ["key", "value"],
        [
            ["type", "batch_summary"],
            ["from", from_s],
            ["to", to_s],
            ["generatedAt", _display_now(timezone_display)],
        ],
    )

    _write_table(
        wb.create_sheet("Batches"),
        ["status", "count"],
        [[r["status"], r["count"]] for r in data["batches"]["byStatus"]],
    )
    _write_table(
        wb.create_sheet("Trainees"),
        ["traineeStatus", "count"],
        [[r["traineeStatus"], r["count"]] for r in data["trainees"]["byTraineeStatus"]],
    )
    _write_table(
        wb.create_sheet("Phase changes"),
        ["from", "to", "count"],
        [[r["from"], r["to"], r["count"]] for r in data["phaseChanges"]["items"]],
    )

    with BytesIO() as bio:
        wb.save(bio)
        return bio.getvalue()
