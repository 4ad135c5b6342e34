from __future__ import annotations

from io import BytesIO

from flask import Blueprint, current_app, jsonify, send_file

from app.api import handle_action
from app.reports.excel import build_workbook_bytes
from app.utils.validators import query_args

reports_bp = Blueprint("reports", __name__)


@reports_bp.get("/batch-summary")
def batch_summary():
    data = handle_action("REPORT_BATCH_SUMMARY", query_args())
    return jsonify({"success": True, "data": data})


@reports_bp.get("/batch-summary/export.xlsx")
def export_xlsx():
    data = handle_action("REPORT_BATCH_SUMMARY", query_args())
    xlsx_bytes = build_workbook_bytes(
        from_s=data["from"],
        to_s=data["to"],
        timezone_display=current_app.config["CFG"].APP_TIMEZONE,
        data=data,
    )

    filename = f"batch_summary_{data['from']}_{data['to']}.xlsx"
    return send_file(
        BytesIO(xlsx_bytes),
        as_attachment=True,
        download_name=filename,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
