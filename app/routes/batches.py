from __future__ import annotations

import base64
from io import BytesIO

from flask import Blueprint, request, send_file

from app.api import run_action
from app.utils.validators import query_args, require_json
from services.trainee_import import build_template_bytes

batches_bp = Blueprint("batches", __name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@batches_bp.get("")
def list_batches():
    return run_action("BATCH_LIST", query_args())


@batches_bp.post("")
def create_batch():
    return run_action("BATCH_CREATE", require_json(), status=201)


@batches_bp.get("/mine")
def my_batches():
    return run_action("MY_BATCHES", {})


@batches_bp.post("/schedule-preview")
def schedule_preview():
    return run_action("BATCH_SCHEDULE_PREVIEW", require_json())


@batches_bp.get("/<int:batch_id>")
def get_batch(batch_id: int):
    return run_action("BATCH_GET", {"batchId": batch_id})


@batches_bp.patch("/<int:batch_id>")
def update_batch(batch_id: int):
    return run_action("BATCH_UPDATE", {**require_json(), "batchId": batch_id})


@batches_bp.delete("/<int:batch_id>")
def delete_batch(batch_id: int):
    return run_action("BATCH_DELETE", {"batchId": batch_id})


@batches_bp.post("/<int:batch_id>/start")
def start_batch(batch_id: int):
    return run_action("BATCH_START", {"batchId": batch_id})


@batches_bp.get("/<int:batch_id>/trainees")
def list_trainees(batch_id: int):
    return run_action("TRAINEE_LIST", {**query_args(), "batchId": batch_id})


@batches_bp.post("/<int:batch_id>/trainees")
def enroll_trainee(batch_id: int):
    return run_action("TRAINEE_ENROLL", {**require_json(), "batchId": batch_id}, status=201)


@batches_bp.post("/<int:batch_id>/trainees/import")
def import_trainees(batch_id: int):
    """Accepts a multipart ``file`` upload or JSON ``{"fileBase64": ...}``."""

    upload = request.files.get("file")
    if upload is not None:
        data = {
            "fileBase64": base64.b64encode(upload.read()).decode("ascii"),
            "defaultPassword": request.form.get("defaultPassword") or "",
        }
    else:
        data = require_json()
    return run_action("TRAINEE_IMPORT", {**data, "batchId": batch_id})


@batches_bp.get("/trainees/import-template.xlsx")
def import_template():
    return send_file(
        BytesIO(build_template_bytes()),
        as_attachment=True,
        download_name="trainee_import_template.xlsx",
        mimetype=XLSX_MIMETYPE,
    )


@batches_bp.delete("/<int:batch_id>/trainees/<int:user_id>")
def remove_trainee(batch_id: int, user_id: int):
    return run_action("TRAINEE_REMOVE", {"batchId": batch_id, "userId": user_id})


@batches_bp.post("/<int:batch_id>/trainees/<int:user_id>/transfer")
def transfer_trainee(batch_id: int, user_id: int):
    return run_action("TRAINEE_TRANSFER", {**require_json(), "batchId": batch_id, "userId": user_id})


@batches_bp.patch("/<int:batch_id>/trainees/<int:user_id>/trainee-status")
def update_trainee_status(batch_id: int, user_id: int):
    return run_action("TRAINEE_STATUS_UPDATE", {**require_json(), "batchId": batch_id, "userId": user_id})


@batches_bp.patch("/<int:batch_id>/trainees/<int:user_id>/enrollment-status")
def update_enrollment_status(batch_id: int, user_id: int):
    return run_action("ENROLLMENT_STATUS_UPDATE", {**require_json(), "batchId": batch_id, "userId": user_id})


@batches_bp.get("/<int:batch_id>/history")
def list_history(batch_id: int):
    return run_action("BATCH_HISTORY_LIST", {**query_args(), "batchId": batch_id})


@batches_bp.post("/<int:batch_id>/history")
def add_history(batch_id: int):
    return run_action("BATCH_HISTORY_ADD", {**require_json(), "batchId": batch_id}, status=201)


@batches_bp.get("/<int:batch_id>/events")
def list_events(batch_id: int):
    return run_action("BATCH_EVENT_LIST", {**query_args(), "batchId": batch_id})


@batches_bp.post("/<int:batch_id>/events")
def create_event(batch_id: int):
    return run_action("BATCH_EVENT_CREATE", {**require_json(), "batchId": batch_id}, status=201)


@batches_bp.patch("/<int:batch_id>/events/<int:event_id>")
def update_event(batch_id: int, event_id: int):
    return run_action("BATCH_EVENT_UPDATE", {**require_json(), "batchId": batch_id, "eventId": event_id})


@batches_bp.delete("/<int:batch_id>/events/<int:event_id>")
def delete_event(batch_id: int, event_id: int):
    return run_action("BATCH_EVENT_DELETE", {"batchId": batch_id, "eventId": event_id})


@batches_bp.post("/<int:batch_id>/phase-requests")
def create_phase_request(batch_id: int):
    return run_action("PHASE_REQUEST_CREATE", {**require_json(), "batchId": batch_id}, status=201)
