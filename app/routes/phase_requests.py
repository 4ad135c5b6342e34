from __future__ import annotations

from flask import Blueprint

from app.api import run_action
from app.utils.validators import query_args, require_json

phase_requests_bp = Blueprint("phase_requests", __name__)


@phase_requests_bp.get("")
def list_requests():
    return run_action("PHASE_REQUEST_LIST", query_args())


@phase_requests_bp.post("/<int:request_id>/decision")
def decide_request(request_id: int):
    return run_action("PHASE_REQUEST_DECIDE", {**require_json(), "requestId": request_id})


@phase_requests_bp.delete("/<int:request_id>")
def delete_request(request_id: int):
    return run_action("PHASE_REQUEST_DELETE", {"requestId": request_id})
