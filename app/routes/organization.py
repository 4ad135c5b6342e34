from __future__ import annotations

from flask import Blueprint

from app.api import run_action
from app.utils.validators import query_args, require_json

organization_bp = Blueprint("organization", __name__)


@organization_bp.get("")
def get_organization():
    return run_action("ORGANIZATION_GET", {})


@organization_bp.patch("")
def update_organization():
    return run_action("ORGANIZATION_UPDATE", require_json())


@organization_bp.get("/locations")
def list_locations():
    return run_action("LOCATION_LIST", query_args())


@organization_bp.post("/locations")
def create_location():
    return run_action("LOCATION_CREATE", require_json(), status=201)


@organization_bp.patch("/locations/<int:location_id>")
def update_location(location_id: int):
    return run_action("LOCATION_UPDATE", {**require_json(), "id": location_id})


@organization_bp.delete("/locations/<int:location_id>")
def delete_location(location_id: int):
    return run_action("LOCATION_DELETE", {"id": location_id})


@organization_bp.get("/line-of-businesses")
def list_lobs():
    return run_action("LOB_LIST", query_args())


@organization_bp.post("/line-of-businesses")
def create_lob():
    return run_action("LOB_CREATE", require_json(), status=201)


@organization_bp.patch("/line-of-businesses/<int:lob_id>")
def update_lob(lob_id: int):
    return run_action("LOB_UPDATE", {**require_json(), "id": lob_id})


@organization_bp.delete("/line-of-businesses/<int:lob_id>")
def delete_lob(lob_id: int):
    return run_action("LOB_DELETE", {"id": lob_id})


@organization_bp.get("/processes")
def list_processes():
    return run_action("PROCESS_LIST", query_args())


@organization_bp.post("/processes")
def create_process():
    return run_action("PROCESS_CREATE", require_json(), status=201)


@organization_bp.patch("/processes/<int:process_id>")
def update_process(process_id: int):
    return run_action("PROCESS_UPDATE", {**require_json(), "id": process_id})


@organization_bp.delete("/processes/<int:process_id>")
def delete_process(process_id: int):
    return run_action("PROCESS_DELETE", {"id": process_id})


@organization_bp.get("/holidays")
def list_holidays():
    return run_action("HOLIDAY_LIST", query_args())


@organization_bp.post("/holidays")
def create_holiday():
    return run_action("HOLIDAY_CREATE", require_json(), status=201)


@organization_bp.patch("/holidays/<int:holiday_id>")
def update_holiday(holiday_id: int):
    return run_action("HOLIDAY_UPDATE", {**require_json(), "id": holiday_id})


@organization_bp.delete("/holidays/<int:holiday_id>")
def delete_holiday(holiday_id: int):
    return run_action("HOLIDAY_DELETE", {"id": holiday_id})


@organization_bp.get("/users")
def list_users():
    return run_action("USER_LIST", query_args())


@organization_bp.post("/users")
def create_user():
    return run_action("USER_CREATE", require_json(), status=201)


@organization_bp.get("/users/<int:user_id>")
def get_user(user_id: int):
    return run_action("USER_GET", {"id": user_id})


@organization_bp.patch("/users/<int:user_id>")
def update_user(user_id: int):
    return run_action("USER_UPDATE", {**require_json(), "id": user_id})


@organization_bp.delete("/users/<int:user_id>")
def deactivate_user(user_id: int):
    return run_action("USER_DEACTIVATE", {"id": user_id})


@organization_bp.get("/users/<int:user_id>/reporting-trainers")
def reporting_trainers(user_id: int):
    return run_action("REPORTING_TRAINERS", {"managerId": user_id})


@organization_bp.get("/permissions")
def list_permissions():
    return run_action("PERMISSIONS_LIST", {})


@organization_bp.get("/permissions/me")
def my_permissions():
    return run_action("MY_PERMISSIONS", {})


@organization_bp.put("/permissions/<role>")
def update_permissions(role: str):
    return run_action("PERMISSIONS_UPDATE", {**require_json(), "role": role})


@organization_bp.delete("/permissions/<role>")
def reset_permissions(role: str):
    return run_action("PERMISSIONS_RESET", {"role": role})
