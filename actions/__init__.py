from __future__ import annotations

from typing import Any, Callable

from actions.batches import (
    batch_create,
    batch_delete,
    batch_get,
    batch_list,
    batch_schedule_preview,
    batch_start,
    batch_update,
    my_batches,
)
from actions.events import batch_event_create, batch_event_delete, batch_event_list, batch_event_update
from actions.history import batch_history_add, batch_history_list
from actions.holidays import holiday_create, holiday_delete, holiday_list, holiday_update
from actions.jobs import batch_status_run
from actions.organization import (
    location_create,
    location_delete,
    location_list,
    location_update,
    lob_create,
    lob_delete,
    lob_list,
    lob_update,
    organization_get,
    organization_update,
    process_create,
    process_delete,
    process_list,
    process_update,
)
from actions.permissions import my_permissions, permissions_list, permissions_reset, permissions_update
from actions.phase_requests import (
    phase_request_create,
    phase_request_decide,
    phase_request_delete,
    phase_request_list,
)
from actions.reports import report_batch_summary
from actions.trainees import (
    enrollment_status_update,
    trainee_enroll,
    trainee_import,
    trainee_list,
    trainee_remove,
    trainee_status_update,
    trainee_transfer,
)
from actions.users import reporting_trainers, user_create, user_deactivate, user_get, user_list, user_update
from utils import ApiError

Handler = Callable[[dict, Any, Any, Any], Any]

ACTION_HANDLERS: dict[str, Handler] = {
    "ORGANIZATION_GET": organization_get,
    "ORGANIZATION_UPDATE": organization_update,
    "LOCATION_LIST": location_list,
    "LOCATION_CREATE": location_create,
    "LOCATION_UPDATE": location_update,
    "LOCATION_DELETE": location_delete,
    "LOB_LIST": lob_list,
    "LOB_CREATE": lob_create,
    "LOB_UPDATE": lob_update,
    "LOB_DELETE": lob_delete,
    "PROCESS_LIST": process_list,
    "PROCESS_CREATE": process_create,
    "PROCESS_UPDATE": process_update,
    "PROCESS_DELETE": process_delete,
    "HOLIDAY_LIST": holiday_list,
    "HOLIDAY_CREATE": holiday_create,
    "HOLIDAY_UPDATE": holiday_update,
    "HOLIDAY_DELETE": holiday_delete,
    "USER_LIST": user_list,
    "USER_GET": user_get,
    "USER_CREATE": user_create,
    "USER_UPDATE": user_update,
    "USER_DEACTIVATE": user_deactivate,
    "REPORTING_TRAINERS": reporting_trainers,
    "PERMISSIONS_LIST": permissions_list,
    "PERMISSIONS_UPDATE": permissions_update,
    "PERMISSIONS_RESET": permissions_reset,
    "MY_PERMISSIONS": my_permissions,
    "BATCH_LIST": batch_list,
    "BATCH_GET": batch_get,
    "BATCH_CREATE": batch_create,
    "BATCH_UPDATE": batch_update,
    "BATCH_DELETE": batch_delete,
    "BATCH_START": batch_start,
    "BATCH_SCHEDULE_PREVIEW": batch_schedule_preview,
    "MY_BATCHES": my_batches,
    "TRAINEE_LIST": trainee_list,
    "TRAINEE_ENROLL": trainee_enroll,
    "TRAINEE_IMPORT": trainee_import,
    "TRAINEE_REMOVE": trainee_remove,
    "TRAINEE_TRANSFER": trainee_transfer,
    "TRAINEE_STATUS_UPDATE": trainee_status_update,
    "ENROLLMENT_STATUS_UPDATE": enrollment_status_update,
    "BATCH_HISTORY_LIST": batch_history_list,
    "BATCH_HISTORY_ADD": batch_history_add,
    "BATCH_EVENT_LIST": batch_event_list,
    "BATCH_EVENT_CREATE": batch_event_create,
    "BATCH_EVENT_UPDATE": batch_event_update,
    "BATCH_EVENT_DELETE": batch_event_delete,
    "PHASE_REQUEST_CREATE": phase_request_create,
    "PHASE_REQUEST_LIST": phase_request_list,
    "PHASE_REQUEST_DECIDE": phase_request_decide,
    "PHASE_REQUEST_DELETE": phase_request_delete,
    "BATCH_STATUS_RUN": batch_status_run,
    "REPORT_BATCH_SUMMARY": report_batch_summary,
}


def dispatch(action: str, data: dict, auth, db, cfg):
    action_u = str(action or "").upper().strip()
    fn = ACTION_HANDLERS.get(action_u)
    if fn is None:
        raise ApiError("BAD_REQUEST", "Unknown action", details={"action": action_u})
    return fn(data or {}, auth, db, cfg)
