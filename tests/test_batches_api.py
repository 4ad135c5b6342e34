from __future__ import annotations

import pytest

from conftest import BATCH_START


def _batch_body(org, **overrides):
    body = {
        "name": "BV-2025-02",
        "processId": org["process"]["id"],
        "locationId": org["location"]["id"],
        "lineOfBusinessId": org["lob"]["id"],
        "trainerId": org["trainer"]["id"],
        "capacityLimit": 5,
        "startDate": BATCH_START.isoformat(),
    }
    body.update(overrides)
    return body


def test_create_batch_computes_planned_dates(batch):
    assert batch["status"] == "planned"
    assert batch["startDate"] == "2025-01-06"
    assert batch["inductionEndDate"] == "2025-01-07"
    assert batch["trainingStartDate"] == "2025-01-08"
    assert batch["certificationStartDate"] == "2025-01-13"
    assert batch["ojtCertificationEndDate"] == "2025-01-16"
    assert batch["handoverToOpsDate"] == "2025-01-17"
    assert batch["endDate"] == "2025-01-17"
    assert batch["actualInductionStartDate"] is None
    assert batch["weeklyOffDays"] == ["Saturday", "Sunday"]
    assert batch["userCount"] == 0


def test_create_batch_respects_location_holidays(api, org):
    res = api(
        "POST",
        "/api/v1/organization/holidays",
        token=org["token"],
        json={"name": "Local festival", "date": "2025-01-08", "locationId": org["location"]["id"]},
    )
    assert res.status_code == 201

    res = api("POST", "/api/v1/batches", token=org["token"], json=_batch_body(org))
    assert res.status_code == 201
    data = res.get_json()["data"]
    assert data["trainingStartDate"] == "2025-01-09"
    assert data["handoverToOpsDate"] == "2025-01-20"

    res = api(
        "POST", "/api/v1/batches", token=org["token"], json=_batch_body(org, name="BV-2025-03", considerHolidays=False)
    )
    assert res.get_json()["data"]["trainingStartDate"] == "2025-01-08"


def test_create_batch_rejects_non_planned_status(api, org):
    res = api("POST", "/api/v1/batches", token=org["token"], json=_batch_body(org, status="training"))
    assert res.status_code == 400


def test_create_batch_requires_trainer_role(api, org):
    res = api("POST", "/api/v1/batches", token=org["token"], json=_batch_body(org, trainerId=org["manager"]["id"]))
    assert res.status_code == 400


def test_duplicate_batch_name_conflicts(api, org, batch):
    res = api("POST", "/api/v1/batches", token=org["token"], json=_batch_body(org, name=batch["name"]))
    assert res.status_code == 409


def test_schedule_preview(api, org):
    res = api(
        "POST",
        "/api/v1/batches/schedule-preview",
        token=org["token"],
        json={"processId": org["process"]["id"], "startDate": "2025-01-04", "weeklyOffDays": ["Sunday"]},
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    # Saturday is a working day here, so the batch starts on it.
    assert data["startDate"] == "2025-01-04"
    assert data["inductionEndDate"] == "2025-01-06"


def test_status_cannot_be_patched(api, org, batch):
    res = api("PATCH", f"/api/v1/batches/{batch['id']}", token=org["token"], json={"status": "training"})
    assert res.status_code == 400


def test_reschedule_planned_batch(api, org, batch):
    res = api("PATCH", f"/api/v1/batches/{batch['id']}", token=org["token"], json={"startDate": "2025-01-13"})
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["inductionStartDate"] == "2025-01-13"
    assert data["handoverToOpsDate"] == "2025-01-24"


@pytest.mark.parametrize("start_date", ["not-a-date", None])
def test_reschedule_rejects_bad_start_date(api, org, batch, start_date):
    res = api("PATCH", f"/api/v1/batches/{batch['id']}", token=org["token"], json={"startDate": start_date})
    assert res.status_code == 400
    assert res.get_json()["error"]["code"] == "BAD_REQUEST"

    res = api("GET", f"/api/v1/batches/{batch['id']}", token=org["token"])
    assert res.get_json()["data"]["inductionStartDate"] == "2025-01-06"


def test_capacity_cannot_drop_below_enrolled(api, org, batch, enroll):
    enroll()
    enroll()
    res = api("PATCH", f"/api/v1/batches/{batch['id']}", token=org["token"], json={"capacityLimit": 1})
    assert res.status_code == 409
    assert res.get_json()["error"]["details"]["enrolled"] == 2


def test_start_requires_a_trainee(api, org, batch):
    res = api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])
    assert res.status_code == 409

    res = api("GET", f"/api/v1/batches/{batch['id']}", token=org["token"])
    assert res.get_json()["data"]["status"] == "planned"


def test_start_moves_batch_and_trainees_to_induction(api, org, batch, enroll):
    enroll()
    res = api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "induction"
    assert data["actualInductionStartDate"]
    assert data["traineesUpdated"] == 1

    res = api("GET", f"/api/v1/batches/{batch['id']}/trainees", token=org["token"])
    assert [t["traineeStatus"] for t in res.get_json()["data"]["items"]] == ["induction"]

    res = api("GET", f"/api/v1/batches/{batch['id']}/history", token=org["token"])
    items = res.get_json()["data"]["items"]
    assert items[0]["eventType"] == "phase_change"
    assert (items[0]["previousValue"], items[0]["newValue"]) == ("planned", "induction")
    assert items[0]["user"]["fullName"] == "Olivia Owner"

    res = api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])
    assert res.status_code == 409

    res = api("PATCH", f"/api/v1/batches/{batch['id']}", token=org["token"], json={"startDate": "2025-02-03"})
    assert res.status_code == 409


def test_delete_only_planned(api, org, batch, enroll):
    enroll()
    api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])
    res = api("DELETE", f"/api/v1/batches/{batch['id']}", token=org["token"])
    assert res.status_code == 409

    res = api("POST", "/api/v1/batches", token=org["token"], json=_batch_body(org))
    other = res.get_json()["data"]
    res = api("DELETE", f"/api/v1/batches/{other['id']}", token=org["token"])
    assert res.status_code == 200
    res = api("GET", f"/api/v1/batches/{other['id']}", token=org["token"])
    assert res.status_code == 404


def test_list_filters_by_status(api, org, batch, enroll):
    enroll()
    api("POST", "/api/v1/batches", token=org["token"], json=_batch_body(org))
    api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])

    res = api("GET", "/api/v1/batches?status=induction", token=org["token"])
    data = res.get_json()["data"]
    assert data["total"] == 1
    assert data["items"][0]["id"] == batch["id"]
    assert data["items"][0]["userCount"] == 1

    res = api("GET", "/api/v1/batches?status=graduated", token=org["token"])
    assert res.status_code == 400


def test_history_notes_and_events(api, org, batch):
    bid = batch["id"]
    res = api("POST", f"/api/v1/batches/{bid}/history", token=org["trainerToken"], json={"description": "Kickoff done"})
    assert res.status_code == 201
    assert res.get_json()["data"]["eventType"] == "note"

    res = api(
        "POST",
        f"/api/v1/batches/{bid}/history",
        token=org["trainerToken"],
        json={"eventType": "phase_change", "description": "sneaky"},
    )
    assert res.status_code == 400

    res = api(
        "POST",
        f"/api/v1/batches/{bid}/events",
        token=org["trainerToken"],
        json={"title": "Refresher", "eventType": "refresher", "startDate": "2025-01-09", "endDate": "2025-01-09"},
    )
    assert res.status_code == 400

    res = api(
        "POST",
        f"/api/v1/batches/{bid}/events",
        token=org["trainerToken"],
        json={
            "title": "Refresher",
            "eventType": "refresher",
            "refresherReason": "Low quiz scores",
            "startDate": "2025-01-09T10:00:00",
            "endDate": "2025-01-09T12:00:00",
        },
    )
    assert res.status_code == 201
    event = res.get_json()["data"]
    assert event["status"] == "scheduled"

    res = api(
        "PATCH",
        f"/api/v1/batches/{bid}/events/{event['id']}",
        token=org["trainerToken"],
        json={"endDate": "2025-01-08"},
    )
    assert res.status_code == 400

    res = api(
        "PATCH", f"/api/v1/batches/{bid}/events/{event['id']}", token=org["trainerToken"], json={"status": "completed"}
    )
    assert res.get_json()["data"]["status"] == "completed"

    res = api("GET", f"/api/v1/batches/{bid}/events", token=org["trainerToken"])
    assert res.get_json()["data"]["total"] == 1

    res = api("DELETE", f"/api/v1/batches/{bid}/events/{event['id']}", token=org["trainerToken"])
    assert res.status_code == 200
    res = api("DELETE", f"/api/v1/batches/{bid}/events/{event['id']}", token=org["trainerToken"])
    assert res.status_code == 404


def test_batches_are_scoped_to_organization(api, org, batch):
    res = api("GET", "/api/v1/batches/999999", token=org["token"])
    assert res.status_code == 404
