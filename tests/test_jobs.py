from __future__ import annotations

from conftest import INTERNAL_TOKEN

JOB_PATH = "/api/v1/jobs/batch-status"


def _started(api, org, batch, enroll):
    enroll()
    res = api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])
    assert res.status_code == 200
    return batch["id"]


def test_job_requires_credentials(api, owner):
    res = api("POST", JOB_PATH, json={})
    assert res.status_code == 401

    res = api("POST", JOB_PATH, json={}, headers={"X-Internal-Token": "wrong"})
    assert res.status_code == 401


def test_job_needs_settings_permission_for_users(api, org):
    res = api("POST", JOB_PATH, token=org["trainerToken"], json={"dryRun": True})
    assert res.status_code == 403

    res = api("POST", JOB_PATH, token=org["token"], json={"dryRun": True})
    assert res.status_code == 200


def test_dry_run_lists_due_batches(api, org, batch, enroll):
    bid = _started(api, org, batch, enroll)
    res = api(
        "POST", JOB_PATH, json={"today": "2025-01-07", "dryRun": True}, headers={"X-Internal-Token": INTERNAL_TOKEN}
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["dryRun"] is True
    assert data["due"] == [
        {
            "batchId": bid,
            "name": batch["name"],
            "from": "induction",
            "to": "training",
            "phaseEndDate": "2025-01-07",
            "trainees": 1,
        }
    ]

    res = api("GET", f"/api/v1/batches/{bid}", token=org["token"])
    assert res.get_json()["data"]["status"] == "induction"


def test_internal_run_advances_due_batch(api, org, batch, enroll):
    bid = _started(api, org, batch, enroll)

    res = api("POST", JOB_PATH, json={"today": "2025-01-06"}, headers={"X-Internal-Token": INTERNAL_TOKEN})
    assert res.get_json()["data"]["transitioned"] == []

    res = api("POST", JOB_PATH, json={"today": "2025-01-08"}, headers={"X-Internal-Token": INTERNAL_TOKEN})
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert [(m["batchId"], m["from"], m["to"]) for m in data["transitioned"]] == [(bid, "induction", "training")]
    assert data["failed"] == []

    res = api("GET", f"/api/v1/batches/{bid}", token=org["token"])
    b = res.get_json()["data"]
    assert b["status"] == "training"
    assert b["actualInductionEndDate"] == "2025-01-08"
    assert b["actualTrainingStartDate"] == "2025-01-08"

    res = api("GET", f"/api/v1/batches/{bid}/history?eventType=phase_change", token=org["token"])
    latest = res.get_json()["data"]["items"][0]
    assert latest["user"]["fullName"] == "System"
    assert latest["description"] == "Batch phase changed from induction to training"


def test_run_rejects_bad_date(api, owner):
    res = api("POST", JOB_PATH, json={"today": "someday"}, headers={"X-Internal-Token": INTERNAL_TOKEN})
    assert res.status_code == 400


def test_internal_token_only_unlocks_the_job(api, batch):
    res = api("GET", "/api/v1/batches", headers={"X-Internal-Token": INTERNAL_TOKEN})
    assert res.status_code == 401
