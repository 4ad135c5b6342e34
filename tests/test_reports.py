from __future__ import annotations

from io import BytesIO

from openpyxl import load_workbook

RANGE = "from=2025-01-01&to=2099-12-31"


def test_batch_summary_requires_range(api, owner):
    res = api("GET", "/api/v1/reports/batch-summary", token=owner["token"])
    assert res.status_code == 400

    res = api("GET", "/api/v1/reports/batch-summary?from=2025-02-01&to=2025-01-01", token=owner["token"])
    assert res.status_code == 400


def test_batch_summary_counts(api, org, batch, enroll):
    enroll()
    enroll()
    api("POST", f"/api/v1/batches/{batch['id']}/start", token=org["token"])

    res = api("GET", f"/api/v1/reports/batch-summary?{RANGE}", token=org["token"])
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["from"] == "2025-01-01"
    assert data["batches"]["total"] == 1
    by_status = {r["status"]: r["count"] for r in data["batches"]["byStatus"]}
    assert by_status["induction"] == 1
    assert by_status["planned"] == 0
    assert data["trainees"] == {"total": 2, "byTraineeStatus": [{"traineeStatus": "induction", "count": 2}]}
    assert data["phaseChanges"]["items"] == [{"from": "planned", "to": "induction", "count": 1}]


def test_batch_summary_outside_range_is_empty(api, org, batch):
    res = api("GET", "/api/v1/reports/batch-summary?from=2024-01-01&to=2024-12-31", token=org["token"])
    data = res.get_json()["data"]
    assert data["batches"]["total"] == 0
    assert data["phaseChanges"]["total"] == 0


def test_reports_need_export_permission(api, org):
    res = api("GET", f"/api/v1/reports/batch-summary?{RANGE}", token=org["trainerToken"])
    assert res.status_code == 403


def test_export_xlsx(api, org, batch, enroll):
    enroll()
    res = api("GET", f"/api/v1/reports/batch-summary/export.xlsx?{RANGE}", token=org["token"])
    assert res.status_code == 200
    assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "batch_summary_2025-01-01_2099-12-31.xlsx" in res.headers["Content-Disposition"]

    wb = load_workbook(BytesIO(res.data))
    assert wb.sheetnames == ["Meta", "Batches", "Trainees", "Phase changes"]
    meta = {r[0]: r[1] for r in wb["Meta"].iter_rows(min_row=2, values_only=True)}
    assert meta["type"] == "batch_summary"
    rows = list(wb["Batches"].iter_rows(min_row=2, values_only=True))
    assert ("planned", 1) in rows
    assert list(wb["Trainees"].iter_rows(min_row=2, values_only=True)) == [("planned", 1)]
