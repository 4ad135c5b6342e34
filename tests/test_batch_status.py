from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from models import (
    BatchHistory,
    Organization,
    OrganizationBatch,
    OrganizationLineOfBusiness,
    OrganizationLocation,
    OrganizationProcess,
    User,
    UserBatchProcess,
)
from phases import ACTUAL_DATE_FIELDS, BATCH_PHASES
from services import batch_status
from services.batch_status import (
    backfill_actual_end_dates,
    backfill_actual_start_dates,
    get_system_user_id,
    initialize_trainee_statuses,
    reset_empty_batches,
    run_batch_status_job,
    transition_batch,
    update_batch_statuses,
)
from utils import ApiError

PLANNED = {
    "inductionStartDate": date(2025, 1, 6),
    "inductionEndDate": date(2025, 1, 7),
    "trainingStartDate": date(2025, 1, 8),
    "trainingEndDate": date(2025, 1, 10),
    "certificationStartDate": date(2025, 1, 13),
    "certificationEndDate": date(2025, 1, 13),
    "ojtStartDate": date(2025, 1, 14),
    "ojtEndDate": date(2025, 1, 15),
    "ojtCertificationStartDate": date(2025, 1, 16),
    "ojtCertificationEndDate": date(2025, 1, 16),
    "handoverToOpsDate": date(2025, 1, 17),
}


@pytest.fixture()
def org_rows(db_session):
    org = Organization(name="Acme")
    db_session.add(org)
    db_session.flush()
    loc = OrganizationLocation(name="Pune", organizationId=org.id)
    lob = OrganizationLineOfBusiness(name="Care", organizationId=org.id)
    db_session.add_all([loc, lob])
    db_session.flush()
    proc = OrganizationProcess(name="Voice", lineOfBusinessId=lob.id, organizationId=org.id)
    db_session.add(proc)
    db_session.commit()
    return {"org": org, "loc": loc, "lob": lob, "proc": proc}


def _batch(db, rows, *, status: str = "induction", name: str = "B1", **overrides) -> OrganizationBatch:
    b = OrganizationBatch(
        name=name,
        status=status,
        capacityLimit=10,
        processId=rows["proc"].id,
        locationId=rows["loc"].id,
        lineOfBusinessId=rows["lob"].id,
        organizationId=rows["org"].id,
        startDate=PLANNED["inductionStartDate"],
        endDate=PLANNED["handoverToOpsDate"],
        **{**PLANNED, **overrides},
    )
    db.add(b)
    db.commit()
    return b


def _trainee(
    db,
    rows,
    batch: OrganizationBatch,
    *,
    username: str,
    manual_status: str | None = None,
    enrollment_status: str = "active",
) -> UserBatchProcess:
    u = User(username=username, fullName=username.title(), role="trainee", organizationId=rows["org"].id)
    db.add(u)
    db.flush()
    ubp = UserBatchProcess(
        userId=u.id,
        batchId=batch.id,
        processId=batch.processId,
        status=enrollment_status,
        traineeStatus=manual_status or batch.status,
        isManualStatus=manual_status is not None,
    )
    db.add(ubp)
    db.commit()
    return ubp


def _history(db, batch_id: int) -> list[BatchHistory]:
    return list(
        db.execute(select(BatchHistory).where(BatchHistory.batchId == batch_id).order_by(BatchHistory.id))
        .scalars()
        .all()
    )


def test_due_batch_advances_one_phase_and_stamps_dates(db_session, org_rows):
    b = _batch(db_session, org_rows, status="induction", actualInductionStartDate=date(2025, 1, 6))
    _trainee(db_session, org_rows, b, username="amy")
    system_id = get_system_user_id(db_session)
    db_session.commit()

    out = update_batch_statuses(db_session, today=date(2025, 1, 7), system_user_id=system_id)

    db_session.refresh(b)
    assert b.status == "training"
    assert b.actualInductionEndDate == date(2025, 1, 7)
    assert b.actualTrainingStartDate == date(2025, 1, 7)
    assert out["transitioned"] == [{"batchId": b.id, "from": "induction", "to": "training", "traineesUpdated": 1}]

    hist = _history(db_session, b.id)
    assert len(hist) == 1
    assert (hist[0].eventType, hist[0].previousValue, hist[0].newValue) == ("phase_change", "induction", "training")
    assert hist[0].userId == system_id


def test_batch_before_phase_end_is_left_alone(db_session, org_rows):
    b = _batch(db_session, org_rows, status="training")
    _trainee(db_session, org_rows, b, username="amy")

    out = update_batch_statuses(db_session, today=date(2025, 1, 9), system_user_id=get_system_user_id(db_session))

    db_session.refresh(b)
    assert b.status == "training"
    assert out["transitioned"] == []
    assert _history(db_session, b.id) == []


def test_batch_without_end_date_is_not_advanced(db_session, org_rows):
    b = _batch(db_session, org_rows, status="ojt", ojtEndDate=None)
    _trainee(db_session, org_rows, b, username="amy")

    update_batch_statuses(db_session, today=date(2026, 1, 1), system_user_id=get_system_user_id(db_session))

    db_session.refresh(b)
    assert b.status == "ojt"


def test_empty_batch_is_skipped_by_update(db_session, org_rows):
    b = _batch(db_session, org_rows, status="training")

    out = update_batch_statuses(db_session, today=date(2025, 2, 1), system_user_id=get_system_user_id(db_session))

    db_session.refresh(b)
    assert b.status == "training"
    assert out["skippedEmpty"] == [b.id]


def test_inactive_enrollments_do_not_count_as_trainees(db_session, org_rows):
    b = _batch(db_session, org_rows, status="training")
    _trainee(db_session, org_rows, b, username="gone", enrollment_status="dropped")

    out = update_batch_statuses(db_session, today=date(2025, 2, 1), system_user_id=get_system_user_id(db_session))

    assert out["skippedEmpty"] == [b.id]


@pytest.mark.parametrize("enrollment_status", ["completed", "on_hold"])
def test_finished_or_paused_trainees_keep_batch_from_reset(db_session, org_rows, enrollment_status):
    b = _batch(db_session, org_rows, status="ojt", actualInductionStartDate=date(2025, 1, 6))
    _trainee(db_session, org_rows, b, username="kim", enrollment_status=enrollment_status)
    system_id = get_system_user_id(db_session)
    db_session.commit()

    assert reset_empty_batches(db_session, system_user_id=system_id) == []

    db_session.refresh(b)
    assert b.status == "ojt"
    assert b.actualInductionStartDate == date(2025, 1, 6)
    assert _history(db_session, b.id) == []


@pytest.mark.parametrize("enrollment_status", ["completed", "on_hold"])
def test_finished_or_paused_trainees_still_let_batch_advance(db_session, org_rows, enrollment_status):
    b = _batch(db_session, org_rows, status="training")
    ubp = _trainee(db_session, org_rows, b, username="kim", enrollment_status=enrollment_status)

    out = update_batch_statuses(db_session, today=date(2025, 1, 10), system_user_id=get_system_user_id(db_session))

    assert out["skippedEmpty"] == []
    db_session.refresh(b)
    db_session.refresh(ubp)
    assert b.status == "certification"
    assert ubp.traineeStatus == "training"


def test_job_completes_batch_whose_trainees_were_marked_completed(db_session, org_rows):
    b = _batch(
        db_session,
        org_rows,
        status="ojt_certification",
        actualInductionStartDate=date(2025, 1, 6),
        actualOjtCertificationStartDate=date(2025, 1, 16),
    )
    _trainee(db_session, org_rows, b, username="kim", enrollment_status="completed")

    out = run_batch_status_job(db_session, today=date(2025, 1, 16))

    assert out["reset"] == []
    db_session.refresh(b)
    assert b.status == "completed"
    assert b.actualInductionStartDate == date(2025, 1, 6)
    assert b.actualOjtCertificationEndDate == date(2025, 1, 16)


def test_only_dropped_enrollments_still_reset_the_batch(db_session, org_rows):
    b = _batch(db_session, org_rows, status="training", actualInductionStartDate=date(2025, 1, 6))
    _trainee(db_session, org_rows, b, username="gone", enrollment_status="dropped")
    system_id = get_system_user_id(db_session)
    db_session.commit()

    assert reset_empty_batches(db_session, system_user_id=system_id) == [b.id]

    db_session.refresh(b)
    assert b.status == "planned"
    assert b.actualInductionStartDate is None


def test_planned_and_completed_batches_are_not_touched(db_session, org_rows):
    planned = _batch(db_session, org_rows, status="planned", name="P")
    done = _batch(db_session, org_rows, status="completed", name="C")
    _trainee(db_session, org_rows, planned, username="amy")
    _trainee(db_session, org_rows, done, username="bob")

    update_batch_statuses(db_session, today=date(2026, 1, 1), system_user_id=get_system_user_id(db_session))

    db_session.refresh(planned)
    db_session.refresh(done)
    assert planned.status == "planned"
    assert done.status == "completed"


def test_manual_trainee_status_survives_propagation(db_session, org_rows):
    b = _batch(db_session, org_rows, status="certification")
    auto = _trainee(db_session, org_rows, b, username="amy")
    manual = _trainee(db_session, org_rows, b, username="bob", manual_status="refresher")

    update_batch_statuses(db_session, today=date(2025, 1, 13), system_user_id=get_system_user_id(db_session))

    db_session.refresh(auto)
    db_session.refresh(manual)
    assert auto.traineeStatus == "ojt"
    assert manual.traineeStatus == "refresher"
    assert manual.isManualStatus is True


def test_last_phase_moves_to_completed_and_stamps_handover(db_session, org_rows):
    b = _batch(db_session, org_rows, status="ojt_certification")
    _trainee(db_session, org_rows, b, username="amy")

    update_batch_statuses(db_session, today=date(2025, 1, 20), system_user_id=get_system_user_id(db_session))

    db_session.refresh(b)
    assert b.status == "completed"
    assert b.actualOjtCertificationEndDate == date(2025, 1, 20)
    assert b.actualHandoverToOpsDate == date(2025, 1, 20)


def test_repeated_runs_walk_the_phase_order_without_skipping(db_session, org_rows):
    b = _batch(db_session, org_rows, status="induction")
    _trainee(db_session, org_rows, b, username="amy")
    system_id = get_system_user_id(db_session)

    # Every end date has passed; each pass may only move one step.
    seen = [b.status]
    for _ in range(8):
        update_batch_statuses(db_session, today=date(2025, 3, 1), system_user_id=system_id)
        db_session.refresh(b)
        if b.status != seen[-1]:
            seen.append(b.status)

    assert seen == list(BATCH_PHASES[1:])
    hist = _history(db_session, b.id)
    assert [(h.previousValue, h.newValue) for h in hist] == list(zip(BATCH_PHASES[1:-1], BATCH_PHASES[2:]))


def test_failure_in_one_batch_does_not_stop_the_pass(db_session, org_rows, monkeypatch):
    bad = _batch(db_session, org_rows, status="training", name="Bad")
    good = _batch(db_session, org_rows, status="training", name="Good")
    _trainee(db_session, org_rows, bad, username="amy")
    _trainee(db_session, org_rows, good, username="bob")

    real = batch_status.propagate_trainee_status

    def flaky(db, batch_id, status):
        if batch_id == bad.id:
            raise RuntimeError("database went away")
        return real(db, batch_id, status)

    monkeypatch.setattr(batch_status, "propagate_trainee_status", flaky)

    out = update_batch_statuses(db_session, today=date(2025, 1, 10), system_user_id=get_system_user_id(db_session))

    db_session.expire_all()
    assert out["failed"] == [bad.id]
    assert [t["batchId"] for t in out["transitioned"]] == [good.id]
    assert db_session.get(OrganizationBatch, bad.id).status == "training"
    assert db_session.get(OrganizationBatch, bad.id).actualTrainingEndDate is None
    assert _history(db_session, bad.id) == []
    assert db_session.get(OrganizationBatch, good.id).status == "certification"


def test_transition_rejects_skipping_a_phase(db_session, org_rows):
    b = _batch(db_session, org_rows, status="induction")
    _trainee(db_session, org_rows, b, username="amy")

    with pytest.raises(ApiError) as exc:
        transition_batch(db_session, b, to_phase="certification", on_date=date(2025, 1, 7), actor_user_id=1)

    assert exc.value.code == "CONFLICT"


def test_transition_requires_a_trainee(db_session, org_rows):
    b = _batch(db_session, org_rows, status="planned")

    with pytest.raises(ApiError) as exc:
        transition_batch(db_session, b, to_phase="induction", on_date=date(2025, 1, 6), actor_user_id=1)

    assert exc.value.code == "CONFLICT"
    assert b.status == "planned"


def test_reset_empty_batches_returns_to_planned_and_clears_actuals(db_session, org_rows):
    b = _batch(
        db_session,
        org_rows,
        status="training",
        actualInductionStartDate=date(2025, 1, 6),
        actualInductionEndDate=date(2025, 1, 7),
        actualTrainingStartDate=date(2025, 1, 7),
    )
    kept = _batch(db_session, org_rows, status="training", name="Kept")
    _trainee(db_session, org_rows, kept, username="amy")
    system_id = get_system_user_id(db_session)
    db_session.commit()

    assert reset_empty_batches(db_session, system_user_id=system_id) == [b.id]

    db_session.refresh(b)
    assert b.status == "planned"
    assert all(getattr(b, f) is None for f in ACTUAL_DATE_FIELDS)
    hist = _history(db_session, b.id)
    assert len(hist) == 1
    assert (hist[0].previousValue, hist[0].newValue) == ("training", "planned")
    assert "no enrolled users" in hist[0].description
    assert db_session.get(OrganizationBatch, kept.id).status == "training"


def test_backfill_start_date_is_idempotent(db_session, org_rows):
    b = _batch(db_session, org_rows, status="certification")
    _trainee(db_session, org_rows, b, username="amy")

    assert backfill_actual_start_dates(db_session, today=date(2025, 1, 13)) == [b.id]
    assert backfill_actual_start_dates(db_session, today=date(2025, 1, 20)) == []

    db_session.refresh(b)
    assert b.actualCertificationStartDate == date(2025, 1, 13)


def test_backfill_end_dates_copies_next_start_and_is_idempotent(db_session, org_rows):
    b = _batch(
        db_session,
        org_rows,
        status="certification",
        actualInductionStartDate=date(2025, 1, 6),
        actualTrainingStartDate=date(2025, 1, 8),
        actualCertificationStartDate=date(2025, 1, 13),
    )

    assert backfill_actual_end_dates(db_session) == [b.id]
    assert backfill_actual_end_dates(db_session) == []

    db_session.refresh(b)
    assert b.actualInductionEndDate == date(2025, 1, 8)
    assert b.actualTrainingEndDate == date(2025, 1, 13)
    # The current phase has not ended yet.
    assert b.actualCertificationEndDate is None


def test_backfill_end_dates_keeps_recorded_values(db_session, org_rows):
    b = _batch(
        db_session,
        org_rows,
        status="training",
        actualInductionEndDate=date(2025, 1, 7),
        actualTrainingStartDate=date(2025, 1, 8),
    )

    assert backfill_actual_end_dates(db_session) == []
    db_session.refresh(b)
    assert b.actualInductionEndDate == date(2025, 1, 7)


def test_initialize_trainee_statuses_fills_missing_values(db_session, org_rows):
    b = _batch(db_session, org_rows, status="ojt")
    ubp = _trainee(db_session, org_rows, b, username="amy")
    ubp.traineeStatus = None
    db_session.commit()

    assert initialize_trainee_statuses(db_session) == 1
    db_session.refresh(ubp)
    assert ubp.traineeStatus == "ojt"


def test_full_job_resets_then_advances_then_backfills(db_session, org_rows):
    empty = _batch(db_session, org_rows, status="induction", name="Empty")
    due = _batch(db_session, org_rows, status="induction", name="Due")
    _trainee(db_session, org_rows, due, username="amy")

    out = run_batch_status_job(db_session, today=date(2025, 1, 7))

    assert out["reset"] == [empty.id]
    assert [t["batchId"] for t in out["transitioned"]] == [due.id]
    # The transition stamped both dates itself, so the backfills find nothing.
    assert out["backfilledStartDates"] == []
    db_session.expire_all()
    assert db_session.get(OrganizationBatch, empty.id).status == "planned"
    assert db_session.get(OrganizationBatch, due.id).status == "training"

    again = run_batch_status_job(db_session, today=date(2025, 1, 7))
    assert again["reset"] == [] and again["transitioned"] == []


def test_dry_run_lists_due_batches_without_writing(db_session, org_rows):
    b = _batch(db_session, org_rows, status="training")
    _trainee(db_session, org_rows, b, username="amy")

    out = run_batch_status_job(db_session, today=date(2025, 1, 10), dry_run=True)

    assert out["dryRun"] is True
    assert out["due"][0]["batchId"] == b.id
    assert out["due"][0]["to"] == "certification"
    db_session.refresh(b)
    assert b.status == "training"


def test_system_user_is_created_once_and_cannot_log_in(db_session):
    first = get_system_user_id(db_session, "system")
    db_session.commit()
    second = get_system_user_id(db_session, "system")

    assert first == second
    user = db_session.get(User, first)
    assert user.active is False
    assert user.passwordHash == "!"


def test_cli_runs_a_dry_run_pass_on_an_empty_database(tmp_path, monkeypatch, capsys):
    import json

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{(tmp_path / 'cli.db').as_posix()}")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    assert batch_status.main(["run", "--today", "2025-01-08", "--dry-run"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["today"] == "2025-01-08"
    assert out["dryRun"] is True

    assert batch_status.main(["init-trainee-status"]) == 0
    assert json.loads(capsys.readouterr().out) == {"initialized": 0}
