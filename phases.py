from __future__ import annotations

from typing import Any, Optional

from utils import ApiError

BATCH_PHASES = (
    "planned",
    "induction",
    "training",
    "certification",
    "ojt",
    "ojt_certification",
    "completed",
)
ACTIVE_PHASES = BATCH_PHASES[1:-1]

TRAINEE_SPECIAL_STATUSES = ("refresher", "refer_to_hr", "left_job")
TRAINEE_STATUSES = BATCH_PHASES + TRAINEE_SPECIAL_STATUSES

ENROLLMENT_STATUSES = ("active", "completed", "dropped", "on_hold")
HISTORY_EVENT_TYPES = ("phase_change", "status_update", "milestone", "note")
BATCH_CATEGORIES = ("new_training", "upskill")

# Process duration column feeding each active phase.
PHASE_DURATION_FIELDS = {
    "induction": "inductionDays",
    "training": "trainingDays",
    "certification": "certificationDays",
    "ojt": "ojtDays",
    "ojt_certification": "ojtCertificationDays",
}

_PLANNED_START_FIELDS = {
    "induction": "inductionStartDate",
    "training": "trainingStartDate",
    "certification": "certificationStartDate",
    "ojt": "ojtStartDate",
    "ojt_certification": "ojtCertificationStartDate",
    "completed": "handoverToOpsDate",
}

_PLANNED_END_FIELDS = {
    "induction": "inductionEndDate",
    "training": "trainingEndDate",
    "certification": "certificationEndDate",
    "ojt": "ojtEndDate",
    "ojt_certification": "ojtCertificationEndDate",
}

_ACTUAL_START_FIELDS = {
    "induction": "actualInductionStartDate",
    "training": "actualTrainingStartDate",
    "certification": "actualCertificationStartDate",
    "ojt": "actualOjtStartDate",
    "ojt_certification": "actualOjtCertificationStartDate",
    "completed": "actualHandoverToOpsDate",
}

_ACTUAL_END_FIELDS = {
    "induction": "actualInductionEndDate",
    "training": "actualTrainingEndDate",
    "certification": "actualCertificationEndDate",
    "ojt": "actualOjtEndDate",
    "ojt_certification": "actualOjtCertificationEndDate",
}

PLANNED_DATE_FIELDS = tuple(
    f for p in ACTIVE_PHASES for f in (_PLANNED_START_FIELDS[p], _PLANNED_END_FIELDS[p])
) + ("handoverToOpsDate",)

ACTUAL_DATE_FIELDS = tuple(
    f for p in ACTIVE_PHASES for f in (_ACTUAL_START_FIELDS[p], _ACTUAL_END_FIELDS[p])
) + ("actualHandoverToOpsDate",)


def _clean(value: Any) -> str:
    return str(value or "").strip().lower().replace("-", "_").replace(" ", "_")


def normalize_phase(value: Any) -> str:
    s = _clean(value)
    if s not in BATCH_PHASES:
        raise ApiError("BAD_REQUEST", f"Unknown batch phase: {value}", details={"allowed": list(BATCH_PHASES)})
    return s


def normalize_trainee_status(value: Any) -> str:
    s = _clean(value)
    if s not in TRAINEE_STATUSES:
        raise ApiError("BAD_REQUEST", f"Unknown trainee status: {value}", details={"allowed": list(TRAINEE_STATUSES)})
    return s


def normalize_enrollment_status(value: Any) -> str:
    s = _clean(value)
    if s not in ENROLLMENT_STATUSES:
        raise ApiError(
            "BAD_REQUEST", f"Unknown enrollment status: {value}", details={"allowed": list(ENROLLMENT_STATUSES)}
        )
    return s


def next_phase(phase: str) -> Optional[str]:
    if phase not in BATCH_PHASES:
        return None
    idx = BATCH_PHASES.index(phase)
    if idx + 1 >= len(BATCH_PHASES):
        return None
    return BATCH_PHASES[idx + 1]


def previous_phase(phase: str) -> Optional[str]:
    if phase not in BATCH_PHASES:
        return None
    idx = BATCH_PHASES.index(phase)
    if idx == 0:
        return None
    return BATCH_PHASES[idx - 1]


def is_active_phase(phase: str) -> bool:
    return phase in ACTIVE_PHASES


def planned_start_field(phase: str) -> Optional[str]:
    return _PLANNED_START_FIELDS.get(phase)


def planned_end_field(phase: str) -> Optional[str]:
    return _PLANNED_END_FIELDS.get(phase)


def actual_start_field(phase: str) -> Optional[str]:
    return _ACTUAL_START_FIELDS.get(phase)


def actual_end_field(phase: str) -> Optional[str]:
    return _ACTUAL_END_FIELDS.get(phase)


def phases_through(phase: str) -> tuple[str, ...]:
    """Active phases entered on the way to ``phase``, inclusive."""
    if phase not in BATCH_PHASES:
        return ()
    idx = BATCH_PHASES.index(phase)
    return tuple(p for p in BATCH_PHASES[1 : idx + 1] if p in ACTIVE_PHASES)
