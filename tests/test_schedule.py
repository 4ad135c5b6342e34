from datetime import date

import pytest

from schedule import Holiday, WorkingCalendar, compute_phase_dates, normalize_weekly_off_days

from conftest import BATCH_START, PROCESS_DAYS


def _d(day: int) -> date:
    return date(2025, 1, day)


def test_compute_phase_dates_skips_weekends():
    out = compute_phase_dates(BATCH_START, PROCESS_DAYS)

    assert out["startDate"] == _d(6)
    assert (out["inductionStartDate"], out["inductionEndDate"]) == (_d(6), _d(7))
    assert (out["trainingStartDate"], out["trainingEndDate"]) == (_d(8), _d(10))
    assert (out["certificationStartDate"], out["certificationEndDate"]) == (_d(13), _d(13))
    assert (out["ojtStartDate"], out["ojtEndDate"]) == (_d(14), _d(15))
    assert (out["ojtCertificationStartDate"], out["ojtCertificationEndDate"]) == (_d(16), _d(16))
    assert out["handoverToOpsDate"] == _d(17)
    assert out["endDate"] == out["handoverToOpsDate"]


def test_start_on_weekend_moves_to_first_working_day():
    out = compute_phase_dates(_d(4), PROCESS_DAYS)
    assert out["startDate"] == _d(6)
    assert out["inductionStartDate"] == _d(6)


def test_fixed_holiday_pushes_later_phases():
    out = compute_phase_dates(BATCH_START, PROCESS_DAYS, holidays=[Holiday(_d(8), "Local festival")])

    assert (out["trainingStartDate"], out["trainingEndDate"]) == (_d(9), _d(13))
    assert out["certificationStartDate"] == _d(14)
    assert out["handoverToOpsDate"] == _d(20)


def test_recurring_holiday_matches_any_year():
    out = compute_phase_dates(BATCH_START, PROCESS_DAYS, holidays=[Holiday(date(2000, 1, 13), "Harvest", True)])
    assert out["certificationStartDate"] == _d(14)


def test_holidays_ignored_when_disabled():
    out = compute_phase_dates(
        BATCH_START, PROCESS_DAYS, holidays=[Holiday(_d(8))], consider_holidays=False
    )
    assert out["trainingStartDate"] == _d(8)


def test_zero_day_phase_starts_and_ends_with_the_next():
    days = dict(PROCESS_DAYS, certificationDays=0)
    out = compute_phase_dates(BATCH_START, days)

    assert out["certificationStartDate"] == out["certificationEndDate"] == _d(13)
    assert out["ojtStartDate"] == _d(13)


def test_durations_keyed_by_phase_name():
    out = compute_phase_dates(BATCH_START, {"induction": 1, "training": 1})
    assert out["inductionEndDate"] == _d(6)
    assert out["trainingStartDate"] == _d(7)


def test_custom_weekly_off_days():
    cal = WorkingCalendar(weekly_off_days=["sunday"])
    assert cal.is_working_day(_d(4))
    assert not cal.is_working_day(_d(5))
    assert cal.phase_end(_d(3), 3) == _d(6)


def test_normalize_weekly_off_days():
    assert normalize_weekly_off_days(None) == ["Saturday", "Sunday"]
    assert normalize_weekly_off_days(["sunday", "Friday", "SUNDAY"]) == ["Friday", "Sunday"]
    with pytest.raises(ValueError):
        normalize_weekly_off_days(["Funday"])
    with pytest.raises(ValueError):
        normalize_weekly_off_days(["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"])
