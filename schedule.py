from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from phases import ACTIVE_PHASES, PHASE_DURATION_FIELDS, planned_end_field, planned_start_field

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
DEFAULT_WEEKLY_OFF_DAYS = ("Saturday", "Sunday")


@dataclass(frozen=True)
class Holiday:
    date: date
    name: str = ""
    isRecurring: bool = False


def normalize_weekly_off_days(values: Optional[Iterable[str]]) -> list[str]:
    if values is None:
        return list(DEFAULT_WEEKLY_OFF_DAYS)
    by_lower = {d.lower(): d for d in WEEKDAY_NAMES}
    out: list[str] = []
    for v in values:
        name = by_lower.get(str(v or "").strip().lower())
        if not name:
            raise ValueError(f"Unknown weekday: {v}")
        if name not in out:
            out.append(name)
    if len(out) >= len(WEEKDAY_NAMES):
        raise ValueError("At least one weekday must be a working day")
    return sorted(out, key=WEEKDAY_NAMES.index)


class WorkingCalendar:
    """Decides working days for a batch from its weekly offs and holidays."""

    def __init__(
        self,
        *,
        weekly_off_days: Optional[Iterable[str]] = None,
        holidays: Iterable[Holiday] = (),
        consider_holidays: bool = True,
    ):
        self.weekly_off_days = normalize_weekly_off_days(weekly_off_days)
        self._off_weekdays = {WEEKDAY_NAMES.index(d) for d in self.weekly_off_days}
        self._fixed: set[date] = set()
        self._recurring: set[tuple[int, int]] = set()
        if consider_holidays:
            for h in holidays:
                if h.isRecurring:
                    self._recurring.add((h.date.month, h.date.day))
                else:
                    self._fixed.add(h.date)

    def is_holiday(self, day: date) -> bool:
        return day in self._fixed or (day.month, day.day) in self._recurring

    def is_working_day(self, day: date) -> bool:
        return day.weekday() not in self._off_weekdays and not self.is_holiday(day)

    def first_working_day(self, day: date) -> date:
        # Bounded: a full year of holidays on every working weekday is not a real calendar.
        for _ in range(366):
            if self.is_working_day(day):
                return day
            day += timedelta(days=1)
        raise ValueError("No working day found within a year")

    def next_working_day(self, day: date) -> date:
        return self.first_working_day(day + timedelta(days=1))

    def phase_end(self, start: date, days: int) -> date:
        if days <= 0:
            return start
        day = start
        remaining = days - 1
        while remaining > 0:
            day = self.next_working_day(day)
            remaining -= 1
        return day


def compute_phase_dates(
    start_date: date,
    durations: dict[str, int],
    *,
    weekly_off_days: Optional[Iterable[str]] = None,
    holidays: Iterable[Holiday] = (),
    consider_holidays: bool = True,
) -> dict[str, date]:
    """
    Planned start/end per phase plus the handover date.

    ``durations`` is keyed by phase (``induction``) or by process column
    (``inductionDays``); missing phases count as zero days.
    """

    cal = WorkingCalendar(weekly_off_days=weekly_off_days, holidays=holidays, consider_holidays=consider_holidays)

    out: dict[str, date] = {}
    current = cal.first_working_day(start_date)
    out["startDate"] = current
    prev_days: Optional[int] = None
    prev_end: Optional[date] = None

    for phase in ACTIVE_PHASES:
        days = durations.get(phase)
        if days is None:
            days = durations.get(PHASE_DURATION_FIELDS[phase])
        days = max(0, int(days or 0))

        if prev_end is not None:
            current = prev_end if prev_days == 0 else cal.next_working_day(prev_end)

        end = cal.phase_end(current, days)
        out[planned_start_field(phase)] = current
        out[planned_end_field(phase)] = end
        prev_days, prev_end = days, end

    out[planned_start_field("completed")] = prev_end if prev_days == 0 else cal.next_working_day(prev_end)
    out["endDate"] = out[planned_start_field("completed")]
    return out
