# Overview: Pure work-hours computation; punches -> daily metrics -> weekly/period rollups -> hour bank.

"""
Work-Hours Aggregator

WHY: Attendance data is messy (forgotten exits, double taps, breaks that never
end). Reports must still render, so nothing here raises for missing punches:
days degrade to PARTIAL/ABSENT with a warnings list.

DESIGN:
- compute_daily() is the only place raw punches are interpreted
- weekly and period metrics are field-wise sums of daily metrics, never
  re-derived from punches, so sum(days) == week and sum(weeks) == period
- hour_bank() is the single credit/debit mapping for every report variant
- no database or app context; every call receives its SchedulePolicy

Punches are any objects exposing punch_type and punched_at (UTC-naive);
day grouping and schedule comparisons use wall-clock time in the policy
timezone.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from .policy import SchedulePolicy
from .time_utils import minutes_between, to_local

STATUS_COMPLETE = "COMPLETE"
STATUS_PARTIAL = "PARTIAL"
STATUS_ABSENT = "ABSENT"
STATUS_DAY_OFF = "DAY_OFF"

# Longest ENTRY-to-EXIT span that may close a shift on the next local day
MAX_SHIFT_LENGTH = timedelta(hours=16)

MINUTE_FIELDS = (
    "worked_minutes",
    "regular_minutes",
    "overtime_minutes",
    "break_minutes",
    "night_shift_minutes",
    "delay_minutes",
    "early_departure_minutes",
)

COUNT_FIELDS = (
    "work_days",
    "days_worked",
    "complete_days",
    "partial_days",
    "absent_days",
    "late_days",
    "early_departure_days",
    "overtime_days",
    "night_shift_days",
)


@dataclass(frozen=True)
class DailyMetrics:
    work_date: date
    status: str
    is_work_day: bool
    is_complete: bool
    worked_minutes: int = 0
    regular_minutes: int = 0
    overtime_minutes: int = 0
    break_minutes: int = 0
    night_shift_minutes: int = 0
    delay_minutes: int = 0
    early_departure_minutes: int = 0
    first_entry: datetime | None = None
    last_exit: datetime | None = None
    warnings: tuple[str, ...] = ()

    def counts(self) -> dict[str, int]:
        """Indicator values so that a rollup is a plain sum."""
        return {
            "work_days": int(self.is_work_day),
            "days_worked": int(self.first_entry is not None),
            "complete_days": int(self.status == STATUS_COMPLETE),
            "partial_days": int(self.status == STATUS_PARTIAL),
            "absent_days": int(self.status == STATUS_ABSENT),
            "late_days": int(self.delay_minutes > 0),
            "early_departure_days": int(self.early_departure_minutes > 0),
            "overtime_days": int(self.overtime_minutes > 0),
            "night_shift_days": int(self.night_shift_minutes > 0),
        }

    def to_dict(self) -> dict:
        data = {name: getattr(self, name) for name in MINUTE_FIELDS}
        data.update({
            "date": self.work_date.isoformat(),
            "status": self.status,
            "is_work_day": self.is_work_day,
            "is_complete": self.is_complete,
            "first_entry": self.first_entry.strftime("%H:%M") if self.first_entry else None,
            "last_exit": self.last_exit.strftime("%H:%M") if self.last_exit else None,
            "warnings": list(self.warnings),
        })
        return data


@dataclass(frozen=True)
class RollupMetrics:
    start_date: date
    end_date: date
    worked_minutes: int = 0
    regular_minutes: int = 0
    overtime_minutes: int = 0
    break_minutes: int = 0
    night_shift_minutes: int = 0
    delay_minutes: int = 0
    early_departure_minutes: int = 0
    work_days: int = 0
    days_worked: int = 0
    complete_days: int = 0
    partial_days: int = 0
    absent_days: int = 0
    late_days: int = 0
    early_departure_days: int = 0
    overtime_days: int = 0
    night_shift_days: int = 0
    warnings: tuple[str, ...] = ()

    @property
    def average_worked_minutes(self) -> float:
        return round(self.worked_minutes / self.complete_days, 2) if self.complete_days else 0.0

    @property
    def attendance_rate(self) -> float:
        """Share of business days with at least an ENTRY, in percent."""
        if not self.work_days:
            return 0.0
        return round(100 * min(self.days_worked, self.work_days) / self.work_days, 2)

    @property
    def punctuality_rate(self) -> float:
        if not self.days_worked:
            return 0.0
        return round(100 * (self.days_worked - self.late_days) / self.days_worked, 2)

    def to_dict(self) -> dict:
        data = {name: getattr(self, name) for name in MINUTE_FIELDS + COUNT_FIELDS}
        data.update({
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "average_worked_minutes": self.average_worked_minutes,
            "attendance_rate": self.attendance_rate,
            "punctuality_rate": self.punctuality_rate,
            "warnings": list(self.warnings),
        })
        return data


@dataclass(frozen=True)
class WeeklyMetrics(RollupMetrics):
    iso_year: int = 0
    iso_week: int = 0
    days: tuple[DailyMetrics, ...] = ()

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "iso_year": self.iso_year,
            "iso_week": self.iso_week,
            "days": [d.to_dict() for d in self.days],
        })
        return data


@dataclass(frozen=True)
class PeriodMetrics(RollupMetrics):
    weeks: tuple[WeeklyMetrics, ...] = ()

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["weeks"] = [w.to_dict() for w in self.weeks]
        return data


@dataclass(frozen=True)
class HourBankEntry:
    opening_minutes: int
    credit_minutes: int
    debit_minutes: int

    @property
    def closing_minutes(self) -> int:
        return self.opening_minutes + self.credit_minutes - self.debit_minutes

    @property
    def credits(self) -> float:
        return self.credit_minutes / 60

    @property
    def debits(self) -> float:
        return self.debit_minutes / 60

    def to_dict(self) -> dict:
        return {
            "opening_minutes": self.opening_minutes,
            "credit_minutes": self.credit_minutes,
            "debit_minutes": self.debit_minutes,
            "closing_minutes": self.closing_minutes,
            "credit_hours": round(self.credits, 2),
            "debit_hours": round(self.debits, 2),
            "closing_balance": format_balance(self.closing_minutes),
        }


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------

def _overlap_minutes(start: datetime, end: datetime, window_start: datetime, window_end: datetime) -> int:
    lo, hi = max(start, window_start), min(end, window_end)
    return minutes_between(lo, hi) if hi > lo else 0


def night_minutes(start: datetime, end: datetime, schedule: SchedulePolicy) -> int:
    """Minutes of [start, end) that fall inside any night window."""
    if end <= start or schedule.night_start == schedule.night_end:
        return 0
    total = 0
    day = start.date() - timedelta(days=1)
    while day <= end.date():
        window_start = datetime.combine(day, schedule.night_start)
        window_end = datetime.combine(day, schedule.night_end)
        if window_end <= window_start:
            window_end += timedelta(days=1)
        total += _overlap_minutes(start, end, window_start, window_end)
        day += timedelta(days=1)
    return total


def _break_minutes(starts: list[datetime], ends: list[datetime], warnings: list[str]) -> int:
    events = sorted([(ts, "BREAK_START") for ts in starts] + [(ts, "BREAK_END") for ts in ends])
    total = 0
    open_start: datetime | None = None
    orphan_ends: list[datetime] = []

    for ts, kind in events:
        if kind == "BREAK_START":
            if open_start is not None:
                warnings.append(f"Break started at {open_start:%H:%M} has no end; counted as 0 minutes")
            open_start = ts
        elif open_start is None:
            orphan_ends.append(ts)
        else:
            total += minutes_between(open_start, ts)
            open_start = None

    if open_start is not None:
        if orphan_ends:
            # Break crossing midnight: the end was stamped early on the same local date.
            end = orphan_ends.pop(0)
            total += minutes_between(open_start, end + timedelta(days=1))
        else:
            warnings.append(f"Break started at {open_start:%H:%M} has no end; counted as 0 minutes")

    for ts in orphan_ends:
        warnings.append(f"Break end at {ts:%H:%M} has no start; ignored")
    return total


def compute_daily(punches: Iterable, work_date: date, schedule: SchedulePolicy) -> DailyMetrics:
    """
    Minute-level metrics for one employee-day.

    Delay honours the tolerance; early departure does not. Night minutes are
    counted over the whole span, independent of the regular/overtime split.
    """
    by_type: dict[str, list[datetime]] = defaultdict(list)
    for punch in punches:
        by_type[punch.punch_type].append(to_local(punch.punched_at, schedule.timezone))
    for values in by_type.values():
        values.sort()

    entries, exits = by_type["ENTRY"], by_type["EXIT"]
    is_work_day = schedule.is_work_day(work_date.weekday())
    warnings: list[str] = []

    if len(entries) > 1:
        warnings.append(f"{len(entries)} ENTRY punches; using the earliest")
    if len(exits) > 1:
        warnings.append(f"{len(exits)} EXIT punches; using the latest")

    entry = entries[0] if entries else None
    exit_ = exits[-1] if exits else None
    if entry is not None and exit_ is not None:
        while exit_ < entry:
            exit_ += timedelta(days=1)

    break_total = _break_minutes(by_type["BREAK_START"], by_type["BREAK_END"], warnings)
    if break_total and abs(break_total - schedule.expected_break_minutes) > schedule.tolerance_minutes:
        warnings.append(
            f"Break of {format_minutes(break_total)} differs from the expected "
            f"{format_minutes(schedule.expected_break_minutes)}"
        )

    delay = early = 0
    if is_work_day:
        expected_entry = datetime.combine(work_date, schedule.expected_start)
        expected_exit = datetime.combine(work_date, schedule.expected_end)
        if expected_exit <= expected_entry:
            expected_exit += timedelta(days=1)
        if entry is not None:
            delay = max(0, minutes_between(expected_entry, entry) - schedule.tolerance_minutes)
        if exit_ is not None:
            early = max(0, minutes_between(exit_, expected_exit))

    if entry is None and exit_ is None:
        if by_type:
            warnings.append("Break punches without ENTRY or EXIT")
            status = STATUS_PARTIAL
        else:
            status = STATUS_ABSENT if is_work_day else STATUS_DAY_OFF
        return DailyMetrics(
            work_date=work_date,
            status=status,
            is_work_day=is_work_day,
            is_complete=False,
            break_minutes=break_total,
            warnings=tuple(warnings),
        )

    if entry is None or exit_ is None:
        warnings.append("EXIT missing" if exit_ is None else "ENTRY missing")
        return DailyMetrics(
            work_date=work_date,
            status=STATUS_PARTIAL,
            is_work_day=is_work_day,
            is_complete=False,
            break_minutes=break_total,
            delay_minutes=delay,
            early_departure_minutes=early,
            first_entry=entry,
            last_exit=exit_,
            warnings=tuple(warnings),
        )

    gross = minutes_between(entry, exit_)
    if break_total > gross:
        warnings.append("Break longer than the work span; capped")
    net = max(0, gross - break_total)
    overtime = max(0, net - schedule.standard_daily_minutes)
    if overtime > schedule.max_daily_overtime_minutes:
        warnings.append(
            f"Overtime of {format_minutes(overtime)} exceeds the daily limit of "
            f"{format_minutes(schedule.max_daily_overtime_minutes)}"
        )

    return DailyMetrics(
        work_date=work_date,
        status=STATUS_COMPLETE,
        is_work_day=is_work_day,
        is_complete=True,
        worked_minutes=net,
        regular_minutes=net - overtime,
        overtime_minutes=overtime,
        break_minutes=min(break_total, gross),
        night_shift_minutes=night_minutes(entry, exit_, schedule),
        delay_minutes=delay,
        early_departure_minutes=early,
        first_entry=entry,
        last_exit=exit_,
        warnings=tuple(warnings),
    )


def group_by_local_date(punches: Iterable, schedule: SchedulePolicy) -> dict[date, list]:
    """
    Bucket punches by the local date of the shift they belong to.

    A day whose last ENTRY/EXIT is an ENTRY has an open shift. The first EXIT
    of the next local day closes it when no ENTRY comes before that EXIT and
    the EXIT is within MAX_SHIFT_LENGTH of the open ENTRY. That EXIT, and the
    break punches before it, move back to the ENTRY's day.
    """
    grouped: dict[date, list] = defaultdict(list)
    for punch in sorted(punches, key=lambda p: p.punched_at):
        grouped[to_local(punch.punched_at, schedule.timezone).date()].append(punch)

    for day in sorted(grouped):
        bounds = [p for p in grouped[day] if p.punch_type in ("ENTRY", "EXIT")]
        if not bounds or bounds[-1].punch_type != "ENTRY":
            continue
        opened_at = bounds[-1].punched_at
        following = grouped.get(day + timedelta(days=1))
        if not following:
            continue
        for index, punch in enumerate(following):
            if punch.punch_type == "ENTRY" or punch.punched_at - opened_at > MAX_SHIFT_LENGTH:
                break
            if punch.punch_type == "EXIT":
                grouped[day].extend(following[:index + 1])
                del following[:index + 1]
                break
    return grouped


def _dates(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def compute_days(punches: Iterable, start: date, end: date, schedule: SchedulePolicy) -> list[DailyMetrics]:
    grouped = group_by_local_date(punches, schedule)
    return [compute_daily(grouped.get(d, ()), d, schedule) for d in _dates(start, end)]


# ---------------------------------------------------------------------------
# Rollups: field-wise sums only
# ---------------------------------------------------------------------------

def _sum_fields(parts: Sequence) -> dict[str, int]:
    totals = {name: 0 for name in MINUTE_FIELDS + COUNT_FIELDS}
    for part in parts:
        if isinstance(part, DailyMetrics):
            counts = part.counts()
        else:
            counts = {name: getattr(part, name) for name in COUNT_FIELDS}
        for name in MINUTE_FIELDS:
            totals[name] += getattr(part, name)
        for name in COUNT_FIELDS:
            totals[name] += counts[name]
    return totals


def rollup_week(days: Sequence[DailyMetrics], schedule: SchedulePolicy) -> WeeklyMetrics:
    days = tuple(sorted(days, key=lambda d: d.work_date))
    if not days:
        raise ValueError("rollup_week needs at least one day")
    iso_year, iso_week, _ = days[0].work_date.isocalendar()
    totals = _sum_fields(days)

    warnings = []
    if totals["overtime_minutes"] > schedule.max_weekly_overtime_minutes:
        warnings.append(
            f"Weekly overtime of {format_minutes(totals['overtime_minutes'])} exceeds the limit of "
            f"{format_minutes(schedule.max_weekly_overtime_minutes)}"
        )
    if totals["days_worked"] > len(schedule.work_weekdays):
        warnings.append(
            f"Worked {totals['days_worked']} days; {len(schedule.work_weekdays)} are scheduled per week"
        )

    return WeeklyMetrics(
        start_date=days[0].work_date,
        end_date=days[-1].work_date,
        iso_year=iso_year,
        iso_week=iso_week,
        days=days,
        warnings=tuple(warnings),
        **totals,
    )


def rollup_period(weeks: Sequence[WeeklyMetrics], start: date, end: date) -> PeriodMetrics:
    weeks = tuple(sorted(weeks, key=lambda w: w.start_date))
    warnings = tuple(w for week in weeks for w in week.warnings)
    return PeriodMetrics(start_date=start, end_date=end, weeks=weeks, warnings=warnings, **_sum_fields(weeks))


def split_weeks(days: Sequence[DailyMetrics]) -> list[list[DailyMetrics]]:
    """Group consecutive days into ISO weeks (Monday first); edges are clipped to the input."""
    buckets: dict[tuple[int, int], list[DailyMetrics]] = defaultdict(list)
    for day in days:
        iso = day.work_date.isocalendar()
        buckets[(iso[0], iso[1])].append(day)
    return [buckets[key] for key in sorted(buckets)]


def compute_weeks(punches: Iterable, start: date, end: date, schedule: SchedulePolicy) -> list[WeeklyMetrics]:
    days = compute_days(punches, start, end, schedule)
    return [rollup_week(chunk, schedule) for chunk in split_weeks(days)]


def compute_period(punches: Iterable, start: date, end: date, schedule: SchedulePolicy) -> PeriodMetrics:
    return rollup_period(compute_weeks(punches, start, end, schedule), start, end)


# ---------------------------------------------------------------------------
# Hour bank
# ---------------------------------------------------------------------------

def hour_bank(period: RollupMetrics, schedule: SchedulePolicy, opening_minutes: int = 0) -> HourBankEntry:
    """
    The one credit/debit mapping: overtime credits, delay and early
    departure debit. Absences debit a standard day only when the company
    policy says so.
    """
    debit = period.delay_minutes + period.early_departure_minutes
    if schedule.absence_counts_as_debit:
        debit += period.absent_days * schedule.standard_daily_minutes
    return HourBankEntry(
        opening_minutes=opening_minutes,
        credit_minutes=period.overtime_minutes,
        debit_minutes=debit,
    )


def format_minutes(minutes: int) -> str:
    sign = "-" if minutes < 0 else ""
    hours, mins = divmod(abs(int(minutes)), 60)
    if hours and mins:
        return f"{sign}{hours}h {mins}min"
    if hours:
        return f"{sign}{hours}h"
    return f"{sign}{mins}min"


def format_balance(minutes: int) -> str:
    if minutes > 0:
        return "+" + format_minutes(minutes)
    return format_minutes(minutes)
