# Overview: Pytest coverage for the pure work-hours aggregator.

"""
Work-Hours Aggregator Tests

No database: punches are EffectivePunch values and every call receives an
explicit SchedulePolicy.
"""

from dataclasses import replace
from datetime import date, datetime, time

import pytest

from timeledger import workhours
from timeledger.policy import SchedulePolicy
from timeledger.services.ledger_service import EffectivePunch

SCHEDULE = SchedulePolicy()
MONDAY = date(2024, 3, 4)
SATURDAY = date(2024, 3, 9)


def punch(punch_type: str, hhmm: str, day: date = MONDAY) -> EffectivePunch:
    hours, minutes = (int(p) for p in hhmm.split(":"))
    return EffectivePunch(
        employee_id=1,
        company_id=1,
        punch_type=punch_type,
        punched_at=datetime.combine(day, time(hours, minutes)),
    )


def full_day(day: date, entry="08:15", exit_="17:50"):
    return [
        punch("ENTRY", entry, day),
        punch("BREAK_START", "12:00", day),
        punch("BREAK_END", "13:00", day),
        punch("EXIT", exit_, day),
    ]


class TestDailyMetrics:
    """compute_daily on single employee-days."""

    def test_reference_day(self):
        metrics = workhours.compute_daily(full_day(MONDAY), MONDAY, SCHEDULE)

        assert metrics.status == workhours.STATUS_COMPLETE
        assert metrics.is_complete is True
        assert metrics.worked_minutes == 515
        assert metrics.break_minutes == 60
        assert metrics.delay_minutes == 5
        assert metrics.early_departure_minutes == 0
        assert metrics.overtime_minutes == 35
        assert metrics.regular_minutes == 480
        assert metrics.night_shift_minutes == 0
        assert metrics.warnings == ()

    def test_punch_order_does_not_matter(self):
        punches = full_day(MONDAY)
        forward = workhours.compute_daily(punches, MONDAY, SCHEDULE)
        backward = workhours.compute_daily(list(reversed(punches)), MONDAY, SCHEDULE)
        assert forward == backward

    def test_entry_within_tolerance_has_no_delay(self):
        metrics = workhours.compute_daily(full_day(MONDAY, entry="08:10"), MONDAY, SCHEDULE)
        assert metrics.delay_minutes == 0

    def test_early_entry_never_negative_delay(self):
        zero_tolerance = replace(SCHEDULE, tolerance_minutes=0)
        metrics = workhours.compute_daily(full_day(MONDAY, entry="07:30"), MONDAY, zero_tolerance)
        assert metrics.delay_minutes == 0

    def test_early_departure_ignores_tolerance(self):
        metrics = workhours.compute_daily(full_day(MONDAY, entry="08:00", exit_="16:55"), MONDAY, SCHEDULE)
        assert metrics.early_departure_minutes == 5
        assert metrics.overtime_minutes == 0
        assert metrics.worked_minutes == 475

    def test_multiple_entries_use_earliest_and_warn(self):
        punches = full_day(MONDAY, entry="08:00") + [punch("ENTRY", "08:02")]
        metrics = workhours.compute_daily(punches, MONDAY, SCHEDULE)
        assert metrics.first_entry == datetime(2024, 3, 4, 8, 0)
        assert any("ENTRY punches" in w for w in metrics.warnings)

    def test_missing_break_end_counts_zero_with_warning(self):
        punches = [punch("ENTRY", "08:00"), punch("BREAK_START", "12:00"), punch("EXIT", "17:00")]
        metrics = workhours.compute_daily(punches, MONDAY, SCHEDULE)
        assert metrics.status == workhours.STATUS_COMPLETE
        assert metrics.break_minutes == 0
        assert metrics.worked_minutes == 540
        assert any("has no end" in w for w in metrics.warnings)

    def test_entry_only_is_partial(self):
        metrics = workhours.compute_daily([punch("ENTRY", "08:20")], MONDAY, SCHEDULE)
        assert metrics.status == workhours.STATUS_PARTIAL
        assert metrics.is_complete is False
        assert metrics.worked_minutes == 0
        assert metrics.delay_minutes == 10
        assert "EXIT missing" in metrics.warnings

    def test_no_punches_on_business_day_is_absence(self):
        metrics = workhours.compute_daily([], MONDAY, SCHEDULE)
        assert metrics.status == workhours.STATUS_ABSENT
        assert metrics.is_work_day is True

    def test_no_punches_on_weekend_is_day_off(self):
        metrics = workhours.compute_daily([], SATURDAY, SCHEDULE)
        assert metrics.status == workhours.STATUS_DAY_OFF
        assert metrics.is_work_day is False

    def test_weekend_work_has_no_delay_but_counts_overtime(self):
        punches = [punch("ENTRY", "09:00", SATURDAY), punch("EXIT", "18:00", SATURDAY)]
        metrics = workhours.compute_daily(punches, SATURDAY, SCHEDULE)
        assert metrics.delay_minutes == 0
        assert metrics.early_departure_minutes == 0
        assert metrics.worked_minutes == 540
        assert metrics.overtime_minutes == 60

    def test_exit_before_entry_rolls_over_midnight(self):
        punches = [punch("ENTRY", "22:00", SATURDAY), punch("EXIT", "06:00", SATURDAY)]
        metrics = workhours.compute_daily(punches, SATURDAY, SCHEDULE)
        assert metrics.worked_minutes == 480
        assert metrics.night_shift_minutes == 420
        assert metrics.overtime_minutes == 0
        assert metrics.last_exit == datetime(2024, 3, 10, 6, 0)

    def test_night_minutes_independent_of_overtime(self):
        punches = [punch("ENTRY", "08:00"), punch("EXIT", "23:00")]
        metrics = workhours.compute_daily(punches, MONDAY, SCHEDULE)
        assert metrics.worked_minutes == 900
        assert metrics.overtime_minutes == 420
        assert metrics.night_shift_minutes == 60

    def test_overtime_over_daily_limit_warns(self):
        punches = [punch("ENTRY", "08:00"), punch("EXIT", "20:00")]
        metrics = workhours.compute_daily(punches, MONDAY, SCHEDULE)
        assert metrics.overtime_minutes == 240
        assert any("daily limit" in w for w in metrics.warnings)

    def test_local_timezone_shifts_wall_clock(self):
        sao_paulo = replace(SCHEDULE, timezone="America/Sao_Paulo")
        # 11:15Z is 08:15 in Sao Paulo (UTC-3, no DST in 2024).
        punches = [
            punch("ENTRY", "11:15"),
            punch("BREAK_START", "15:00"),
            punch("BREAK_END", "16:00"),
            punch("EXIT", "20:50"),
        ]
        metrics = workhours.compute_daily(punches, MONDAY, sao_paulo)
        assert metrics.delay_minutes == 5
        assert metrics.overtime_minutes == 35

    def test_idempotent(self):
        punches = full_day(MONDAY)
        assert workhours.compute_daily(punches, MONDAY, SCHEDULE) == workhours.compute_daily(
            punches, MONDAY, SCHEDULE
        )


class TestShiftGrouping:
    """compute_days keeps an overnight shift on the day of its ENTRY."""

    TUESDAY = date(2024, 3, 5)

    def test_exit_on_next_date_closes_open_shift(self):
        punches = [punch("ENTRY", "22:00"), punch("EXIT", "06:00", self.TUESDAY)]
        monday, tuesday = workhours.compute_days(punches, MONDAY, self.TUESDAY, SCHEDULE)

        assert monday.status == workhours.STATUS_COMPLETE
        assert monday.worked_minutes == 480
        assert monday.night_shift_minutes == 420
        assert monday.last_exit == datetime(2024, 3, 5, 6, 0)
        assert tuesday.status == workhours.STATUS_ABSENT
        assert tuesday.worked_minutes == 0

    def test_breaks_after_midnight_follow_the_exit(self):
        punches = [
            punch("ENTRY", "22:00"),
            punch("BREAK_START", "01:00", self.TUESDAY),
            punch("BREAK_END", "02:00", self.TUESDAY),
            punch("EXIT", "06:00", self.TUESDAY),
        ]
        monday = workhours.compute_days(punches, MONDAY, self.TUESDAY, SCHEDULE)[0]
        assert monday.worked_minutes == 420
        assert monday.break_minutes == 60
        assert monday.night_shift_minutes == 420

    def test_next_day_entry_is_not_borrowed(self):
        punches = [
            punch("ENTRY", "22:00"),
            punch("ENTRY", "08:00", self.TUESDAY),
            punch("EXIT", "17:00", self.TUESDAY),
        ]
        monday, tuesday = workhours.compute_days(punches, MONDAY, self.TUESDAY, SCHEDULE)

        assert monday.status == workhours.STATUS_PARTIAL
        assert "EXIT missing" in monday.warnings
        assert tuesday.status == workhours.STATUS_COMPLETE
        assert tuesday.worked_minutes == 540

    def test_exit_beyond_max_shift_length_stays_put(self):
        punches = [punch("ENTRY", "10:00"), punch("EXIT", "03:00", self.TUESDAY)]
        monday, tuesday = workhours.compute_days(punches, MONDAY, self.TUESDAY, SCHEDULE)

        assert monday.status == workhours.STATUS_PARTIAL
        assert tuesday.status == workhours.STATUS_PARTIAL
        assert "ENTRY missing" in tuesday.warnings

    def test_closed_day_keeps_its_punches(self):
        punches = full_day(MONDAY) + [punch("EXIT", "06:00", self.TUESDAY)]
        monday, tuesday = workhours.compute_days(punches, MONDAY, self.TUESDAY, SCHEDULE)
        assert monday.worked_minutes == 515
        assert tuesday.status == workhours.STATUS_PARTIAL


class TestNightMinutes:

    def test_window_crossing_midnight(self):
        start = datetime(2024, 3, 4, 21, 0)
        end = datetime(2024, 3, 5, 6, 0)
        assert workhours.night_minutes(start, end, SCHEDULE) == 420

    def test_early_morning_part_of_previous_window(self):
        start = datetime(2024, 3, 4, 3, 0)
        end = datetime(2024, 3, 4, 9, 0)
        assert workhours.night_minutes(start, end, SCHEDULE) == 120

    def test_empty_window(self):
        no_night = replace(SCHEDULE, night_start=time(0, 0), night_end=time(0, 0))
        assert workhours.night_minutes(datetime(2024, 3, 4, 0, 0), datetime(2024, 3, 5, 0, 0), no_night) == 0


class TestRollups:
    """Weekly and period metrics are field-wise sums of the daily values."""

    @pytest.fixture
    def two_weeks(self):
        punches = []
        for offset in range(10):
            day = date(2024, 3, 4 + offset)
            if day.weekday() < 5 and offset != 2:
                punches.extend(full_day(day, entry="08:%02d" % (offset * 3), exit_="17:%02d" % (offset * 5)))
        punches.append(punch("ENTRY", "08:00", date(2024, 3, 6)))
        return punches

    def test_week_equals_sum_of_days(self, two_weeks):
        start, end = date(2024, 3, 4), date(2024, 3, 17)
        days = workhours.compute_days(two_weeks, start, end, SCHEDULE)
        weeks = workhours.compute_weeks(two_weeks, start, end, SCHEDULE)

        assert len(weeks) == 2
        for week in weeks:
            members = [d for d in days if week.start_date <= d.work_date <= week.end_date]
            for name in workhours.MINUTE_FIELDS:
                assert getattr(week, name) == sum(getattr(d, name) for d in members)
            for name in workhours.COUNT_FIELDS:
                assert getattr(week, name) == sum(d.counts()[name] for d in members)

    def test_period_equals_sum_of_weeks(self, two_weeks):
        start, end = date(2024, 3, 4), date(2024, 3, 17)
        weeks = workhours.compute_weeks(two_weeks, start, end, SCHEDULE)
        period = workhours.compute_period(two_weeks, start, end, SCHEDULE)
        for name in workhours.MINUTE_FIELDS + workhours.COUNT_FIELDS:
            assert getattr(period, name) == sum(getattr(w, name) for w in weeks)

    def test_partial_day_counted(self, two_weeks):
        period = workhours.compute_period(two_weeks, date(2024, 3, 4), date(2024, 3, 8), SCHEDULE)
        assert period.partial_days == 1
        assert period.complete_days == 4
        assert period.work_days == 5
        assert period.attendance_rate == 100.0

    def test_weeks_are_iso_and_clipped(self):
        # Wednesday to the following Tuesday spans two ISO weeks.
        weeks = workhours.compute_weeks([], date(2024, 3, 6), date(2024, 3, 12), SCHEDULE)
        assert [(w.iso_week, w.start_date, w.end_date) for w in weeks] == [
            (10, date(2024, 3, 6), date(2024, 3, 10)),
            (11, date(2024, 3, 11), date(2024, 3, 12)),
        ]

    def test_weekly_overtime_limit_warns(self):
        punches = []
        for offset in range(5):
            day = date(2024, 3, 4 + offset)
            punches.extend([punch("ENTRY", "07:00", day), punch("EXIT", "19:00", day)])
        weeks = workhours.compute_weeks(punches, date(2024, 3, 4), date(2024, 3, 10), SCHEDULE)
        assert weeks[0].overtime_minutes == 5 * 240
        assert any("Weekly overtime" in w for w in weeks[0].warnings)

    def test_rollup_week_rejects_empty(self):
        with pytest.raises(ValueError):
            workhours.rollup_week([], SCHEDULE)


class TestHourBank:

    def test_credits_and_debits_from_period(self):
        period = workhours.compute_period(full_day(MONDAY), MONDAY, MONDAY, SCHEDULE)
        bank = workhours.hour_bank(period, SCHEDULE)
        assert bank.credit_minutes == 35
        assert bank.debit_minutes == 5
        assert bank.closing_minutes == 30
        assert bank.credits == pytest.approx(35 / 60)
        assert bank.debits == pytest.approx(5 / 60)

    def test_opening_balance_carried(self):
        period = workhours.compute_period(full_day(MONDAY), MONDAY, MONDAY, SCHEDULE)
        bank = workhours.hour_bank(period, SCHEDULE, opening_minutes=-90)
        assert bank.closing_minutes == -60
        assert bank.to_dict()["closing_balance"] == "-1h"

    def test_absence_debit_only_when_policy_says_so(self):
        period = workhours.compute_period([], MONDAY, MONDAY, SCHEDULE)
        assert workhours.hour_bank(period, SCHEDULE).debit_minutes == 0

        strict = replace(SCHEDULE, absence_counts_as_debit=True)
        period = workhours.compute_period([], MONDAY, MONDAY, strict)
        assert workhours.hour_bank(period, strict).debit_minutes == 480


@pytest.mark.parametrize("minutes, expected", [
    (515, "8h 35min"),
    (120, "2h"),
    (35, "35min"),
    (0, "0min"),
    (-75, "-1h 15min"),
])
def test_format_minutes(minutes, expected):
    assert workhours.format_minutes(minutes) == expected


def test_format_balance_marks_credit():
    assert workhours.format_balance(30) == "+30min"
    assert workhours.format_balance(-30) == "-30min"
