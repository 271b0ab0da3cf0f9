# Overview: Pytest coverage for work-hours reports computed from the stored ledger.

from datetime import date, timedelta

from timeledger import workhours
from timeledger.services import workhours_service
from timeledger.services.integrity_service import submit_punch

from conftest import NOW, WORK_DAY, at

NEXT_DAY = WORK_DAY + timedelta(days=1)


class TestOvernightShift:
    """A shift punched 22:00 -> 06:00 is one 8-hour span on the ENTRY day."""

    def _punch_overnight(self, company, employee):
        submit_punch(company_id=company.id, employee_id=employee.id, punch_type="ENTRY",
                     punched_at=at("22:00"), now=NOW)
        submit_punch(company_id=company.id, employee_id=employee.id, punch_type="EXIT",
                     punched_at=at("06:00", day=NEXT_DAY), now=NOW)

    def test_days_attribute_shift_to_entry_date(self, db_session, company, employee):
        self._punch_overnight(company, employee)

        first, second = workhours_service.compute_days(
            company_id=company.id, employee_id=employee.id,
            start=date(2024, 3, 4), end=date(2024, 3, 5),
        )
        assert first.status == workhours.STATUS_COMPLETE
        assert first.worked_minutes == 480
        assert first.night_shift_minutes == 420
        assert second.status == workhours.STATUS_ABSENT
        assert second.warnings == ()

    def test_single_day_closes_with_next_day_exit(self, db_session, company, employee):
        self._punch_overnight(company, employee)

        day = workhours_service.compute_daily(
            company_id=company.id, employee_id=employee.id, work_date=date(2024, 3, 4),
        )
        assert day.worked_minutes == 480
        assert day.night_shift_minutes == 420

    def test_range_starting_after_entry_ignores_carried_exit(self, db_session, company, employee):
        self._punch_overnight(company, employee)

        day = workhours_service.compute_daily(
            company_id=company.id, employee_id=employee.id, work_date=date(2024, 3, 5),
        )
        assert day.status == workhours.STATUS_ABSENT
        assert "ENTRY missing" not in day.warnings

    def test_period_counts_night_minutes_once(self, db_session, company, employee):
        self._punch_overnight(company, employee)

        period = workhours_service.compute_period(
            company_id=company.id, employee_id=employee.id,
            start=date(2024, 3, 4), end=date(2024, 3, 8),
        )
        assert period.worked_minutes == 480
        assert period.night_shift_minutes == 420
        assert period.night_shift_days == 1
