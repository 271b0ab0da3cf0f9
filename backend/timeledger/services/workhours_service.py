# Overview: Service-layer entry points for work-hours reports; loads effective punches and policy.

"""
Work-Hours Service

Loads the authoritative punches (approved adjustments applied) and the
employee's resolved policy, then delegates to the pure functions in
timeledger.workhours. Read-only: safe to retry.
"""

from __future__ import annotations

from datetime import date, timedelta

from ..errors import ValidationError
from ..policy import CompanyPolicy
from ..time_utils import local_range_to_utc
from .. import workhours
from .ledger_service import effective_punches
from .policy_service import load_policy

MAX_RANGE_DAYS = 366


def _check_range(start: date, end: date) -> None:
    violations = []
    if start is None or end is None:
        violations.append("start and end dates are required")
    elif end < start:
        violations.append("end date must not be before start date")
    elif (end - start).days >= MAX_RANGE_DAYS:
        violations.append(f"range must not exceed {MAX_RANGE_DAYS} days")
    if violations:
        raise ValidationError(violations)


def _load(*, company_id: int, employee_id: int, start: date, end: date,
          policy: CompanyPolicy | None) -> tuple[CompanyPolicy, list]:
    _check_range(start, end)
    if policy is None:
        policy = load_policy(company_id=company_id, employee_id=employee_id)
    # One day of margin on each side so shifts crossing the range edges pair up.
    utc_start, utc_end = local_range_to_utc(
        start - timedelta(days=1), end + timedelta(days=1), policy.schedule.timezone
    )
    punches = effective_punches(employee_id=employee_id, start=utc_start, end=utc_end)
    return policy, punches


def compute_daily(*, company_id: int, employee_id: int, work_date: date,
                  policy: CompanyPolicy | None = None) -> workhours.DailyMetrics:
    policy, punches = _load(company_id=company_id, employee_id=employee_id,
                            start=work_date, end=work_date, policy=policy)
    return workhours.compute_days(punches, work_date, work_date, policy.schedule)[0]


def compute_days(*, company_id: int, employee_id: int, start: date, end: date,
                 policy: CompanyPolicy | None = None) -> list[workhours.DailyMetrics]:
    policy, punches = _load(company_id=company_id, employee_id=employee_id,
                            start=start, end=end, policy=policy)
    return workhours.compute_days(punches, start, end, policy.schedule)


def compute_weekly(*, company_id: int, employee_id: int, start: date, end: date,
                   policy: CompanyPolicy | None = None) -> list[workhours.WeeklyMetrics]:
    policy, punches = _load(company_id=company_id, employee_id=employee_id,
                            start=start, end=end, policy=policy)
    return workhours.compute_weeks(punches, start, end, policy.schedule)


def compute_period(*, company_id: int, employee_id: int, start: date, end: date,
                   policy: CompanyPolicy | None = None) -> workhours.PeriodMetrics:
    policy, punches = _load(company_id=company_id, employee_id=employee_id,
                            start=start, end=end, policy=policy)
    return workhours.compute_period(punches, start, end, policy.schedule)


def compute_hour_bank(
    *,
    company_id: int,
    employee_id: int,
    start: date,
    end: date,
    opening_minutes: int = 0,
    policy: CompanyPolicy | None = None,
) -> tuple[workhours.PeriodMetrics, workhours.HourBankEntry]:
    policy, punches = _load(company_id=company_id, employee_id=employee_id,
                            start=start, end=end, policy=policy)
    period = workhours.compute_period(punches, start, end, policy.schedule)
    return period, workhours.hour_bank(period, policy.schedule, opening_minutes)
