# Overview: Service-layer resolution of company policy from app defaults and stored overrides.

"""
Policy Service

PRECEDENCE (most specific wins):
- employee schedule overrides (expected start/end)
- CompanySettings row for the company
- application Config defaults (TIMELEDGER_*)
"""

from __future__ import annotations

from dataclasses import replace
from datetime import time
from typing import Any

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Company, CompanySettings, Employee, DEFAULT_ADJUSTMENT_REASONS
from ..policy import (
    AdjustmentPolicy,
    CompanyPolicy,
    ExportPolicy,
    IntegrityPolicy,
    SchedulePolicy,
)
from ..time_utils import get_zone, parse_hhmm
from .audit_service import record_audit_event

_TIME_FIELDS = {"expected_start", "expected_end", "night_start", "night_end"}
_POSITIVE_INT_FIELDS = {
    "standard_daily_minutes",
    "max_adjustment_days",
    "duplicate_cooldown_minutes",
    "max_punches_per_day",
}
_NON_NEGATIVE_INT_FIELDS = {"tolerance_minutes", "expected_break_minutes", "min_description_length"}
_BOOL_FIELDS = {"require_evidence", "compliance_mode", "absence_counts_as_debit"}


def _parse_weekdays(value: str) -> frozenset[int]:
    days = frozenset(int(part) for part in value.split(",") if part.strip() != "")
    if any(d < 0 or d > 6 for d in days):
        raise ValueError("weekdays must be between 0 (Monday) and 6 (Sunday)")
    return days


def _parse_reasons(value: str) -> tuple[str, ...]:
    return tuple(r.strip().upper() for r in value.split(",") if r.strip())


def default_policy(config: Any | None = None) -> CompanyPolicy:
    """Policy built from app configuration only."""
    cfg = config if config is not None else current_app.config
    schedule = SchedulePolicy(
        expected_start=parse_hhmm(cfg["TIMELEDGER_EXPECTED_START"]),
        expected_end=parse_hhmm(cfg["TIMELEDGER_EXPECTED_END"]),
        tolerance_minutes=int(cfg["TIMELEDGER_TOLERANCE_MINUTES"]),
        night_start=parse_hhmm(cfg["TIMELEDGER_NIGHT_START"]),
        night_end=parse_hhmm(cfg["TIMELEDGER_NIGHT_END"]),
        standard_daily_minutes=int(cfg["TIMELEDGER_STANDARD_DAILY_MINUTES"]),
        expected_break_minutes=int(cfg["TIMELEDGER_EXPECTED_BREAK_MINUTES"]),
        max_daily_overtime_minutes=int(cfg["TIMELEDGER_MAX_DAILY_OVERTIME_MINUTES"]),
        max_weekly_overtime_minutes=int(cfg["TIMELEDGER_MAX_WEEKLY_OVERTIME_MINUTES"]),
        work_weekdays=_parse_weekdays(cfg["TIMELEDGER_WORK_WEEKDAYS"]),
        timezone=cfg["TIMELEDGER_TIMEZONE"],
        absence_counts_as_debit=bool(cfg["TIMELEDGER_ABSENCE_COUNTS_AS_DEBIT"]),
    )
    integrity = IntegrityPolicy(
        duplicate_cooldown_minutes=int(cfg["TIMELEDGER_DUPLICATE_COOLDOWN_MINUTES"]),
        max_punches_per_day=int(cfg["TIMELEDGER_MAX_PUNCHES_PER_DAY"]),
        clock_skew_seconds=int(cfg["TIMELEDGER_CLOCK_SKEW_SECONDS"]),
    )
    adjustment = AdjustmentPolicy(
        max_adjustment_days=int(cfg["TIMELEDGER_MAX_ADJUSTMENT_DAYS"]),
        min_description_length=int(cfg["TIMELEDGER_MIN_DESCRIPTION_LENGTH"]),
        require_evidence=bool(cfg["TIMELEDGER_REQUIRE_EVIDENCE"]),
        compliance_mode=bool(cfg["TIMELEDGER_COMPLIANCE_MODE"]),
        allowed_reasons=DEFAULT_ADJUSTMENT_REASONS,
    )
    export = ExportPolicy(
        format_version=cfg["TIMELEDGER_EXPORT_FORMAT_VERSION"],
        encoding=cfg["TIMELEDGER_EXPORT_ENCODING"],
    )
    return CompanyPolicy(schedule=schedule, integrity=integrity, adjustment=adjustment, export=export)


def _with_overrides(policy: CompanyPolicy, settings: CompanySettings | None, company: Company) -> CompanyPolicy:
    schedule_changes: dict[str, Any] = {"timezone": company.timezone or policy.schedule.timezone}
    integrity_changes: dict[str, Any] = {}
    adjustment_changes: dict[str, Any] = {}

    if settings is not None:
        for name in _TIME_FIELDS:
            value = getattr(settings, name)
            if value:
                schedule_changes[name] = parse_hhmm(value)
        for name in ("tolerance_minutes", "standard_daily_minutes", "expected_break_minutes",
                     "absence_counts_as_debit"):
            value = getattr(settings, name)
            if value is not None:
                schedule_changes[name] = value
        if settings.work_weekdays:
            schedule_changes["work_weekdays"] = _parse_weekdays(settings.work_weekdays)

        for name in ("duplicate_cooldown_minutes", "max_punches_per_day"):
            value = getattr(settings, name)
            if value is not None:
                integrity_changes[name] = value

        for name in ("max_adjustment_days", "min_description_length", "require_evidence", "compliance_mode"):
            value = getattr(settings, name)
            if value is not None:
                adjustment_changes[name] = value
        if settings.allowed_reasons:
            adjustment_changes["allowed_reasons"] = _parse_reasons(settings.allowed_reasons)

    return replace(
        policy,
        schedule=replace(policy.schedule, **schedule_changes),
        integrity=replace(policy.integrity, **integrity_changes),
        adjustment=replace(policy.adjustment, **adjustment_changes),
    )


def load_policy(*, company_id: int, employee_id: int | None = None) -> CompanyPolicy:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company not found")

    settings = db.session.query(CompanySettings).filter_by(company_id=company_id).first()
    policy = _with_overrides(default_policy(), settings, company)

    if employee_id is not None:
        employee = db.session.get(Employee, employee_id)
        if employee is None or employee.company_id != company_id:
            raise NotFoundError("Employee not found")
        schedule_changes = {}
        if employee.expected_start:
            schedule_changes["expected_start"] = parse_hhmm(employee.expected_start)
        if employee.expected_end:
            schedule_changes["expected_end"] = parse_hhmm(employee.expected_end)
        if schedule_changes:
            policy = replace(policy, schedule=replace(policy.schedule, **schedule_changes))

    return policy


def _validate_overrides(values: dict) -> dict:
    violations: list[str] = []
    cleaned: dict[str, Any] = {}

    unknown = set(values) - set(CompanySettings.OVERRIDABLE_FIELDS)
    for name in sorted(unknown):
        violations.append(f"{name} is not a configurable setting")

    for name, value in values.items():
        if name in unknown:
            continue
        if value is None:
            cleaned[name] = None
            continue
        if name in _TIME_FIELDS:
            try:
                parsed: time = parse_hhmm(str(value))
                cleaned[name] = parsed.strftime("%H:%M")
            except ValueError:
                violations.append(f"{name} must be a HH:MM time")
        elif name in _POSITIVE_INT_FIELDS or name in _NON_NEGATIVE_INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int):
                violations.append(f"{name} must be an integer")
            elif name in _POSITIVE_INT_FIELDS and value <= 0:
                violations.append(f"{name} must be greater than zero")
            elif value < 0:
                violations.append(f"{name} must not be negative")
            else:
                cleaned[name] = value
        elif name in _BOOL_FIELDS:
            if not isinstance(value, bool):
                violations.append(f"{name} must be a boolean")
            else:
                cleaned[name] = value
        elif name == "work_weekdays":
            try:
                days = _parse_weekdays(str(value))
                cleaned[name] = ",".join(str(d) for d in sorted(days))
            except ValueError:
                violations.append("work_weekdays must be a comma-separated list of 0-6")
        elif name == "allowed_reasons":
            reasons = value if isinstance(value, (list, tuple)) else str(value).split(",")
            reasons = [str(r).strip().upper() for r in reasons if str(r).strip()]
            if not reasons:
                violations.append("allowed_reasons must not be empty")
            else:
                cleaned[name] = ",".join(reasons)

    if violations:
        raise ValidationError(violations)
    return cleaned


def update_company_settings(*, company_id: int, values: dict, actor_user_id: int | None) -> CompanySettings:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company not found")

    cleaned = _validate_overrides(values)

    settings = db.session.query(CompanySettings).filter_by(company_id=company_id).first()
    before = settings.to_dict() if settings else {}
    if settings is None:
        settings = CompanySettings(company_id=company_id)
        db.session.add(settings)

    for name, value in cleaned.items():
        setattr(settings, name, value)
    db.session.flush()

    record_audit_event(
        action="SETTINGS_UPDATED",
        status="SUCCESS",
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="company_settings",
        entity_id=settings.id,
        metadata={"before": {k: before.get(k) for k in cleaned}, "after": cleaned},
    )
    db.session.commit()
    return settings


def validate_timezone(name: str) -> str:
    try:
        get_zone(name)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return name
