# Overview: Shared request parsing helpers for API routes.

from __future__ import annotations

from datetime import date, datetime

from flask import g

from ..errors import ValidationError
from ..time_utils import parse_iso_date, parse_iso_datetime


class ScopeDenied(Exception):
    """Caller asked for another employee's data without a manager role."""


def parse_datetime_field(value, name: str, *, required: bool = False) -> datetime | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date-time")


def parse_date_field(value, name: str, *, required: bool = False) -> date | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


def parse_int_field(value, name: str, *, required: bool = False) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def resolve_employee_scope(requested: int | None, *, allow_all: bool = False) -> int | None:
    """
    Employees only see themselves; managers may target anyone in their company.

    allow_all lets managers omit the employee to mean "whole company".
    """
    caller = g.caller
    if caller.is_manager:
        if requested is None and not allow_all:
            requested = caller.employee_id
        if requested is None and not allow_all:
            raise ValidationError("employee_id is required")
        return requested
    if caller.employee_id is None:
        raise ScopeDenied()
    if requested is not None and requested != caller.employee_id:
        raise ScopeDenied()
    return caller.employee_id
