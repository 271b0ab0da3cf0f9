# Overview: Service-layer operations for companies and employees.

from __future__ import annotations

import re

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Company, Employee
from ..time_utils import parse_hhmm
from .policy_service import validate_timezone

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str | None) -> str | None:
    if value is None:
        return None
    return _NON_DIGITS.sub("", value) or None


def create_company(*, name: str, tax_id: str | None = None, timezone: str = "UTC") -> Company:
    violations = []
    name = (name or "").strip()
    if not name:
        violations.append("name is required")
    elif len(name) > 150:
        violations.append("name must be at most 150 characters")

    tax_digits = digits_only(tax_id)
    if tax_digits and len(tax_digits) != 14:
        violations.append("tax_id must have 14 digits")
    elif tax_digits and db.session.query(Company).filter_by(tax_id=tax_digits).first():
        violations.append("tax_id is already registered")

    try:
        validate_timezone(timezone)
    except ValidationError as exc:
        violations.extend(exc.violations)

    if violations:
        raise ValidationError(violations)

    company = Company(name=name, tax_id=tax_digits, timezone=timezone)
    db.session.add(company)
    db.session.commit()
    return company


def create_employee(
    *,
    company_id: int,
    name: str,
    tax_id: str | None = None,
    registration: str | None = None,
    expected_start: str | None = None,
    expected_end: str | None = None,
) -> Employee:
    if db.session.get(Company, company_id) is None:
        raise NotFoundError("Company not found")

    violations = []
    name = (name or "").strip()
    if not name:
        violations.append("name is required")

    tax_digits = digits_only(tax_id)
    if tax_digits and len(tax_digits) != 11:
        violations.append("tax_id must have 11 digits")

    for label, value in (("expected_start", expected_start), ("expected_end", expected_end)):
        if value:
            try:
                parse_hhmm(value)
            except ValueError:
                violations.append(f"{label} must be a HH:MM time")

    if registration and db.session.query(Employee).filter_by(
        company_id=company_id, registration=registration
    ).first():
        violations.append("registration is already used in this company")

    if violations:
        raise ValidationError(violations)

    employee = Employee(
        company_id=company_id,
        name=name,
        tax_id=tax_digits,
        registration=registration,
        expected_start=expected_start,
        expected_end=expected_end,
    )
    db.session.add(employee)
    db.session.commit()
    return employee


def get_employee(*, employee_id: int, company_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if employee is None or employee.company_id != company_id:
        raise NotFoundError("Employee not found")
    return employee


def get_company(company_id: int) -> Company:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company not found")
    return company
