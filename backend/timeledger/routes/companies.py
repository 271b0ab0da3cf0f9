# Overview: Flask API routes for company profile, policy settings and employees.

from flask import Blueprint, g, jsonify, request

from ..decorators import ROLE_ADMIN, ROLE_MANAGER, require_context, require_role
from ..extensions import db
from ..models import Employee
from ..services import audit_service, policy_service, tenancy_service

companies_bp = Blueprint("companies", __name__, url_prefix="/api/companies")


def _policy_dict(policy) -> dict:
    s, i, a, e = policy.schedule, policy.integrity, policy.adjustment, policy.export
    return {
        "schedule": {
            "expected_start": s.expected_start.strftime("%H:%M"),
            "expected_end": s.expected_end.strftime("%H:%M"),
            "tolerance_minutes": s.tolerance_minutes,
            "night_start": s.night_start.strftime("%H:%M"),
            "night_end": s.night_end.strftime("%H:%M"),
            "standard_daily_minutes": s.standard_daily_minutes,
            "expected_break_minutes": s.expected_break_minutes,
            "work_weekdays": sorted(s.work_weekdays),
            "timezone": s.timezone,
            "absence_counts_as_debit": s.absence_counts_as_debit,
        },
        "integrity": {
            "duplicate_cooldown_minutes": i.duplicate_cooldown_minutes,
            "max_punches_per_day": i.max_punches_per_day,
        },
        "adjustment": {
            "max_adjustment_days": a.max_adjustment_days,
            "min_description_length": a.min_description_length,
            "require_evidence": a.require_evidence,
            "compliance_mode": a.compliance_mode,
            "allowed_reasons": list(a.allowed_reasons),
        },
        "export": {"format_version": e.format_version, "encoding": e.encoding},
    }


@companies_bp.get("/current")
@require_context
def current_company_route():
    company = tenancy_service.get_company(g.caller.company_id)
    return jsonify({"company": company.to_dict()})


@companies_bp.get("/current/policy")
@require_context
def current_policy_route():
    policy = policy_service.load_policy(company_id=g.caller.company_id)
    return jsonify({"policy": _policy_dict(policy)})


@companies_bp.put("/current/settings")
@require_context
@require_role(ROLE_ADMIN)
def update_settings_route():
    data = request.get_json(silent=True) or {}
    settings = policy_service.update_company_settings(
        company_id=g.caller.company_id, values=data, actor_user_id=g.caller.user_id
    )
    policy = policy_service.load_policy(company_id=g.caller.company_id)
    return jsonify({"settings": settings.to_dict(), "policy": _policy_dict(policy)})


@companies_bp.get("/current/employees")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def list_employees_route():
    employees = (
        db.session.query(Employee)
        .filter_by(company_id=g.caller.company_id)
        .order_by(Employee.name.asc())
        .all()
    )
    return jsonify({"employees": [e.to_dict() for e in employees]})


@companies_bp.post("/current/employees")
@require_context
@require_role(ROLE_ADMIN)
def create_employee_route():
    data = request.get_json(silent=True) or {}
    employee = tenancy_service.create_employee(
        company_id=g.caller.company_id,
        name=data.get("name") or "",
        tax_id=data.get("tax_id"),
        registration=data.get("registration"),
        expected_start=data.get("expected_start"),
        expected_end=data.get("expected_end"),
    )
    return jsonify({"employee": employee.to_dict()}), 201


@companies_bp.get("/current/audit")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def audit_log_route():
    entity_id = request.args.get("entity_id")
    events = audit_service.list_audit_events(
        company_id=g.caller.company_id,
        entity_type=request.args.get("entity_type"),
        entity_id=int(entity_id) if entity_id and entity_id.isdigit() else None,
        action=request.args.get("action"),
    )
    return jsonify({"events": [e.to_dict() for e in events]})
