# Overview: Flask API routes for punch submission, ledger reads and integrity checks.

"""
Punch Routes

SECURITY:
- Employees punch and read only their own ledger.
- Managers may punch on behalf of, and read, any employee of their company.
- Integrity verification is manager-only.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import ROLE_ADMIN, ROLE_MANAGER, require_context, require_role
from ..services import integrity_service, ledger_service
from ..services.tenancy_service import get_employee
from ..time_utils import local_range_to_utc, utcnow
from ..services.policy_service import load_policy
from .params import (
    ScopeDenied,
    parse_date_field,
    parse_datetime_field,
    parse_int_field,
    resolve_employee_scope,
)

punches_bp = Blueprint("punches", __name__, url_prefix="/api/punches")


def _forbidden():
    return jsonify({"error": "Cannot access another employee's punches"}), 403


@punches_bp.post("")
@require_context
def submit_punch_route():
    data = request.get_json(silent=True) or {}
    try:
        employee_id = resolve_employee_scope(parse_int_field(data.get("employee_id"), "employee_id"))
    except ScopeDenied:
        return _forbidden()

    context = {
        name: data.get(name)
        for name in integrity_service.CONTEXT_FIELDS
        if name != "ip_address" and data.get(name) is not None
    }
    context["ip_address"] = request.remote_addr

    punched_at = parse_datetime_field(data.get("timestamp"), "timestamp")
    record = integrity_service.submit_punch(
        company_id=g.caller.company_id,
        employee_id=employee_id,
        punch_type=(data.get("type") or "").upper(),
        punched_at=punched_at or utcnow(),
        context=context,
        recorded_by_user_id=g.caller.user_id,
    )
    return jsonify({"punch": record.to_dict()}), 201


@punches_bp.get("")
@require_context
def list_punches_route():
    try:
        employee_id = resolve_employee_scope(
            parse_int_field(request.args.get("employee_id"), "employee_id"), allow_all=True
        )
    except ScopeDenied:
        return _forbidden()

    records = ledger_service.list_punches(
        company_id=g.caller.company_id,
        employee_id=employee_id,
        start=parse_datetime_field(request.args.get("from"), "from"),
        end=parse_datetime_field(request.args.get("to"), "to"),
        include_derived=request.args.get("include_derived", "true").lower() != "false",
        limit=min(parse_int_field(request.args.get("limit"), "limit") or 500, 5000),
    )
    return jsonify({"punches": [r.to_dict() for r in records], "count": len(records)})


@punches_bp.get("/effective")
@require_context
def effective_punches_route():
    """Authoritative punches (approved adjustments applied) for a local date range."""
    try:
        employee_id = resolve_employee_scope(parse_int_field(request.args.get("employee_id"), "employee_id"))
    except ScopeDenied:
        return _forbidden()

    start = parse_date_field(request.args.get("from"), "from", required=True)
    end = parse_date_field(request.args.get("to"), "to") or start
    get_employee(employee_id=employee_id, company_id=g.caller.company_id)
    policy = load_policy(company_id=g.caller.company_id, employee_id=employee_id)
    utc_start, utc_end = local_range_to_utc(start, end, policy.schedule.timezone)

    punches = ledger_service.effective_punches(employee_id=employee_id, start=utc_start, end=utc_end)
    return jsonify({"punches": [p.to_dict() for p in punches], "count": len(punches)})


@punches_bp.post("/<int:record_id>/verify")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def verify_punch_route(record_id: int):
    record = integrity_service.verify_record(
        record_id=record_id, company_id=g.caller.company_id, actor_user_id=g.caller.user_id
    )
    return jsonify({"punch": record.to_dict(), "verified": True})


@punches_bp.post("/verify")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def verify_ledger_route():
    data = request.get_json(silent=True) or {}
    result = integrity_service.verify_ledger(
        company_id=g.caller.company_id,
        employee_id=parse_int_field(data.get("employee_id"), "employee_id"),
        start=parse_datetime_field(data.get("from"), "from"),
        end=parse_datetime_field(data.get("to"), "to"),
        actor_user_id=g.caller.user_id,
    )
    return jsonify(result)
