# Overview: Flask API routes for the adjustment (justification) workflow.

"""
Adjustment Routes

SECURITY:
- Employees request adjustments for their own punches and see their own requests.
- Deciding, statistics and reports require MANAGER or ADMIN.
"""

from flask import Blueprint, Response, g, jsonify, request

from ..decorators import ROLE_ADMIN, ROLE_MANAGER, require_context, require_role
from ..errors import NotFoundError
from ..extensions import db
from ..models import PunchRecord
from ..services import adjustment_service
from .params import ScopeDenied, parse_datetime_field, parse_int_field, resolve_employee_scope

adjustments_bp = Blueprint("adjustments", __name__, url_prefix="/api/adjustments")


@adjustments_bp.post("")
@require_context
def request_adjustment_route():
    data = request.get_json(silent=True) or {}
    original_id = parse_int_field(data.get("original_record_id"), "original_record_id", required=True)

    if not g.caller.is_manager:
        original = db.session.get(PunchRecord, original_id)
        if original is not None and original.employee_id != g.caller.employee_id:
            return jsonify({"error": "Cannot adjust another employee's punches"}), 403

    proposed = data.get("proposed") or {}
    proposed_fields = {}
    if proposed.get("type"):
        proposed_fields["type"] = str(proposed["type"]).upper()
    if proposed.get("timestamp"):
        proposed_fields["timestamp"] = parse_datetime_field(proposed["timestamp"], "proposed.timestamp")

    adjustment = adjustment_service.request_adjustment(
        company_id=g.caller.company_id,
        original_record_id=original_id,
        proposed_fields=proposed_fields,
        reason=data.get("reason") or "",
        description=data.get("description") or "",
        evidence_ref=data.get("evidence_ref"),
        requested_by_user_id=g.caller.user_id,
    )
    return jsonify({"adjustment": adjustment.to_dict()}), 201


@adjustments_bp.get("")
@require_context
def list_adjustments_route():
    try:
        employee_id = resolve_employee_scope(
            parse_int_field(request.args.get("employee_id"), "employee_id"), allow_all=True
        )
    except ScopeDenied:
        return jsonify({"error": "Cannot access another employee's adjustments"}), 403

    status = request.args.get("status")
    adjustments = adjustment_service.list_adjustments(
        company_id=g.caller.company_id,
        status=status.upper() if status else None,
        employee_id=employee_id,
    )
    return jsonify({"adjustments": [a.to_dict() for a in adjustments]})


@adjustments_bp.get("/<int:adjustment_id>")
@require_context
def get_adjustment_route(adjustment_id: int):
    adjustment = adjustment_service.get_adjustment(adjustment_id=adjustment_id, company_id=g.caller.company_id)
    if not g.caller.is_manager and adjustment.employee_id != g.caller.employee_id:
        raise NotFoundError("Adjustment not found")
    return jsonify({"adjustment": adjustment.to_dict()})


@adjustments_bp.post("/<int:adjustment_id>/decision")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def decide_adjustment_route(adjustment_id: int):
    data = request.get_json(silent=True) or {}
    adjustment = adjustment_service.decide_adjustment(
        adjustment_id=adjustment_id,
        company_id=g.caller.company_id,
        approver_user_id=g.caller.user_id,
        decision=data.get("decision") or "",
        rejection_reason=data.get("rejection_reason"),
    )
    return jsonify({"adjustment": adjustment.to_dict()})


@adjustments_bp.get("/stats")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def adjustment_stats_route():
    stats = adjustment_service.adjustment_stats(
        company_id=g.caller.company_id,
        start=parse_datetime_field(request.args.get("from"), "from"),
        end=parse_datetime_field(request.args.get("to"), "to"),
    )
    return jsonify(stats)


@adjustments_bp.get("/report")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def adjustment_report_route():
    report = adjustment_service.adjustment_report(
        company_id=g.caller.company_id,
        start=parse_datetime_field(request.args.get("from"), "from"),
        end=parse_datetime_field(request.args.get("to"), "to"),
    )
    return Response(report, mimetype="text/plain")
