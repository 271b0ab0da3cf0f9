# Overview: Flask API routes for compliance (AFD) file generation, download and verification.

"""
Compliance Routes

SECURITY: Manager/admin only. Exports contain every employee's punches.
"""

from flask import Blueprint, Response, g, jsonify, request

from ..decorators import ROLE_ADMIN, ROLE_MANAGER, require_context, require_role
from ..errors import ValidationError
from ..services import compliance_export_service
from ..services.policy_service import load_policy
from .params import parse_date_field, parse_int_field

compliance_bp = Blueprint("compliance", __name__, url_prefix="/api/compliance")


@compliance_bp.post("/exports")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def create_export_route():
    data = request.get_json(silent=True) or {}
    export = compliance_export_service.export_compliance(
        company_id=g.caller.company_id,
        start=parse_date_field(data.get("from"), "from", required=True),
        end=parse_date_field(data.get("to"), "to", required=True),
        employee_id=parse_int_field(data.get("employee_id"), "employee_id"),
        requested_by_user_id=g.caller.user_id,
    )
    return jsonify({"export": export.to_dict()}), 201


@compliance_bp.get("/exports")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def list_exports_route():
    exports = compliance_export_service.list_exports(company_id=g.caller.company_id)
    return jsonify({"exports": [e.to_dict() for e in exports]})


@compliance_bp.get("/exports/stats")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def export_stats_route():
    return jsonify(compliance_export_service.export_stats(company_id=g.caller.company_id))


@compliance_bp.get("/exports/<int:export_id>/download")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def download_export_route(export_id: int):
    export = compliance_export_service.get_export(export_id=export_id, company_id=g.caller.company_id)
    policy = load_policy(company_id=g.caller.company_id)
    return Response(
        export.content,
        content_type=f"text/plain; charset={policy.export.encoding}",
        headers={"Content-Disposition": f'attachment; filename="{export.file_name}"'},
    )


@compliance_bp.post("/exports/<int:export_id>/verify")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def verify_stored_export_route(export_id: int):
    export = compliance_export_service.get_export(export_id=export_id, company_id=g.caller.company_id)
    policy = load_policy(company_id=g.caller.company_id)
    parsed = compliance_export_service.verify_export(export.content, policy.export.encoding)
    return jsonify({"valid": True, "export_id": export.id, "file": parsed.to_dict()})


@compliance_bp.post("/verify")
@require_context
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def verify_uploaded_export_route():
    """Verify a file body posted as-is (application/octet-stream or text/plain)."""
    content = request.get_data()
    if not content:
        raise ValidationError("request body must contain the export file")
    policy = load_policy(company_id=g.caller.company_id)
    parsed = compliance_export_service.verify_export(content, policy.export.encoding)
    return jsonify({"valid": True, "file": parsed.to_dict()})
