# Overview: Flask API routes for daily, weekly, period and hour-bank reports.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_context
from ..services import workhours_service
from ..services.tenancy_service import get_employee
from ..workhours import format_minutes
from .params import ScopeDenied, parse_date_field, parse_int_field, resolve_employee_scope

workhours_bp = Blueprint("workhours", __name__, url_prefix="/api/workhours")


def _scope():
    employee_id = resolve_employee_scope(parse_int_field(request.args.get("employee_id"), "employee_id"))
    get_employee(employee_id=employee_id, company_id=g.caller.company_id)
    return employee_id


def _range():
    start = parse_date_field(request.args.get("from"), "from", required=True)
    end = parse_date_field(request.args.get("to"), "to", required=True)
    return start, end


def _forbidden():
    return jsonify({"error": "Cannot access another employee's work hours"}), 403


@workhours_bp.get("/daily")
@require_context
def daily_route():
    try:
        employee_id = _scope()
    except ScopeDenied:
        return _forbidden()
    work_date = parse_date_field(request.args.get("date"), "date")
    if work_date is not None:
        metrics = workhours_service.compute_daily(
            company_id=g.caller.company_id, employee_id=employee_id, work_date=work_date
        )
        return jsonify({"employee_id": employee_id, "day": metrics.to_dict()})

    start, end = _range()
    days = workhours_service.compute_days(
        company_id=g.caller.company_id, employee_id=employee_id, start=start, end=end
    )
    return jsonify({"employee_id": employee_id, "days": [d.to_dict() for d in days]})


@workhours_bp.get("/weekly")
@require_context
def weekly_route():
    try:
        employee_id = _scope()
    except ScopeDenied:
        return _forbidden()
    start, end = _range()
    weeks = workhours_service.compute_weekly(
        company_id=g.caller.company_id, employee_id=employee_id, start=start, end=end
    )
    return jsonify({"employee_id": employee_id, "weeks": [w.to_dict() for w in weeks]})


@workhours_bp.get("/period")
@require_context
def period_route():
    try:
        employee_id = _scope()
    except ScopeDenied:
        return _forbidden()
    start, end = _range()
    period = workhours_service.compute_period(
        company_id=g.caller.company_id, employee_id=employee_id, start=start, end=end
    )
    data = period.to_dict()
    data["worked"] = format_minutes(period.worked_minutes)
    data["overtime"] = format_minutes(period.overtime_minutes)
    return jsonify({"employee_id": employee_id, "period": data})


@workhours_bp.get("/hour-bank")
@require_context
def hour_bank_route():
    try:
        employee_id = _scope()
    except ScopeDenied:
        return _forbidden()
    start, end = _range()
    opening = parse_int_field(request.args.get("opening_minutes"), "opening_minutes") or 0
    period, bank = workhours_service.compute_hour_bank(
        company_id=g.caller.company_id,
        employee_id=employee_id,
        start=start,
        end=end,
        opening_minutes=opening,
    )
    return jsonify({
        "employee_id": employee_id,
        "start_date": period.start_date.isoformat(),
        "end_date": period.end_date.isoformat(),
        "hour_bank": bank.to_dict(),
    })
