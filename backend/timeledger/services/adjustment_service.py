# Overview: Service-layer operations for punch adjustments; encapsulates the approval state machine.

"""
Adjustment Workflow

================================================================================
PURPOSE: The only sanctioned way to change attendance history
================================================================================

STATE MACHINE:
    PENDING -> APPROVED
    PENDING -> REJECTED

    PENDING:  requested, original punch still authoritative
    APPROVED: terminal; a derived ledger entry carries the corrected fields and
              a fingerprint chained to the original
    REJECTED: terminal; original untouched, rejection reason recorded

RULES (NON-NEGOTIABLE):
1. The original PunchRecord is never edited or removed
2. A decision happens at most once: the transition is a conditional UPDATE
   (WHERE status = 'PENDING'); the loser of a race gets ConflictError
3. Every transition writes an audit entry when compliance mode is on
4. Records older than max_adjustment_days cannot be adjusted
================================================================================
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timedelta

from sqlalchemy import update

from ..errors import AdjustmentWindowExpiredError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Adjustment,
    PunchRecord,
    PUNCH_TYPES,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from ..policy import CompanyPolicy
from ..time_utils import to_utc_z, utcnow
from . import notification_service
from .audit_service import record_audit_event
from .integrity_service import materialize_adjusted_record
from .policy_service import load_policy

logger = logging.getLogger(__name__)

DECISIONS = (STATUS_APPROVED, STATUS_REJECTED)
ADJUSTABLE_FIELDS = ("type", "timestamp")

_TRANSITIONS = {
    (STATUS_PENDING, STATUS_APPROVED): STATUS_APPROVED,
    (STATUS_PENDING, STATUS_REJECTED): STATUS_REJECTED,
}

ALREADY_DECIDED_MESSAGE = "Adjustment was already decided by someone else; refresh and try again"


def next_status(current: str, decision: str) -> str:
    """
    Total transition function: PENDING x decision -> terminal state.

    Raises:
        ValidationError: decision is not APPROVED/REJECTED
        ConflictError: current state is terminal
    """
    if decision not in DECISIONS:
        raise ValidationError(f"decision must be one of {', '.join(DECISIONS)}")
    try:
        return _TRANSITIONS[(current, decision)]
    except KeyError:
        raise ConflictError(ALREADY_DECIDED_MESSAGE)


def compute_changes(original: PunchRecord, proposed: dict) -> dict:
    """Field-level diff {field: {"from": old, "to": new}} for fields that change."""
    changes = {}
    new_type = proposed.get("type")
    if new_type is not None and new_type != original.punch_type:
        changes["type"] = {"from": original.punch_type, "to": new_type}
    new_ts = proposed.get("timestamp")
    if new_ts is not None and new_ts != original.punched_at:
        changes["timestamp"] = {"from": to_utc_z(original.punched_at), "to": to_utc_z(new_ts)}
    return changes


def _validate_proposed(proposed: dict, now: datetime) -> list[str]:
    violations = []
    if not proposed:
        violations.append("at least one field (type, timestamp) must be proposed")
        return violations

    for name in sorted(set(proposed) - set(ADJUSTABLE_FIELDS)):
        violations.append(f"{name} cannot be adjusted")

    new_type = proposed.get("type")
    if new_type is not None and new_type not in PUNCH_TYPES:
        violations.append(f"type must be one of {', '.join(PUNCH_TYPES)}")

    if "timestamp" in proposed:
        new_ts = proposed["timestamp"]
        if not isinstance(new_ts, datetime):
            violations.append("timestamp must be a valid date-time")
        elif new_ts > now:
            violations.append("timestamp must not be in the future")
    return violations


def _audit(policy: CompanyPolicy, **kwargs) -> None:
    if policy.adjustment.compliance_mode:
        record_audit_event(entity_type="adjustment", **kwargs)


def request_adjustment(
    *,
    company_id: int,
    original_record_id: int,
    proposed_fields: dict,
    reason: str,
    description: str,
    requested_by_user_id: int,
    evidence_ref: str | None = None,
    policy: CompanyPolicy | None = None,
    now: datetime | None = None,
) -> Adjustment:
    now = now or utcnow()
    original = db.session.get(PunchRecord, original_record_id)
    if original is None or original.company_id != company_id:
        raise ValidationError("original record does not exist")

    if policy is None:
        policy = load_policy(company_id=company_id)
    rules = policy.adjustment

    age = now - original.punched_at
    if age > timedelta(days=rules.max_adjustment_days):
        raise AdjustmentWindowExpiredError(rules.max_adjustment_days, age.total_seconds() / 86400)

    violations = []
    description = (description or "").strip()
    if len(description) < rules.min_description_length:
        violations.append(f"description must be at least {rules.min_description_length} characters")

    reason = (reason or "").strip().upper()
    if reason not in rules.allowed_reasons:
        violations.append(f"reason must be one of {', '.join(rules.allowed_reasons)}")

    evidence_ref = (evidence_ref or "").strip() or None
    if rules.require_evidence and not evidence_ref:
        violations.append("evidence is required by company policy")

    if not requested_by_user_id:
        violations.append("requester is required")

    proposed = {k: v for k, v in (proposed_fields or {}).items() if v is not None}
    proposed_violations = _validate_proposed(proposed, now)
    violations.extend(proposed_violations)

    changes = {}
    if not proposed_violations:
        changes = compute_changes(original, proposed)
        if not changes:
            violations.append("proposed fields do not change the record")

    pending = db.session.query(Adjustment).filter_by(
        original_record_id=original.id, status=STATUS_PENDING
    ).first()
    if pending is not None:
        violations.append(f"adjustment {pending.id} is already pending for this record")

    if violations:
        raise ValidationError(violations)

    adjustment = Adjustment(
        company_id=company_id,
        employee_id=original.employee_id,
        original_record_id=original.id,
        proposed_type=proposed.get("type") if "type" in changes else None,
        proposed_punched_at=proposed.get("timestamp") if "timestamp" in changes else None,
        reason=reason,
        description=description,
        evidence_ref=evidence_ref,
        changes_json=json.dumps(changes, sort_keys=True),
        status=STATUS_PENDING,
        requested_by_user_id=requested_by_user_id,
        requested_at=now,
    )
    db.session.add(adjustment)
    db.session.flush()

    _audit(
        policy,
        action="ADJUSTMENT_REQUESTED",
        status="PENDING",
        company_id=company_id,
        actor_user_id=requested_by_user_id,
        entity_id=adjustment.id,
        details=f"Adjustment requested for punch {original.id}: {reason}",
        metadata={"before": None, "after": {"status": STATUS_PENDING}, "changes": changes},
        occurred_at=now,
    )
    db.session.commit()
    logger.info("adjustment %s requested for punch %s", adjustment.id, original.id)
    return adjustment


def decide_adjustment(
    *,
    adjustment_id: int,
    company_id: int,
    approver_user_id: int,
    decision: str,
    rejection_reason: str | None = None,
    policy: CompanyPolicy | None = None,
    now: datetime | None = None,
) -> Adjustment:
    now = now or utcnow()
    adjustment = db.session.get(Adjustment, adjustment_id)
    if adjustment is None or adjustment.company_id != company_id:
        raise NotFoundError("Adjustment not found")

    decision = (decision or "").strip().upper()
    violations = []
    if decision not in DECISIONS:
        violations.append(f"decision must be one of {', '.join(DECISIONS)}")
    rejection_reason = (rejection_reason or "").strip() or None
    if decision == STATUS_REJECTED and not rejection_reason:
        violations.append("rejection reason is required")
    if not approver_user_id:
        violations.append("approver is required")
    if violations:
        raise ValidationError(violations)

    new_status = next_status(adjustment.status, decision)
    if policy is None:
        policy = load_policy(company_id=company_id)

    result = db.session.execute(
        update(Adjustment)
        .where(Adjustment.id == adjustment_id, Adjustment.status == STATUS_PENDING)
        .values(
            status=new_status,
            decided_by_user_id=approver_user_id,
            decided_at=now,
            rejection_reason=rejection_reason if new_status == STATUS_REJECTED else None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning("adjustment %s decision lost a race", adjustment_id)
        raise ConflictError(ALREADY_DECIDED_MESSAGE)

    db.session.refresh(adjustment)

    derived = None
    if new_status == STATUS_APPROVED:
        original = db.session.get(PunchRecord, adjustment.original_record_id)
        derived = materialize_adjusted_record(original=original, adjustment=adjustment)
        adjustment.derived_record_id = derived.id

    _audit(
        policy,
        action="ADJUSTMENT_APPROVED" if new_status == STATUS_APPROVED else "ADJUSTMENT_REJECTED",
        status="SUCCESS" if new_status == STATUS_APPROVED else "FAILURE",
        company_id=company_id,
        actor_user_id=approver_user_id,
        entity_id=adjustment.id,
        details=rejection_reason or f"Adjustment {adjustment.id} approved",
        metadata={
            "before": {"status": STATUS_PENDING},
            "after": {"status": new_status, "derived_record_id": derived.id if derived else None},
            "changes": adjustment.changes,
        },
        occurred_at=now,
    )
    db.session.commit()
    logger.info("adjustment %s %s by user %s", adjustment.id, new_status.lower(), approver_user_id)

    notification_service.notify(
        "adjustment.decided",
        {
            "adjustment_id": adjustment.id,
            "employee_id": adjustment.employee_id,
            "status": new_status,
            "requested_by_user_id": adjustment.requested_by_user_id,
        },
    )
    return adjustment


def get_adjustment(*, adjustment_id: int, company_id: int) -> Adjustment:
    adjustment = db.session.get(Adjustment, adjustment_id)
    if adjustment is None or adjustment.company_id != company_id:
        raise NotFoundError("Adjustment not found")
    return adjustment


def list_adjustments(
    *,
    company_id: int,
    status: str | None = None,
    employee_id: int | None = None,
    limit: int = 200,
) -> list[Adjustment]:
    query = db.session.query(Adjustment).filter(Adjustment.company_id == company_id)
    if status:
        query = query.filter(Adjustment.status == status)
    if employee_id is not None:
        query = query.filter(Adjustment.employee_id == employee_id)
    return query.order_by(Adjustment.requested_at.desc(), Adjustment.id.desc()).limit(limit).all()


def _in_range(query, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(Adjustment.requested_at >= start)
    if end is not None:
        query = query.filter(Adjustment.requested_at < end)
    return query


def adjustment_stats(*, company_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    adjustments = _in_range(
        db.session.query(Adjustment).filter(Adjustment.company_id == company_id), start, end
    ).all()

    by_status = Counter(a.status for a in adjustments)
    processing_hours = [
        (a.decided_at - a.requested_at).total_seconds() / 3600
        for a in adjustments
        if a.decided_at is not None
    ]
    return {
        "total": len(adjustments),
        "pending": by_status.get(STATUS_PENDING, 0),
        "approved": by_status.get(STATUS_APPROVED, 0),
        "rejected": by_status.get(STATUS_REJECTED, 0),
        "average_processing_hours": round(sum(processing_hours) / len(processing_hours), 2)
        if processing_hours else 0.0,
        "by_reason": dict(sorted(Counter(a.reason for a in adjustments).items())),
        "by_month": dict(sorted(Counter(a.requested_at.strftime("%Y-%m") for a in adjustments).items())),
    }


def adjustment_report(*, company_id: int, start: datetime | None = None, end: datetime | None = None) -> str:
    """Plain-text summary for HR review."""
    stats = adjustment_stats(company_id=company_id, start=start, end=end)
    adjustments = _in_range(
        db.session.query(Adjustment).filter(Adjustment.company_id == company_id), start, end
    ).order_by(Adjustment.requested_at.asc(), Adjustment.id.asc()).all()

    lines = [
        "ADJUSTMENT REPORT",
        f"Company: {company_id}",
        f"Period: {to_utc_z(start) or '-'} to {to_utc_z(end) or '-'}",
        "",
        f"Total: {stats['total']}  Pending: {stats['pending']}  "
        f"Approved: {stats['approved']}  Rejected: {stats['rejected']}",
        f"Average processing time: {stats['average_processing_hours']:.2f} h",
        "",
        "By reason:",
    ]
    lines.extend(f"  {reason}: {count}" for reason, count in stats["by_reason"].items())
    lines.append("")
    lines.append("Adjustments:")
    for a in adjustments:
        changed = ", ".join(
            f"{field} {diff['from']} -> {diff['to']}" for field, diff in sorted(a.changes.items())
        )
        lines.append(
            f"  #{a.id} punch {a.original_record_id} employee {a.employee_id} "
            f"[{a.status}] {a.reason}: {changed}"
        )
    return "\n".join(lines) + "\n"
