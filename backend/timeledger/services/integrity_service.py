# Overview: Service-layer punch intake; fingerprinting, duplicate guard and tamper checks.

"""
Integrity & Duplicate Guard

WHY: A flaky client retries, a badge is tapped twice, or someone edits a row
in the database. The first two must not produce extra punches; the last must
be detected, never silently repaired.

DESIGN:
- The fingerprint is a SHA-256 over the semantically significant fields.
  Deterministic: no salt, no server-side randomness.
- Derived entries (approved adjustments) carry sha256(original fingerprint |
  adjustment id), which ties every correction to its justification.
- Submissions for one employee are serialized by bumping
  Employee.punch_sequence with a single UPDATE before the duplicate checks.
  The row lock that UPDATE takes makes check-then-insert atomic; the unique
  fingerprint constraint is the backstop.

INVARIANTS:
- A mismatch raises IntegrityMismatchError and leaves a FAILURE audit entry.
- No code path here edits an existing PunchRecord.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateRecordError, IntegrityMismatchError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Adjustment, Employee, PunchRecord, PUNCH_TYPES, SOURCE_ADJUSTMENT, SOURCE_PUNCH
from ..policy import CompanyPolicy
from ..time_utils import local_range_to_utc, to_local, utcnow
from .audit_service import record_audit_event
from .ledger_service import apply_adjustment
from .policy_service import load_policy

logger = logging.getLogger(__name__)

CONTEXT_FIELDS = ("latitude", "longitude", "device_id", "device_info", "ip_address", "photo_ref", "nfc_tag")


def _timestamp_token(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def compute_fingerprint(
    *,
    punch_type: str,
    employee_id: int,
    company_id: int,
    punched_at: datetime,
    latitude: float | None = None,
    longitude: float | None = None,
    device_id: str | None = None,
    device_info: str | None = None,
    ip_address: str | None = None,
    photo_ref: str | None = None,
    nfc_tag: str | None = None,
) -> str:
    """
    Deterministic one-way fingerprint of a punch.

    The hashed payload is compact JSON with sorted, named keys: type,
    employee, company and the UTC timestamp (microseconds), plus each context
    field that is present, each keyed by its column name. Absent fields are
    left out, so adding a field to the schema later does not change
    fingerprints of existing rows.
    """
    payload = {
        "type": punch_type,
        "employee_id": int(employee_id),
        "company_id": int(company_id),
        "punched_at": _timestamp_token(punched_at),
    }
    if latitude is not None:
        payload["latitude"] = float(latitude)
    if longitude is not None:
        payload["longitude"] = float(longitude)
    for name, value in (
        ("device_id", device_id),
        ("device_info", device_info),
        ("ip_address", ip_address),
        ("photo_ref", photo_ref),
        ("nfc_tag", nfc_tag),
    ):
        if value is not None:
            payload[name] = str(value)
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def chain_fingerprint(original_fingerprint: str, adjustment_id: int) -> str:
    return hashlib.sha256(f"{original_fingerprint}|{adjustment_id}".encode("utf-8")).hexdigest()


def fingerprint_for_record(record: PunchRecord) -> str:
    return compute_fingerprint(
        punch_type=record.punch_type,
        employee_id=record.employee_id,
        company_id=record.company_id,
        punched_at=record.punched_at,
        **{name: getattr(record, name) for name in CONTEXT_FIELDS},
    )


def _validate_submission(
    *,
    company_id: int,
    employee: Employee | None,
    punch_type: str,
    punched_at: datetime | None,
    context: dict,
    now: datetime,
    policy: CompanyPolicy,
) -> list[str]:
    violations = []
    if employee is None or employee.company_id != company_id:
        violations.append("employee does not belong to this company")
    elif not employee.is_active:
        violations.append("employee is inactive")

    if punch_type not in PUNCH_TYPES:
        violations.append(f"type must be one of {', '.join(PUNCH_TYPES)}")

    if punched_at is None:
        violations.append("timestamp is required")
    elif punched_at > now + timedelta(seconds=policy.integrity.clock_skew_seconds):
        violations.append("timestamp must not be in the future")

    unknown = set(context) - set(CONTEXT_FIELDS)
    for name in sorted(unknown):
        violations.append(f"{name} is not a recognized context field")

    lat, lon = context.get("latitude"), context.get("longitude")
    if (lat is None) != (lon is None):
        violations.append("latitude and longitude must be provided together")
    if lat is not None and not (isinstance(lat, (int, float)) and -90 <= lat <= 90):
        violations.append("latitude must be between -90 and 90")
    if lon is not None and not (isinstance(lon, (int, float)) and -180 <= lon <= 180):
        violations.append("longitude must be between -180 and 180")
    return violations


def _reject_duplicate(message: str, **kwargs) -> DuplicateRecordError:
    db.session.rollback()
    logger.warning("punch rejected: %s", message)
    return DuplicateRecordError(message, **kwargs)


def _guard(*, employee_id: int, punched_at: datetime, fingerprint: str, policy: CompanyPolicy) -> None:
    existing = db.session.query(PunchRecord).filter_by(fingerprint=fingerprint).first()
    if existing is not None:
        raise _reject_duplicate("This punch is already registered", existing_record_id=existing.id)

    cooldown = timedelta(minutes=policy.integrity.duplicate_cooldown_minutes)
    if cooldown:
        nearby = (
            db.session.query(PunchRecord)
            .filter(
                PunchRecord.employee_id == employee_id,
                PunchRecord.source == SOURCE_PUNCH,
                PunchRecord.punched_at > punched_at - cooldown,
                PunchRecord.punched_at < punched_at + cooldown,
            )
            .order_by(PunchRecord.punched_at.desc())
            .first()
        )
        if nearby is not None:
            remaining = cooldown - abs(punched_at - nearby.punched_at)
            wait = max(1, math.ceil(remaining.total_seconds() / 60))
            raise _reject_duplicate(
                f"Punch already registered; wait {wait} minute(s) before punching again",
                wait_minutes=wait,
                existing_record_id=nearby.id,
            )

    tz = policy.schedule.timezone
    local_day = to_local(punched_at, tz).date()
    day_start, day_end = local_range_to_utc(local_day, local_day, tz)
    count = (
        db.session.query(func.count(PunchRecord.id))
        .filter(
            PunchRecord.employee_id == employee_id,
            PunchRecord.source == SOURCE_PUNCH,
            PunchRecord.punched_at >= day_start,
            PunchRecord.punched_at < day_end,
        )
        .scalar()
    )
    if count >= policy.integrity.max_punches_per_day:
        db.session.rollback()
        raise ValidationError(
            f"Daily limit of {policy.integrity.max_punches_per_day} punches reached for {local_day.isoformat()}"
        )


def submit_punch(
    *,
    company_id: int,
    employee_id: int,
    punch_type: str,
    punched_at: datetime | None,
    context: dict | None = None,
    recorded_by_user_id: int | None = None,
    policy: CompanyPolicy | None = None,
    now: datetime | None = None,
) -> PunchRecord:
    """Validate, guard and append one punch. Commits on success."""
    context = {k: v for k, v in (context or {}).items() if v is not None}
    now = now or utcnow()
    employee = db.session.get(Employee, employee_id)
    if policy is None:
        policy = load_policy(company_id=company_id)

    violations = _validate_submission(
        company_id=company_id,
        employee=employee,
        punch_type=punch_type,
        punched_at=punched_at,
        context=context,
        now=now,
        policy=policy,
    )
    if violations:
        raise ValidationError(violations)

    fingerprint = compute_fingerprint(
        punch_type=punch_type,
        employee_id=employee_id,
        company_id=company_id,
        punched_at=punched_at,
        **context,
    )

    # Serialize submissions for this employee until commit/rollback.
    db.session.execute(
        update(Employee)
        .where(Employee.id == employee_id)
        .values(punch_sequence=Employee.punch_sequence + 1)
    )
    sequence = db.session.execute(
        select(Employee.punch_sequence).where(Employee.id == employee_id)
    ).scalar_one()

    _guard(employee_id=employee_id, punched_at=punched_at, fingerprint=fingerprint, policy=policy)

    record = PunchRecord(
        company_id=company_id,
        employee_id=employee_id,
        punch_type=punch_type,
        punched_at=punched_at,
        fingerprint=fingerprint,
        employee_sequence=sequence,
        source=SOURCE_PUNCH,
        recorded_by_user_id=recorded_by_user_id,
        **context,
    )
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError:
        raise _reject_duplicate("This punch is already registered")

    db.session.commit()
    logger.info(
        "punch accepted employee=%s type=%s at=%s seq=%s",
        employee_id, punch_type, punched_at.isoformat(), sequence,
    )
    return record


def materialize_adjusted_record(*, original: PunchRecord, adjustment: Adjustment) -> PunchRecord:
    """
    Append the derived entry for an approved adjustment (no commit).

    Shares the employee serialization of submit_punch so sequence numbers stay
    gap-free per employee.
    """
    effective = apply_adjustment(original, adjustment)

    db.session.execute(
        update(Employee)
        .where(Employee.id == original.employee_id)
        .values(punch_sequence=Employee.punch_sequence + 1)
    )
    sequence = db.session.execute(
        select(Employee.punch_sequence).where(Employee.id == original.employee_id)
    ).scalar_one()

    record = PunchRecord(
        company_id=original.company_id,
        employee_id=original.employee_id,
        punch_type=effective.punch_type,
        punched_at=effective.punched_at,
        fingerprint=chain_fingerprint(original.fingerprint, adjustment.id),
        employee_sequence=sequence,
        source=SOURCE_ADJUSTMENT,
        original_record_id=original.id,
        adjustment_id=adjustment.id,
        recorded_by_user_id=adjustment.decided_by_user_id,
        **{name: getattr(original, name) for name in CONTEXT_FIELDS},
    )
    db.session.add(record)
    db.session.flush()
    return record


def _check_record(record: PunchRecord, originals: dict[int, PunchRecord],
                  adjustments: dict[int, Adjustment]) -> str | None:
    """Returns a mismatch reason, or None when the record verifies."""
    if record.source != SOURCE_ADJUSTMENT:
        if fingerprint_for_record(record) != record.fingerprint:
            return "fingerprint does not match record content"
        return None

    original = originals.get(record.original_record_id)
    adjustment = adjustments.get(record.adjustment_id)
    if original is None or adjustment is None:
        return "derived record has no traceable original or adjustment"
    if chain_fingerprint(original.fingerprint, adjustment.id) != record.fingerprint:
        return "chained fingerprint does not match original and adjustment"
    expected = apply_adjustment(original, adjustment)
    if (expected.punch_type, expected.punched_at) != (record.punch_type, record.punched_at):
        return "derived record content differs from approved adjustment"
    return None


def scan_ledger(
    *,
    company_id: int,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> tuple[int, list[dict]]:
    """Recompute fingerprints; returns (records checked, mismatches). Never raises on mismatch."""
    query = db.session.query(PunchRecord).filter(PunchRecord.company_id == company_id)
    if employee_id is not None:
        query = query.filter(PunchRecord.employee_id == employee_id)
    if start is not None:
        query = query.filter(PunchRecord.punched_at >= start)
    if end is not None:
        query = query.filter(PunchRecord.punched_at < end)
    records = query.order_by(PunchRecord.id.asc()).all()

    original_ids = {r.original_record_id for r in records if r.original_record_id}
    adjustment_ids = {r.adjustment_id for r in records if r.adjustment_id}
    originals = {
        r.id: r for r in db.session.query(PunchRecord).filter(PunchRecord.id.in_(original_ids)).all()
    } if original_ids else {}
    adjustments = {
        a.id: a for a in db.session.query(Adjustment).filter(Adjustment.id.in_(adjustment_ids)).all()
    } if adjustment_ids else {}

    mismatches = []
    for record in records:
        reason = _check_record(record, originals, adjustments)
        if reason:
            mismatches.append({"record_id": record.id, "reason": reason})
    return len(records), mismatches


def _surface_mismatches(*, company_id: int, actor_user_id: int | None, mismatches: list[dict]) -> IntegrityMismatchError:
    record_ids = [m["record_id"] for m in mismatches]
    logger.error("integrity mismatch company=%s records=%s", company_id, record_ids)
    record_audit_event(
        action="INTEGRITY_MISMATCH",
        status="FAILURE",
        company_id=company_id,
        actor_user_id=actor_user_id,
        details=f"{len(record_ids)} record(s) failed fingerprint verification",
        entity_type="punch_record",
        entity_id=record_ids[0] if len(record_ids) == 1 else None,
        metadata={"mismatches": mismatches},
    )
    db.session.commit()
    return IntegrityMismatchError(record_ids)


def verify_record(*, record_id: int, company_id: int, actor_user_id: int | None = None) -> PunchRecord:
    record = db.session.get(PunchRecord, record_id)
    if record is None or record.company_id != company_id:
        raise NotFoundError("Punch record not found")

    originals, adjustments = {}, {}
    if record.source == SOURCE_ADJUSTMENT:
        original = db.session.get(PunchRecord, record.original_record_id)
        adjustment = db.session.get(Adjustment, record.adjustment_id)
        if original is not None:
            originals[original.id] = original
        if adjustment is not None:
            adjustments[adjustment.id] = adjustment

    reason = _check_record(record, originals, adjustments)
    if reason:
        raise _surface_mismatches(
            company_id=company_id,
            actor_user_id=actor_user_id,
            mismatches=[{"record_id": record.id, "reason": reason}],
        )
    return record


def verify_ledger(
    *,
    company_id: int,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    actor_user_id: int | None = None,
) -> dict:
    checked, mismatches = scan_ledger(company_id=company_id, employee_id=employee_id, start=start, end=end)
    if mismatches:
        raise _surface_mismatches(company_id=company_id, actor_user_id=actor_user_id, mismatches=mismatches)
    return {"checked": checked, "mismatches": 0}
