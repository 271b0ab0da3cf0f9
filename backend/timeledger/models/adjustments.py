from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z

STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"

ADJUSTMENT_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

DEFAULT_ADJUSTMENT_REASONS = (
    "FORGOT_TO_REGISTER",
    "TECHNICAL_FAILURE",
    "SYSTEM_ERROR",
    "POWER_OUTAGE",
    "NETWORK_ISSUE",
    "DEVICE_MALFUNCTION",
    "HUMAN_ERROR",
    "LEGAL_REQUIREMENT",
    "MEDICAL_EMERGENCY",
    "FAMILY_EMERGENCY",
    "PUBLIC_TRANSPORT_DELAY",
    "WEATHER_CONDITIONS",
    "OTHER",
)


class Adjustment(db.Model):
    """
    Correction proposal for a ledger entry.

    LIFECYCLE:
    - PENDING: requested, awaiting a decision
    - APPROVED: terminal; a derived PunchRecord was materialized
    - REJECTED: terminal; the original stands, rejection_reason recorded

    The PENDING -> terminal transition is a conditional UPDATE
    (WHERE status = 'PENDING'), so concurrent deciders cannot both win.
    """
    __tablename__ = "adjustments"
    __table_args__ = (
        db.Index("ix_adjustments_company_status", "company_id", "status"),
        db.Index("ix_adjustments_original", "original_record_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)
    original_record_id = db.Column(db.Integer, db.ForeignKey("punch_records.id"), nullable=False)

    # Proposed replacement values; NULL means "unchanged"
    proposed_type = db.Column(db.String(16), nullable=True)
    proposed_punched_at = db.Column(db.DateTime, nullable=True)  # UTC-naive

    reason = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=False)
    evidence_ref = db.Column(db.String(512), nullable=True)

    # {"field": {"from": ..., "to": ...}} captured at request time
    changes_json = db.Column(db.Text, nullable=False, default="{}")

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    requested_by_user_id = db.Column(db.Integer, nullable=False)
    requested_at = db.Column(db.DateTime, nullable=False)
    decided_by_user_id = db.Column(db.Integer, nullable=True)
    decided_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    derived_record_id = db.Column(db.Integer, db.ForeignKey("punch_records.id"), nullable=True)

    original_record = db.relationship("PunchRecord", foreign_keys=[original_record_id])
    derived_record = db.relationship("PunchRecord", foreign_keys=[derived_record_id])

    @property
    def changes(self) -> dict:
        return json.loads(self.changes_json or "{}")

    @property
    def proposed_fields(self) -> dict:
        fields = {}
        if self.proposed_type is not None:
            fields["type"] = self.proposed_type
        if self.proposed_punched_at is not None:
            fields["timestamp"] = self.proposed_punched_at
        return fields

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "employee_id": self.employee_id,
            "original_record_id": self.original_record_id,
            "proposed_type": self.proposed_type,
            "proposed_punched_at": to_utc_z(self.proposed_punched_at),
            "reason": self.reason,
            "description": self.description,
            "evidence_ref": self.evidence_ref,
            "changes": self.changes,
            "status": self.status,
            "requested_by_user_id": self.requested_by_user_id,
            "requested_at": to_utc_z(self.requested_at),
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": to_utc_z(self.decided_at),
            "rejection_reason": self.rejection_reason,
            "derived_record_id": self.derived_record_id,
        }
