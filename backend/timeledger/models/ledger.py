from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PUNCH_TYPES = ("ENTRY", "EXIT", "BREAK_START", "BREAK_END")

SOURCE_PUNCH = "PUNCH"
SOURCE_ADJUSTMENT = "ADJUSTMENT"


class PunchRecord(db.Model):
    """
    Ledger entry: a single clock event.

    WHY: Attendance evidence must be defensible in a labor audit. Rows are
    written once and never edited; corrections arrive as approved Adjustments
    that materialize a new row (source=ADJUSTMENT) chained to the original.

    INVARIANTS:
    - fingerprint is unique across the ledger
    - derived rows carry original_record_id and adjustment_id
    - no UPDATE or DELETE through the ORM (see models/immutability.py)
    """
    __tablename__ = "punch_records"
    __table_args__ = (
        db.UniqueConstraint("fingerprint", name="uq_punch_records_fingerprint"),
        db.Index("ix_punch_records_employee_time", "employee_id", "punched_at"),
        db.Index("ix_punch_records_company_time", "company_id", "punched_at"),
        db.Index("ix_punch_records_original", "original_record_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)

    punch_type = db.Column(db.String(16), nullable=False)
    punched_at = db.Column(db.DateTime, nullable=False)  # UTC-naive instant

    # Optional capture context
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    device_id = db.Column(db.String(128), nullable=True)
    device_info = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    photo_ref = db.Column(db.String(512), nullable=True)
    nfc_tag = db.Column(db.String(128), nullable=True)

    fingerprint = db.Column(db.String(64), nullable=False)
    employee_sequence = db.Column(db.Integer, nullable=False)

    # PUNCH (submitted) or ADJUSTMENT (materialized from an approved adjustment)
    source = db.Column(db.String(16), nullable=False, default=SOURCE_PUNCH)
    original_record_id = db.Column(db.Integer, db.ForeignKey("punch_records.id"), nullable=True)
    adjustment_id = db.Column(db.Integer, nullable=True, index=True)  # adjustments.id, no FK to avoid a cycle

    recorded_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", backref=db.backref("punches", lazy=True))
    original_record = db.relationship("PunchRecord", remote_side=[id])

    @property
    def is_derived(self) -> bool:
        return self.source == SOURCE_ADJUSTMENT

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "employee_id": self.employee_id,
            "punch_type": self.punch_type,
            "punched_at": to_utc_z(self.punched_at),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "device_id": self.device_id,
            "device_info": self.device_info,
            "ip_address": self.ip_address,
            "photo_ref": self.photo_ref,
            "nfc_tag": self.nfc_tag,
            "fingerprint": self.fingerprint,
            "employee_sequence": self.employee_sequence,
            "source": self.source,
            "original_record_id": self.original_record_id,
            "adjustment_id": self.adjustment_id,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
