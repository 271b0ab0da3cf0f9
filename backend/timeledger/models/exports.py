from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class ComplianceExport(db.Model):
    """
    A generated compliance (AFD) file and its metadata.

    The content is kept byte-for-byte as produced so that a later download
    or re-verification sees exactly what was handed to the inspector.
    """
    __tablename__ = "compliance_exports"
    __table_args__ = (
        db.Index("ix_compliance_exports_company_created", "company_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    file_name = db.Column(db.String(128), nullable=False)
    format_version = db.Column(db.String(8), nullable=False)
    record_count = db.Column(db.Integer, nullable=False)
    checksum = db.Column(db.String(16), nullable=False)
    counts_by_type_json = db.Column(db.Text, nullable=False, default="{}")
    content = db.Column(db.LargeBinary, nullable=False)

    # COMPLETED once content is stored; FAILED rows keep the error for audit
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)  # UTC-naive

    @property
    def counts_by_type(self) -> dict:
        return json.loads(self.counts_by_type_json or "{}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "employee_id": self.employee_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "file_name": self.file_name,
            "format_version": self.format_version,
            "record_count": self.record_count,
            "checksum": self.checksum,
            "counts_by_type": self.counts_by_type,
            "size_bytes": len(self.content or b""),
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
