from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z

AUDIT_STATUSES = ("SUCCESS", "FAILURE", "PENDING")


class AuditLogEntry(db.Model):
    """
    Append-only audit trail for ledger, workflow and export actions.

    IMMUTABLE: Never update or delete. Written in the same transaction as the
    change it describes so the two commit or roll back together.
    """
    __tablename__ = "audit_log_entries"
    __table_args__ = (
        db.Index("ix_audit_log_company_occurred", "company_id", "occurred_at"),
        db.Index("ix_audit_log_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False)
    details = db.Column(db.Text, nullable=True)

    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    metadata_json = db.Column(db.Text, nullable=False, default="{}")
    occurred_at = db.Column(db.DateTime, nullable=False)  # UTC-naive

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata_json or "{}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "actor_user_id": self.actor_user_id,
            "action": self.action,
            "status": self.status,
            "details": self.details,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.metadata_dict,
            "occurred_at": to_utc_z(self.occurred_at),
        }
