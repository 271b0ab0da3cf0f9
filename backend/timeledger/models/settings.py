from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CompanySettings(db.Model):
    """
    Per-company policy overrides.

    Every column is nullable: NULL means "use the application default from
    Config". policy_service.load_policy() merges the two layers.
    """
    __tablename__ = "company_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, unique=True)

    # Schedule
    expected_start = db.Column(db.String(5), nullable=True)
    expected_end = db.Column(db.String(5), nullable=True)
    tolerance_minutes = db.Column(db.Integer, nullable=True)
    night_start = db.Column(db.String(5), nullable=True)
    night_end = db.Column(db.String(5), nullable=True)
    standard_daily_minutes = db.Column(db.Integer, nullable=True)
    expected_break_minutes = db.Column(db.Integer, nullable=True)
    work_weekdays = db.Column(db.String(16), nullable=True)  # "0,1,2,3,4"
    absence_counts_as_debit = db.Column(db.Boolean, nullable=True)

    # Integrity guard
    duplicate_cooldown_minutes = db.Column(db.Integer, nullable=True)
    max_punches_per_day = db.Column(db.Integer, nullable=True)

    # Adjustment workflow
    max_adjustment_days = db.Column(db.Integer, nullable=True)
    min_description_length = db.Column(db.Integer, nullable=True)
    require_evidence = db.Column(db.Boolean, nullable=True)
    compliance_mode = db.Column(db.Boolean, nullable=True)
    allowed_reasons = db.Column(db.Text, nullable=True)  # comma-separated reason codes

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    company = db.relationship("Company", backref=db.backref("settings", uselist=False, lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    OVERRIDABLE_FIELDS = (
        "expected_start", "expected_end", "tolerance_minutes", "night_start", "night_end",
        "standard_daily_minutes", "expected_break_minutes", "work_weekdays",
        "absence_counts_as_debit", "duplicate_cooldown_minutes", "max_punches_per_day",
        "max_adjustment_days", "min_description_length", "require_evidence",
        "compliance_mode", "allowed_reasons",
    )

    def to_dict(self) -> dict:
        data = {field: getattr(self, field) for field in self.OVERRIDABLE_FIELDS}
        data.update({
            "id": self.id,
            "company_id": self.company_id,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        })
        return data
