from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Company(db.Model):
    """
    Employer: the tenant boundary for punches, policies and exports.

    DESIGN:
    - tax_id is stored digits-only; it is printed in compliance exports
    - timezone governs day grouping, schedules and export wall-clock fields
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    tax_id = db.Column(db.String(14), nullable=True, unique=True, index=True)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "timezone": self.timezone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Employee(db.Model):
    """
    Employee of a company.

    CONCURRENCY: punch_sequence is bumped with a single UPDATE at the start of
    every punch submission. The row lock it takes serializes submissions for the
    same employee so the duplicate guard's check-then-insert is atomic.
    """
    __tablename__ = "employees"
    __table_args__ = (
        db.UniqueConstraint("company_id", "registration", name="uq_employees_company_registration"),
        db.Index("ix_employees_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    tax_id = db.Column(db.String(11), nullable=True)  # PIS / worker tax number, digits only
    registration = db.Column(db.String(32), nullable=True)

    # Per-employee schedule overrides ("HH:MM"); fall back to company policy
    expected_start = db.Column(db.String(5), nullable=True)
    expected_end = db.Column(db.String(5), nullable=True)

    punch_sequence = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("employees", lazy=True))

    def __repr__(self) -> str:
        return f"<Employee id={self.id} company_id={self.company_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "tax_id": self.tax_id,
            "registration": self.registration,
            "expected_start": self.expected_start,
            "expected_end": self.expected_end,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
