"""Time ledger core schema: companies, employees, punch ledger, adjustments, audit, exports

Revision ID: 20261018_time_ledger_core
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_time_ledger_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("tax_id", sa.String(length=14), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_companies"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_companies_tax_id", "companies", ["tax_id"], unique=True)
    op.create_index("ix_companies_is_active", "companies", ["is_active"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("tax_id", sa.String(length=11), nullable=True),
        sa.Column("registration", sa.String(length=32), nullable=True),
        sa.Column("expected_start", sa.String(length=5), nullable=True),
        sa.Column("expected_end", sa.String(length=5), nullable=True),
        sa.Column("punch_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_employees_company_id_companies"),
        sa.PrimaryKeyConstraint("id", name="pk_employees"),
        sa.UniqueConstraint("company_id", "registration", name="uq_employees_company_registration"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_employees_company_id", "employees", ["company_id"], unique=False)
    op.create_index("ix_employees_company_active", "employees", ["company_id", "is_active"], unique=False)

    op.create_table(
        "company_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("expected_start", sa.String(length=5), nullable=True),
        sa.Column("expected_end", sa.String(length=5), nullable=True),
        sa.Column("tolerance_minutes", sa.Integer(), nullable=True),
        sa.Column("night_start", sa.String(length=5), nullable=True),
        sa.Column("night_end", sa.String(length=5), nullable=True),
        sa.Column("standard_daily_minutes", sa.Integer(), nullable=True),
        sa.Column("expected_break_minutes", sa.Integer(), nullable=True),
        sa.Column("work_weekdays", sa.String(length=16), nullable=True),
        sa.Column("absence_counts_as_debit", sa.Boolean(), nullable=True),
        sa.Column("duplicate_cooldown_minutes", sa.Integer(), nullable=True),
        sa.Column("max_punches_per_day", sa.Integer(), nullable=True),
        sa.Column("max_adjustment_days", sa.Integer(), nullable=True),
        sa.Column("min_description_length", sa.Integer(), nullable=True),
        sa.Column("require_evidence", sa.Boolean(), nullable=True),
        sa.Column("compliance_mode", sa.Boolean(), nullable=True),
        sa.Column("allowed_reasons", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_company_settings_company_id_companies"),
        sa.PrimaryKeyConstraint("id", name="pk_company_settings"),
        sa.UniqueConstraint("company_id", name="uq_company_settings_company_id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "punch_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("punch_type", sa.String(length=16), nullable=False),
        sa.Column("punched_at", sa.DateTime(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("device_id", sa.String(length=128), nullable=True),
        sa.Column("device_info", sa.String(length=255), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("photo_ref", sa.String(length=512), nullable=True),
        sa.Column("nfc_tag", sa.String(length=128), nullable=True),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("employee_sequence", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="PUNCH"),
        sa.Column("original_record_id", sa.Integer(), nullable=True),
        sa.Column("adjustment_id", sa.Integer(), nullable=True),
        sa.Column("recorded_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_punch_records_company_id_companies"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_punch_records_employee_id_employees"),
        sa.ForeignKeyConstraint(["original_record_id"], ["punch_records.id"], name="fk_punch_records_original_record_id_punch_records"),
        sa.PrimaryKeyConstraint("id", name="pk_punch_records"),
        sa.UniqueConstraint("fingerprint", name="uq_punch_records_fingerprint"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_punch_records_employee_time", "punch_records", ["employee_id", "punched_at"], unique=False)
    op.create_index("ix_punch_records_company_time", "punch_records", ["company_id", "punched_at"], unique=False)
    op.create_index("ix_punch_records_original", "punch_records", ["original_record_id"], unique=False)
    op.create_index("ix_punch_records_adjustment_id", "punch_records", ["adjustment_id"], unique=False)

    op.create_table(
        "adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("original_record_id", sa.Integer(), nullable=False),
        sa.Column("proposed_type", sa.String(length=16), nullable=True),
        sa.Column("proposed_punched_at", sa.DateTime(), nullable=True),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("evidence_ref", sa.String(length=512), nullable=True),
        sa.Column("changes_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("requested_by_user_id", sa.Integer(), nullable=False),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("decided_by_user_id", sa.Integer(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("derived_record_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_adjustments_company_id_companies"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_adjustments_employee_id_employees"),
        sa.ForeignKeyConstraint(["original_record_id"], ["punch_records.id"], name="fk_adjustments_original_record_id_punch_records"),
        sa.ForeignKeyConstraint(["derived_record_id"], ["punch_records.id"], name="fk_adjustments_derived_record_id_punch_records"),
        sa.PrimaryKeyConstraint("id", name="pk_adjustments"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_adjustments_company_status", "adjustments", ["company_id", "status"], unique=False)
    op.create_index("ix_adjustments_original", "adjustments", ["original_record_id"], unique=False)
    op.create_index("ix_adjustments_status", "adjustments", ["status"], unique=False)

    op.create_table(
        "audit_log_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(length=32), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_audit_log_entries_company_id_companies"),
        sa.PrimaryKeyConstraint("id", name="pk_audit_log_entries"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_log_company_occurred", "audit_log_entries", ["company_id", "occurred_at"], unique=False)
    op.create_index("ix_audit_log_entity", "audit_log_entries", ["entity_type", "entity_id"], unique=False)
    op.create_index("ix_audit_log_entries_action", "audit_log_entries", ["action"], unique=False)

    op.create_table(
        "compliance_exports",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("file_name", sa.String(length=128), nullable=False),
        sa.Column("format_version", sa.String(length=8), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=False),
        sa.Column("checksum", sa.String(length=16), nullable=False),
        sa.Column("counts_by_type_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("content", sa.LargeBinary(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="COMPLETED"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_compliance_exports_company_id_companies"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_compliance_exports_employee_id_employees"),
        sa.PrimaryKeyConstraint("id", name="pk_compliance_exports"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_compliance_exports_company_created", "compliance_exports", ["company_id", "created_at"], unique=False)


def downgrade():
    op.drop_index("ix_compliance_exports_company_created", table_name="compliance_exports")
    op.drop_table("compliance_exports")
    op.drop_index("ix_audit_log_entries_action", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_entity", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_company_occurred", table_name="audit_log_entries")
    op.drop_table("audit_log_entries")
    op.drop_index("ix_adjustments_status", table_name="adjustments")
    op.drop_index("ix_adjustments_original", table_name="adjustments")
    op.drop_index("ix_adjustments_company_status", table_name="adjustments")
    op.drop_table("adjustments")
    op.drop_index("ix_punch_records_adjustment_id", table_name="punch_records")
    op.drop_index("ix_punch_records_original", table_name="punch_records")
    op.drop_index("ix_punch_records_company_time", table_name="punch_records")
    op.drop_index("ix_punch_records_employee_time", table_name="punch_records")
    op.drop_table("punch_records")
    op.drop_table("company_settings")
    op.drop_index("ix_employees_company_active", table_name="employees")
    op.drop_index("ix_employees_company_id", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_companies_is_active", table_name="companies")
    op.drop_index("ix_companies_tax_id", table_name="companies")
    op.drop_table("companies")
