# Overview: Flask CLI command groups for bootstrap, ledger checks and compliance exports.

# backend/timeledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (development; production uses `flask db upgrade`).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Companies / employees:
# - python -m flask companies create --name "Acme" --tax-id 12345678000199 --timezone America/Sao_Paulo
# - python -m flask companies list
# - python -m flask employees create --company-id 1 --name "Ana" --tax-id 12345678901 --registration 0001
# - python -m flask employees list --company-id 1
#
# Ledger:
# - python -m flask ledger verify --company-id 1 [--employee-id 3]
#   Recompute every fingerprint; exits non-zero on any mismatch.
#
# Compliance:
# - python -m flask compliance export --company-id 1 --from 2024-03-01 --to 2024-03-31 --out ./out
# - python -m flask compliance verify ./out/AFD_12345678_01032024_31032024.txt

import os

import click
from flask.cli import with_appcontext

from .errors import TimeLedgerError
from .extensions import db
from .models import Company, Employee
from .services import compliance_export_service, integrity_service, tenancy_service
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the punch ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('companies')
def companies_group():
    """Company management."""


@companies_group.command('create')
@click.option('--name', required=True)
@click.option('--tax-id', default=None, help='14-digit company tax id')
@click.option('--timezone', 'tz', default='UTC', show_default=True)
@with_appcontext
def create_company_cli(name, tax_id, tz):
    try:
        company = tenancy_service.create_company(name=name, tax_id=tax_id, timezone=tz)
    except TimeLedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created company: {company.name} (ID: {company.id})")


@companies_group.command('list')
@with_appcontext
def list_companies_cli():
    companies = db.session.query(Company).order_by(Company.id).all()
    if not companies:
        click.echo("No companies found.")
        return
    click.echo(f"{'ID':<5} {'Name':<40} {'Tax id':<16} {'Timezone':<24} {'Active'}")
    for c in companies:
        click.echo(f"{c.id:<5} {c.name:<40} {c.tax_id or '-':<16} {c.timezone:<24} {'yes' if c.is_active else 'no'}")


@click.group('employees')
def employees_group():
    """Employee management."""


@employees_group.command('create')
@click.option('--company-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--tax-id', default=None, help='11-digit worker tax id')
@click.option('--registration', default=None)
@click.option('--expected-start', default=None, help='HH:MM override')
@click.option('--expected-end', default=None, help='HH:MM override')
@with_appcontext
def create_employee_cli(company_id, name, tax_id, registration, expected_start, expected_end):
    try:
        employee = tenancy_service.create_employee(
            company_id=company_id,
            name=name,
            tax_id=tax_id,
            registration=registration,
            expected_start=expected_start,
            expected_end=expected_end,
        )
    except TimeLedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created employee: {employee.name} (ID: {employee.id})")


@employees_group.command('list')
@click.option('--company-id', type=int, required=True)
@with_appcontext
def list_employees_cli(company_id):
    employees = db.session.query(Employee).filter_by(company_id=company_id).order_by(Employee.id).all()
    if not employees:
        click.echo("No employees found.")
        return
    click.echo(f"{'ID':<5} {'Name':<40} {'Tax id':<13} {'Registration':<14} {'Active'}")
    for e in employees:
        click.echo(
            f"{e.id:<5} {e.name:<40} {e.tax_id or '-':<13} {e.registration or '-':<14} "
            f"{'yes' if e.is_active else 'no'}"
        )


@click.group('ledger')
def ledger_group():
    """Punch ledger integrity commands."""


@ledger_group.command('verify')
@click.option('--company-id', type=int, required=True)
@click.option('--employee-id', type=int, default=None)
@with_appcontext
def verify_ledger_cli(company_id, employee_id):
    checked, mismatches = integrity_service.scan_ledger(company_id=company_id, employee_id=employee_id)
    if not mismatches:
        click.echo(f"PASS {checked} records verified")
        return
    for m in mismatches:
        click.echo(f"FAIL record {m['record_id']}: {m['reason']}")
    try:
        integrity_service.verify_ledger(company_id=company_id, employee_id=employee_id)
    except TimeLedgerError as e:
        raise click.ClickException(str(e))


@click.group('compliance')
def compliance_group():
    """Compliance (AFD) export commands."""


@compliance_group.command('export')
@click.option('--company-id', type=int, required=True)
@click.option('--from', 'start', required=True, help='YYYY-MM-DD')
@click.option('--to', 'end', required=True, help='YYYY-MM-DD')
@click.option('--employee-id', type=int, default=None)
@click.option('--out', 'out_dir', type=click.Path(file_okay=False), default='.', show_default=True)
@with_appcontext
def export_cli(company_id, start, end, employee_id, out_dir):
    try:
        export = compliance_export_service.export_compliance(
            company_id=company_id,
            start=parse_iso_date(start),
            end=parse_iso_date(end),
            employee_id=employee_id,
        )
    except (TimeLedgerError, ValueError) as e:
        raise click.ClickException(str(e))

    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, export.file_name)
    with open(path, "wb") as fh:
        fh.write(export.content)
    click.echo(f"PASS {path}: {export.record_count} records, checksum {export.checksum}")


@compliance_group.command('verify')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--encoding', default='iso-8859-1', show_default=True)
def verify_export_cli(path, encoding):
    with open(path, "rb") as fh:
        content = fh.read()
    try:
        parsed = compliance_export_service.verify_export(content, encoding)
    except TimeLedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {parsed.record_count} records, checksum {parsed.checksum}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(employees_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(compliance_group)
