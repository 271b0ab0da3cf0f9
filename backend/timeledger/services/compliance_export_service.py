# Overview: Service-layer generation and verification of the fixed-format compliance (AFD) file.

"""
Compliance Export

WHY: Labor inspectors read this file with third-party tooling. The contract is
the exact byte layout, not the information content.

FORMAT (fields joined by "|", lines joined by CR+LF, no trailing separator):
    header   1 | company tax id (14, zero-left) | company name (150, space-right)
               | DDMMYYYY | HHMM | format version
    body     code 2..7 | employee tax id (11, zero-left) | DDMMYYYY | HHMM
               | sequence number (18, zero-left, 1..n)
    trailer  9 | company tax id | DDMMYYYY | HHMM | record count (9, zero-left)
               | md5(concatenated sequence numbers)[:16]

Dates and times are wall-clock values in the company timezone. The file is
encoded with the export policy's encoding (ISO-8859-1 by default).

INVARIANTS:
- Any structural or checksum problem raises ComplianceExportError; nothing is
  repaired or skipped.
- The ledger range is integrity-verified before it is serialized.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Sequence

from ..errors import ComplianceExportError, NotFoundError, ValidationError
from ..extensions import db
from ..models import AuditLogEntry, Company, ComplianceExport, Employee, SOURCE_ADJUSTMENT
from ..policy import CompanyPolicy
from ..time_utils import local_range_to_utc, to_local, to_utc_z, utcnow
from . import notification_service
from .audit_service import record_audit_event
from .integrity_service import verify_ledger
from .ledger_service import list_punches
from .policy_service import load_policy

logger = logging.getLogger(__name__)

SEPARATOR = "|"
LINE_SEPARATOR = "\r\n"

HEADER_CODE = "1"
TRAILER_CODE = "9"
RECORD_TYPE_CODES = {
    "ENTRY": "2",
    "EXIT": "3",
    "BREAK_START": "4",
    "BREAK_END": "5",
}
ADJUSTMENT_CODE = "6"
VERIFICATION_CODE = "7"
BODY_CODES = frozenset(RECORD_TYPE_CODES.values()) | {ADJUSTMENT_CODE, VERIFICATION_CODE}

COMPANY_TAX_WIDTH = 14
EMPLOYEE_TAX_WIDTH = 11
NAME_WIDTH = 150
SEQUENCE_WIDTH = 18
COUNT_WIDTH = 9
CHECKSUM_LENGTH = 16

_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ExportEntry:
    record_code: str
    employee_tax_id: str
    local_time: datetime
    punch_type: str | None = None


@dataclass
class ParsedExport:
    company_tax_id: str
    company_name: str
    generated_at: datetime
    format_version: str
    records: list[dict] = field(default_factory=list)
    record_count: int = 0
    checksum: str = ""

    def to_dict(self) -> dict:
        return {
            "company_tax_id": self.company_tax_id,
            "company_name": self.company_name,
            "generated_at": self.generated_at.strftime("%Y-%m-%dT%H:%M"),
            "format_version": self.format_version,
            "record_count": self.record_count,
            "checksum": self.checksum,
        }


# ---------------------------------------------------------------------------
# Serialization (pure)
# ---------------------------------------------------------------------------

def _digits(value: str | None, width: int, label: str) -> str:
    value = re.sub(r"\D", "", value or "")
    if not value:
        raise ComplianceExportError(f"{label} is missing")
    if len(value) > width:
        raise ComplianceExportError(f"{label} has more than {width} digits")
    return value.rjust(width, "0")


def format_sequence(n: int) -> str:
    return str(n).rjust(SEQUENCE_WIDTH, "0")


def sequence_checksum(sequences: Iterable[str]) -> str:
    return hashlib.md5("".join(sequences).encode("ascii")).hexdigest()[:CHECKSUM_LENGTH]


def build_export_text(
    *,
    company_tax_id: str,
    company_name: str,
    generated_at: datetime,
    format_version: str,
    entries: Sequence[ExportEntry],
) -> tuple[str, str]:
    """Returns (file text, checksum). entries must already be in export order."""
    tax = _digits(company_tax_id, COMPANY_TAX_WIDTH, "company tax id")
    if len(company_name) > NAME_WIDTH:
        raise ComplianceExportError(f"company name exceeds {NAME_WIDTH} characters")
    if SEPARATOR in company_name:
        raise ComplianceExportError(f"company name must not contain '{SEPARATOR}'")

    gen_date, gen_time = generated_at.strftime("%d%m%Y"), generated_at.strftime("%H%M")
    lines = [SEPARATOR.join([
        HEADER_CODE, tax, company_name.ljust(NAME_WIDTH), gen_date, gen_time, format_version,
    ])]

    sequences = []
    for n, entry in enumerate(entries, start=1):
        if entry.record_code not in BODY_CODES:
            raise ComplianceExportError(f"unknown record type code {entry.record_code!r}")
        seq = format_sequence(n)
        sequences.append(seq)
        lines.append(SEPARATOR.join([
            entry.record_code,
            _digits(entry.employee_tax_id, EMPLOYEE_TAX_WIDTH, "employee tax id"),
            entry.local_time.strftime("%d%m%Y"),
            entry.local_time.strftime("%H%M"),
            seq,
        ]))

    checksum = sequence_checksum(sequences)
    lines.append(SEPARATOR.join([
        TRAILER_CODE, tax, gen_date, gen_time, str(len(sequences)).rjust(COUNT_WIDTH, "0"), checksum,
    ]))
    return LINE_SEPARATOR.join(lines), checksum


def export_file_name(*, company_tax_id: str, start: date, end: date, registration: str | None = None) -> str:
    tax = re.sub(r"\D", "", company_tax_id or "")
    suffix = f"_{registration}" if registration else ""
    return f"AFD_{tax[:8]}_{start:%d%m%Y}_{end:%d%m%Y}{suffix}.txt"


# ---------------------------------------------------------------------------
# Parsing / verification (pure)
# ---------------------------------------------------------------------------

def _field(value: str, width: int, label: str, line_no: int) -> str:
    if len(value) != width or not _DIGITS.match(value):
        raise ComplianceExportError(f"line {line_no}: {label} must be {width} digits")
    return value


def _stamp(d: str, t: str, line_no: int) -> datetime:
    try:
        return datetime.strptime(d + t, "%d%m%Y%H%M")
    except ValueError:
        raise ComplianceExportError(f"line {line_no}: invalid date/time {d} {t}")


def parse_export(content: bytes | str, encoding: str = "iso-8859-1") -> ParsedExport:
    """Strict structural parse; raises ComplianceExportError on any deviation."""
    if isinstance(content, bytes):
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError:
            raise ComplianceExportError(f"file is not valid {encoding}")
    else:
        text = content

    lines = text.split(LINE_SEPARATOR)
    for n, line in enumerate(lines, start=1):
        if "\r" in line or "\n" in line:
            raise ComplianceExportError(f"line {n}: lines must be separated by CR+LF")
    if len(lines) < 2:
        raise ComplianceExportError("file must contain a header and a trailer")

    header = lines[0].split(SEPARATOR)
    if len(header) != 6 or header[0] != HEADER_CODE:
        raise ComplianceExportError("line 1: malformed header")
    if len(header[2]) != NAME_WIDTH:
        raise ComplianceExportError(f"line 1: company name must be padded to {NAME_WIDTH} characters")
    parsed = ParsedExport(
        company_tax_id=_field(header[1], COMPANY_TAX_WIDTH, "company tax id", 1),
        company_name=header[2].rstrip(" "),
        generated_at=_stamp(_field(header[3], 8, "date", 1), _field(header[4], 4, "time", 1), 1),
        format_version=header[5],
    )

    for n, line in enumerate(lines[1:-1], start=2):
        parts = line.split(SEPARATOR)
        if len(parts) != 5 or parts[0] not in BODY_CODES:
            raise ComplianceExportError(f"line {n}: malformed record")
        parsed.records.append({
            "record_code": parts[0],
            "employee_tax_id": _field(parts[1], EMPLOYEE_TAX_WIDTH, "employee tax id", n),
            "local_time": _stamp(_field(parts[2], 8, "date", n), _field(parts[3], 4, "time", n), n),
            "sequence": _field(parts[4], SEQUENCE_WIDTH, "sequence number", n),
        })

    last = len(lines)
    trailer = lines[-1].split(SEPARATOR)
    if len(trailer) != 6 or trailer[0] != TRAILER_CODE:
        raise ComplianceExportError(f"line {last}: malformed trailer")
    if _field(trailer[1], COMPANY_TAX_WIDTH, "company tax id", last) != parsed.company_tax_id:
        raise ComplianceExportError(f"line {last}: trailer company tax id differs from header")
    _stamp(_field(trailer[2], 8, "date", last), _field(trailer[3], 4, "time", last), last)
    parsed.record_count = int(_field(trailer[4], COUNT_WIDTH, "record count", last))
    parsed.checksum = trailer[5]
    return parsed


def verify_export(content: bytes | str, encoding: str = "iso-8859-1") -> ParsedExport:
    """Parse and recompute count, sequence contiguity and checksum."""
    parsed = parse_export(content, encoding)
    sequences = [r["sequence"] for r in parsed.records]

    if parsed.record_count != len(sequences):
        raise ComplianceExportError(
            f"trailer declares {parsed.record_count} records, file contains {len(sequences)}"
        )
    for expected, seq in enumerate(sequences, start=1):
        if int(seq) != expected:
            raise ComplianceExportError(f"sequence number {seq} out of order; expected {expected}")
    recomputed = sequence_checksum(sequences)
    if recomputed != parsed.checksum:
        raise ComplianceExportError(
            f"checksum mismatch: trailer has {parsed.checksum}, recomputed {recomputed}"
        )
    return parsed


# ---------------------------------------------------------------------------
# Ledger-backed export
# ---------------------------------------------------------------------------

def _collect_entries(*, company: Company, employees: dict[int, Employee], records, tz: str) -> list[ExportEntry]:
    missing = sorted({e.id for e in employees.values() if not e.tax_id})
    if missing:
        raise ComplianceExportError(
            f"employee(s) without tax id cannot be exported: {', '.join(str(i) for i in missing)}"
        )
    entries = []
    for record in records:
        code = ADJUSTMENT_CODE if record.source == SOURCE_ADJUSTMENT else RECORD_TYPE_CODES[record.punch_type]
        entries.append(ExportEntry(
            record_code=code,
            employee_tax_id=employees[record.employee_id].tax_id,
            local_time=to_local(record.punched_at, tz),
            punch_type=record.punch_type,
        ))
    return entries


def export_compliance(
    *,
    company_id: int,
    start: date,
    end: date,
    employee_id: int | None = None,
    requested_by_user_id: int | None = None,
    policy: CompanyPolicy | None = None,
    now: datetime | None = None,
) -> ComplianceExport:
    """Generate, self-verify, persist and audit one compliance file."""
    if start is None or end is None or end < start:
        raise ValidationError("a valid start/end date range is required")

    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company not found")
    employee = None
    if employee_id is not None:
        employee = db.session.get(Employee, employee_id)
        if employee is None or employee.company_id != company_id:
            raise NotFoundError("Employee not found")

    if policy is None:
        policy = load_policy(company_id=company_id)
    now = now or utcnow()
    tz = company.timezone or policy.schedule.timezone
    utc_start, utc_end = local_range_to_utc(start, end, tz)

    verify_ledger(
        company_id=company_id, employee_id=employee_id, start=utc_start, end=utc_end,
        actor_user_id=requested_by_user_id,
    )

    records = list_punches(company_id=company_id, employee_id=employee_id, start=utc_start, end=utc_end)
    employee_ids = {r.employee_id for r in records}
    employees = {
        e.id: e for e in db.session.query(Employee).filter(Employee.id.in_(employee_ids)).all()
    } if employee_ids else {}

    try:
        entries = _collect_entries(company=company, employees=employees, records=records, tz=tz)
        text, checksum = build_export_text(
            company_tax_id=company.tax_id,
            company_name=company.name,
            generated_at=to_local(now, tz),
            format_version=policy.export.format_version,
            entries=entries,
        )
        try:
            content = text.encode(policy.export.encoding)
        except UnicodeEncodeError:
            raise ComplianceExportError(f"file contains characters not representable in {policy.export.encoding}")
        verify_export(content, policy.export.encoding)
    except ComplianceExportError as exc:
        db.session.rollback()
        record_audit_event(
            action="COMPLIANCE_EXPORT",
            status="FAILURE",
            company_id=company_id,
            actor_user_id=requested_by_user_id,
            details=str(exc),
            entity_type="compliance_export",
            metadata={"start": start.isoformat(), "end": end.isoformat(), "employee_id": employee_id},
            occurred_at=now,
        )
        db.session.commit()
        logger.error("compliance export failed company=%s: %s", company_id, exc)
        raise

    counts_by_type = dict(sorted(Counter(e.record_code for e in entries).items()))
    export = ComplianceExport(
        company_id=company_id,
        employee_id=employee_id,
        start_date=start,
        end_date=end,
        file_name=export_file_name(
            company_tax_id=company.tax_id, start=start, end=end,
            registration=employee.registration if employee else None,
        ),
        format_version=policy.export.format_version,
        record_count=len(entries),
        checksum=checksum,
        counts_by_type_json=json.dumps(counts_by_type),
        content=content,
        status="COMPLETED",
        created_by_user_id=requested_by_user_id,
        created_at=now,
    )
    db.session.add(export)
    db.session.flush()

    record_audit_event(
        action="COMPLIANCE_EXPORT",
        status="SUCCESS",
        company_id=company_id,
        actor_user_id=requested_by_user_id,
        details=f"{export.file_name}: {export.record_count} records",
        entity_type="compliance_export",
        entity_id=export.id,
        metadata={"checksum": checksum, "counts_by_type": counts_by_type, "employee_id": employee_id},
        occurred_at=now,
    )
    db.session.commit()
    logger.info("compliance export %s generated (%s records)", export.file_name, export.record_count)

    notification_service.notify(
        "compliance.exported",
        {"export_id": export.id, "company_id": company_id, "file_name": export.file_name,
         "record_count": export.record_count},
    )
    return export


def get_export(*, export_id: int, company_id: int) -> ComplianceExport:
    export = db.session.get(ComplianceExport, export_id)
    if export is None or export.company_id != company_id:
        raise NotFoundError("Export not found")
    return export


def list_exports(*, company_id: int, limit: int = 50) -> list[ComplianceExport]:
    return (
        db.session.query(ComplianceExport)
        .filter(ComplianceExport.company_id == company_id)
        .order_by(ComplianceExport.created_at.desc(), ComplianceExport.id.desc())
        .limit(limit)
        .all()
    )


def export_stats(*, company_id: int) -> dict:
    exports = db.session.query(ComplianceExport).filter(ComplianceExport.company_id == company_id).all()
    failed = (
        db.session.query(AuditLogEntry)
        .filter_by(company_id=company_id, action="COMPLIANCE_EXPORT", status="FAILURE")
        .count()
    )
    last = max((e.created_at for e in exports), default=None)
    return {
        "total": len(exports) + failed,
        "completed": len(exports),
        "failed": failed,
        "total_records": sum(e.record_count for e in exports),
        "last_export_at": to_utc_z(last),
    }
