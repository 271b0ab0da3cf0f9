# Overview: Pytest coverage for the fixed-format compliance (AFD) export.

import hashlib
import json

import pytest

from timeledger.errors import ComplianceExportError, IntegrityMismatchError
from timeledger.extensions import db
from timeledger.models import AuditLogEntry, ComplianceExport, Employee, PunchRecord
from timeledger.services import compliance_export_service as exports
from timeledger.services.adjustment_service import decide_adjustment, request_adjustment
from timeledger.services.integrity_service import submit_punch

from conftest import NOW, WORK_DAY, at

NAME_FIELD = "Acme Industria Ltda".ljust(150)


def seq(n):
    return str(n).rjust(18, "0")


@pytest.fixture
def workday(db_session, company, employee):
    for punch_type, hhmm in (("ENTRY", "08:00"), ("EXIT", "17:00")):
        submit_punch(company_id=company.id, employee_id=employee.id, punch_type=punch_type,
                     punched_at=at(hhmm), now=NOW)


def export_day(company, **kwargs):
    return exports.export_compliance(
        company_id=company.id, start=WORK_DAY.date(), end=WORK_DAY.date(),
        requested_by_user_id=5, now=NOW, **kwargs,
    )


class TestFileLayout:

    def test_exact_bytes(self, workday, company):
        export = export_day(company)

        checksum = hashlib.md5((seq(1) + seq(2)).encode("ascii")).hexdigest()[:16]
        expected = "\r\n".join([
            f"1|12345678000195|{NAME_FIELD}|05032024|1200|003",
            f"2|12345678901|04032024|0800|{seq(1)}",
            f"3|12345678901|04032024|1700|{seq(2)}",
            f"9|12345678000195|05032024|1200|000000002|{checksum}",
        ])
        assert export.content == expected.encode("iso-8859-1")
        assert export.checksum == checksum
        assert export.record_count == 2
        assert not export.content.endswith(b"\r\n")

    def test_file_name(self, workday, company, employee):
        assert export_day(company).file_name == "AFD_12345678_04032024_04032024.txt"
        assert export_day(company, employee_id=employee.id).file_name == "AFD_12345678_04032024_04032024_E001.txt"

    def test_empty_range_still_has_header_and_trailer(self, db_session, company):
        export = export_day(company)
        lines = export.content.decode("iso-8859-1").split("\r\n")
        assert len(lines) == 2
        assert lines[1].endswith("|000000000|" + hashlib.md5(b"").hexdigest()[:16])

    def test_local_wall_clock(self, db_session, company, employee):
        company.timezone = "America/Sao_Paulo"
        db_session.commit()
        submit_punch(company_id=company.id, employee_id=employee.id, punch_type="ENTRY",
                     punched_at=at("11:00"), now=NOW)
        body = export_day(company).content.decode("iso-8859-1").split("\r\n")[1]
        assert body == f"2|12345678901|04032024|0800|{seq(1)}"

    def test_approved_adjustment_exported_as_type_6(self, workday, company, db_session):
        entry = db_session.query(PunchRecord).filter_by(punch_type="ENTRY").one()
        adjustment = request_adjustment(
            company_id=company.id, original_record_id=entry.id, proposed_fields={"timestamp": at("07:55")},
            reason="TECHNICAL_FAILURE", description="Terminal clock was behind", evidence_ref="it/88",
            requested_by_user_id=5, now=NOW,
        )
        decide_adjustment(adjustment_id=adjustment.id, company_id=company.id,
                          approver_user_id=6, decision="APPROVED", now=NOW)

        export = export_day(company)
        body = export.content.decode("iso-8859-1").split("\r\n")[1:-1]
        assert [line.split("|")[0] for line in body] == ["6", "2", "3"]
        assert body[0] == f"6|12345678901|04032024|0755|{seq(1)}"
        assert json.loads(export.counts_by_type_json) == {"2": 1, "3": 1, "6": 1}


class TestVerification:

    def test_reparse_reproduces_checksum(self, workday, company):
        export = export_day(company)
        parsed = exports.verify_export(export.content)
        assert parsed.checksum == export.checksum
        assert parsed.record_count == 2
        assert parsed.company_name == "Acme Industria Ltda"
        assert [r["sequence"] for r in parsed.records] == [seq(1), seq(2)]

    def test_checksum_mismatch(self, workday, company):
        content = export_day(company).content
        tampered = content[:-16] + b"0" * 16
        with pytest.raises(ComplianceExportError, match="checksum mismatch"):
            exports.verify_export(tampered)

    def test_sequence_gap(self, workday, company):
        content = export_day(company).content.replace(seq(2).encode(), seq(3).encode())
        with pytest.raises(ComplianceExportError, match="out of order"):
            exports.verify_export(content)

    def test_dropped_line(self, workday, company):
        lines = export_day(company).content.split(b"\r\n")
        with pytest.raises(ComplianceExportError, match="declares 2 records"):
            exports.verify_export(b"\r\n".join([lines[0], lines[1], lines[3]]))

    def test_bare_lf_rejected(self, workday, company):
        content = export_day(company).content.replace(b"\r\n", b"\n")
        with pytest.raises(ComplianceExportError, match="CR\\+LF"):
            exports.verify_export(content)

    def test_unpadded_name_rejected(self, workday, company):
        content = export_day(company).content.replace(NAME_FIELD.encode(), b"Acme Industria Ltda")
        with pytest.raises(ComplianceExportError, match="padded"):
            exports.verify_export(content)

    def test_unknown_record_code(self, workday, company):
        lines = export_day(company).content.split(b"\r\n")
        lines[1] = b"8" + lines[1][1:]
        with pytest.raises(ComplianceExportError, match="malformed record"):
            exports.verify_export(b"\r\n".join(lines))


class TestStrictness:

    def test_employee_without_tax_id_fails_and_is_audited(self, db_session, company):
        worker = Employee(company_id=company.id, name="Sem Documento")
        db_session.add(worker)
        db_session.commit()
        submit_punch(company_id=company.id, employee_id=worker.id, punch_type="ENTRY",
                     punched_at=at("08:00"), now=NOW)

        with pytest.raises(ComplianceExportError, match="without tax id"):
            export_day(company)

        assert db_session.query(ComplianceExport).count() == 0
        audit = db_session.query(AuditLogEntry).filter_by(action="COMPLIANCE_EXPORT").one()
        assert audit.status == "FAILURE"

    def test_company_name_outside_encoding(self, workday, company, db_session):
        company.name = "Acme 東京"
        db_session.commit()
        with pytest.raises(ComplianceExportError, match="not representable"):
            export_day(company)

    def test_tampered_ledger_blocks_export(self, workday, company, db_session):
        table = PunchRecord.__table__
        db.session.execute(table.update().where(table.c.punch_type == "EXIT").values(punch_type="ENTRY"))
        db.session.commit()
        db.session.expire_all()

        with pytest.raises(IntegrityMismatchError):
            export_day(company)
        assert db_session.query(ComplianceExport).count() == 0


class TestPersistence:

    def test_export_audited_and_counted(self, workday, company, db_session):
        export = export_day(company)
        audit = db_session.query(AuditLogEntry).filter_by(action="COMPLIANCE_EXPORT").one()
        assert audit.status == "SUCCESS"
        assert audit.entity_id == export.id

        stats = exports.export_stats(company_id=company.id)
        assert stats == {
            "total": 1,
            "completed": 1,
            "failed": 0,
            "total_records": 2,
            "last_export_at": "2024-03-05T12:00:00Z",
        }

    def test_list_is_company_scoped(self, workday, company, other_company):
        export_day(company)
        assert len(exports.list_exports(company_id=company.id)) == 1
        assert exports.list_exports(company_id=other_company.id) == []
