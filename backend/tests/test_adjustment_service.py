# Overview: Pytest coverage for the adjustment request/decision workflow.

"""
Adjustment Workflow Tests

Covers request validation (every violation reported), the adjustment window
boundary, the PENDING -> APPROVED/REJECTED state machine, derived ledger
entries with chained fingerprints, and audit/notification side effects.
"""

import json
from datetime import timedelta

import pytest

from timeledger.errors import AdjustmentWindowExpiredError, ConflictError, NotFoundError, ValidationError
from timeledger.models import Adjustment, AuditLogEntry, PunchRecord
from timeledger.services import adjustment_service, integrity_service, ledger_service, notification_service
from timeledger.services.adjustment_service import decide_adjustment, next_status, request_adjustment
from timeledger.services.integrity_service import submit_punch

from conftest import NOW, WORK_DAY, at

VALID = dict(
    reason="FORGOT_TO_REGISTER",
    description="Badge reader was offline at the entrance",
    evidence_ref="tickets/4711.pdf",
)


@pytest.fixture
def entry(db_session, company, employee):
    return submit_punch(company_id=company.id, employee_id=employee.id, punch_type="ENTRY",
                        punched_at=at("08:00"), now=NOW)


@pytest.fixture
def pending(entry, company):
    return request_adjustment(
        company_id=company.id,
        original_record_id=entry.id,
        proposed_fields={"timestamp": at("07:55")},
        requested_by_user_id=11,
        now=NOW,
        **VALID,
    )


@pytest.fixture
def captured(app):
    events = []

    def notifier(event, payload):
        events.append((event, payload))

    notification_service.register_notifier(app, notifier)
    yield events
    app.extensions["timeledger.notifiers"].remove(notifier)


class TestTransitionFunction:

    def test_pending_to_terminal(self):
        assert next_status("PENDING", "APPROVED") == "APPROVED"
        assert next_status("PENDING", "REJECTED") == "REJECTED"

    @pytest.mark.parametrize("current", ["APPROVED", "REJECTED"])
    def test_terminal_states_reject_everything(self, current):
        with pytest.raises(ConflictError):
            next_status(current, "APPROVED")
        with pytest.raises(ConflictError):
            next_status(current, "REJECTED")

    def test_unknown_decision(self):
        with pytest.raises(ValidationError):
            next_status("PENDING", "MAYBE")


class TestRequestAdjustment:

    def test_creates_pending_with_diff(self, pending, entry):
        assert pending.status == "PENDING"
        assert pending.proposed_punched_at == at("07:55")
        assert pending.proposed_type is None
        assert pending.changes == {
            "timestamp": {"from": "2024-03-04T08:00:00Z", "to": "2024-03-04T07:55:00Z"}
        }

    def test_original_untouched(self, pending, entry, db_session):
        stored = db_session.get(PunchRecord, entry.id)
        assert stored.punched_at == at("08:00")
        assert stored.fingerprint == integrity_service.fingerprint_for_record(stored)

    def test_lists_every_violation(self, entry, company):
        with pytest.raises(ValidationError) as exc_info:
            request_adjustment(
                company_id=company.id,
                original_record_id=entry.id,
                proposed_fields={"type": "EXIT"},
                reason="BORED",
                description="short",
                evidence_ref=None,
                requested_by_user_id=11,
                now=NOW,
            )
        violations = exc_info.value.violations
        assert len(violations) == 3
        assert "description must be at least 10 characters" in violations
        assert any(v.startswith("reason must be one of") for v in violations)
        assert "evidence is required by company policy" in violations

    def test_missing_original(self, db_session, company):
        with pytest.raises(ValidationError) as exc_info:
            request_adjustment(company_id=company.id, original_record_id=9999,
                               proposed_fields={"type": "EXIT"}, requested_by_user_id=11, now=NOW, **VALID)
        assert "original record does not exist" in exc_info.value.violations

    def test_no_effective_change(self, entry, company):
        with pytest.raises(ValidationError) as exc_info:
            request_adjustment(company_id=company.id, original_record_id=entry.id,
                               proposed_fields={"type": "ENTRY"}, requested_by_user_id=11, now=NOW, **VALID)
        assert "proposed fields do not change the record" in exc_info.value.violations

    def test_future_timestamp_rejected(self, entry, company):
        with pytest.raises(ValidationError) as exc_info:
            request_adjustment(company_id=company.id, original_record_id=entry.id,
                               proposed_fields={"timestamp": NOW + timedelta(hours=1)},
                               requested_by_user_id=11, now=NOW, **VALID)
        assert "timestamp must not be in the future" in exc_info.value.violations

    def test_second_pending_rejected(self, pending, entry, company):
        with pytest.raises(ValidationError) as exc_info:
            request_adjustment(company_id=company.id, original_record_id=entry.id,
                               proposed_fields={"type": "EXIT"}, requested_by_user_id=11, now=NOW, **VALID)
        assert f"adjustment {pending.id} is already pending for this record" in exc_info.value.violations

    def test_window_boundary_inclusive(self, entry, company):
        adjustment = request_adjustment(company_id=company.id, original_record_id=entry.id,
                                        proposed_fields={"type": "EXIT"}, requested_by_user_id=11,
                                        now=at("08:00") + timedelta(days=7), **VALID)
        assert adjustment.status == "PENDING"

    def test_window_plus_one_day_expired(self, entry, company):
        with pytest.raises(AdjustmentWindowExpiredError) as exc_info:
            request_adjustment(company_id=company.id, original_record_id=entry.id,
                               proposed_fields={"type": "EXIT"}, requested_by_user_id=11,
                               now=at("08:00") + timedelta(days=8), **VALID)
        assert exc_info.value.max_days == 7
        assert "7 days" in str(exc_info.value)

    def test_requested_transition_audited(self, pending, db_session):
        audit = db_session.query(AuditLogEntry).filter_by(action="ADJUSTMENT_REQUESTED").one()
        assert audit.status == "PENDING"
        assert audit.entity_id == pending.id
        assert audit.actor_user_id == 11


class TestDecideAdjustment:

    def test_approve_materializes_chained_record(self, pending, entry, company, db_session):
        decided = decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                                    approver_user_id=21, decision="APPROVED", now=NOW)

        assert decided.status == "APPROVED"
        assert decided.decided_by_user_id == 21
        derived = db_session.get(PunchRecord, decided.derived_record_id)
        assert derived.source == "ADJUSTMENT"
        assert derived.original_record_id == entry.id
        assert derived.punched_at == at("07:55")
        assert derived.punch_type == "ENTRY"
        assert derived.fingerprint == integrity_service.chain_fingerprint(entry.fingerprint, pending.id)
        assert derived.employee_sequence == 2

    def test_approved_ledger_still_verifies(self, pending, company):
        decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                          approver_user_id=21, decision="APPROVED", now=NOW)
        assert integrity_service.verify_ledger(company_id=company.id) == {"checked": 2, "mismatches": 0}

    def test_effective_punches_use_correction(self, pending, employee, company):
        decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                          approver_user_id=21, decision="APPROVED", now=NOW)
        punches = ledger_service.effective_punches(
            employee_id=employee.id, start=WORK_DAY, end=WORK_DAY + timedelta(days=1)
        )
        assert [(p.punch_type, p.punched_at, p.source) for p in punches] == [
            ("ENTRY", at("07:55"), "ADJUSTMENT")
        ]

    def test_reject_requires_reason(self, pending, company):
        with pytest.raises(ValidationError) as exc_info:
            decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                              approver_user_id=21, decision="REJECTED", now=NOW)
        assert "rejection reason is required" in exc_info.value.violations

    def test_reject_leaves_ledger_alone(self, pending, entry, company, db_session):
        decided = decide_adjustment(adjustment_id=pending.id, company_id=company.id, approver_user_id=21,
                                    decision="REJECTED", rejection_reason="No evidence of outage", now=NOW)
        assert decided.status == "REJECTED"
        assert decided.rejection_reason == "No evidence of outage"
        assert decided.derived_record_id is None
        assert db_session.query(PunchRecord).count() == 1

    def test_second_decision_conflicts(self, pending, company):
        decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                          approver_user_id=21, decision="APPROVED", now=NOW)
        with pytest.raises(ConflictError) as exc_info:
            decide_adjustment(adjustment_id=pending.id, company_id=company.id, approver_user_id=22,
                              decision="REJECTED", rejection_reason="Too late", now=NOW)
        assert "already decided by someone else" in str(exc_info.value)

    def test_other_company_cannot_decide(self, pending, other_company):
        with pytest.raises(NotFoundError):
            decide_adjustment(adjustment_id=pending.id, company_id=other_company.id,
                              approver_user_id=21, decision="APPROVED", now=NOW)

    def test_decision_audited_with_before_after(self, pending, company, db_session):
        decided = decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                                    approver_user_id=21, decision="APPROVED", now=NOW)
        audit = db_session.query(AuditLogEntry).filter_by(action="ADJUSTMENT_APPROVED").one()
        metadata = json.loads(audit.metadata_json)
        assert audit.actor_user_id == 21
        assert metadata["before"] == {"status": "PENDING"}
        assert metadata["after"] == {"status": "APPROVED", "derived_record_id": decided.derived_record_id}

    def test_decision_notifies(self, pending, company, captured):
        decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                          approver_user_id=21, decision="APPROVED", now=NOW)
        assert captured == [("adjustment.decided", {
            "adjustment_id": pending.id,
            "employee_id": pending.employee_id,
            "status": "APPROVED",
            "requested_by_user_id": 11,
        })]

    def test_failing_notifier_does_not_fail_decision(self, app, pending, company):
        def broken(event, payload):
            raise RuntimeError("push gateway down")

        notification_service.register_notifier(app, broken)
        try:
            decided = decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                                        approver_user_id=21, decision="APPROVED", now=NOW)
        finally:
            app.extensions["timeledger.notifiers"].remove(broken)
        assert decided.status == "APPROVED"


class TestComplianceModeOff:

    def test_no_audit_entries(self, entry, company, db_session):
        from timeledger.services.policy_service import update_company_settings
        update_company_settings(company_id=company.id, values={"compliance_mode": False}, actor_user_id=1)

        adjustment = request_adjustment(company_id=company.id, original_record_id=entry.id,
                                        proposed_fields={"type": "EXIT"}, requested_by_user_id=11,
                                        now=NOW, **VALID)
        decide_adjustment(adjustment_id=adjustment.id, company_id=company.id,
                          approver_user_id=21, decision="APPROVED", now=NOW)

        actions = {a.action for a in db_session.query(AuditLogEntry).filter_by(company_id=company.id)}
        assert actions == {"SETTINGS_UPDATED"}


class TestReporting:

    def test_stats(self, pending, company):
        decide_adjustment(adjustment_id=pending.id, company_id=company.id,
                          approver_user_id=21, decision="APPROVED", now=NOW + timedelta(hours=3))
        stats = adjustment_service.adjustment_stats(company_id=company.id)
        assert stats["total"] == 1
        assert stats["approved"] == 1
        assert stats["pending"] == 0
        assert stats["average_processing_hours"] == 3.0
        assert stats["by_reason"] == {"FORGOT_TO_REGISTER": 1}
        assert stats["by_month"] == {"2024-03": 1}

    def test_report_lists_changes(self, pending, company):
        report = adjustment_service.adjustment_report(company_id=company.id)
        assert report.startswith("ADJUSTMENT REPORT\n")
        assert f"#{pending.id} punch {pending.original_record_id}" in report
        assert "timestamp 2024-03-04T08:00:00Z -> 2024-03-04T07:55:00Z" in report

    def test_list_filters_status(self, pending, company):
        assert [a.id for a in adjustment_service.list_adjustments(company_id=company.id, status="PENDING")] == [
            pending.id
        ]
        assert adjustment_service.list_adjustments(company_id=company.id, status="APPROVED") == []

    def test_adjustment_model_is_mutable(self, pending, db_session):
        # Only punch records and audit entries are append-only.
        pending.description = "Badge reader offline, confirmed by facilities"
        db_session.commit()
        assert db_session.get(Adjustment, pending.id).description.startswith("Badge reader offline")
