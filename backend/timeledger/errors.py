# Overview: Typed failures returned by ledger, workflow and export operations.

"""
Error taxonomy.

Every failure the core reports to a caller is one of these types. Routes map
them to JSON through a single handler registered in the app factory; services
raise them and never return sentinel values.

INVARIANTS:
- ValidationError always carries the complete list of violated rules.
- IntegrityMismatchError is never caught inside the core.
"""

from __future__ import annotations

from typing import Iterable


class TimeLedgerError(ValueError):
    """Base class for typed core failures."""

    status_code = 400
    code = "TIMELEDGER_ERROR"

    def details(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details()}


class ValidationError(TimeLedgerError):
    """400-level input problem; lists every violation, not only the first."""

    code = "VALIDATION_ERROR"

    def __init__(self, violations: Iterable[str] | str):
        if isinstance(violations, str):
            violations = [violations]
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "Invalid input")

    def details(self) -> dict:
        return {"violations": self.violations}


class AdjustmentWindowExpiredError(ValidationError):
    code = "ADJUSTMENT_WINDOW_EXPIRED"

    def __init__(self, max_days: int, age_days: float):
        self.max_days = max_days
        self.age_days = age_days
        super().__init__(
            f"Adjustments are only allowed for records up to {max_days} days old"
        )

    def details(self) -> dict:
        return {"max_days": self.max_days, "age_days": round(self.age_days, 2)}


class DuplicateRecordError(TimeLedgerError):
    """Fingerprint or cool-down collision on punch submission."""

    status_code = 409
    code = "DUPLICATE_RECORD"

    def __init__(self, message: str, *, wait_minutes: int = 0, existing_record_id: int | None = None):
        self.wait_minutes = wait_minutes
        self.existing_record_id = existing_record_id
        super().__init__(message)

    def details(self) -> dict:
        return {"wait_minutes": self.wait_minutes, "existing_record_id": self.existing_record_id}


class IntegrityMismatchError(TimeLedgerError):
    """Stored fingerprint disagrees with the recomputed one. Fatal."""

    status_code = 409
    code = "INTEGRITY_MISMATCH"

    def __init__(self, record_ids: Iterable[int]):
        self.record_ids = sorted(record_ids)
        super().__init__(
            f"Fingerprint mismatch detected for record(s): {', '.join(str(i) for i in self.record_ids)}"
        )

    def details(self) -> dict:
        return {"record_ids": self.record_ids}


class ConflictError(TimeLedgerError):
    """409-level lost race on a terminal-state transition."""

    status_code = 409
    code = "CONFLICT"


class ComplianceExportError(TimeLedgerError):
    status_code = 422
    code = "COMPLIANCE_EXPORT_ERROR"


class NotFoundError(TimeLedgerError):
    status_code = 404
    code = "NOT_FOUND"


class ImmutableRecordError(TimeLedgerError):
    """Raised by ORM listeners when code attempts to edit append-only rows."""

    status_code = 500
    code = "IMMUTABLE_RECORD"
