"""
ORM-level append-only enforcement.

SQLAlchemy fires before_update/before_delete before the SQL reaches the
database. Punch records and audit entries reject both; a correction is always
a new row.

Bulk statements (session.execute(update(...))) bypass mapper events. The
services never issue them against these tables.
"""

from sqlalchemy import event

from ..errors import ImmutableRecordError
from .audit import AuditLogEntry
from .ledger import PunchRecord


@event.listens_for(PunchRecord, "before_update")
def _reject_punch_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"PunchRecord {target.id} is immutable; request an adjustment instead"
    )


@event.listens_for(PunchRecord, "before_delete")
def _reject_punch_delete(mapper, connection, target):
    raise ImmutableRecordError(f"PunchRecord {target.id} cannot be deleted")


@event.listens_for(AuditLogEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ImmutableRecordError(f"AuditLogEntry {target.id} is immutable")


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ImmutableRecordError(f"AuditLogEntry {target.id} cannot be deleted")
