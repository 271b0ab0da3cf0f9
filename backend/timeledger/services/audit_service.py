# Overview: Service-layer writes to the append-only audit log.

"""
Audit Log Sink

WHY: Every adjustment transition, export and detected tampering must leave a
trail (actor, action, status, details, metadata, timestamp).

DESIGN: record_audit_event only adds to the session. The caller commits, so the
audit row and the change it describes are a single unit of work.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from ..extensions import db
from ..models import AuditLogEntry
from ..models.audit import AUDIT_STATUSES
from ..time_utils import utcnow, to_utc_z


def _json_default(value: Any):
    if isinstance(value, datetime):
        return to_utc_z(value)
    return str(value)


def record_audit_event(
    *,
    action: str,
    status: str,
    company_id: int | None,
    actor_user_id: int | None,
    details: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    metadata: dict | None = None,
    occurred_at: datetime | None = None,
) -> AuditLogEntry:
    if status not in AUDIT_STATUSES:
        raise ValueError(f"Invalid audit status: {status}")

    entry = AuditLogEntry(
        company_id=company_id,
        actor_user_id=actor_user_id,
        action=action,
        status=status,
        details=details,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=json.dumps(metadata or {}, default=_json_default, sort_keys=True),
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    return entry


def list_audit_events(
    *,
    company_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    limit: int = 200,
) -> list[AuditLogEntry]:
    query = db.session.query(AuditLogEntry).filter(AuditLogEntry.company_id == company_id)
    if entity_type:
        query = query.filter(AuditLogEntry.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLogEntry.entity_id == entity_id)
    if action:
        query = query.filter(AuditLogEntry.action == action)
    return query.order_by(AuditLogEntry.occurred_at.desc(), AuditLogEntry.id.desc()).limit(limit).all()
