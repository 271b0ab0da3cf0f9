# Overview: Service-layer reads over the append-only punch ledger.

"""
Ledger Service

WHY: The ledger holds both submitted punches and entries materialized from
approved adjustments. Reports must see one authoritative record per event.

DESIGN:
- apply_adjustment() folds an adjustment onto its original (pure)
- resolve_effective() picks the authoritative set from raw ledger rows (pure)
- effective_punches() loads the rows for an employee/range and resolves them
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable


from ..extensions import db
from ..models import PunchRecord, SOURCE_ADJUSTMENT, SOURCE_PUNCH
from ..time_utils import to_utc_z


@dataclass(frozen=True)
class EffectivePunch:
    """Authoritative view of one clock event, as used by reports."""
    employee_id: int
    company_id: int
    punch_type: str
    punched_at: datetime
    source: str = SOURCE_PUNCH
    record_id: int | None = None
    original_record_id: int | None = None
    adjustment_id: int | None = None

    @classmethod
    def from_record(cls, record: PunchRecord) -> "EffectivePunch":
        return cls(
            employee_id=record.employee_id,
            company_id=record.company_id,
            punch_type=record.punch_type,
            punched_at=record.punched_at,
            source=record.source,
            record_id=record.id,
            original_record_id=record.original_record_id,
            adjustment_id=record.adjustment_id,
        )

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "employee_id": self.employee_id,
            "company_id": self.company_id,
            "punch_type": self.punch_type,
            "punched_at": to_utc_z(self.punched_at),
            "source": self.source,
            "original_record_id": self.original_record_id,
            "adjustment_id": self.adjustment_id,
        }


def apply_adjustment(original, adjustment) -> EffectivePunch:
    """
    Overlay an adjustment's proposed fields onto the original record.

    Works on anything exposing the PunchRecord / Adjustment attribute names.
    """
    return EffectivePunch(
        employee_id=original.employee_id,
        company_id=original.company_id,
        punch_type=adjustment.proposed_type or original.punch_type,
        punched_at=adjustment.proposed_punched_at or original.punched_at,
        source=SOURCE_ADJUSTMENT,
        original_record_id=original.id,
        adjustment_id=adjustment.id,
    )


def resolve_effective(records: Iterable[PunchRecord]) -> list[EffectivePunch]:
    """
    Reduce raw ledger rows to the authoritative set.

    - a row that is the original of any derived row is superseded
    - among derived rows sharing one original, the latest (highest id) wins
    """
    records = list(records)
    superseded = {r.original_record_id for r in records if r.source == SOURCE_ADJUSTMENT}

    latest_by_original: dict[int, PunchRecord] = {}
    for r in records:
        if r.source != SOURCE_ADJUSTMENT:
            continue
        current = latest_by_original.get(r.original_record_id)
        if current is None or r.id > current.id:
            latest_by_original[r.original_record_id] = r

    result = []
    for r in records:
        if r.id in superseded:
            continue
        if r.source == SOURCE_ADJUSTMENT and latest_by_original.get(r.original_record_id) is not r:
            continue
        result.append(EffectivePunch.from_record(r))

    result.sort(key=lambda p: (p.punched_at, p.record_id or 0))
    return result


def list_punches(
    *,
    company_id: int,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    include_derived: bool = True,
    limit: int | None = None,
) -> list[PunchRecord]:
    """Raw ledger rows in [start, end), ordered by timestamp then id."""
    query = db.session.query(PunchRecord).filter(PunchRecord.company_id == company_id)
    if employee_id is not None:
        query = query.filter(PunchRecord.employee_id == employee_id)
    if start is not None:
        query = query.filter(PunchRecord.punched_at >= start)
    if end is not None:
        query = query.filter(PunchRecord.punched_at < end)
    if not include_derived:
        query = query.filter(PunchRecord.source == SOURCE_PUNCH)
    query = query.order_by(PunchRecord.punched_at.asc(), PunchRecord.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def effective_punches(*, employee_id: int, start: datetime, end: datetime) -> list[EffectivePunch]:
    """
    Authoritative punches for one employee whose effective time is in [start, end).

    A correction can move an event across the range boundary, so corrections
    of loaded rows (and competing corrections of the same original) are pulled
    in regardless of their own timestamp until the chain is closed.
    """
    rows = (
        db.session.query(PunchRecord)
        .filter(
            PunchRecord.employee_id == employee_id,
            PunchRecord.punched_at >= start,
            PunchRecord.punched_at < end,
        )
        .all()
    )
    by_id = {r.id: r for r in rows}

    parents = set(by_id) | {r.original_record_id for r in rows if r.source == SOURCE_ADJUSTMENT}
    seen_parents: set[int] = set()
    while parents - seen_parents:
        batch = parents - seen_parents
        seen_parents |= batch
        derived = (
            db.session.query(PunchRecord)
            .filter(
                PunchRecord.employee_id == employee_id,
                PunchRecord.source == SOURCE_ADJUSTMENT,
                PunchRecord.original_record_id.in_(batch),
            )
            .all()
        )
        for record in derived:
            if record.id not in by_id:
                by_id[record.id] = record
            parents.add(record.id)

    resolved = resolve_effective(by_id.values())
    return [p for p in resolved if start <= p.punched_at < end]
