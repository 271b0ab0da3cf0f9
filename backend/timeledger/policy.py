# Overview: Explicit policy values passed into every guard, workflow, aggregator and export call.

"""
Company Policy

WHY: Tolerances, night windows and workflow limits differ per company. They
are plain immutable values handed to each operation instead of ambient
globals, so one process can serve many companies deterministically and the
pure aggregator can be tested without an app context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time

from .models.adjustments import DEFAULT_ADJUSTMENT_REASONS


@dataclass(frozen=True)
class SchedulePolicy:
    expected_start: time = time(8, 0)
    expected_end: time = time(17, 0)
    tolerance_minutes: int = 10
    night_start: time = time(22, 0)
    night_end: time = time(5, 0)
    standard_daily_minutes: int = 480
    expected_break_minutes: int = 60
    max_daily_overtime_minutes: int = 120
    max_weekly_overtime_minutes: int = 600
    work_weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    timezone: str = "UTC"
    absence_counts_as_debit: bool = False

    def is_work_day(self, weekday: int) -> bool:
        return weekday in self.work_weekdays


@dataclass(frozen=True)
class IntegrityPolicy:
    duplicate_cooldown_minutes: int = 5
    max_punches_per_day: int = 8
    clock_skew_seconds: int = 120


@dataclass(frozen=True)
class AdjustmentPolicy:
    max_adjustment_days: int = 7
    min_description_length: int = 10
    require_evidence: bool = True
    compliance_mode: bool = True
    allowed_reasons: tuple[str, ...] = DEFAULT_ADJUSTMENT_REASONS


@dataclass(frozen=True)
class ExportPolicy:
    format_version: str = "003"
    encoding: str = "iso-8859-1"


@dataclass(frozen=True)
class CompanyPolicy:
    schedule: SchedulePolicy = field(default_factory=SchedulePolicy)
    integrity: IntegrityPolicy = field(default_factory=IntegrityPolicy)
    adjustment: AdjustmentPolicy = field(default_factory=AdjustmentPolicy)
    export: ExportPolicy = field(default_factory=ExportPolicy)
