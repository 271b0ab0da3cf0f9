from .tenancy import Company, Employee
from .settings import CompanySettings
from .ledger import PunchRecord, PUNCH_TYPES, SOURCE_PUNCH, SOURCE_ADJUSTMENT
from .adjustments import (
    Adjustment, ADJUSTMENT_STATUSES, DEFAULT_ADJUSTMENT_REASONS,
    STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED,
)
from .audit import AuditLogEntry
from .exports import ComplianceExport
from . import immutability  # noqa: F401  (registers ORM listeners)

__all__ = [
    'Company', 'Employee', 'CompanySettings',
    'PunchRecord', 'PUNCH_TYPES', 'SOURCE_PUNCH', 'SOURCE_ADJUSTMENT',
    'Adjustment', 'ADJUSTMENT_STATUSES', 'DEFAULT_ADJUSTMENT_REASONS',
    'STATUS_PENDING', 'STATUS_APPROVED', 'STATUS_REJECTED',
    'AuditLogEntry', 'ComplianceExport',
]
