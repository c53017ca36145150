"""
Data Models Package

This package contains all Pydantic models used in Contractor CRM.
Persisted entities live in `ledger`, derived figures in `totals`.
"""

from contractor_crm.models.ledger import (
    CURRENT_SCHEMA_VERSION,
    Allocation,
    AllocationRequest,
    Category,
    CategoryMode,
    Expense,
    ExpenseType,
    LedgerDocument,
    Payment,
    PaymentMethod,
    Project,
    WarningLevel,
    new_id,
)
from contractor_crm.models.totals import (
    CategoryTotals,
    HealthCounts,
    LineTotals,
    ProjectTotals,
)
from contractor_crm.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CURRENT_SCHEMA_VERSION",
    "Allocation",
    "AllocationRequest",
    "Category",
    "CategoryMode",
    "Expense",
    "ExpenseType",
    "LedgerDocument",
    "Payment",
    "PaymentMethod",
    "Project",
    "WarningLevel",
    "new_id",
    # Derived figures
    "CategoryTotals",
    "HealthCounts",
    "LineTotals",
    "ProjectTotals",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
