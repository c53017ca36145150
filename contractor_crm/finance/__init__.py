"""Financial aggregation and reporting package."""

from contractor_crm.finance.aggregator import (
    YELLOW_BUFFER_RATIO,
    category_totals,
    project_totals,
    warning_level,
)
from contractor_crm.finance.reports import (
    UNKNOWN_CATEGORY,
    AllocationLine,
    CategoryExpenses,
    OrphanedAllocation,
    PaymentView,
    category_name,
    expense_history,
    find_orphaned_allocations,
    payment_history,
)

__all__ = [
    # Aggregation
    "YELLOW_BUFFER_RATIO",
    "category_totals",
    "project_totals",
    "warning_level",
    # Reports
    "UNKNOWN_CATEGORY",
    "AllocationLine",
    "CategoryExpenses",
    "OrphanedAllocation",
    "PaymentView",
    "category_name",
    "expense_history",
    "find_orphaned_allocations",
    "payment_history",
]
