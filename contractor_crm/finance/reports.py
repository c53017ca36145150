"""
Read-side views of a project.

These never raise on dangling references: an allocation whose category
was deleted is shown under UNKNOWN_CATEGORY.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from contractor_crm.models.ledger import (
    Allocation,
    Category,
    Expense,
    Payment,
    Project,
)


UNKNOWN_CATEGORY = "Unknown"


class AllocationLine(BaseModel):
    category_id: Optional[str]
    category_name: str
    allocation: Allocation


class PaymentView(BaseModel):
    payment: Payment
    lines: list[AllocationLine] = Field(default_factory=list)
    unallocated: Decimal


class CategoryExpenses(BaseModel):
    category: Category
    expenses: list[Expense]


class OrphanedAllocation(BaseModel):
    category_id: str
    payment_id: Optional[str]


def category_name(project: Project, category_id: Optional[str]) -> str:
    category = project.find_category(category_id) if category_id else None
    return category.name if category else UNKNOWN_CATEGORY


def payment_history(project: Project) -> list[PaymentView]:
    """Payments newest first, with allocations resolved to category names."""
    views = []
    for payment in sorted(project.payments, key=lambda p: p.date, reverse=True):
        lines = [
            AllocationLine(
                category_id=allocation.category_id,
                category_name=category_name(project, allocation.category_id),
                allocation=allocation,
            )
            for allocation in payment.allocations
        ]
        views.append(PaymentView(
            payment=payment,
            lines=lines,
            unallocated=payment.total_amount - payment.allocated_total,
        ))
    return views


def expense_history(project: Project) -> list[CategoryExpenses]:
    """Expenses per category, newest first; categories without expenses are skipped."""
    return [
        CategoryExpenses(
            category=category,
            expenses=sorted(category.expenses, key=lambda e: e.date, reverse=True),
        )
        for category in project.categories
        if category.expenses
    ]


def find_orphaned_allocations(project: Project) -> list[OrphanedAllocation]:
    """Category allocations that point at a payment the project no longer has."""
    payment_ids = {payment.id for payment in project.payments}
    return [
        OrphanedAllocation(category_id=category.id, payment_id=allocation.payment_id)
        for category in project.categories
        for allocation in category.allocations
        if allocation.payment_id not in payment_ids
    ]
