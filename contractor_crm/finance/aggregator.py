"""
Financial Aggregation

Derives every monetary figure and health indicator from the current
project graph. Nothing here is cached or persisted: callers recompute on
every read.

WARNING RULE (cash buffer vs. what is still owed to subs):
- nothing left to pay            -> green
- buffer below zero              -> red
- buffer within 20% of the debt  -> yellow
- otherwise                      -> green

SEPARATE MODE:
Labor and materials are computed independently. Materials are a
pass-through (price == cost), so the materials budget stands in for the
materials cost and the category's health comes from labor alone.
"""

from decimal import Decimal
from typing import Iterable, Optional

from contractor_crm.models.ledger import (
    Category,
    CategoryMode,
    ExpenseType,
    Project,
    WarningLevel,
)
from contractor_crm.models.totals import (
    ZERO,
    CategoryTotals,
    LineTotals,
    ProjectTotals,
)


YELLOW_BUFFER_RATIO = Decimal("0.20")
HUNDRED = Decimal("100")


def warning_level(buffer: Decimal, remaining_to_pay: Decimal) -> WarningLevel:
    """Classify a cash buffer against the amount still owed to a sub."""
    if remaining_to_pay <= 0:
        return WarningLevel.GREEN
    if buffer < 0:
        return WarningLevel.RED
    if buffer <= YELLOW_BUFFER_RATIO * remaining_to_pay:
        return WarningLevel.YELLOW
    return WarningLevel.GREEN


def _sum(values: Iterable[Optional[Decimal]]) -> Decimal:
    return sum((value for value in values if value is not None), ZERO)


def _progress(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return part / whole * HUNDRED


def _line_totals(
    budget: Decimal,
    cost: Decimal,
    collected: Decimal,
    paid: Decimal,
    with_warning: bool = True,
) -> LineTotals:
    remaining_to_collect = budget - collected
    remaining_to_pay = cost - paid
    buffer = remaining_to_collect - remaining_to_pay
    return LineTotals(
        budget=budget,
        cost=cost,
        collected=collected,
        paid=paid,
        remaining_to_collect=remaining_to_collect,
        remaining_to_pay=remaining_to_pay,
        buffer=buffer,
        profit=budget - cost,
        warning_level=warning_level(buffer, remaining_to_pay) if with_warning else None,
    )


def _all_inclusive_totals(category: Category) -> CategoryTotals:
    line = _line_totals(
        budget=category.total_budget or ZERO,
        cost=category.total_cost or ZERO,
        collected=_sum(a.amount for a in category.allocations),
        paid=_sum(e.amount for e in category.expenses),
    )
    return CategoryTotals(
        category_id=category.id,
        mode=category.mode,
        total_budget=line.budget,
        total_cost=line.cost,
        total_collected=line.collected,
        total_paid=line.paid,
        remaining_to_collect=line.remaining_to_collect,
        remaining_to_pay=line.remaining_to_pay,
        buffer=line.buffer,
        warning_level=line.warning_level,
        projected_profit=line.profit,
        current_margin=line.collected - line.paid,
    )


def _separate_totals(category: Category) -> CategoryTotals:
    labor = _line_totals(
        budget=category.labor_budget or ZERO,
        cost=category.labor_cost or ZERO,
        collected=_sum(a.labor_amount for a in category.allocations),
        paid=_sum(e.amount for e in category.expenses if e.type == ExpenseType.LABOR),
    )
    # Pass-through: materials budget is also the materials cost.
    materials_budget = category.materials_budget or ZERO
    materials = _line_totals(
        budget=materials_budget,
        cost=materials_budget,
        collected=_sum(a.materials_amount for a in category.allocations),
        paid=_sum(
            e.amount for e in category.expenses if e.type == ExpenseType.MATERIALS
        ),
        with_warning=False,
    )

    total_budget = labor.budget + materials.budget
    total_cost = labor.cost + materials.budget
    total_collected = labor.collected + materials.collected
    total_paid = labor.paid + materials.paid
    remaining_to_collect = total_budget - total_collected
    remaining_to_pay = total_cost - total_paid

    return CategoryTotals(
        category_id=category.id,
        mode=category.mode,
        total_budget=total_budget,
        total_cost=total_cost,
        total_collected=total_collected,
        total_paid=total_paid,
        remaining_to_collect=remaining_to_collect,
        remaining_to_pay=remaining_to_pay,
        buffer=remaining_to_collect - remaining_to_pay,
        warning_level=labor.warning_level,
        projected_profit=labor.profit,
        current_margin=total_collected - total_paid,
        labor=labor,
        materials=materials,
    )


def category_totals(category: Category) -> CategoryTotals:
    """
    Compute all derived figures for one category.

    Pure: the category is not modified.
    """
    if category.mode == CategoryMode.SEPARATE:
        totals = _separate_totals(category)
    else:
        totals = _all_inclusive_totals(category)

    totals.is_over_collected = totals.total_collected > totals.total_budget
    totals.is_underwater = totals.total_paid > totals.total_collected
    totals.collection_progress = _progress(totals.total_collected, totals.total_budget)
    totals.payment_progress = _progress(totals.total_paid, totals.total_cost)
    return totals


def project_totals(project: Project) -> ProjectTotals:
    """Roll category totals up to the project and count category health."""
    rollup = ProjectTotals(project_id=project.id)
    for category in project.categories:
        totals = category_totals(category)
        rollup.total_budget += totals.total_budget
        rollup.total_cost += totals.total_cost
        rollup.total_collected += totals.total_collected
        rollup.total_paid += totals.total_paid
        rollup.health.add(totals.warning_level)
    return rollup
