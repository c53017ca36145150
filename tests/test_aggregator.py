"""Tests for the financial aggregator and read-side reports."""

from datetime import date
from decimal import Decimal

from contractor_crm.finance import (
    UNKNOWN_CATEGORY,
    category_name,
    category_totals,
    expense_history,
    find_orphaned_allocations,
    payment_history,
    project_totals,
    warning_level,
)
from contractor_crm.models import (
    Allocation,
    Category,
    Expense,
    ExpenseType,
    Payment,
    Project,
    WarningLevel,
)


def _inclusive(budget, cost, collected=(), paid=()):
    return Category(
        name="Test",
        total_budget=Decimal(budget),
        total_cost=Decimal(cost),
        allocations=[Allocation(amount=Decimal(a)) for a in collected],
        expenses=[
            Expense(amount=Decimal(p), date=date(2024, 1, 1)) for p in paid
        ],
    )


class TestWarningLevel:
    """Tests for the cash-buffer warning rule."""

    def test_nothing_left_to_pay_is_green(self):
        """Test that a category with nothing left to pay is green."""
        assert warning_level(Decimal("-500"), Decimal("0")) == WarningLevel.GREEN
        assert warning_level(Decimal("-500"), Decimal("-10")) == WarningLevel.GREEN

    def test_negative_buffer_is_red(self):
        """Test that a negative buffer is red."""
        assert warning_level(Decimal("-0.01"), Decimal("100")) == WarningLevel.RED

    def test_buffer_at_twenty_percent_is_yellow(self):
        """Test that a buffer at or under twenty percent is yellow."""
        assert warning_level(Decimal("200"), Decimal("1000")) == WarningLevel.YELLOW
        assert warning_level(Decimal("0"), Decimal("1000")) == WarningLevel.YELLOW

    def test_buffer_above_twenty_percent_is_green(self):
        """Test that a buffer above twenty percent is green."""
        assert warning_level(Decimal("200.01"), Decimal("1000")) == WarningLevel.GREEN


class TestAllInclusiveTotals:
    """Tests for single budget/cost categories."""

    def test_yellow_category(self):
        """Test totals of a category with a thin buffer."""
        totals = category_totals(_inclusive("30000", "22000", ["10000"], ["5000"]))
        assert totals.total_collected == Decimal("10000")
        assert totals.total_paid == Decimal("5000")
        assert totals.remaining_to_collect == Decimal("20000")
        assert totals.remaining_to_pay == Decimal("17000")
        assert totals.buffer == Decimal("3000")
        assert totals.warning_level == WarningLevel.YELLOW
        assert totals.projected_profit == Decimal("8000")
        assert totals.current_margin == Decimal("5000")

    def test_red_category(self):
        """Test that collecting less than is owed turns a category red."""
        totals = category_totals(_inclusive("1000", "900", ["1000"]))
        assert totals.buffer == Decimal("-900")
        assert totals.warning_level == WarningLevel.RED

    def test_fully_paid_category_is_green(self):
        """Test that a fully paid category is green."""
        totals = category_totals(_inclusive("1000", "900", [], ["900"]))
        assert totals.remaining_to_pay == 0
        assert totals.warning_level == WarningLevel.GREEN

    def test_flags_and_progress(self):
        """Test over-collection flag and progress percentages."""
        totals = category_totals(_inclusive("1000", "800", ["1200"], ["400"]))
        assert totals.is_over_collected
        assert not totals.is_underwater
        assert totals.collection_progress == Decimal("120")
        assert totals.payment_progress == Decimal("50")

    def test_underwater_category(self):
        """Test that paying out more than collected is underwater."""
        totals = category_totals(_inclusive("1000", "800", ["100"], ["300"]))
        assert totals.is_underwater

    def test_zero_budget_progress_is_zero(self):
        """Test that progress on a zero budget is zero."""
        totals = category_totals(_inclusive("0", "0"))
        assert totals.collection_progress == 0
        assert totals.payment_progress == 0

    def test_does_not_modify_category(self):
        """Test that computing totals leaves the category untouched."""
        category = _inclusive("1000", "500", ["100"])
        before = category.model_dump()
        category_totals(category)
        assert category.model_dump() == before


class TestSeparateTotals:
    """Tests for labor/materials categories."""

    def test_separate_category(self, kitchen_project):
        """Test labor and materials lines of a separate category."""
        totals = category_totals(kitchen_project.find_category("cat-framing"))

        assert totals.labor.collected == Decimal("3000")
        assert totals.labor.paid == Decimal("2000")
        assert totals.labor.buffer == Decimal("3000")
        assert totals.labor.warning_level == WarningLevel.GREEN

        assert totals.materials.cost == Decimal("4000")
        assert totals.materials.collected == Decimal("1000")
        assert totals.materials.warning_level is None

        assert totals.total_budget == Decimal("14000")
        assert totals.total_cost == Decimal("10000")
        assert totals.total_collected == Decimal("4000")
        assert totals.total_paid == Decimal("2000")
        assert totals.projected_profit == Decimal("4000")
        assert totals.warning_level == WarningLevel.GREEN

    def test_fully_paid_labor_is_green(self):
        """Test that fully paid labor is green."""
        category = Category(
            name="Framing",
            mode="separate",
            labor_budget=Decimal("45000"),
            labor_cost=Decimal("32000"),
            materials_budget=Decimal("0"),
            allocations=[Allocation(labor_amount=Decimal("32000"))],
            expenses=[
                Expense(amount=Decimal("32000"), date=date(2024, 1, 1),
                        type=ExpenseType.LABOR),
            ],
        )
        totals = category_totals(category)
        assert totals.labor.remaining_to_pay == 0
        assert totals.labor.warning_level == WarningLevel.GREEN
        assert totals.warning_level == WarningLevel.GREEN

    def test_untyped_expenses_count_toward_neither_line(self):
        """Test that untyped expenses are not counted as labor or materials."""
        category = Category(
            name="Roof",
            mode="separate",
            labor_budget=Decimal("100"),
            labor_cost=Decimal("50"),
            materials_budget=Decimal("20"),
            expenses=[Expense(amount=Decimal("10"), date=date(2024, 1, 1))],
        )
        totals = category_totals(category)
        assert totals.total_paid == 0

    def test_materials_do_not_drive_warning(self):
        """Materials paid ahead of collection do not turn the category red."""
        category = Category(
            name="Roof",
            mode="separate",
            labor_budget=Decimal("1000"),
            labor_cost=Decimal("500"),
            materials_budget=Decimal("2000"),
            expenses=[
                Expense(amount=Decimal("2000"), date=date(2024, 1, 1),
                        type=ExpenseType.MATERIALS),
            ],
        )
        totals = category_totals(category)
        assert totals.materials.paid == Decimal("2000")
        assert totals.warning_level == WarningLevel.GREEN


class TestProjectTotals:
    """Tests for the project rollup."""

    def test_rollup(self, kitchen_project):
        """Test the project rollup across both category modes."""
        totals = project_totals(kitchen_project)
        assert totals.total_budget == Decimal("44000")
        assert totals.total_cost == Decimal("32000")
        assert totals.total_collected == Decimal("14000")
        assert totals.total_paid == Decimal("7000")
        assert totals.projected_profit == Decimal("12000")
        assert totals.current_profit == Decimal("7000")
        assert totals.remaining_to_collect == Decimal("30000")
        assert totals.left_to_pay == Decimal("25000")
        assert (totals.health.green, totals.health.yellow, totals.health.red) == (1, 1, 0)

    def test_empty_project(self):
        """Test totals of a project without categories."""
        totals = project_totals(Project(name="Empty"))
        assert totals.total_budget == 0
        assert totals.health.green == 0


class TestReports:
    """Tests for payment and expense history views."""

    def test_category_name_for_dangling_id(self, kitchen_project):
        """Test category name lookup for a deleted category."""
        assert category_name(kitchen_project, "cat-plumbing") == "Plumbing"
        assert category_name(kitchen_project, "gone") == UNKNOWN_CATEGORY
        assert category_name(kitchen_project, None) == UNKNOWN_CATEGORY

    def test_payment_history_newest_first_with_remainder(self, kitchen_project):
        """Test payment history order and unallocated remainder."""
        kitchen_project.payments.append(
            Payment(id="pay-2", total_amount=Decimal("500"), date=date(2024, 4, 1))
        )
        views = payment_history(kitchen_project)
        assert [v.payment.id for v in views] == ["pay-2", "pay-1"]
        assert views[0].unallocated == Decimal("500")
        assert views[1].unallocated == Decimal("0")
        assert [line.category_name for line in views[1].lines] == ["Plumbing", "Framing"]

    def test_payment_history_after_category_deleted(self, kitchen_project):
        """Test that history lines survive a deleted category."""
        kitchen_project.categories = [
            c for c in kitchen_project.categories if c.id != "cat-framing"
        ]
        lines = payment_history(kitchen_project)[0].lines
        assert [line.category_name for line in lines] == ["Plumbing", UNKNOWN_CATEGORY]

    def test_expense_history(self, kitchen_project):
        """Test expense history grouped by category, newest first."""
        plumbing = kitchen_project.find_category("cat-plumbing")
        plumbing.expenses.append(
            Expense(id="exp-3", amount=Decimal("100"), date=date(2024, 4, 1))
        )
        kitchen_project.categories.append(
            Category(name="Paint", total_budget=Decimal("1"), total_cost=Decimal("1"))
        )
        history = expense_history(kitchen_project)
        assert [h.category.name for h in history] == ["Plumbing", "Framing"]
        assert [e.id for e in history[0].expenses] == ["exp-3", "exp-1"]

    def test_find_orphaned_allocations(self, kitchen_project):
        """Test detection of allocations without a payment."""
        assert find_orphaned_allocations(kitchen_project) == []
        kitchen_project.payments = []
        orphans = find_orphaned_allocations(kitchen_project)
        assert {o.category_id for o in orphans} == {"cat-plumbing", "cat-framing"}
