"""
Input Validation

Checks form input BEFORE it reaches the ledger service.

Two levels of issues:
- error: the input cannot be recorded as entered
- warning: the input is recordable but probably not what was meant
  (cost above budget, money left unallocated, ...)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can correct the input.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, Field

from contractor_crm.models.ledger import (
    AllocationRequest,
    CategoryMode,
    ExpenseType,
    Project,
)


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'over_allocated')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """All issues found for one submitted form."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.has_errors


def _to_decimal(value: Any) -> Optional[Decimal]:
    """
    Strictly parse an amount.

    Empty input is 0; anything unparsable is None.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "").replace("$", "")
        if not text:
            return Decimal("0")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    return amount if amount.is_finite() else None


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class LedgerInputValidator:
    """Validates project, category, payment and expense input."""

    def _amount(
        self,
        issues: list[ValidationIssue],
        field: str,
        value: Any,
    ) -> Optional[Decimal]:
        """Parse a non-negative amount, recording an error when it is not one."""
        amount = _to_decimal(value)
        if amount is None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"{field} is not a valid amount: {value!r}",
                severity="error",
            ))
        elif amount < 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field} cannot be negative",
                severity="error",
            ))
            return None
        return amount

    def _check_allocation_category(
        self,
        issues: list[ValidationIssue],
        project: Project,
        index: int,
        values: dict,
    ) -> None:
        """Match one allocation's amount fields against its category's mode."""
        category_id = values.get("category_id")
        category = project.find_category(category_id) if category_id else None
        if category is None:
            issues.append(ValidationIssue(
                field=f"allocations[{index}].category_id",
                issue_type="missing",
                message=f"Allocation targets an unknown category: {category_id!r}",
                severity="error",
            ))
            return

        if category.mode == CategoryMode.SEPARATE:
            unused = {"amount": "labor"}
        else:
            unused = {"labor_amount": "amount", "materials_amount": "amount"}

        for key, target in unused.items():
            amount = _to_decimal(values.get(key))
            if amount:
                issues.append(ValidationIssue(
                    field=f"allocations[{index}].{key}",
                    issue_type="mode_mismatch",
                    message=(
                        f"{category.name} is {category.mode.value}: "
                        f"{amount} entered as {key} will be recorded as {target}"
                    ),
                    severity="warning",
                ))

    def validate_project(self, name: Optional[str], client_name: Optional[str]) -> ValidationResult:
        issues = []
        if _is_blank(name):
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Project name is required",
                severity="error",
            ))
        if _is_blank(client_name):
            issues.append(ValidationIssue(
                field="client_name",
                issue_type="missing",
                message="Client name is required",
                severity="error",
            ))
        return ValidationResult(issues=issues)

    def validate_category(
        self,
        name: Optional[str],
        mode: Union[CategoryMode, str],
        total_budget: Any = None,
        total_cost: Any = None,
        labor_budget: Any = None,
        labor_cost: Any = None,
        materials_budget: Any = None,
    ) -> ValidationResult:
        """
        Validate a new category.

        Only the amounts of the chosen mode are checked. Cost above
        budget is a warning: the category will lose money.
        """
        issues = []
        if _is_blank(name):
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Category name is required",
                severity="error",
            ))

        try:
            mode = CategoryMode(mode)
        except ValueError:
            issues.append(ValidationIssue(
                field="mode",
                issue_type="invalid_value",
                message=f"Unknown category mode: {mode!r}",
                severity="error",
            ))
            return ValidationResult(issues=issues)

        if mode == CategoryMode.ALL_INCLUSIVE:
            budget = self._amount(issues, "total_budget", total_budget)
            cost = self._amount(issues, "total_cost", total_cost)
        else:
            budget = self._amount(issues, "labor_budget", labor_budget)
            cost = self._amount(issues, "labor_cost", labor_cost)
            self._amount(issues, "materials_budget", materials_budget)

        if budget is not None and cost is not None and cost > budget:
            issues.append(ValidationIssue(
                field="total_cost" if mode == CategoryMode.ALL_INCLUSIVE else "labor_cost",
                issue_type="negative_profit",
                message=f"Cost ({cost}) exceeds budget ({budget}); this category will lose money",
                severity="warning",
            ))

        return ValidationResult(issues=issues)

    def validate_payment(
        self,
        total_amount: Any,
        payment_date: Optional[date],
        allocations: Iterable[Union[AllocationRequest, dict]] = (),
        project: Optional[Project] = None,
    ) -> ValidationResult:
        """
        Validate a client payment and its split.

        Allocating more than was received is an error. Leaving part of
        the payment unallocated, or allocating nothing, is a warning.

        With a project, each allocation is also checked against its
        category: an unknown category is an error, and an amount entered
        in a field the category mode does not use is a warning.
        """
        issues = []

        total = _to_decimal(total_amount)
        if total is None or total <= 0:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="invalid_value",
                message="Payment amount must be greater than zero",
                severity="error",
            ))
            total = None

        if payment_date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Payment date is required",
                severity="error",
            ))

        allocated = Decimal("0")
        for index, raw in enumerate(allocations):
            values = (
                raw.model_dump() if isinstance(raw, AllocationRequest) else dict(raw)
            )
            for key in ("amount", "labor_amount", "materials_amount"):
                value = values.get(key)
                if value is None:
                    continue
                amount = self._amount(issues, f"allocations[{index}].{key}", value)
                if amount is not None:
                    allocated += amount
            if project is not None:
                self._check_allocation_category(issues, project, index, values)

        if total is not None:
            if allocated > total:
                issues.append(ValidationIssue(
                    field="allocations",
                    issue_type="over_allocated",
                    message=f"Allocated {allocated} exceeds the payment total {total}",
                    severity="error",
                ))
            elif allocated == 0:
                issues.append(ValidationIssue(
                    field="allocations",
                    issue_type="unallocated",
                    message="No part of this payment is allocated to a category",
                    severity="warning",
                ))
            elif allocated < total:
                issues.append(ValidationIssue(
                    field="allocations",
                    issue_type="unallocated",
                    message=f"{total - allocated} of this payment is not allocated",
                    severity="warning",
                ))

        return ValidationResult(issues=issues)

    def validate_expense(
        self,
        project: Project,
        category_id: Optional[str],
        amount: Any,
        expense_date: Optional[date],
        expense_type: Union[ExpenseType, str, None] = None,
    ) -> ValidationResult:
        issues = []

        parsed = _to_decimal(amount)
        if parsed is None or parsed <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Expense amount must be greater than zero",
                severity="error",
            ))

        if expense_date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Expense date is required",
                severity="error",
            ))

        category = project.find_category(category_id) if category_id else None
        if category is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message="Expense must belong to an existing category",
                severity="error",
            ))
        elif category.mode == CategoryMode.SEPARATE and not expense_type:
            issues.append(ValidationIssue(
                field="type",
                issue_type="missing",
                message=f"Mark whether this {category.name} expense is labor or materials",
                severity="warning",
            ))

        if expense_type and expense_type not in {t.value for t in ExpenseType}:
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=(
                    f"Unknown expense type: {expense_type!r} "
                    f"(expected one of {[t.value for t in ExpenseType]})"
                ),
                severity="error",
            ))

        return ValidationResult(issues=issues)
